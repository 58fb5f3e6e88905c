"""Tests for the token pattern layer, one rule family at a time."""

import numpy as np
import pytest

from bank_ner import EntityType
from bank_ner.patterns import RULES, Direction, PatternRule, apply_rule, scan_patterns

from conftest import label_row

RULES_BY_NAME = {rule.name: rule for rule in RULES}


def found(tokens, entity_type=None):
    """(type, token strings) for each match, optionally filtered by type."""
    return [
        (m.entity_type, [tok for tok, _ in m.tokens])
        for m in scan_patterns(tokens)
        if entity_type is None or m.entity_type == entity_type
    ]


def test_rule_names_unique():
    assert len(RULES_BY_NAME) == len(RULES)


# ── Currency + amount ────────────────────────────────────────────────

def test_latin_currency_reads_forward():
    assert found(["[CLS]", "SAR", "280", ".", "45", "on", "[SEP]"], EntityType.AMOUNT) == [
        (EntityType.AMOUNT, ["SAR", "280", ".", "45"]),
    ]


def test_latin_currency_case_insensitive():
    assert found(["usd", "1", ",", "000"], EntityType.AMOUNT) == [
        (EntityType.AMOUNT, ["usd", "1", ",", "000"]),
    ]


def test_currency_without_amount_is_not_an_entity():
    assert found(["SAR", "on", "280"], EntityType.AMOUNT) == []


def test_amount_lookahead_is_bounded():
    tokens = ["USD"] + ["1"] * 12
    (match,) = scan_patterns(tokens)
    assert len(match.tokens) == 11


def test_amount_accepts_continuation_digits():
    assert found(["AED", "12", "##34", "##.", "##5"], EntityType.AMOUNT) == [
        (EntityType.AMOUNT, ["AED", "12", "##34", "##.", "##5"]),
    ]


def test_split_egp():
    assert found(["E", "##GP", "100", ".", "50"], EntityType.AMOUNT) == [
        (EntityType.AMOUNT, ["E", "##GP", "100", ".", "50"]),
    ]


def test_arabic_currency_reads_backward():
    assert found(["خصم", "543", ".", "25", "ريال"], EntityType.AMOUNT) == [
        (EntityType.AMOUNT, ["543", ".", "25", "ريال"]),
    ]


def test_arabic_split_pound_reads_backward():
    assert found(["##م", "543", ".", "25", "جن", "##يه"], EntityType.AMOUNT) == [
        (EntityType.AMOUNT, ["543", ".", "25", "جن", "##يه"]),
    ]


def test_arabic_currency_does_not_read_forward():
    assert found(["جنيه", "543"], EntityType.AMOUNT) == []


# ── Cards ────────────────────────────────────────────────────────────

def test_masked_card():
    assert found(["card", "****", "92", "##73", "Debit"], EntityType.CARD) == [
        (EntityType.CARD, ["****", "92", "##73"]),
    ]


def test_mask_alone_is_not_a_card():
    assert found(["****", "card"], EntityType.CARD) == []


def test_card_lookahead_is_bounded():
    (match,) = scan_patterns(["**", "1", "2", "3", "4", "5"])
    assert [tok for tok, _ in match.tokens] == ["**", "1", "2", "3", "4"]


# ── Dates ────────────────────────────────────────────────────────────

def test_slash_date_five_tokens():
    assert found(["on", "15", "##/", "##10", "##/", "##2025"], EntityType.DATE) == [
        (EntityType.DATE, ["15", "##/", "##10", "##/", "##2025"]),
    ]


def test_dash_date_year_first():
    assert found(["2024", "##-", "##11", "##-", "##03"], EntityType.DATE) == [
        (EntityType.DATE, ["2024", "##-", "##11", "##-", "##03"]),
    ]


def test_mixed_separators_are_not_a_date():
    assert found(["15", "##/", "##10", "##-", "##2025"], EntityType.DATE) == []


def test_truncated_date_shape():
    assert found(["15", "##/", "##10"], EntityType.DATE) == []


def test_three_digit_start_is_not_a_date():
    assert found(["150", "##/", "##10", "##/", "##2025"], EntityType.DATE) == []


# ── Banks and merchants ──────────────────────────────────────────────

@pytest.mark.parametrize("tokens", [["HS", "##BC"], ["C", "##IB"]])
def test_split_bank_names(tokens):
    assert found(tokens, EntityType.BANK) == [(EntityType.BANK, tokens)]


def test_brand_fragments_are_case_sensitive():
    assert found(["hs", "##bc"], EntityType.BANK) == []
    # "cibeg" with a cased vocabulary: "c ##ib ##eg" is not CIB
    assert found(["c", "##ib", "##eg"], EntityType.BANK) == []
    assert found(["voda", "##fone"], EntityType.MERCHANT) == []


def test_lower_cased_vocabulary_matches_lowered_fragments():
    matches = scan_patterns(["hs", "##bc", "voda", "##fone"], lower_case=True)
    assert [(m.entity_type, m.start, m.end) for m in matches] == [
        (EntityType.BANK, 0, 1),
        (EntityType.MERCHANT, 2, 3),
    ]


def test_currency_codes_stay_case_insensitive_in_both_tables():
    for lower_case in (False, True):
        (match,) = scan_patterns(["sar", "280"], lower_case=lower_case)
        assert match.entity_type == EntityType.AMOUNT


def test_arabic_ahli_bank():
    tokens = ["البنك", "ال", "##أهل", "##ي", "كارت"]
    assert found(tokens, EntityType.BANK) == [(EntityType.BANK, ["البنك", "ال", "##أهل", "##ي"])]


def test_vodafone_with_descriptor():
    assert found(["at", "Voda", "##fone", "Store", "on"], EntityType.MERCHANT) == [
        (EntityType.MERCHANT, ["Voda", "##fone", "Store"]),
    ]


def test_vodafone_without_descriptor():
    assert found(["Voda", "##fone"], EntityType.MERCHANT) == [(EntityType.MERCHANT, ["Voda", "##fone"])]


def test_arabic_carrefour():
    assert found(["في", "ك", "##ارف", "##ور"], EntityType.MERCHANT) == [
        (EntityType.MERCHANT, ["ك", "##ارف", "##ور"]),
    ]


# ── Transaction types ────────────────────────────────────────────────

def test_transaction_with_suffix():
    assert found(["transfer", "##red", "to"], EntityType.TRANSACTION_TYPE) == [
        (EntityType.TRANSACTION_TYPE, ["transfer", "##red"]),
    ]


def test_transaction_with_prefix():
    assert found(["re", "payment"], EntityType.TRANSACTION_TYPE) == [
        (EntityType.TRANSACTION_TYPE, ["re", "payment"]),
    ]


def test_transaction_unknown_suffix_not_consumed():
    assert found(["Debit", "##or"], EntityType.TRANSACTION_TYPE) == [
        (EntityType.TRANSACTION_TYPE, ["Debit"]),
    ]


def test_arabic_debited_phrase_and_single_word_both_fire():
    assert found(["تم", "خ", "##ص", "##م"], EntityType.TRANSACTION_TYPE) == [
        (EntityType.TRANSACTION_TYPE, ["تم"]),
        (EntityType.TRANSACTION_TYPE, ["تم", "خ", "##ص", "##م"]),
    ]


# ── Reference URLs ───────────────────────────────────────────────────

def test_bank_url():
    assert found(["https", "ahlibank", "com", "eg", "x"], EntityType.REF) == [
        (EntityType.REF, ["https", "ahlibank", "com", "eg"]),
    ]


def test_bank_url_with_service_segment():
    assert found(["cibeg", "com", "onlinebanking"], EntityType.REF) == [
        (EntityType.REF, ["cibeg", "com", "onlinebanking"]),
    ]


def test_bare_domain_is_too_short():
    assert found(["mybank", "com"], EntityType.REF) == []


# ── Rule mechanics ───────────────────────────────────────────────────

def test_structural_tokens_are_skipped():
    assert scan_patterns(["[CLS]", "[SEP]"]) == []


def test_scores_use_probabilities():
    tokens = ["HS", "##BC"]
    probs = np.asarray([label_row("O", 0.6), label_row("O", 0.8)])
    (match,) = scan_patterns(tokens, probs)
    assert match.score == pytest.approx(0.7)
    assert match.source == "pattern"


def test_scores_fallback_without_probabilities():
    (match,) = scan_patterns(["HS", "##BC"])
    assert match.score == pytest.approx(0.8)


def test_apply_single_rule():
    rule = RULES_BY_NAME["masked_card"]
    tokens = ["****", "92", "x"]
    assert apply_rule(rule, tokens, 1) is None
    match = apply_rule(rule, tokens, 0)
    assert (match.start, match.end) == (0, 1)


def test_custom_rule_backward_with_minimum():
    rule = PatternRule(
        "percent", EntityType.OTHER,
        head=(lambda t: t == "%",),
        extend=str.isdigit, direction=Direction.BACKWARD, max_extend=2, min_extend=1,
    )
    assert rule.match(["a", "5", "0", "%"], 3) == [1, 2, 3]
    assert rule.match(["a", "%"], 1) is None
    assert found_with(rule, ["1", "2", "3", "%"]) == [["2", "3", "%"]]


def found_with(rule, tokens):
    return [[tok for tok, _ in m.tokens] for m in scan_patterns(tokens, rules=[rule])]
