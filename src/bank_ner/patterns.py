"""Layer 2 — deterministic token patterns for structured financial entities.

These run alongside the model and never look at its labels (only at its
probabilities, to score what they find).  They catch the shapes the model
is known to miss: currency + amount, masked cards, split dates, and brand
names that the vocabulary breaks into fragments ("HS ##BC", "Voda ##fone").

Each rule is a row in ``RULES`` (``UNCASED_RULES`` for lower-cased
vocabularies): a fixed head of token predicates matched
at consecutive positions, an optional single lead token just before the
head, and an optional run of extension tokens consumed forward or backward.
"""

from __future__ import annotations
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Sequence

import numpy as np

from .classifier import mean_confidence, probability_table
from .decoder import DEFAULT_SKIP
from .types import CONTINUATION, CandidateEntity, EntityType

Predicate = Callable[[str], bool]

_DIGITS = re.compile(r"[0-9]+")
_DAY_OR_YEAR = re.compile(r"[0-9]{1,2}|[0-9]{4}")


class Direction(Enum):
    FORWARD = "forward"     # extension tokens follow the head
    BACKWARD = "backward"   # extension tokens precede the head


@dataclass(frozen=True, slots=True)
class PatternRule:
    """One declarative pattern."""
    name: str
    entity_type: EntityType
    head: tuple[Predicate, ...]
    extend: Predicate | None = None
    direction: Direction = Direction.FORWARD
    max_extend: int = 0
    min_extend: int = 0
    lead: Predicate | None = None
    min_tokens: int = 1

    def match(self, tokens: Sequence[str], i: int) -> list[int] | None:
        """Token indices covered by this rule when its head starts at ``i``."""
        end = i + len(self.head)
        if end > len(tokens):
            return None
        if not all(pred(tokens[i + k]) for k, pred in enumerate(self.head)):
            return None

        extra: list[int] = []
        if self.extend is not None:
            step, j = (1, end) if self.direction is Direction.FORWARD else (-1, i - 1)
            while 0 <= j < len(tokens) and len(extra) < self.max_extend and self.extend(tokens[j]):
                extra.append(j)
                j += step
        if len(extra) < self.min_extend:
            return None

        indices = sorted([*range(i, end), *extra])
        first = indices[0]
        if self.lead is not None and first > 0 and self.lead(tokens[first - 1]):
            indices.insert(0, first - 1)

        if len(indices) < self.min_tokens:
            return None
        return indices


# ----------------------------------------------------------------------
# Token predicates
# ----------------------------------------------------------------------

def _is(*options: str) -> Predicate:
    """Exact match, ignoring case (a no-op for Arabic)."""
    folded = frozenset(o.casefold() for o in options)
    return lambda tok: tok.casefold() in folded


def _exact(*options: str) -> Predicate:
    allowed = frozenset(options)
    return lambda tok: tok in allowed


def _suffix(*options: str) -> Predicate:
    """Continuation subword whose remainder is one of ``options``."""
    folded = frozenset(o.casefold() for o in options)
    return lambda tok: tok.startswith(CONTINUATION) and tok[len(CONTINUATION):].casefold() in folded


def _contains(*fragments: str) -> Predicate:
    return lambda tok: any(f in tok.casefold() for f in fragments)


def _either(*preds: Predicate) -> Predicate:
    return lambda tok: any(p(tok) for p in preds)


def _digit_piece(tok: str) -> bool:
    body = tok[len(CONTINUATION):] if tok.startswith(CONTINUATION) else tok
    return bool(_DIGITS.fullmatch(body))


def _amount_piece(tok: str) -> bool:
    return _digit_piece(tok) or tok in (".", ",") or tok == CONTINUATION + "."


def _continuation(tok: str) -> bool:
    return tok.startswith(CONTINUATION) and len(tok) > len(CONTINUATION)


def _day_or_year(tok: str) -> bool:
    return bool(_DAY_OR_YEAR.fullmatch(tok))


def _masked(tok: str) -> bool:
    return "*" in tok


LATIN_CURRENCIES = ("SAR", "USD", "EUR", "GBP", "AED", "EGP")
ARABIC_CURRENCIES = ("جنيه", "ريال", "درهم", "دولار")
TRANSACTION_WORDS = ("transfer", "debit", "credit", "payment", "deposit", "withdrawal")
ARABIC_TRANSACTION_WORDS = ("تم", "خصم", "إيداع", "تحويل", "سحب")
MERCHANT_DESCRIPTORS = ("store", "shop", "mall", "center", "atm", "branch")

_bank_domain = _either(_contains("bank"), _is("cibeg", "ahlibank"))
_domain_segment = _either(_is("eg", "sa", "ae", "com", "org", "net"), _contains("online", "services"))


def build_rules(lower_case: bool = False) -> list[PatternRule]:
    """The rule table.

    Brand fragments match case-sensitively unless the vocabulary
    lower-cases, in which case every fragment arrives lower-cased.
    """
    brand = _is if lower_case else _exact
    return [
        # Currency + amount. Latin codes lead the amount ("SAR 280.45");
        # Arabic currency words trail it ("543.25 جنيه").
        PatternRule("currency_code", EntityType.AMOUNT,
                    head=(_is(*LATIN_CURRENCIES),),
                    extend=_amount_piece, max_extend=10, min_extend=1),
        PatternRule("currency_code_split_egp", EntityType.AMOUNT,
                    head=(brand("E"), brand("##GP")),
                    extend=_amount_piece, max_extend=10, min_extend=1),
        PatternRule("currency_word_ar", EntityType.AMOUNT,
                    head=(_is(*ARABIC_CURRENCIES),),
                    extend=_amount_piece, direction=Direction.BACKWARD, max_extend=10, min_extend=1),
        PatternRule("currency_word_ar_split_pound", EntityType.AMOUNT,
                    head=(_is("جن"), _is("##يه")),
                    extend=_amount_piece, direction=Direction.BACKWARD, max_extend=10, min_extend=1),

        # Masked card: ****9273
        PatternRule("masked_card", EntityType.CARD,
                    head=(_masked,),
                    extend=_digit_piece, max_extend=4, min_extend=1),

        # Dates split by the tokenizer: 15 ##/ ##10 ##/ ##2025
        PatternRule("date_slash", EntityType.DATE,
                    head=(_day_or_year, _is("##/"), _continuation, _is("##/"), _continuation)),
        PatternRule("date_dash", EntityType.DATE,
                    head=(_day_or_year, _is("##-"), _continuation, _is("##-"), _continuation)),

        # Banks
        PatternRule("bank_hsbc", EntityType.BANK, head=(brand("HS"), brand("##BC"))),
        PatternRule("bank_cib", EntityType.BANK, head=(brand("C"), brand("##IB"))),
        PatternRule("bank_ahli_ar", EntityType.BANK,
                    head=(_is("البنك"), _is("ال")),
                    extend=_either(_suffix("أهل", "ي"), _is("ال", "الأهلي", "أهلي")), max_extend=3),

        # Merchants
        PatternRule("merchant_vodafone", EntityType.MERCHANT,
                    head=(brand("Voda"), brand("##fone")),
                    extend=_either(_is(*MERCHANT_DESCRIPTORS), _suffix("store", "shop", "mall", "center")),
                    max_extend=3),
        PatternRule("merchant_carrefour_ar", EntityType.MERCHANT,
                    head=(_is("ك"), _is("##ارف"), _is("##ور"))),

        # Transaction verbs: "De ##bit", "debit ##ed", "transfer ##red"
        PatternRule("transaction_verb", EntityType.TRANSACTION_TYPE,
                    head=(_is(*TRANSACTION_WORDS),),
                    extend=_suffix("red", "ed", "ing", "ment", "al"), max_extend=1,
                    lead=_is("de", "pre", "re")),
        PatternRule("transaction_word_ar", EntityType.TRANSACTION_TYPE,
                    head=(_is(*ARABIC_TRANSACTION_WORDS),)),
        # تم خصم: "was debited", with خصم split into three pieces
        PatternRule("transaction_debited_ar", EntityType.TRANSACTION_TYPE,
                    head=(_is("تم"), _is("خ"), _is("##ص"), _is("##م"))),

        # Bank website: https ahlibank com eg
        PatternRule("bank_url", EntityType.REF,
                    head=(_bank_domain, _is("com")),
                    extend=_domain_segment, max_extend=3,
                    lead=_is("https"), min_tokens=3),
    ]


RULES = build_rules()
UNCASED_RULES = build_rules(lower_case=True)


def apply_rule(
    rule: PatternRule,
    tokens: Sequence[str],
    i: int,
    table: np.ndarray | None = None,
) -> CandidateEntity | None:
    """Evaluate one rule at position ``i``."""
    indices = rule.match(tokens, i)
    if indices is None:
        return None
    if table is None:
        table = probability_table(None, len(tokens))
    return CandidateEntity(
        entity_type=rule.entity_type,
        tokens=tuple((tokens[j], j) for j in indices),
        score=mean_confidence(indices, table),
        source="pattern",
    )


def scan_patterns(
    tokens: Sequence[str],
    probabilities: Any = None,
    *,
    rules: Iterable[PatternRule] | None = None,
    skip_tokens: Iterable[str] = DEFAULT_SKIP,
    lower_case: bool = False,
) -> list[CandidateEntity]:
    """Run every rule at every position. Overlaps are left to the reconciler.

    Set ``lower_case`` when the tokens come from a lower-casing vocabulary.
    """
    table = probability_table(probabilities, len(tokens))
    if rules is None:
        active = UNCASED_RULES if lower_case else RULES
    else:
        active = list(rules)
    skip = frozenset(skip_tokens)

    matches: list[CandidateEntity] = []
    for i, token in enumerate(tokens):
        if token in skip:
            continue
        for rule in active:
            found = apply_rule(rule, tokens, i, table)
            if found is not None:
                matches.append(found)
    return matches
