"""Layer 1 — BIO decoding of the classifier's per-token probabilities.

Tokens whose surface already looks financial (digits, masks, currency
codes, ...) are accepted at a much lower confidence than ordinary words,
since the model tends to be unsure exactly where it matters.
"""

from __future__ import annotations
import re
from typing import Any, Iterable, Sequence

from .classifier import OUTSIDE, LabelMap, mean_confidence, probability_table
from .types import CONTINUATION, CandidateEntity, EntityType

CONFIDENCE_THRESHOLD = 0.30
PLAUSIBLE_THRESHOLD = 0.10

_DIGITS = re.compile(r"[0-9]+")
_MASK = re.compile(r"\*+")
_DASH_DATE = re.compile(r"[0-9]{2}-[0-9]{2}-[0-9]{4}")

_CURRENCY_CODES = frozenset({"sar", "usd", "eur", "gbp", "aed", "egp"})
_TRANSACTION_WORDS = frozenset({"atm", "pos", "online", "transfer", "debit", "credit"})
_BANK_FRAGMENTS = ("bank", "hsbc")

DEFAULT_SKIP = frozenset({"[CLS]", "[SEP]", "[PAD]"})


def is_plausible_financial_token(token: str) -> bool:
    """Cheap surface check: could this token be part of a financial entity?"""
    lowered = token.lower()
    return bool(
        _DIGITS.fullmatch(token)
        or _MASK.fullmatch(token)
        or lowered in _CURRENCY_CODES
        or lowered in _TRANSACTION_WORDS
        or any(frag in lowered for frag in _BANK_FRAGMENTS)
        or _DASH_DATE.fullmatch(token)
        or (token.startswith(CONTINUATION) and _DIGITS.fullmatch(token[len(CONTINUATION):]))
    )


def decode_labels(
    tokens: Sequence[str],
    probabilities: Any,
    label_map: LabelMap,
    *,
    skip_tokens: Iterable[str] = DEFAULT_SKIP,
    threshold: float = CONFIDENCE_THRESHOLD,
    plausible_threshold: float = PLAUSIBLE_THRESHOLD,
) -> list[CandidateEntity]:
    """Chunk arg-max BIO labels into candidate entities.

    Args:
        tokens: Unpadded token strings, start/end markers included.
        probabilities: Classifier output; rows past ``len(tokens)`` are ignored.
        label_map: Class index → BIO label.
        skip_tokens: Structural markers that never touch the chunker state.
        threshold: Minimum arg-max probability for an ordinary token.
        plausible_threshold: Minimum for tokens passing
            :func:`is_plausible_financial_token`.
    """
    table = probability_table(probabilities, len(tokens))
    if table.size == 0:
        return []

    skip = frozenset(skip_tokens)
    predictions = table.argmax(axis=1)

    entities: list[CandidateEntity] = []
    current: list[tuple[str, int]] = []
    current_type: str | None = None

    def close() -> None:
        nonlocal current, current_type
        if current and current_type is not None:
            entities.append(CandidateEntity(
                entity_type=EntityType.from_label(current_type),
                tokens=tuple(current),
                score=mean_confidence([idx for _, idx in current], table),
                source="model",
            ))
        current, current_type = [], None

    for i, token in enumerate(tokens):
        if token in skip:
            continue

        if i < len(table):
            pred = int(predictions[i])
            label = label_map.label(pred)
            confidence = float(table[i, pred])
        else:
            label, confidence = OUTSIDE, 0.0

        cutoff = plausible_threshold if is_plausible_financial_token(token) else threshold
        if label != OUTSIDE and confidence < cutoff:
            label = OUTSIDE

        if label.startswith("B-"):
            close()
            current, current_type = [(token, i)], label[2:]
        elif label.startswith("I-") and current_type == label[2:]:
            current.append((token, i))
        else:
            close()

    close()
    return entities
