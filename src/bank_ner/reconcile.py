"""Merge model and pattern candidates into one non-overlapping list."""

from __future__ import annotations
import re
from typing import Iterable

from .types import CONTINUATION, CandidateEntity

# Complete institution/merchant names worth preferring over fragments
BRAND_NAMES = ("HSBC", "CIB", "RAJHI", "VODAFONE")
BRAND_BONUS = 10.0
FRAGMENT_PENALTY = 5.0
FRAGMENT_MAX_LEN = 3

_WS = re.compile(r"\s+")
_DIGITS = re.compile(r"[0-9]+")


def score_entity(entity: CandidateEntity) -> float:
    """Rank a candidate: longer, more confident, brand-complete spans win."""
    clean = entity.text.replace(CONTINUATION, "").strip()
    score = 2.0 * len(clean) + entity.score

    compact = _WS.sub("", clean).upper()
    if any(brand in compact for brand in BRAND_NAMES):
        score += BRAND_BONUS

    if len(clean) <= FRAGMENT_MAX_LEN and not _DIGITS.fullmatch(clean):
        score -= FRAGMENT_PENALTY
    return score


def _overlaps(a: CandidateEntity, b: CandidateEntity) -> bool:
    return a.start <= b.end and a.end >= b.start


def reconcile(candidates: Iterable[CandidateEntity]) -> list[CandidateEntity]:
    """Resolve same-category overlaps, keeping the best-scoring span.

    Entities of different categories may overlap freely.
    """
    kept: list[CandidateEntity] = []
    for cand in sorted(candidates, key=lambda e: e.start):
        clashing = [e for e in kept if e.entity_type == cand.entity_type and _overlaps(e, cand)]
        if not clashing:
            kept.append(cand)
            continue
        # max() keeps the first of equal scores: existing spans before the newcomer
        best = max([*clashing, cand], key=score_entity)
        kept = [e for e in kept if not any(e is c for c in clashing)]
        kept.append(best)
    return sorted(kept, key=lambda e: e.start)
