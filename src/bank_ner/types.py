"""Core types."""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum

CONTINUATION = "##"

Offset = tuple[int, int]


class EntityType(str, Enum):
    """Closed set of financial entity categories."""
    ACCOUNT = "ACCOUNT"
    AMOUNT = "AMOUNT"
    BANK = "BANK"
    CARD = "CARD"
    DATE = "DATE"
    MERCHANT = "MERCHANT"
    REF = "REF"
    TRANSACTION_TYPE = "TRANSACTION_TYPE"
    OTHER = "OTHER"

    @classmethod
    def from_label(cls, label: str) -> EntityType:
        """Map a BIO label ("B-BANK", "I-CARD", "BANK") to its category."""
        name = label.removeprefix("B-").removeprefix("I-")
        try:
            return cls(name)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True, slots=True)
class Encoding:
    """Tokenizer output for one message."""
    input_ids: list[int]
    attention_mask: list[int]          # 1 = real token, 0 = padding
    tokens: list[str]                  # unpadded, aligned with input_ids
    offsets: list[Offset | None] = field(default_factory=list)  # source range per token
    text: str = ""                     # normalized text the offsets point into


@dataclass(frozen=True, slots=True)
class CandidateEntity:
    """A span proposed by the model decoder or the pattern layer."""
    entity_type: EntityType
    tokens: tuple[tuple[str, int], ...]   # (token string, token index)
    score: float                          # 0.0–1.0 confidence
    source: str                           # "model" | "pattern" | "custom"

    @property
    def start(self) -> int:
        return self.tokens[0][1] if self.tokens else 0

    @property
    def end(self) -> int:
        return self.tokens[-1][1] if self.tokens else 0

    @property
    def text(self) -> str:
        return " ".join(tok for tok, _ in self.tokens)


@dataclass(frozen=True, slots=True)
class FinancialEntity:
    """A single extracted entity, as returned to callers."""
    entity_type: EntityType
    text: str
    start: int             # first token index (inclusive)
    end: int               # last token index (inclusive)
    score: float
    source: str

    def to_dict(self) -> dict:
        return {
            "type": self.entity_type.value,
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "score": self.score,
            "source": self.source,
        }
