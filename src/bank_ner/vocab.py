"""Vocabulary and tokenizer resource files.

Expected files (the usual Hugging Face export layout):

    vocab.txt                 one subword per line, line number = id
    special_tokens_map.json   {"cls_token": "[CLS]", "sep_token": "[SEP]", ...}
    tokenizer_config.json     {"do_lower_case": false, ...}

Vocabulary and special tokens are required; a failure to load either is
fatal.  The tokenizer config is optional: if it can't be read the
tokenizer falls back to ``do_lower_case=False`` and logs a warning.
"""

from __future__ import annotations
import json
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from .errors import ResourceError
from .logging import get_logger

log = get_logger(__name__)

DEFAULT_SPECIAL_TOKENS: dict[str, str] = {
    "cls_token": "[CLS]",
    "sep_token": "[SEP]",
    "pad_token": "[PAD]",
    "unk_token": "[UNK]",
}


@dataclass(frozen=True, slots=True)
class SpecialTokens:
    cls_token: str = "[CLS]"
    sep_token: str = "[SEP]"
    pad_token: str = "[PAD]"
    unk_token: str = "[UNK]"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SpecialTokens:
        merged = {**DEFAULT_SPECIAL_TOKENS, **{k: v for k, v in data.items() if isinstance(v, str)}}
        return cls(**{key: merged[key] for key in DEFAULT_SPECIAL_TOKENS})

    @property
    def structural(self) -> frozenset[str]:
        """Markers that never belong to an entity."""
        return frozenset((self.cls_token, self.sep_token, self.pad_token))

    def __iter__(self):
        return iter((self.cls_token, self.sep_token, self.pad_token, self.unk_token))


class Vocabulary:
    """Immutable subword → id table."""

    __slots__ = ("_token_to_id", "_id_to_token", "special", "do_lower_case")

    def __init__(
        self,
        token_to_id: Mapping[str, int],
        *,
        special: SpecialTokens | None = None,
        do_lower_case: bool = False,
    ) -> None:
        self.special = special or SpecialTokens()
        self.do_lower_case = do_lower_case

        missing = [tok for tok in self.special if tok not in token_to_id]
        if missing:
            raise ResourceError(f"Vocabulary is missing special tokens: {', '.join(missing)}")

        self._token_to_id = MappingProxyType(dict(token_to_id))
        self._id_to_token = MappingProxyType({i: tok for tok, i in token_to_id.items()})

    @classmethod
    def from_tokens(
        cls,
        tokens: Iterable[str],
        *,
        special: SpecialTokens | None = None,
        do_lower_case: bool = False,
    ) -> Vocabulary:
        """Build a vocabulary where each token's id is its position."""
        table: dict[str, int] = {}
        for idx, token in enumerate(tokens):
            table[token.strip()] = idx
        return cls(table, special=special, do_lower_case=do_lower_case)

    @classmethod
    def from_files(
        cls,
        vocab_path: str | Path,
        special_tokens_path: str | Path,
        tokenizer_config_path: str | Path | None = None,
    ) -> Vocabulary:
        """Load vocabulary, special tokens and lower-casing flag from disk."""
        table = load_vocab(vocab_path)
        special = load_special_tokens(special_tokens_path)
        do_lower_case = load_tokenizer_config(tokenizer_config_path) if tokenizer_config_path else False
        vocab = cls(table, special=special, do_lower_case=do_lower_case)
        log.info(
            "vocabulary_loaded",
            path=str(vocab_path),
            size=len(vocab),
            special_tokens=list(special),
            do_lower_case=do_lower_case,
        )
        return vocab

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def __contains__(self, token: object) -> bool:
        return token in self._token_to_id

    def __len__(self) -> int:
        return len(self._token_to_id)

    def get_id(self, token: str) -> int:
        """Id for ``token``, or the unknown-token id."""
        tid = self._token_to_id.get(token)
        return self.unk_id if tid is None else tid

    def get_token(self, token_id: int) -> str:
        return self._id_to_token.get(token_id, self.special.unk_token)

    @property
    def unk_id(self) -> int:
        return self._token_to_id[self.special.unk_token]

    @property
    def pad_id(self) -> int:
        return self._token_to_id[self.special.pad_token]


# ----------------------------------------------------------------------
# File loaders
# ----------------------------------------------------------------------

def load_vocab(path: str | Path) -> dict[str, int]:
    """Read ``vocab.txt``: one token per line, line number is the id."""
    try:
        with open(path, encoding="utf-8") as f:
            return {line.rstrip("\r\n").strip(): idx for idx, line in enumerate(f)}
    except (OSError, UnicodeDecodeError) as e:
        raise ResourceError(f"Failed to load vocabulary from {path}: {e}") from e


def load_special_tokens(path: str | Path) -> SpecialTokens:
    """Read ``special_tokens_map.json``."""
    data = _read_json(path, what="special tokens")
    if not isinstance(data, dict):
        raise ResourceError(f"Failed to load special tokens from {path}: expected a JSON object")
    # Newer exports wrap each entry: {"cls_token": {"content": "[CLS]", ...}}
    flat = {
        key: value.get("content") if isinstance(value, dict) else value
        for key, value in data.items()
    }
    return SpecialTokens.from_mapping(flat)


def load_tokenizer_config(path: str | Path) -> bool:
    """Read ``do_lower_case`` from ``tokenizer_config.json``; False on any problem."""
    try:
        data = _read_json(path, what="tokenizer config")
    except ResourceError as e:
        log.warning("tokenizer_config_unreadable", path=str(path), error=str(e), do_lower_case=False)
        return False
    flag = data.get("do_lower_case") if isinstance(data, dict) else None
    if not isinstance(flag, bool):
        log.warning("tokenizer_config_missing_lower_case", path=str(path), do_lower_case=False)
        return False
    return flag


def _read_json(path: str | Path, *, what: str) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise ResourceError(f"Failed to load {what} from {path}: {e}") from e
