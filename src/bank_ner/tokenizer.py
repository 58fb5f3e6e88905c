"""WordPiece tokenizer tuned for banking notification text.

Words are routed through a short list of shape rules before the usual
longest-match-first subword pass, so that masked card numbers, amounts,
dashed dates and URLs break into pieces the model has seen in training:

    "****9273"     →  ****  9273
    "280.45"       →  280  .  45
    "03-11-2024"   →  03  -  11  -  2024
    "https://x.com"→  https  x  com

Every piece keeps its character range in the normalized text, which is
what lets entity text be rebuilt with its original spacing later on.
"""

from __future__ import annotations
import re

from .logging import get_logger
from .normalize import normalize_digits
from .types import CONTINUATION, Encoding, Offset
from .vocab import Vocabulary

log = get_logger(__name__)

Piece = tuple[str, Offset]

_WORD = re.compile(r"\S+")
_URL_PART = re.compile(r"[^:/.?=&]+")
_MASK_SEGMENT = re.compile(r"\*+|[0-9]+|[^*0-9]+")
_DIGITS = re.compile(r"[0-9]+")
_DASH_DATE = re.compile(r"[0-9]{2}-[0-9]{2}-[0-9]{4}")
_NUMERIC = re.compile(r"[0-9.,]+")
_NUMERIC_SPLIT = re.compile(r"([.,])")
_TRAILING_PUNCT = re.compile(r"[.,;:!?]+$")


class WordPieceTokenizer:
    """Turns a message into fixed-length model inputs.

    Reusable and thread-safe: the vocabulary is never mutated.
    """

    def __init__(self, vocab: Vocabulary) -> None:
        self.vocab = vocab

    def tokenize(
        self,
        text: str,
        max_length: int = 512,
        padding: bool = True,
        truncation: bool = True,
    ) -> Encoding:
        """Normalize, segment and encode ``text``."""
        if max_length < 2:
            raise ValueError(f"max_length must leave room for start and end tokens, got {max_length}")

        special = self.vocab.special
        normalized = normalize_digits(text)
        pieces = self.split(normalized)

        tokens = [special.cls_token, *(tok for tok, _ in pieces), special.sep_token]
        offsets: list[Offset | None] = [None, *(span for _, span in pieces), None]

        if truncation and len(tokens) > max_length:
            tokens = tokens[:max_length - 1] + [special.sep_token]
            offsets = offsets[:max_length - 1] + [None]

        input_ids = [self.vocab.get_id(tok) for tok in tokens]
        attention_mask = [1] * len(input_ids)

        if padding and len(input_ids) < max_length:
            fill = max_length - len(input_ids)
            input_ids += [self.vocab.pad_id] * fill
            attention_mask += [0] * fill

        return Encoding(
            input_ids=input_ids,
            attention_mask=attention_mask,
            tokens=tokens,
            offsets=offsets,
            text=normalized,
        )

    def split(self, text: str) -> list[Piece]:
        """Segment already-normalized text into (token, char range) pieces."""
        pieces: list[Piece] = []
        for m in _WORD.finditer(text):
            pieces.extend(self._split_word(m.group(), m.start()))
        return pieces

    def convert_ids_to_tokens(self, ids: list[int]) -> list[str]:
        return [self.vocab.get_token(i) for i in ids]

    # ------------------------------------------------------------------
    # Word rules: first match wins
    # ------------------------------------------------------------------

    def _split_word(self, word: str, base: int) -> list[Piece]:
        if word.startswith("http"):
            # URL pieces are literal; most won't be in the vocabulary
            return [(m.group(), (base + m.start(), base + m.end())) for m in _URL_PART.finditer(word)]

        if "*" in word:
            out: list[Piece] = []
            for m in _MASK_SEGMENT.finditer(word):
                seg, start = m.group(), base + m.start()
                if seg.startswith("*"):
                    out.append((seg, (start, base + m.end())))
                elif _DIGITS.fullmatch(seg):
                    out.extend(self._numeric(seg, start))
                else:
                    out.extend(self._subword(seg, start))
            return out

        if _DASH_DATE.fullmatch(word):
            if word in self.vocab:
                return [(word, (base, base + len(word)))]
            out = []
            pos = base
            for i, part in enumerate(word.split("-")):
                if i and "-" in self.vocab:
                    out.append(("-", (pos - 1, pos)))
                out.extend(self._numeric(part, pos))
                pos += len(part) + 1
            return out

        if _NUMERIC.fullmatch(word):
            return self._numeric(word, base)

        m = _TRAILING_PUNCT.search(word)
        if m:
            stem, punct = word[:m.start()], m.group()
            out = self._subword(stem, base) if stem else []
            if punct in self.vocab:
                out.append((punct, (base + m.start(), base + len(word))))
            return out

        return self._subword(word, base)

    def _numeric(self, value: str, base: int) -> list[Piece]:
        """Whole number if known, else its parts with '.'/',' between them."""
        if value in self.vocab:
            return [(value, (base, base + len(value)))]

        out: list[Piece] = []
        pos = base
        for chunk in _NUMERIC_SPLIT.split(value):
            if chunk in (".", ","):
                if chunk in self.vocab:
                    out.append((chunk, (pos, pos + 1)))
            elif chunk:
                out.extend(self._subword(chunk, pos))
            pos += len(chunk)

        return out or [(self.vocab.special.unk_token, (base, base + len(value)))]

    def _subword(self, word: str, base: int) -> list[Piece]:
        """Greedy longest-match-first WordPiece; no backtracking."""
        if self.vocab.do_lower_case:
            text, source_at = _lower_with_positions(word)
        else:
            text, source_at = word, range(len(word))
        out: list[Piece] = []

        start = 0
        while start < len(text):
            end = len(text)
            match = None
            while end > start:
                candidate = text[start:end] if start == 0 else CONTINUATION + text[start:end]
                if candidate in self.vocab:
                    match = candidate
                    break
                end -= 1

            if match is None:
                log.debug("unknown_subword", word=word, remainder=text[start:])
                out.append((self.vocab.special.unk_token, (base + source_at[start], base + len(word))))
                break

            out.append((match, (base + source_at[start], base + source_at[end - 1] + 1)))
            start = end

        return out


def _lower_with_positions(word: str) -> tuple[str, list[int]]:
    """Lower-case ``word`` and map each resulting character to its source index.

    Some characters grow when lower-cased ("İ" becomes "i" + U+0307), so
    indices into the lowered text can't be used as source offsets directly.
    """
    chars: list[str] = []
    source_at: list[int] = []
    for i, ch in enumerate(word):
        low = ch.lower()
        chars.append(low)
        source_at.extend([i] * len(low))
    return "".join(chars), source_at
