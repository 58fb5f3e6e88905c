"""Extractor — the main API.  Layered: model labels, then token patterns.

Usage:
    from bank_ner import Extractor

    extractor = Extractor.from_files(
        "model/model.onnx",
        "model/vocab.txt",
        "model/special_tokens_map.json",
        "model/tokenizer_config.json",
        "model/config.json",
    )                                   # reusable, thread-safe after init

    for entity in extractor.extract("HSBC card ****9273 Debited SAR 280.45"):
        print(entity.entity_type, entity.text)   # BANK HSBC, CARD ****9273, ...
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

import numpy as np

from .classifier import Classifier, LabelMap, OnnxClassifier, label_map_from_config, load_model_config, probability_table
from .decoder import decode_labels
from .logging import get_logger
from .patterns import scan_patterns
from .reconcile import reconcile
from .tokenizer import WordPieceTokenizer
from .types import CONTINUATION, CandidateEntity, Encoding, EntityType, FinancialEntity
from .vocab import Vocabulary

log = get_logger(__name__)

Scanner = Callable[[Sequence[str], np.ndarray], list[CandidateEntity]]


@dataclass
class ExtractorConfig:
    """Configuration for the Extractor."""
    max_length: int = 512               # model input length, padding included
    use_patterns: bool = True           # enable Layer 2 (token patterns)
    custom_scanners: list[Scanner] = field(default_factory=list)
    # Entity types to always drop (e.g. don't report OTHER)
    skip_types: set[EntityType] = field(default_factory=set)
    min_confidence: float = 0.0         # applied after reconciliation


class Extractor:
    """Layered financial entity extractor.

    Layer 1: Model BIO labels, confidence-gated
    Layer 2: Deterministic token patterns (currencies, cards, dates, brands)
    Layer 3: Custom scanners (user-provided callables)
    """

    def __init__(
        self,
        tokenizer: WordPieceTokenizer,
        classifier: Classifier,
        label_map: LabelMap | None = None,
        config: ExtractorConfig | None = None,
    ) -> None:
        self.tokenizer = tokenizer
        self.classifier = classifier
        self.label_map = label_map or LabelMap.default()
        self.config = config or ExtractorConfig()

    @classmethod
    def from_files(
        cls,
        model_path: str | Path,
        vocab_path: str | Path,
        special_tokens_path: str | Path,
        tokenizer_config_path: str | Path | None,
        model_config_path: str | Path,
        *,
        config: ExtractorConfig | None = None,
        classifier: Classifier | None = None,
    ) -> Extractor:
        """Load every resource up front. Any fatal problem raises ResourceError."""
        model_config = load_model_config(model_config_path)
        label_map = label_map_from_config(model_config)
        vocab = Vocabulary.from_files(vocab_path, special_tokens_path, tokenizer_config_path)

        declared = model_config.get("vocab_size")
        if declared != len(vocab):
            log.warning("vocab_size_mismatch", declared=declared, loaded=len(vocab))

        if classifier is None:
            classifier = OnnxClassifier(model_path)
        return cls(WordPieceTokenizer(vocab), classifier, label_map, config)

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract(self, text: str) -> list[FinancialEntity]:
        """Extract entities from one message, ordered by position."""
        encoding = self.tokenizer.tokenize(text, max_length=self.config.max_length)
        raw = self.classifier.predict(encoding.input_ids, encoding.attention_mask)
        table = probability_table(raw, len(encoding.tokens))
        structural = self.tokenizer.vocab.special.structural

        # --- Layer 1: Model labels ---
        candidates = decode_labels(encoding.tokens, table, self.label_map, skip_tokens=structural)
        model_count = len(candidates)

        # --- Layer 2: Token patterns (if enabled) ---
        if self.config.use_patterns:
            candidates.extend(scan_patterns(
                encoding.tokens, table,
                skip_tokens=structural,
                lower_case=self.tokenizer.vocab.do_lower_case,
            ))

        # --- Layer 3: Custom scanners ---
        for scanner in self.config.custom_scanners:
            candidates.extend(scanner(encoding.tokens, table))

        # --- Filter, then resolve overlaps across layers ---
        candidates = [c for c in candidates if c.entity_type not in self.config.skip_types]
        resolved = reconcile(candidates)

        entities = [
            _finalize(c, encoding) for c in resolved
            if c.score >= self.config.min_confidence
        ]
        log.debug(
            "entities_extracted",
            tokens=len(encoding.tokens),
            model_candidates=model_count,
            total_candidates=len(candidates),
            entities=len(entities),
        )
        return entities

    def extract_batch(self, texts: Sequence[str]) -> list[list[FinancialEntity]]:
        """Extract from several messages, one after another."""
        return [self.extract(text) for text in texts]

    async def extract_async(self, text: str) -> list[FinancialEntity]:
        """Run :meth:`extract` on a worker thread."""
        return await asyncio.to_thread(self.extract, text)

    async def extract_batch_async(self, texts: Sequence[str]) -> list[list[FinancialEntity]]:
        """Fan messages out to worker threads, one message per task."""
        return list(await asyncio.gather(*(self.extract_async(t) for t in texts)))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        close = getattr(self.classifier, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> Extractor:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def _finalize(candidate: CandidateEntity, encoding: Encoding) -> FinancialEntity:
    return FinancialEntity(
        entity_type=candidate.entity_type,
        text=entity_text(candidate, encoding),
        start=candidate.start,
        end=candidate.end,
        score=candidate.score,
        source=candidate.source,
    )


def entity_text(candidate: CandidateEntity, encoding: Encoding | None = None) -> str:
    """Rebuild readable text for a span of tokens.

    Tokens whose source ranges touch are glued together; any other gap
    becomes a single space.  Without source ranges, continuation pieces
    glue to the previous token.
    """
    offsets = encoding.offsets if encoding is not None else []
    source = encoding.text if encoding is not None else ""

    parts: list[str] = []
    prev_end: int | None = None
    for token, idx in candidate.tokens:
        span = offsets[idx] if idx < len(offsets) else None
        continuation = token.startswith(CONTINUATION)
        piece = source[span[0]:span[1]] if span else token[len(CONTINUATION):] if continuation else token

        if parts:
            if span is not None and prev_end is not None:
                glued = span[0] <= prev_end
            else:
                glued = continuation
            if not glued:
                parts.append(" ")
        parts.append(piece)
        prev_end = span[1] if span else None
    return "".join(parts).strip()
