"""Token classifier boundary: the trained BIO tagger behind ONNX Runtime.

The model is a black box: int64 ids (plus attention mask / token type ids
when the graph asks for them) in, one logit vector per position out.
Everything downstream only sees softmaxed probabilities.
"""

from __future__ import annotations
import json
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping, Protocol, Sequence

import numpy as np

from .errors import LabelMismatchError, ResourceError
from .logging import get_logger

if TYPE_CHECKING:
    from onnxruntime import InferenceSession

log = get_logger(__name__)

OUTSIDE = "O"

# Label table used when config.json carries no id2label
DEFAULT_ID2LABEL: dict[int, str] = {
    0: "B-ACCOUNT",
    1: "B-AMOUNT",
    2: "B-BANK",
    3: "B-CARD",
    4: "B-DATE",
    5: "B-MERCHANT",
    6: "B-REF",
    7: "B-TRANSACTION_TYPE",
    8: "I-ACCOUNT",
    9: "I-AMOUNT",
    10: "I-BANK",
    11: "I-CARD",
    12: "I-DATE",
    13: "I-MERCHANT",
    14: "I-REF",
    15: "I-TRANSACTION_TYPE",
    16: OUTSIDE,
}

# Entity confidence when no probability is available for any constituent
FALLBACK_CONFIDENCE = 0.8


@dataclass(frozen=True, slots=True)
class LabelMap:
    """Class index → BIO label string."""
    id2label: Mapping[int, str]

    @classmethod
    def default(cls) -> LabelMap:
        return cls(dict(DEFAULT_ID2LABEL))

    @property
    def num_labels(self) -> int:
        return len(self.id2label)

    @property
    def outside_id(self) -> int | None:
        """Index of the "O" label, or None if the map has none."""
        return next((i for i, label in self.id2label.items() if label == OUTSIDE), None)

    def label(self, index: int) -> str:
        return self.id2label.get(index, OUTSIDE)


class Classifier(Protocol):
    """Anything that scores token ids with per-label probabilities."""

    input_names: Sequence[str]

    def predict(self, input_ids: Sequence[int], attention_mask: Sequence[int]) -> np.ndarray:
        """Return an array of shape (positions, num_labels)."""
        ...


# ----------------------------------------------------------------------
# Model config
# ----------------------------------------------------------------------

def load_model_config(path: str | Path) -> dict[str, Any]:
    """Read the model's ``config.json``."""
    try:
        with open(path, encoding="utf-8") as f:
            config = json.load(f)
    except (OSError, ValueError) as e:
        raise ResourceError(f"Failed to load model config from {path}: {e}") from e
    if not isinstance(config, dict):
        raise ResourceError(f"Failed to load model config from {path}: expected a JSON object")
    log.info(
        "model_config_loaded",
        path=str(path),
        model_type=config.get("model_type"),
        vocab_size=config.get("vocab_size"),
        num_labels=config.get("num_labels"),
    )
    return config


def label_map_from_config(config: Mapping[str, Any]) -> LabelMap:
    """Build the label map, refusing configs whose label count disagrees."""
    raw = config.get("id2label")
    if raw:
        try:
            label_map = LabelMap({int(k): str(v) for k, v in raw.items()})
        except (AttributeError, TypeError, ValueError) as e:
            raise ResourceError(f"Invalid id2label table in model config: {e}") from e
    else:
        label_map = LabelMap.default()

    num_labels = config.get("num_labels", label_map.num_labels)
    if num_labels != label_map.num_labels:
        raise LabelMismatchError(
            f"Label count mismatch. Config: {num_labels}, id2label: {label_map.num_labels}"
        )
    return label_map


# ----------------------------------------------------------------------
# Probability helpers
# ----------------------------------------------------------------------

def softmax(logits: np.ndarray) -> np.ndarray:
    """Row-wise softmax, shifted by the row max for stability."""
    logits = np.asarray(logits, dtype=np.float64)
    shifted = np.exp(logits - logits.max(axis=-1, keepdims=True))
    return shifted / shifted.sum(axis=-1, keepdims=True)


def probability_table(probabilities: Any, length: int) -> np.ndarray:
    """Coerce classifier output to a (≤ length, num_labels) float array.

    Rows beyond ``length`` belong to padding and are dropped here, before
    anything reads them.
    """
    if probabilities is None:
        return np.zeros((0, 0))
    table = np.asarray(probabilities, dtype=np.float64)
    if table.ndim == 3:   # (batch, positions, labels) with batch of one
        table = table[0]
    if table.ndim != 2:
        return np.zeros((0, 0))
    return table[:length]


def mean_confidence(indices: Sequence[int], table: np.ndarray) -> float:
    """Mean arg-max probability over the given token positions."""
    values = [float(table[i].max()) for i in indices if 0 <= i < len(table) and table.shape[1]]
    if not values:
        return FALLBACK_CONFIDENCE
    return sum(values) / len(values)


# ----------------------------------------------------------------------
# ONNX Runtime adapter
# ----------------------------------------------------------------------

class OnnxClassifier:
    """Classifier backed by an ONNX Runtime inference session.

    The session is created once; ``predict`` is safe to call from several
    threads at the same time.
    """

    def __init__(self, model_path: str | Path, *, providers: list[str] | None = None) -> None:
        model_path = Path(model_path).expanduser()
        if not model_path.is_file():
            raise ResourceError(f"Model file not found: {model_path}")

        import onnxruntime as ort   # heavy, load only when a model is actually used

        try:
            self._session: InferenceSession | None = ort.InferenceSession(
                str(model_path),
                providers=providers or ["CPUExecutionProvider"],
            )
        except Exception as e:  # onnxruntime raises its own Fail/InvalidGraph types
            raise ResourceError(f"Failed to create inference session for {model_path}: {e}") from e

        self.model_path = model_path
        self.input_names = [i.name for i in self._session.get_inputs()]
        log.info("classifier_loaded", path=str(model_path), inputs=self.input_names)

    def predict(self, input_ids: Sequence[int], attention_mask: Sequence[int]) -> np.ndarray:
        if self._session is None:
            raise RuntimeError("Classifier session is closed")

        ids = np.asarray([input_ids], dtype=np.int64)
        if len(self.input_names) == 1:
            feeds = {self.input_names[0]: ids}
        else:
            mask = np.asarray([attention_mask], dtype=np.int64)
            feeds = {}
            for name in self.input_names:
                if "input_ids" in name:
                    feeds[name] = ids
                elif "attention" in name:
                    feeds[name] = mask
                elif "token_type" in name:
                    feeds[name] = np.zeros_like(ids)

        logits = self._session.run(None, feeds)[0]
        return softmax(np.asarray(logits)[0])

    def close(self) -> None:
        self._session = None
