"""Shared fixtures: a tiny banking vocabulary and a scripted classifier."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import numpy as np
import pytest

from bank_ner import Extractor, ExtractorConfig, Vocabulary, WordPieceTokenizer
from bank_ner.classifier import DEFAULT_ID2LABEL

LABEL_IDS = {label: idx for idx, label in DEFAULT_ID2LABEL.items()}
NUM_LABELS = len(DEFAULT_ID2LABEL)

VOCAB_TOKENS = [
    "[PAD]", "[UNK]", "[CLS]", "[SEP]",
    # English banking fragments
    "HS", "##BC", "C", "##IB", "card", "Debit", "##ed", "SAR", "on", "at",
    "92", "##73", "280", "45", ".", ",", "!", "-", "03", "11", "2024",
    "15", "##/", "##10", "##2025", "Voda", "##fone", "Store",
    "transfer", "##red", "https", "ahlibank", "com", "eg",
    "hello", "world", "un", "##believ", "##able",
    # Arabic fragments
    "تم", "خ", "##ص", "##م", "543", "25", "جن", "##يه",
    "البنك", "ال", "##أهل", "##ي", "ك", "##ارف", "##ور",
]


def label_row(label: str = "O", p: float = 0.9) -> list[float]:
    """One probability row with ``p`` on ``label`` and the rest spread evenly."""
    rest = (1.0 - p) / (NUM_LABELS - 1)
    row = [rest] * NUM_LABELS
    row[LABEL_IDS[label]] = p
    return row


class ScriptedClassifier:
    """Stand-in for the ONNX model.

    Returns "O" at 0.9 everywhere except positions given in ``labels``
    ({token index: (label, probability)}).
    """

    def __init__(self, labels=None):
        self.labels = labels or {}
        self.input_names = ("input_ids", "attention_mask")
        self.calls = 0
        self.closed = False

    def predict(self, input_ids, attention_mask):
        self.calls += 1
        rows = [label_row() for _ in input_ids]
        for idx, (label, p) in self.labels.items():
            rows[idx] = label_row(label, p)
        return np.asarray(rows)

    def close(self):
        self.closed = True


@pytest.fixture
def vocab() -> Vocabulary:
    return Vocabulary.from_tokens(VOCAB_TOKENS)


@pytest.fixture
def tokenizer(vocab) -> WordPieceTokenizer:
    return WordPieceTokenizer(vocab)


@pytest.fixture
def make_extractor(tokenizer):
    def build(labels=None, **config):
        return Extractor(tokenizer, ScriptedClassifier(labels), config=ExtractorConfig(max_length=32, **config))
    return build


@pytest.fixture
def model_files(tmp_path):
    """Write a complete set of resource files; returns their paths."""
    import json

    (tmp_path / "vocab.txt").write_text("\n".join(VOCAB_TOKENS) + "\n", encoding="utf-8")
    (tmp_path / "special_tokens_map.json").write_text(json.dumps({
        "cls_token": "[CLS]", "sep_token": "[SEP]", "pad_token": "[PAD]", "unk_token": "[UNK]",
    }), encoding="utf-8")
    (tmp_path / "tokenizer_config.json").write_text(json.dumps({"do_lower_case": False}), encoding="utf-8")
    (tmp_path / "config.json").write_text(json.dumps({
        "model_type": "bert",
        "vocab_size": len(VOCAB_TOKENS),
        "num_labels": NUM_LABELS,
        "id2label": {str(k): v for k, v in DEFAULT_ID2LABEL.items()},
    }), encoding="utf-8")
    (tmp_path / "model.onnx").write_bytes(b"")
    return {
        "model": tmp_path / "model.onnx",
        "vocab": tmp_path / "vocab.txt",
        "special": tmp_path / "special_tokens_map.json",
        "tokenizer_config": tmp_path / "tokenizer_config.json",
        "config": tmp_path / "config.json",
        "dir": tmp_path,
    }
