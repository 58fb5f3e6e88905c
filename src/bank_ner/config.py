"""YAML/dict config loader for bank-ner.

Supports loading from a YAML file or a plain dict (for embedding
in a larger application config).

Example YAML:

    bank_ner:
      model_dir: ~/models/financial-ner
      model_file: model.onnx
      vocab_file: vocab.txt
      special_tokens_file: special_tokens_map.json
      tokenizer_config_file: tokenizer_config.json
      model_config_file: config.json
      max_length: 512
      use_patterns: true
      min_confidence: 0.0
      skip_types:
        - OTHER

``BANK_NER_MODEL_DIR`` overrides ``model_dir`` when set.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Any

from .classifier import Classifier
from .extractor import Extractor, ExtractorConfig
from .types import EntityType

_DEFAULT_FILES = {
    "model_file": "model.onnx",
    "vocab_file": "vocab.txt",
    "special_tokens_file": "special_tokens_map.json",
    "tokenizer_config_file": "tokenizer_config.json",
    "model_config_file": "config.json",
}


def _get_env(key: str, default: str | None = None) -> str | None:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _entity_types(names: Any) -> set[EntityType]:
    out: set[EntityType] = set()
    for name in names or []:
        if isinstance(name, EntityType):
            out.add(name)
            continue
        try:
            out.add(EntityType(str(name).upper()))
        except ValueError as exc:
            raise ValueError(f"Unknown entity type in skip_types: {name!r}") from exc
    return out


def load_config(data: dict[str, Any]) -> dict[str, Any]:
    """Normalize a config dict (from YAML or inline)."""
    # Support nested under "bank_ner" key or flat
    if "bank_ner" in data:
        data = data["bank_ner"] or {}

    model_dir = _get_env("BANK_NER_MODEL_DIR", data.get("model_dir", "model"))
    max_length = int(data.get("max_length", 512))
    if max_length < 2:
        raise ValueError("max_length must be at least 2")

    cfg = {
        "model_dir": str(Path(model_dir).expanduser()),
        "max_length": max_length,
        "use_patterns": bool(data.get("use_patterns", True)),
        "min_confidence": float(data.get("min_confidence", 0.0)),
        "skip_types": _entity_types(data.get("skip_types")),
    }
    for key, default in _DEFAULT_FILES.items():
        cfg[key] = data.get(key, default)
    return cfg


def load_from_yaml(path: str | Path) -> dict[str, Any]:
    """Load config from a YAML file."""
    import yaml
    with open(path, encoding="utf-8") as f:
        return load_config(yaml.safe_load(f) or {})


def resource_paths(cfg: dict[str, Any]) -> dict[str, Path]:
    """Resolve each resource file against ``model_dir``."""
    base = Path(cfg["model_dir"])
    return {key: base / cfg[key] for key in _DEFAULT_FILES}


def create_extractor(
    config: dict[str, Any],
    *,
    classifier: Classifier | None = None,
) -> Extractor:
    """Create a fully initialized extractor from a config dict."""
    cfg = load_config(config)
    paths = resource_paths(cfg)

    extractor_config = ExtractorConfig(
        max_length=cfg["max_length"],
        use_patterns=cfg["use_patterns"],
        skip_types=cfg["skip_types"],
        min_confidence=cfg["min_confidence"],
    )

    return Extractor.from_files(
        paths["model_file"],
        paths["vocab_file"],
        paths["special_tokens_file"],
        paths["tokenizer_config_file"],
        paths["model_config_file"],
        config=extractor_config,
        classifier=classifier,
    )
