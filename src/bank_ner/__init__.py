"""Bank NER — financial entity extraction from banking notification messages."""

from .extractor import Extractor, ExtractorConfig
from .tokenizer import WordPieceTokenizer
from .vocab import Vocabulary, SpecialTokens
from .classifier import Classifier, OnnxClassifier, LabelMap
from .normalize import normalize_digits
from .decoder import decode_labels
from .patterns import scan_patterns, PatternRule, RULES
from .reconcile import reconcile
from .config import create_extractor, load_config, load_from_yaml
from .logging import configure_logging
from .errors import BankNerError, ResourceError, LabelMismatchError
from .types import EntityType, Encoding, CandidateEntity, FinancialEntity

__all__ = [
    "Extractor", "ExtractorConfig",
    "WordPieceTokenizer", "Vocabulary", "SpecialTokens",
    "Classifier", "OnnxClassifier", "LabelMap",
    "normalize_digits", "decode_labels", "scan_patterns", "PatternRule", "RULES", "reconcile",
    "create_extractor", "load_config", "load_from_yaml",
    "configure_logging",
    "BankNerError", "ResourceError", "LabelMismatchError",
    "EntityType", "Encoding", "CandidateEntity", "FinancialEntity",
]
__version__ = "0.1.0"
