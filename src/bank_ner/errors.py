"""Exceptions raised while setting up the extraction pipeline."""

from __future__ import annotations


class BankNerError(Exception):
    """Base class for bank_ner errors."""


class ResourceError(BankNerError):
    """A vocabulary, special-tokens or model config file could not be loaded."""


class LabelMismatchError(ResourceError):
    """Declared label count disagrees with the id-to-label table."""
