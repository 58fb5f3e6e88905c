"""Tests for structlog configuration."""

import json
import logging

import pytest
import structlog

from bank_ner import configure_logging
from bank_ner.logging import get_logger


@pytest.fixture
def fresh_structlog():
    yield
    structlog.reset_defaults()


def test_configure_logging_renders_json(caplog, fresh_structlog):
    configure_logging("INFO")
    caplog.set_level(logging.INFO, logger="bank_ner.checks")

    log = get_logger("bank_ner.checks")
    log.info("vocabulary_loaded", size=3)
    log.debug("unknown_subword", word="qqqq")   # below the logger level

    records = [r for r in caplog.records if r.name == "bank_ner.checks"]
    assert len(records) == 1
    payload = json.loads(records[0].getMessage())
    assert payload["event"] == "vocabulary_loaded"
    assert payload["size"] == 3
    assert payload["level"] == "info"
    assert payload["logger"] == "bank_ner.checks"
    assert "timestamp" in payload


def test_configure_logging_console_renderer(caplog, fresh_structlog):
    configure_logging("DEBUG", json=False)
    caplog.set_level(logging.DEBUG, logger="bank_ner.console")

    get_logger("bank_ner.console").warning("vocab_size_mismatch", declared=10, loaded=9)

    (record,) = [r for r in caplog.records if r.name == "bank_ner.console"]
    assert "vocab_size_mismatch" in record.getMessage()
