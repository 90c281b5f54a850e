"""
Tests for logging setup.
"""

import logging

from chunkledger.core.logging_config import setup_logging


def test_setup_logging_explicit_level():
    logger = setup_logging("chunkledger.tests.explicit", log_level="debug")

    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert not logger.propagate


def test_setup_logging_level_from_env(monkeypatch):
    monkeypatch.setenv("CHUNKLEDGER_LOG_LEVEL", "WARNING")

    logger = setup_logging("chunkledger.tests.env")

    assert logger.level == logging.WARNING


def test_setup_logging_is_idempotent():
    first = setup_logging("chunkledger.tests.repeat")
    second = setup_logging("chunkledger.tests.repeat")

    assert first is second
    assert len(second.handlers) == 1
