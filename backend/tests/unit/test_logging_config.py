"""Tests for logging_config.setup_logging."""

import logging

import pytest
from pydantic import ValidationError

from config import Settings
from logging_config import NOISY_LOGGERS, setup_logging


@pytest.fixture
def log_level(monkeypatch):
    """Swap in settings built with the given LOG_LEVEL."""

    def apply(value: str) -> None:
        monkeypatch.setenv("LOG_LEVEL", value)
        monkeypatch.setattr("logging_config.settings", Settings(_env_file=None))

    return apply


def test_level_comes_from_settings(log_level):
    log_level("DEBUG")
    setup_logging()
    assert logging.getLogger().level == logging.DEBUG


def test_verbose_flag_overrides_settings(log_level):
    log_level("ERROR")
    setup_logging("warning")
    assert logging.getLogger().level == logging.WARNING


def test_driver_and_http_loggers_stay_at_warning():
    setup_logging("DEBUG")
    levels = {name: logging.getLogger(name).level for name in NOISY_LOGGERS}
    assert levels == dict.fromkeys(NOISY_LOGGERS, logging.WARNING)


@pytest.mark.parametrize("value,expected", [("debug", "DEBUG"), ("Warning", "WARNING")])
def test_log_level_normalized(monkeypatch, value, expected):
    monkeypatch.setenv("LOG_LEVEL", value)
    assert Settings(_env_file=None).LOG_LEVEL == expected


def test_unknown_log_level_rejected(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "VERBOSE")
    with pytest.raises(ValidationError, match="LOG_LEVEL"):
        Settings(_env_file=None)
