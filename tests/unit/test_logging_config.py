"""Tests for homecal logging configuration."""

import logging

import pytest
from colorlog import ColoredFormatter

import homecal
from homecal.logging_config import (
    CorrelationIdFilter,
    bind_request_id,
    configure_logging,
    get_logging_status,
    get_request_id,
)

pytestmark = pytest.mark.unit

TOUCHED_LOGGERS = ["homecal", "dateutil", "homecal.cache", "homecal.domain.pipeline"]


@pytest.fixture(autouse=True)
def restore_logging():
    """Restore logger levels changed by a test."""
    names = ["", *TOUCHED_LOGGERS]
    levels = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)


def test_configure_logging_debug():
    configure_logging(force_debug=True)

    assert logging.getLogger("homecal").level == logging.DEBUG
    assert logging.getLogger("dateutil").level == logging.WARNING
    assert logging.getLogger().level == logging.DEBUG


def test_configure_logging_production():
    configure_logging(debug_mode=False)

    assert logging.getLogger("homecal").level == logging.INFO
    assert logging.getLogger("dateutil").level == logging.WARNING


def test_env_debug_and_level(monkeypatch):
    monkeypatch.setenv("HOMECAL_DEBUG", "yes")
    monkeypatch.setenv("HOMECAL_LOG_LEVEL", "warning")

    configure_logging()

    assert logging.getLogger("homecal.cache").level == logging.DEBUG
    assert logging.getLogger().level == logging.WARNING


def test_force_debug_overrides_env(monkeypatch):
    monkeypatch.setenv("HOMECAL_DEBUG", "1")

    configure_logging(force_debug=False)

    assert logging.getLogger("homecal.domain.pipeline").level == logging.INFO


def test_correlation_filter_added_once():
    configure_logging()
    configure_logging()

    for handler in logging.getLogger().handlers:
        assert sum(isinstance(f, CorrelationIdFilter) for f in handler.filters) == 1


def test_bind_request_id():
    record = logging.LogRecord("homecal", logging.INFO, __file__, 1, "msg", None, None)
    correlation_filter = CorrelationIdFilter()

    assert get_request_id() == "no-request-id"
    with bind_request_id("req-42"):
        assert correlation_filter.filter(record) is True
        assert record.request_id == "req-42"
    assert get_request_id() == "no-request-id"


def test_get_logging_status():
    configure_logging(force_debug=True)

    status = get_logging_status()

    assert status["homecal"] == "DEBUG"
    assert status["dateutil"] == "WARNING"
    assert "asyncio" not in status
    assert "root" in status


def test_init_logging_installs_colored_handler():
    root = logging.getLogger()
    saved = root.handlers[:]
    root.handlers.clear()
    try:
        homecal.init_logging("warning")
        installed = root.handlers[:]
    finally:
        root.handlers[:] = saved

    assert root.level == logging.WARNING
    assert len(installed) == 1
    assert isinstance(installed[0].formatter, ColoredFormatter)


def test_init_logging_debug_env(monkeypatch):
    monkeypatch.setenv("HOMECAL_DEBUG", "on")

    homecal.init_logging("ERROR")

    assert logging.getLogger().level == logging.DEBUG


def test_init_logging_unknown_level_defaults_to_info():
    homecal.init_logging("chatty")

    assert logging.getLogger().level == logging.INFO
