import io
import logging

import pytest

from sms_notifier import logging_setup
from sms_notifier.logging_setup import configure_logging, get_logger, resolve_level

CLIENT_LOGGERS = ("httpx", "httpcore", "websockets")


@pytest.fixture
def fresh_logging(monkeypatch):
    """Let ``configure_logging`` run again and undo what it touches."""

    monkeypatch.setattr(logging_setup, "_CONFIGURED", False)
    for name in ("sms_notifier", *CLIENT_LOGGERS):
        logger = logging.getLogger(name)
        monkeypatch.setattr(logger, "handlers", [])
        monkeypatch.setattr(logger, "level", logger.level)
        monkeypatch.setattr(logger, "propagate", logger.propagate)


@pytest.mark.parametrize(
    ("level", "expected"),
    [
        (5, 5),
        ("debug", logging.DEBUG),
        (" Warning ", logging.WARNING),
        ("15", 15),
        ("nonsense", logging.INFO),
    ],
)
def test_resolve_level(monkeypatch, level, expected):
    monkeypatch.delenv("SMS_NOTIFIER_LOG_LEVEL", raising=False)
    assert resolve_level(level) == expected


def test_resolve_level_falls_back_to_environment(monkeypatch):
    monkeypatch.setenv("SMS_NOTIFIER_LOG_LEVEL", "error")
    assert resolve_level() == logging.ERROR
    assert resolve_level("debug") == logging.DEBUG

    monkeypatch.delenv("SMS_NOTIFIER_LOG_LEVEL")
    assert resolve_level() == logging.INFO


def test_configure_logging_once_and_quiets_clients(fresh_logging):
    stream = io.StringIO()
    assert configure_logging("warning", stream=stream) == logging.WARNING
    assert all(logging.getLogger(n).level == logging.WARNING for n in CLIENT_LOGGERS)

    log = get_logger("sms_notifier.test")
    log.info("hidden")
    log.warning("shown")
    assert "shown" in stream.getvalue()
    assert "hidden" not in stream.getvalue()

    assert configure_logging("DEBUG") == logging.WARNING
    assert len(logging.getLogger("sms_notifier").handlers) == 1


def test_debug_level_lets_client_logs_through(fresh_logging):
    configure_logging(logging.DEBUG, stream=io.StringIO())
    assert all(logging.getLogger(n).level == logging.DEBUG for n in CLIENT_LOGGERS)
