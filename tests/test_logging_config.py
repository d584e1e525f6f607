import json
import logging
from collections.abc import Generator
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest
from _pytest.logging import LogCaptureFixture

from userservice import logging_config
from userservice.logging_config import LOG_NAME, JsonFormatter, get_logger


@pytest.fixture(autouse=True)
def reset_logger_handlers(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[None, None, None]:
    """Ensure tests run with a clean logger state and write logs to a temp dir."""
    monkeypatch.setattr(logging_config, "LOG_FILE", tmp_path / "logs" / "test.log")
    logger = logging.getLogger(LOG_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    yield
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True


def test_json_formatter_returns_json_with_extras() -> None:
    formatter = JsonFormatter()
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="hello",
        args=(),
        exc_info=None,
    )
    record.operation = "create"
    record.email = "alice@email.com"
    formatted = formatter.format(record)
    data = json.loads(formatted)
    assert data["level"] == "INFO"
    assert data["logger"] == "test"
    assert data["message"] == "hello"
    assert data["operation"] == "create"
    assert data["extra"]["email"] == "alice@email.com"


def test_json_formatter_includes_exception() -> None:
    try:
        raise ValueError("boom")
    except ValueError:
        import sys

        exc_info = sys.exc_info()
    record = logging.LogRecord("test", logging.ERROR, __file__, 1, "failed", (), exc_info)
    data = json.loads(JsonFormatter().format(record))
    assert "ValueError: boom" in data["error"]


def test_get_logger_configures_two_handlers(tmp_path: Path) -> None:
    logger = get_logger()
    assert len(logger.handlers) == 2
    assert any(isinstance(h, logging.StreamHandler) for h in logger.handlers)
    assert any(isinstance(h, RotatingFileHandler) for h in logger.handlers)
    assert (tmp_path / "logs").is_dir()
    # Second call reuses the configured handlers
    assert get_logger() is logger
    assert len(logger.handlers) == 2


def test_package_loggers_reach_package_handlers(caplog: LogCaptureFixture) -> None:
    logger = get_logger()
    logger.addHandler(caplog.handler)
    caplog.set_level(logging.INFO, logger=LOG_NAME)
    logging.getLogger("userservice.repositories.sqlite.users_sqlite").info(
        "User created", extra={"operation": "create"}
    )
    logger.removeHandler(caplog.handler)
    assert len(caplog.records) == 1
    data = json.loads(JsonFormatter().format(caplog.records[0]))
    assert data["operation"] == "create"
