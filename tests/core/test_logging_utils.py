from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from assistant_bot.core.config import LogConfig
from assistant_bot.core.logging_utils import log_event, setup_rotating_logger


def test_log_event_emits_json_payload(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("test.log_event")

    with caplog.at_level(logging.INFO, logger="test.log_event"):
        log_event(
            logger,
            logging.INFO,
            "discord.purge.deleted",
            channel_id="chan-1",
            path=("purge",),
            deleted=2,
        )

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload == {
        "event": "discord.purge.deleted",
        "channel_id": "chan-1",
        "path": ["purge"],
        "deleted": 2,
    }


def test_log_event_includes_error_fields(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("test.log_event.error")

    with caplog.at_level(logging.WARNING, logger="test.log_event.error"):
        log_event(
            logger,
            logging.WARNING,
            "discord.purge.fetch_failed",
            exc=RuntimeError("boom"),
        )
        log_event(
            logger,
            logging.ERROR,
            "discord.interaction.unhandled_error",
            exc=ValueError("bad"),
        )

    warning, error = caplog.records[-2:]
    assert json.loads(warning.getMessage())["error"] == "boom"
    assert json.loads(warning.getMessage())["error_type"] == "RuntimeError"
    assert warning.exc_info is None
    assert error.exc_info is not None


def test_log_event_skips_disabled_levels(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("test.log_event.disabled")

    with caplog.at_level(logging.WARNING, logger="test.log_event.disabled"):
        log_event(logger, logging.DEBUG, "noisy.event", value=object())

    assert caplog.records == []


def test_setup_rotating_logger_adds_handler_once(tmp_path: Path) -> None:
    log_config = LogConfig(
        path=tmp_path / "logs" / "bot.log", max_bytes=1000, backup_count=2
    )

    logger = setup_rotating_logger("test.rotating", log_config)
    again = setup_rotating_logger("test.rotating", log_config)

    handlers = [h for h in again.handlers if isinstance(h, RotatingFileHandler)]
    try:
        assert logger is again
        assert len(handlers) == 1
        assert handlers[0].maxBytes == 1000
        assert handlers[0].backupCount == 2
        assert (tmp_path / "logs").is_dir()
    finally:
        for handler in handlers:
            logger.removeHandler(handler)
            handler.close()
