"""Tests for the JSON log formatter."""

from __future__ import annotations

import json
import logging
import sys

from sendgrid_connector.logging_config import JsonFormatter, configure_logging


def _record(msg="hello %s", args=("world",), **extra):
    record = logging.LogRecord(
        name="sendgrid.runner", level=logging.INFO, pathname=__file__, lineno=1,
        msg=msg, args=args, exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_basic_fields(self) -> None:
        entry = json.loads(JsonFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "sendgrid.runner"
        assert entry["message"] == "hello world"
        assert "timestamp" in entry

    def test_extra_fields(self) -> None:
        entry = json.loads(JsonFormatter().format(
            _record(resource_type="teammate", records=500, username="t1", unrelated="x"),
        ))
        assert entry["resource_type"] == "teammate"
        assert entry["records"] == 500
        assert entry["username"] == "t1"
        assert "unrelated" not in entry

    def test_exception(self) -> None:
        try:
            raise ValueError("bad")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()
        entry = json.loads(JsonFormatter().format(record))
        assert "ValueError: bad" in entry["exception"]


class TestConfigureLogging:
    def test_installs_single_json_handler(self) -> None:
        configure_logging("debug")
        configure_logging("DEBUG")
        logger = logging.getLogger("sendgrid")
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JsonFormatter)
        assert logger.level == logging.DEBUG
        assert logger.propagate is False

    def test_unknown_level_defaults_to_info(self) -> None:
        configure_logging("chatty")
        assert logging.getLogger("sendgrid").level == logging.INFO

    def test_text_format(self) -> None:
        configure_logging("INFO", fmt="text")
        formatter = logging.getLogger("sendgrid").handlers[0].formatter
        assert not isinstance(formatter, JsonFormatter)
        assert "hello world" in formatter.format(_record())
