# tests/common/test_logger.py
"""
Tests for src/common/logger.py.
"""

from __future__ import annotations

import json
import logging
import sys
from unittest.mock import patch

import pytest

from src.common.constants import TypeMsg
from src.common.logger import (
    ColoredFormatter,
    JsonFormatter,
    get_logger,
    log_error,
    log_info,
    log_warning,
)


def make_record(level: int = logging.INFO, msg: str = "Request created", exc_info=None) -> logging.LogRecord:
    record = logging.LogRecord(
        name="roadside",
        level=level,
        pathname="service.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    record.module = "service"
    record.funcName = "create_request"
    return record


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_fields(self) -> None:
        data = json.loads(JsonFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["message"] == "Request created"
        assert data["function"] == "create_request"
        assert data["line"] == 42
        assert data["timestamp"].endswith("Z")

    def test_extra_data(self) -> None:
        record = make_record()
        record.extra_data = {"request_id": "r-1"}

        data = json.loads(JsonFormatter().format(record))

        assert data["extra"] == {"request_id": "r-1"}

    def test_exception(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(make_record(logging.ERROR, "failed", exc_info)))

        assert "ValueError" in data["exception"]


class TestColoredFormatter:
    """Tests for ColoredFormatter."""

    def test_level_and_caller(self) -> None:
        record = make_record(logging.WARNING, "No provider")
        record.extra_data = {
            "caller_function": "assign",
            "caller_module": "src.services.matching.service",
            "caller_file": "service.py",
            "caller_line": 7,
        }

        result = ColoredFormatter().format(record)

        assert "[WARNING]" in result
        assert "No provider" in result
        assert "assign()" in result


class TestLogHelpers:
    """Tests for the async log helpers."""

    def test_get_logger_cached(self) -> None:
        assert get_logger("roadside.test") is get_logger("roadside.test")

    @pytest.mark.asyncio
    async def test_log_info_level(self) -> None:
        logger = get_logger("roadside.helpers")
        with patch.object(logger, "warning") as warning:
            await log_info("slow sweep", type_msg=TypeMsg.WARNING, logger_name="roadside.helpers")

        warning.assert_called_once()
        extra = warning.call_args.kwargs["extra"]["extra_data"]
        assert extra["caller_function"] == "test_log_info_level"

    @pytest.mark.asyncio
    async def test_log_warning_skips_wrapper_frame(self) -> None:
        logger = get_logger("roadside.helpers")
        with patch.object(logger, "warning") as warning:
            await log_warning("retrying", logger_name="roadside.helpers", extra={"attempt": 2})

        extra = warning.call_args.kwargs["extra"]["extra_data"]
        assert extra["caller_function"] == "test_log_warning_skips_wrapper_frame"
        assert extra["attempt"] == 2

    @pytest.mark.asyncio
    async def test_log_error_exc_info(self) -> None:
        logger = get_logger("roadside.helpers")
        with patch.object(logger, "error") as error:
            await log_error("failed", logger_name="roadside.helpers", exc_info=True)

        assert error.call_args.kwargs["exc_info"] is True
