"""Tests for logger setup and execution context binding."""

import json
import logging

import structlog

from mcpchain.utils.logger import (
    JsonLogFormatter,
    bind_execution_context,
    clear_execution_context,
    get_logger,
    setup_logging,
)


class TestLogging:
    def teardown_method(self):
        clear_execution_context()

    def test_get_logger_returns_structlog_logger(self):
        logger = get_logger("test_module")
        assert logger is not None
        assert hasattr(logger, "info")
        assert hasattr(logger, "error")

    def test_setup_logging_sets_root_level(self):
        setup_logging(level="WARNING")

        root_logger = logging.getLogger()
        assert root_logger.level == logging.WARNING
        assert len(root_logger.handlers) == 1

    def test_json_logs_use_json_formatter(self):
        setup_logging(level="INFO", json_logs=True)

        handler = logging.getLogger().handlers[0]
        assert isinstance(handler.formatter, JsonLogFormatter)

    def test_json_formatter_output(self):
        record = logging.LogRecord("svc", logging.ERROR, __file__, 1, "failed %s", ("x",), None)

        data = json.loads(JsonLogFormatter().format(record))

        assert data["level"] == "error"
        assert data["logger"] == "svc"
        assert data["message"] == "failed x"

    def test_execution_context_binding(self):
        bind_execution_context("task-9", "user-3")

        context = structlog.contextvars.get_contextvars()
        assert context["task_id"] == "task-9"
        assert context["user_id"] == "user-3"

        clear_execution_context()
        assert "task_id" not in structlog.contextvars.get_contextvars()

    def test_conversation_id_bound_when_given(self):
        bind_execution_context("task-9", "user-3", conversation_id="conv-1")

        assert structlog.contextvars.get_contextvars()["conversation_id"] == "conv-1"

        clear_execution_context()
        assert "conversation_id" not in structlog.contextvars.get_contextvars()
