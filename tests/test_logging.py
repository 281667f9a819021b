"""
Tests for logging configuration.
"""
import json
import logging
import sys

import pytest

from tablesas.exceptions import EntityNotFoundError
from tablesas.utils.logging import (
    SDK_LOGGERS,
    ContextTextFormatter,
    JsonFormatter,
    configure_logging,
    extra_fields,
)


def make_record(message, exc_info=None, **extra):
    record = logging.LogRecord("tablesas.test", logging.WARNING, __file__, 1, message, (), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestExtraFields:
    """Tests for extra_fields."""

    def test_only_caller_fields(self):
        record = make_record("upserted", table="Customers", row_key=None, _private=1)

        assert extra_fields(record) == {"table": "Customers"}


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_fields_and_extras(self):
        record = make_record("get_entity denied", table="Customers", row_key=None)

        entry = json.loads(JsonFormatter().format(record))

        assert entry["level"] == "WARNING"
        assert entry["logger"] == "tablesas.test"
        assert entry["message"] == "get_entity denied"
        assert entry["table"] == "Customers"
        assert "row_key" not in entry
        assert "exception" not in entry

    def test_static_fields(self):
        formatter = JsonFormatter({"app": "tablesas", "version": "0.1.0"})

        entry = json.loads(formatter.format(make_record("hello")))

        assert entry["app"] == "tablesas"
        assert entry["version"] == "0.1.0"

    def test_error_details_are_included(self):
        try:
            raise EntityNotFoundError("missing", "Customers", "1", "a")
        except EntityNotFoundError:
            record = make_record("lookup failed", exc_info=sys.exc_info())

        entry = json.loads(JsonFormatter().format(record))

        error = entry["exception"]
        assert error["type"] == "EntityNotFoundError"
        assert error["code"] == "ENTITY_NOT_FOUND"
        assert error["status_code"] == 404
        assert error["retryable"] is False
        assert error["details"]["row_key"] == "a"
        assert error["traceback"]

    def test_plain_exception_has_no_code(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record("crashed", exc_info=sys.exc_info())

        entry = json.loads(JsonFormatter().format(record))

        assert entry["exception"]["message"] == "boom"
        assert "code" not in entry["exception"]


class TestContextTextFormatter:
    """Tests for ContextTextFormatter."""

    def test_appends_context(self):
        formatter = ContextTextFormatter("%(levelname)s %(message)s")

        line = formatter.format(make_record("Upserted entity", table="Customers", row_key="a"))

        assert line == "WARNING Upserted entity [table=Customers row_key=a]"

    def test_without_context(self):
        formatter = ContextTextFormatter("%(message)s")

        assert formatter.format(make_record("ready")) == "ready"


class TestConfigureLogging:
    """Tests for configure_logging."""

    @pytest.fixture(autouse=True)
    def restore_loggers(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        sdk_levels = {name: logging.getLogger(name).level for name in SDK_LOGGERS}
        yield
        root.handlers[:] = handlers
        root.setLevel(level)
        for name, sdk_level in sdk_levels.items():
            logging.getLogger(name).setLevel(sdk_level)

    def test_json_format(self):
        handler = configure_logging(log_format="json", log_level="debug", static_fields={"app": "x"})

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert root.handlers == [handler]
        assert isinstance(handler.formatter, JsonFormatter)
        assert handler.formatter.static_fields == {"app": "x"}
        assert logging.getLogger("azure.data.tables").level == logging.DEBUG

    def test_text_format_and_unknown_level(self):
        handler = configure_logging(log_format="text", log_level="nonsense")

        root = logging.getLogger()
        assert root.level == logging.INFO
        assert isinstance(handler.formatter, ContextTextFormatter)
        for name in SDK_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING
