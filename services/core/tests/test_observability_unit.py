"""Unit tests for structured logging."""

import json
import logging
import sys

from cadence_core.observability.logging import (
    JsonFormatter,
    RequestContext,
    StructuredLogger,
    configure_logging,
    get_logger,
)


def make_record(msg="Test message", level=logging.INFO, **extra):
    record = logging.LogRecord(
        name="test.logger",
        level=level,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    """Tests for JSON log formatter."""

    def test_format_basic_log_record(self):
        parsed = json.loads(JsonFormatter().format(make_record()))

        assert parsed["message"] == "Test message"
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test.logger"
        assert parsed["service"] == "cadence-core"
        assert "timestamp" in parsed

    def test_extra_fields_become_keys(self):
        parsed = json.loads(JsonFormatter().format(make_record(identity_id=7, stage="analyzing")))

        assert parsed["identity_id"] == 7
        assert parsed["stage"] == "analyzing"

    def test_sensitive_fields_are_masked(self):
        """Token-like fields never reach the output in clear text."""
        record = make_record(access_token="at-123", refresh_token="rt-456", code_verifier="v")

        output = JsonFormatter().format(record)
        parsed = json.loads(output)

        assert parsed["access_token"] == "***"
        assert parsed["refresh_token"] == "***"
        assert parsed["code_verifier"] == "***"
        assert "at-123" not in output

    def test_non_serializable_values_are_stringified(self):
        parsed = json.loads(JsonFormatter().format(make_record(obj=object())))
        assert parsed["obj"].startswith("<object object")

    def test_warning_includes_source(self):
        parsed = json.loads(JsonFormatter().format(make_record(level=logging.WARNING)))
        assert parsed["source"]["line"] == 42

    def test_exception_is_rendered(self):
        try:
            raise ValueError("boom")
        except ValueError:
            exc_info = sys.exc_info()

        record = make_record(level=logging.ERROR)
        record.exc_info = exc_info

        parsed = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in parsed["exception"]


class TestRequestContext:
    def test_to_dict_skips_empty_fields(self):
        context = RequestContext(identity_id=3, stage="scraping", extra={"attempt": 2})
        assert context.to_dict() == {"identity_id": 3, "stage": "scraping", "attempt": 2}


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_get_logger_is_cached(self):
        assert get_logger("cadence.test") is get_logger("cadence.test")
        assert isinstance(get_logger("cadence.test"), StructuredLogger)

    def test_keyword_fields_and_context_reach_the_record(self, caplog):
        logger = get_logger("cadence.test.fields")

        with caplog.at_level(logging.INFO, logger="cadence.test.fields"):
            logger.info(
                "Persona stored",
                context=RequestContext(request_id="req-1"),
                confidence=80,
            )

        record = caplog.records[-1]
        assert record.getMessage() == "Persona stored"
        assert record.confidence == 80
        assert record.request_id == "req-1"

    def test_configure_logging_installs_json_handler(self):
        root = logging.getLogger()
        saved = (root.level, list(root.handlers))
        try:
            configure_logging(level="DEBUG", json_format=True, service_name="cadence-exchange")

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            formatter = root.handlers[0].formatter
            assert isinstance(formatter, JsonFormatter)
            assert formatter.service_name == "cadence-exchange"
        finally:
            root.setLevel(saved[0])
            root.handlers[:] = saved[1]
