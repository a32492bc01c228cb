import io
import json
import logging

import pytest

from mikros.logger import JsonFormatter, Level, Logger, LoggerBuilder


def _lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_level_parse():
    assert Level.parse("debug") is Level.DEBUG
    assert Level.parse("info") is Level.INFO
    assert Level.parse("warning") is Level.WARNING
    assert Level.parse("error") is Level.ERROR


def test_level_parse_unknown():
    with pytest.raises(ValueError, match="unknown log level verbose"):
        Level.parse("verbose")


def test_info_output_layout():
    stream = io.StringIO()
    logger = LoggerBuilder().with_field("svc.name", "my-service").build(stream)
    logger.infof("hello", {"key": "value"})
    (entry,) = _lines(stream)
    assert list(entry) == ["timestamp", "level", "message", "svc.name", "key"]
    assert entry["level"] == "INFO"
    assert entry["message"] == "hello"
    assert entry["svc.name"] == "my-service"
    assert entry["key"] == "value"


def test_warning_level_name():
    stream = io.StringIO()
    LoggerBuilder().build(stream).warning("careful")
    assert _lines(stream)[0]["level"] == "WARN"


def test_debug_filtered_until_level_changes():
    stream = io.StringIO()
    logger = LoggerBuilder().build(stream)
    logger.debug("hidden")
    assert stream.getvalue() == ""
    logger.change_level(Level.DEBUG)
    logger.debug("shown")
    assert [e["message"] for e in _lines(stream)] == ["shown"]


def test_with_level_filters_lower_levels():
    stream = io.StringIO()
    logger = LoggerBuilder().with_level(Level.ERROR).build(stream)
    logger.info("info")
    logger.warningf("warn", {"a": 1})
    logger.error("boom")
    assert [e["message"] for e in _lines(stream)] == ["boom"]


def test_call_fields_override_constant_fields():
    stream = io.StringIO()
    logger = LoggerBuilder().with_field("svc.name", "a").build(stream)
    logger.errorf("x", {"svc.name": "b"})
    entry = _lines(stream)[0]
    assert entry["svc.name"] == "b"
    assert list(entry) == ["timestamp", "level", "message", "svc.name"]


def test_non_mapping_fields_are_ignored():
    stream = io.StringIO()
    logger = LoggerBuilder().build(stream)
    logger.debugf("x", ["not", "a", "map"])
    logger.change_level(Level.DEBUG)
    logger.debugf("y", ["not", "a", "map"])
    entry = _lines(stream)[0]
    assert list(entry) == ["timestamp", "level", "message"]


def test_utc_timestamp():
    stream = io.StringIO()
    LoggerBuilder().with_local_timestamp(False).build(stream).info("t")
    assert _lines(stream)[0]["timestamp"].endswith("+00:00")


def test_builder_constant_fields_are_copies():
    builder = LoggerBuilder().with_field("svc.version", "v1")
    fields = builder.constant_fields()
    fields["other"] = "x"
    assert builder.constant_fields() == {"svc.version": "v1"}


def test_formatter_direct():
    formatter = JsonFormatter(local_timestamp=False, constant_fields={"svc.product": "p"})
    record = logging.LogRecord("n", logging.ERROR, __file__, 1, "msg", None, None)
    record.call_fields = {"error.code": 42}
    entry = json.loads(formatter.format(record))
    assert entry["level"] == "ERROR"
    assert entry["message"] == "msg"
    assert entry["svc.product"] == "p"
    assert entry["error.code"] == 42


def test_logger_default_constructor_writes_to_stream():
    stream = io.StringIO()
    Logger(stream=stream).info("direct")
    assert _lines(stream)[0]["message"] == "direct"