import json
import logging
import sys

from volunteer_portal.logging_utils import JsonFormatter, setup_json_logging


def _record(msg, *args, **extra):
    record = logging.LogRecord("volunteer_portal.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formats_one_json_object():
    line = JsonFormatter().format(_record("User %s signed up", 7))
    payload = json.loads(line)
    assert payload["level"] == "INFO"
    assert payload["logger"] == "volunteer_portal.test"
    assert payload["message"] == "User 7 signed up"
    assert payload["ts"].endswith("+00:00")


def test_extra_fields_are_included():
    payload = json.loads(JsonFormatter().format(_record("Deleted user", affected={"users": 1})))
    assert payload["affected"] == {"users": 1}


def test_exception_is_included():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
    payload = json.loads(JsonFormatter().format(record))
    assert "RuntimeError: boom" in payload["exception"]


def test_setup_uses_log_level(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_json_logging()
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
