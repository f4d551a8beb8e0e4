import json
import logging

import health
from dinamai import __version__
from dinamai.logger import JsonFormatter, get_logger


def test_health_reports_version():
    event = {"rawPath": "/healthz", "requestContext": {"http": {"method": "GET"}}}

    resp = health.lambda_handler(event, None)

    assert resp["statusCode"] == 200
    assert json.loads(resp["body"]) == {"status": "ok", "version": __version__}


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("chat", logging.INFO, __file__, 1, "chat.completed", None, None)
    record.user_id = "user-1"
    record.remaining = 4

    line = json.loads(JsonFormatter().format(record))

    assert line["message"] == "chat.completed"
    assert line["level"] == "INFO"
    assert line["logger"] == "chat"
    assert line["user_id"] == "user-1"
    assert line["remaining"] == 4


def test_get_logger_configures_once():
    first = get_logger("test-once")
    second = get_logger("test-once")

    assert first is second
    assert len(first.handlers) == 1
    assert first.propagate is False
