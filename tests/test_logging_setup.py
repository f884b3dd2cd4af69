import json
import logging

from relay_bot.logging_setup import JsonFormatter, redact_token
from relay_bot.models import SendStatus


def _record(msg: str) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_includes_relay_context() -> None:
    record = _record("relay_completed")
    record.chat_id = -100123456
    record.message_id = 777
    record.success = 3
    record.failed = 1
    record.removed = frozenset({-1003, -1001})
    record.action = "relay"

    payload = json.loads(JsonFormatter().format(record))
    assert payload["msg"] == "relay_completed"
    assert payload["level"] == "INFO"
    assert payload["chat_id"] == -100123456
    assert payload["message_id"] == 777
    assert payload["success"] == 3
    assert payload["failed"] == 1
    assert payload["removed"] == [-1003, -1001]
    assert payload["action"] == "relay"


def test_json_formatter_skips_missing_extras() -> None:
    payload = json.loads(JsonFormatter().format(_record("plain")))
    assert "chat_id" not in payload
    assert "removed" not in payload
    assert set(payload) == {"ts", "level", "logger", "msg"}


def test_json_formatter_redacts_bot_token_and_flattens_enums() -> None:
    record = _record("request failed for https://api.telegram.org/bot123456:AAH-secret_Token/forwardMessage")
    record.reason = "ClientConnectorError(https://api.telegram.org/bot123456:AAH-secret_Token/getUpdates)"
    record.status = SendStatus.FORBIDDEN

    payload = json.loads(JsonFormatter().format(record))
    assert "AAH-secret_Token" not in payload["msg"]
    assert "bot<redacted>/forwardMessage" in payload["msg"]
    assert "AAH-secret_Token" not in payload["reason"]
    assert payload["status"] == "forbidden"


def test_redact_token_leaves_plain_text() -> None:
    assert redact_token("relay_completed") == "relay_completed"
