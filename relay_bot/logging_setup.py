from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any

_EXTRA_KEYS = (
    "chat_id",
    "message_id",
    "user_id",
    "command",
    "action",
    "reason",
    "status",
    "success",
    "failed",
    "removed",
    "count",
)

# Bot API urls embed the token: https://api.telegram.org/bot<id>:<secret>/method
_TOKEN_RE = re.compile(r"bot\d+:[A-Za-z0-9_-]+")

_NOISY_LOGGERS = ("aiohttp.access",)


def redact_token(text: str) -> str:
    return _TOKEN_RE.sub("bot<redacted>", text)


def _json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return sorted(value)
    if isinstance(value, str):
        return redact_token(value)
    return value


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": redact_token(record.getMessage()),
        }
        if record.exc_info:
            payload["exc"] = redact_token(self.formatException(record.exc_info))
        for extra_key in _EXTRA_KEYS:
            value = getattr(record, extra_key, None)
            if value is not None:
                payload[extra_key] = _json_value(value)
        return json.dumps(payload, ensure_ascii=True)


def configure_logging(level: str) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.handlers.clear()
    root.addHandler(handler)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
