from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_MAX_TARGET_CHATS = 100


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _first_env(*names: str) -> str:
    for name in names:
        value = os.environ.get(name)
        if value is not None and value.strip():
            return value.strip()
    return ""


def _parse_chat_id(raw: str, warnings: list[str]) -> Optional[int]:
    if not raw:
        warnings.append("source_channel_not_set")
        return None
    try:
        return int(raw)
    except ValueError:
        warnings.append(f"source_channel_invalid:{raw}")
        return None


def _parse_user_ids(raw: str, warnings: list[str]) -> tuple[int, ...]:
    result: list[int] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            user_id = int(item)
        except ValueError:
            warnings.append(f"authorized_user_invalid:{item}")
            continue
        if user_id not in result:
            result.append(user_id)
    if raw.strip() and not result:
        warnings.append("authorized_users_all_invalid_open_access")
    return tuple(result)


def _parse_log_level(raw: str, warnings: list[str]) -> str:
    level = (raw or "INFO").upper()
    if level not in logging.getLevelNamesMapping():
        warnings.append(f"log_level_invalid:{raw}")
        return "INFO"
    return level


def _parse_positive_int(name: str, raw: str, default: int, warnings: list[str]) -> int:
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        warnings.append(f"{name.lower()}_invalid:{raw}")
        return default
    if value <= 0:
        warnings.append(f"{name.lower()}_not_positive:{raw}")
        return default
    return value


def _parse_positive_float(name: str, raw: str, default: float, warnings: list[str]) -> float:
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        warnings.append(f"{name.lower()}_invalid:{raw}")
        return default
    if value <= 0:
        warnings.append(f"{name.lower()}_not_positive:{raw}")
        return default
    return value


@dataclass(slots=True)
class Settings:
    bot_token: str = ""
    source_channel_id: Optional[int] = None
    authorized_user_ids: tuple[int, ...] = ()
    max_target_chats: int = DEFAULT_MAX_TARGET_CHATS
    target_chats_file: str = "target_chats.json"

    log_level: str = "INFO"
    request_timeout_sec: float = 8.0
    poll_timeout_sec: int = 30
    forward_concurrency: int = 8

    health_enabled: bool = True
    health_host: str = "0.0.0.0"
    health_port: int = 3000

    config_warnings: tuple[str, ...] = field(default=())

    @property
    def relay_configured(self) -> bool:
        return self.source_channel_id is not None

    @classmethod
    def from_env(cls) -> "Settings":
        warnings: list[str] = []
        bot_token = _first_env("BOT_TOKEN")
        if not bot_token:
            warnings.append("bot_token_not_set")
        source_channel_id = _parse_chat_id(
            _first_env("SOURCE_CHANNEL_ID", "NOTIFICATION_CHANNEL_ID"), warnings
        )
        authorized_user_ids = _parse_user_ids(
            _first_env("AUTHORIZED_USER_IDS", "AUTHORIZED_USERS"), warnings
        )
        return cls(
            bot_token=bot_token,
            source_channel_id=source_channel_id,
            authorized_user_ids=authorized_user_ids,
            max_target_chats=_parse_positive_int(
                "MAX_TARGET_CHATS",
                _first_env("MAX_TARGET_CHATS"),
                DEFAULT_MAX_TARGET_CHATS,
                warnings,
            ),
            target_chats_file=_first_env("TARGET_CHATS_FILE") or "target_chats.json",
            log_level=_parse_log_level(_first_env("LOG_LEVEL"), warnings),
            request_timeout_sec=_parse_positive_float(
                "REQUEST_TIMEOUT_SEC", _first_env("REQUEST_TIMEOUT_SEC"), 8.0, warnings
            ),
            poll_timeout_sec=max(
                5,
                _parse_positive_int(
                    "BOT_POLL_TIMEOUT_SEC", _first_env("BOT_POLL_TIMEOUT_SEC"), 30, warnings
                ),
            ),
            forward_concurrency=_parse_positive_int(
                "FORWARD_CONCURRENCY", _first_env("FORWARD_CONCURRENCY"), 8, warnings
            ),
            health_enabled=_parse_bool(os.environ.get("HEALTH_ENABLED", "true")),
            health_host=_first_env("HEALTH_HOST") or "0.0.0.0",
            health_port=_parse_positive_int(
                "PORT", _first_env("HEALTH_PORT", "PORT"), 3000, warnings
            ),
            config_warnings=tuple(warnings),
        )
