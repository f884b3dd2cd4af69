from __future__ import annotations

import asyncio
import logging
from typing import Any

from aiohttp import ClientError, ClientSession, ClientTimeout

from relay_bot.models import (
    EVENT_CHANNEL_POST,
    EVENT_MEMBERSHIP,
    EVENT_MESSAGE,
    ChatInfo,
    InboundEvent,
    SendResult,
    SendStatus,
)

logger = logging.getLogger(__name__)

_API_ROOT = "https://api.telegram.org"
ALLOWED_UPDATES = ["message", "channel_post", "my_chat_member"]


class TelegramApiError(RuntimeError):
    def __init__(self, status: SendStatus, http_status: int, description: str) -> None:
        super().__init__(f"telegram_bot_api_error:{http_status}:{description}")
        self.status = status
        self.http_status = http_status
        self.description = description


class TelegramBotApi:
    """Minimal Bot API client over aiohttp.

    send/forward/lookup calls never raise for platform or network errors; they
    return a classified ``SendResult`` (or ``None`` for lookups).
    """

    def __init__(self, token: str, request_timeout_sec: float = 8.0, poll_timeout_sec: int = 30) -> None:
        token = (token or "").strip()
        if not token:
            raise ValueError("bot_token_required")
        self.token = token
        self.request_timeout_sec = request_timeout_sec
        self.poll_timeout_sec = poll_timeout_sec
        self._api_base = f"{_API_ROOT}/bot{self.token}"
        self._session: ClientSession | None = None

    async def open(self) -> None:
        if self._session is None:
            self._session = ClientSession(timeout=ClientTimeout(total=self.request_timeout_sec))

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def send_text(self, chat_id: int, text: str) -> SendResult:
        payload = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        return await self._send("sendMessage", payload, chat_id)

    async def forward(self, chat_id: int, from_chat_id: int, message_id: int) -> SendResult:
        payload = {
            "chat_id": chat_id,
            "from_chat_id": from_chat_id,
            "message_id": message_id,
        }
        return await self._send("forwardMessage", payload, chat_id)

    async def get_chat_info(self, chat_id: int) -> ChatInfo | None:
        try:
            result = await self._api_call("getChat", {"chat_id": chat_id})
        except (TelegramApiError, ClientError, asyncio.TimeoutError) as exc:
            logger.warning("chat_lookup_failed", extra={"chat_id": chat_id, "reason": str(exc)})
            return None
        if not isinstance(result, dict):
            return None
        return ChatInfo(
            chat_id=int(result.get("id") or chat_id),
            title=result.get("title"),
            username=result.get("username"),
            first_name=result.get("first_name"),
        )

    async def get_me(self) -> dict[str, Any]:
        result = await self._api_call("getMe", {})
        return result if isinstance(result, dict) else {}

    async def get_updates(self, offset: int) -> list[dict[str, Any]]:
        payload = {
            "timeout": self.poll_timeout_sec,
            "offset": offset,
            "allowed_updates": ALLOWED_UPDATES,
        }
        result = await self._api_call(
            "getUpdates",
            payload,
            timeout=ClientTimeout(total=self.poll_timeout_sec + 20),
        )
        if isinstance(result, list):
            return [item for item in result if isinstance(item, dict)]
        return []

    async def _send(self, method: str, payload: dict[str, Any], chat_id: int) -> SendResult:
        try:
            result = await self._api_call(method, payload)
        except TelegramApiError as exc:
            return SendResult(status=exc.status, description=exc.description)
        except (ClientError, asyncio.TimeoutError) as exc:
            logger.warning(
                "bot_api_transport_failed",
                extra={"action": method, "chat_id": chat_id, "reason": repr(exc)},
            )
            return SendResult(status=SendStatus.OTHER, description=repr(exc))
        message_id = int((result or {}).get("message_id") or 0) if isinstance(result, dict) else 0
        return SendResult(status=SendStatus.OK, message_id=message_id)

    @staticmethod
    def classify_error(http_status: int, description: str) -> SendStatus:
        lowered = description.lower()
        if http_status == 403:
            return SendStatus.FORBIDDEN
        if http_status == 404:
            return SendStatus.NOT_FOUND
        if http_status == 400:
            if "chat not found" in lowered:
                return SendStatus.NOT_FOUND
            return SendStatus.BAD_REQUEST
        return SendStatus.OTHER

    async def _api_call(
        self,
        method: str,
        payload: dict[str, Any],
        timeout: ClientTimeout | None = None,
    ) -> Any:
        if not self._session:
            raise RuntimeError("bot_api_not_opened")
        url = f"{self._api_base}/{method}"
        # passing timeout=None to aiohttp disables the timeout entirely
        if timeout is None:
            timeout = ClientTimeout(total=self.request_timeout_sec)
        async with self._session.post(url, json=payload, timeout=timeout) as response:
            http_status = response.status
            try:
                data = await response.json(content_type=None)
            except ValueError:
                data = None
        if not isinstance(data, dict):
            raise TelegramApiError(SendStatus.OTHER, http_status, "invalid_response")
        if not data.get("ok"):
            code = int(data.get("error_code") or http_status)
            description = str(data.get("description") or "unknown_error")
            raise TelegramApiError(self.classify_error(code, description), code, description)
        return data.get("result")


def parse_update(update: dict[str, Any]) -> InboundEvent | None:
    message = update.get("message")
    if isinstance(message, dict):
        return _event_from_message(EVENT_MESSAGE, message)
    post = update.get("channel_post")
    if isinstance(post, dict):
        return _event_from_message(EVENT_CHANNEL_POST, post)
    member = update.get("my_chat_member")
    if isinstance(member, dict):
        chat = member.get("chat") or {}
        new_member = member.get("new_chat_member") or {}
        from_user = member.get("from") or {}
        chat_id = int(chat.get("id") or 0)
        if chat_id == 0:
            return None
        return InboundEvent(
            kind=EVENT_MEMBERSHIP,
            chat_id=chat_id,
            chat_type=str(chat.get("type") or ""),
            from_user_id=int(from_user["id"]) if from_user.get("id") else None,
            chat_title=chat.get("title"),
            chat_username=chat.get("username"),
            new_member_status=str(new_member.get("status") or "") or None,
        )
    return None


def _event_from_message(kind: str, message: dict[str, Any]) -> InboundEvent | None:
    chat = message.get("chat") or {}
    chat_id = int(chat.get("id") or 0)
    if chat_id == 0:
        return None
    from_user = message.get("from") or {}
    return InboundEvent(
        kind=kind,
        chat_id=chat_id,
        chat_type=str(chat.get("type") or ""),
        message_id=int(message.get("message_id") or 0),
        from_user_id=int(from_user["id"]) if from_user.get("id") else None,
        text=str(message.get("text") or message.get("caption") or ""),
        chat_title=chat.get("title"),
        chat_username=chat.get("username"),
    )
