from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any

from relay_bot.commands import UNKNOWN_TEXT, CommandRequest, CommandRouter
from relay_bot.models import (
    CHAT_PRIVATE,
    COMMAND_CHAT_TYPES,
    EVENT_MEMBERSHIP,
    EVENT_MESSAGE,
    InboundEvent,
)
from relay_bot.registry import ChatRegistry, PersistenceWriteFailed
from relay_bot.relay import RelayEngine
from relay_bot.telegram_api import TelegramApiError, TelegramBotApi, parse_update

logger = logging.getLogger(__name__)

_LEFT_STATUSES = frozenset({"left", "kicked"})
_BACKOFF_START_SEC = 2.0
_BACKOFF_MAX_SEC = 60.0


class RelayBot:
    def __init__(
        self,
        api: TelegramBotApi,
        registry: ChatRegistry,
        relay: RelayEngine,
        router: CommandRouter,
    ) -> None:
        self.api = api
        self.registry = registry
        self.relay = relay
        self.router = router
        self._offset = 0
        self._task: asyncio.Task[None] | None = None
        self._stop = asyncio.Event()

    async def start(self) -> None:
        if self._task:
            return
        await self.api.open()
        self._task = asyncio.create_task(self._run(), name="relay-bot-polling")
        logger.info(
            "relay_bot_started",
            extra={
                "action": "bot_start",
                "chat_id": self.relay.source_channel_id,
                "count": self.registry.size(),
            },
        )

    async def wait(self) -> None:
        if self._task:
            await self._task

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self.api.close()

    async def _run(self) -> None:
        backoff = _BACKOFF_START_SEC
        while not self._stop.is_set():
            try:
                updates = await self.api.get_updates(self._offset)
            except asyncio.CancelledError:
                raise
            except TelegramApiError as exc:
                if exc.http_status == 409:
                    logger.warning("polling_conflict", extra={"reason": exc.description})
                else:
                    logger.warning("polling_failed", extra={"reason": str(exc)})
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, _BACKOFF_MAX_SEC)
                continue
            except Exception:
                logger.exception("polling_failed")
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, _BACKOFF_MAX_SEC)
                continue
            backoff = _BACKOFF_START_SEC
            for update in updates:
                update_id = int(update.get("update_id", 0) or 0)
                if update_id > 0:
                    self._offset = update_id + 1
                await self.handle_update(update)

    async def handle_update(self, update: dict[str, Any]) -> None:
        try:
            event = parse_update(update)
            if event is not None:
                await self.dispatch(event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("update_handling_failed", extra={"reason": str(update.get("update_id"))})

    async def dispatch(self, event: InboundEvent) -> None:
        if self.relay.is_source(event.chat_id):
            if event.kind != EVENT_MEMBERSHIP:
                await self.relay.relay(event)
            return

        if event.kind == EVENT_MEMBERSHIP:
            await self._handle_membership(event)
            return

        if event.kind != EVENT_MESSAGE or event.chat_type not in COMMAND_CHAT_TYPES:
            return

        text = event.text.strip()
        if text.startswith("/"):
            request = CommandRequest(
                chat_id=event.chat_id,
                chat_type=event.chat_type,
                user_id=event.from_user_id,
                text=text,
                chat_title=event.chat_title,
                chat_username=event.chat_username,
            )
            reply = await self.router.route(request)
            logger.info(
                "command_handled",
                extra={"command": reply.command, "user_id": event.from_user_id, "chat_id": event.chat_id},
            )
            for message in reply.messages:
                await self._reply(event.chat_id, message)
            return

        if text and event.chat_type == CHAT_PRIVATE:
            await self._reply(event.chat_id, UNKNOWN_TEXT)

    async def _handle_membership(self, event: InboundEvent) -> None:
        if event.new_member_status not in _LEFT_STATUSES:
            return
        try:
            removed = await self.registry.remove_many([event.chat_id])
        except PersistenceWriteFailed:
            logger.exception("membership_removal_not_saved", extra={"chat_id": event.chat_id})
            return
        if removed:
            logger.info(
                "target_removed_bot_left",
                extra={"action": "registry_remove", "chat_id": event.chat_id, "reason": event.new_member_status},
            )

    async def _reply(self, chat_id: int, text: str) -> None:
        result = await self.api.send_text(chat_id, text)
        if not result.ok:
            logger.warning(
                "reply_failed",
                extra={"chat_id": chat_id, "status": result.status.value, "reason": result.description},
            )
