from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from relay_bot.auth import AuthorizationGate
from relay_bot.config import Settings
from relay_bot.models import BotApi, ChatInfo
from relay_bot.registry import (
    AddResult,
    ChatRegistry,
    PersistenceWriteFailed,
    RemoveResult,
)

logger = logging.getLogger(__name__)

DENIED_TEXT = "You are not authorized to use this command."
UNKNOWN_TEXT = "Unknown command. Send /help for available commands."
AUTH_USAGE_TEXT = "Usage: /auth list"
NO_TARGETS_TEXT = "No target chats configured."
NO_AUTH_USERS_TEXT = "No authorized users configured. Every user can run admin commands."
AUTH_EDIT_HINT = (
    "To change authorized users, edit AUTHORIZED_USER_IDS in the environment and restart the bot."
)
NOT_SAVED_SUFFIX = "Warning: the change is active but could not be saved to disk."

GATED_COMMANDS = frozenset({"/add", "/remove", "/list", "/status", "/auth"})


@dataclass(frozen=True, slots=True)
class CommandRequest:
    chat_id: int
    chat_type: str
    user_id: int | None
    text: str
    chat_title: str | None = None
    chat_username: str | None = None

    @property
    def chat_name(self) -> str:
        if self.chat_title:
            return self.chat_title
        if self.chat_username:
            return f"@{self.chat_username}"
        return "this chat"


@dataclass(frozen=True, slots=True)
class CommandReply:
    command: str
    messages: tuple[str, ...]


class CommandRouter:
    """Maps a command string to a reply and, for /add and /remove, a registry change.

    The router holds no per-conversation state; everything is read from the
    registry, the gate and settings on each call.
    """

    def __init__(
        self,
        registry: ChatRegistry,
        gate: AuthorizationGate,
        api: BotApi,
        settings: Settings,
    ) -> None:
        self.registry = registry
        self.gate = gate
        self.api = api
        self.settings = settings

    async def route(self, request: CommandRequest) -> CommandReply:
        command, arg = self.parse_command(request.text)
        authorized = self.gate.is_authorized(request.user_id)

        if command in GATED_COMMANDS and not authorized:
            logger.info(
                "command_denied",
                extra={"command": command, "user_id": request.user_id, "chat_id": request.chat_id},
            )
            return CommandReply(command, (DENIED_TEXT,))

        if command == "/start":
            return CommandReply(command, (self._welcome_text(),))
        if command == "/help":
            return CommandReply(command, (self._help_text(),))
        if command == "/test":
            return CommandReply(command, self._test_messages(request, authorized))
        if command == "/add":
            return CommandReply(command, (await self._add(request),))
        if command == "/remove":
            return CommandReply(command, (await self._remove(request),))
        if command == "/list":
            return CommandReply(command, (await self._list_text(),))
        if command == "/status":
            return CommandReply(command, (await self._status_text(),))
        if command == "/auth":
            if arg != "list":
                return CommandReply(command, (AUTH_USAGE_TEXT,))
            return CommandReply(command, self._auth_list_messages())
        return CommandReply(command, (UNKNOWN_TEXT,))

    @staticmethod
    def parse_command(text: str) -> tuple[str, str]:
        parts = text.strip().split(maxsplit=1)
        if not parts:
            return "", ""
        command = parts[0]
        arg = parts[1].strip() if len(parts) > 1 else ""
        if command.startswith("/") and "@" in command:
            command = command.split("@", 1)[0]
        return command, arg

    async def _add(self, request: CommandRequest) -> str:
        try:
            result = await self.registry.add(request.chat_id)
        except PersistenceWriteFailed:
            logger.exception("command_add_not_saved", extra={"chat_id": request.chat_id})
            return f"{request.chat_name} has been added to the target list.\n{NOT_SAVED_SUFFIX}"
        if result is AddResult.ALREADY_PRESENT:
            return "This chat is already in the target list."
        if result is AddResult.LIMIT_REACHED:
            return (
                f"Target list is full ({self.settings.max_target_chats} chats). "
                "Remove a chat before adding a new one."
            )
        return f"{request.chat_name} has been added to the target list."

    async def _remove(self, request: CommandRequest) -> str:
        try:
            result = await self.registry.remove(request.chat_id)
        except PersistenceWriteFailed:
            logger.exception("command_remove_not_saved", extra={"chat_id": request.chat_id})
            return f"{request.chat_name} has been removed from the target list.\n{NOT_SAVED_SUFFIX}"
        if result is RemoveResult.NOT_PRESENT:
            return "This chat is not in the target list."
        return f"{request.chat_name} has been removed from the target list."

    async def _list_text(self) -> str:
        chat_ids = self.registry.list()
        if not chat_ids:
            return NO_TARGETS_TEXT
        infos = await asyncio.gather(
            *(self.api.get_chat_info(chat_id) for chat_id in chat_ids),
            return_exceptions=True,
        )
        lines = [f"Target chats ({len(chat_ids)}):"]
        for chat_id, info in zip(chat_ids, infos):
            lines.append(self._chat_line(chat_id, info))
        return "\n".join(lines)

    @staticmethod
    def _chat_line(chat_id: int, info: ChatInfo | BaseException | None) -> str:
        if isinstance(info, ChatInfo):
            return f"- {info.display_name} ({chat_id})"
        return f"- Unknown chat ({chat_id})"

    async def _status_text(self) -> str:
        source_id = self.settings.source_channel_id
        if source_id is None:
            channel_line = "Source channel: not configured (relay inactive)"
        else:
            (info,) = await asyncio.gather(self.api.get_chat_info(source_id), return_exceptions=True)
            if not isinstance(info, ChatInfo):
                if isinstance(info, BaseException):
                    logger.warning("status_lookup_failed", exc_info=info, extra={"chat_id": source_id})
                channel_line = f"Source channel: {source_id} (info unavailable)"
            else:
                channel_line = f"Source channel: {info.display_name} ({source_id})"
        if self.gate.is_open:
            auth_line = "Authorized users: everyone (no allow-list configured)"
        else:
            auth_line = f"Authorized users: {len(self.gate.user_ids)}"
        lines = [
            "Bot status:",
            f"Target chats: {self.registry.size()}/{self.registry.max_size}",
            channel_line,
            f"Relay active: {'yes' if source_id is not None else 'no'}",
            auth_line,
        ]
        return "\n".join(lines)

    def _auth_list_messages(self) -> tuple[str, ...]:
        user_ids = self.gate.user_ids
        if not user_ids:
            return (NO_AUTH_USERS_TEXT, AUTH_EDIT_HINT)
        lines = [f"Authorized users ({len(user_ids)}):"]
        lines.extend(f"- {user_id}" for user_id in user_ids)
        return ("\n".join(lines), AUTH_EDIT_HINT)

    @staticmethod
    def _test_messages(request: CommandRequest, authorized: bool) -> tuple[str, ...]:
        details = [
            f"Your user ID: {request.user_id if request.user_id is not None else 'unknown'}",
            f"This chat ID: {request.chat_id}",
            f"Chat type: {request.chat_type}",
            f"Authorized: {'yes' if authorized else 'no'}",
        ]
        return ("Test message: the bot can send messages to this chat.", "\n".join(details))

    @staticmethod
    def _welcome_text() -> str:
        return (
            "Welcome to the message forwarding bot.\n"
            "Posts from the source channel are forwarded to every target chat.\n"
            "Commands:\n"
            "/add - add this chat as a target\n"
            "/remove - remove this chat from the target list\n"
            "/list - show all target chats\n"
            "/status - show bot status\n"
            "/help - show help"
        )

    @staticmethod
    def _help_text() -> str:
        return (
            "Commands:\n"
            "/start - welcome message\n"
            "/test - check that the bot can post here\n"
            "/help - this help\n"
            "\n"
            "Admin commands (authorized users only):\n"
            "/add - add this chat as a target\n"
            "/remove - remove this chat from the target list\n"
            "/list - show all target chats\n"
            "/status - show bot status\n"
            "/auth list - show authorized users\n"
            "\n"
            "The source channel is set with SOURCE_CHANNEL_ID and authorized users with "
            "AUTHORIZED_USER_IDS. If no authorized users are set, everyone can run admin commands."
        )
