from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

CHAT_PRIVATE = "private"
CHAT_GROUP = "group"
CHAT_SUPERGROUP = "supergroup"
CHAT_CHANNEL = "channel"

COMMAND_CHAT_TYPES = frozenset({CHAT_PRIVATE, CHAT_GROUP, CHAT_SUPERGROUP})

EVENT_MESSAGE = "message"
EVENT_CHANNEL_POST = "channel_post"
EVENT_MEMBERSHIP = "membership"


@dataclass(slots=True)
class InboundEvent:
    kind: str
    chat_id: int
    chat_type: str
    message_id: int = 0
    from_user_id: int | None = None
    text: str = ""
    chat_title: str | None = None
    chat_username: str | None = None
    new_member_status: str | None = None


class SendStatus(str, Enum):
    OK = "ok"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class SendResult:
    status: SendStatus
    message_id: int = 0
    description: str = ""

    @property
    def ok(self) -> bool:
        return self.status is SendStatus.OK


@dataclass(frozen=True, slots=True)
class ChatInfo:
    chat_id: int
    title: str | None = None
    username: str | None = None
    first_name: str | None = None

    @property
    def display_name(self) -> str:
        if self.title:
            return self.title
        if self.username:
            return f"@{self.username}"
        if self.first_name:
            return self.first_name
        return "Unknown"


@dataclass(frozen=True, slots=True)
class RelayOutcome:
    success: int = 0
    failed: int = 0
    removed: frozenset[int] = frozenset()


class BotApi(Protocol):
    async def send_text(self, chat_id: int, text: str) -> SendResult:
        ...

    async def forward(self, chat_id: int, from_chat_id: int, message_id: int) -> SendResult:
        ...

    async def get_chat_info(self, chat_id: int) -> ChatInfo | None:
        ...
