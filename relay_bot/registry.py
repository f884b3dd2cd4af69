from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import Iterable
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    pass


class PersistenceCorrupt(PersistenceError):
    pass


class PersistenceWriteFailed(PersistenceError):
    pass


class AddResult(str, Enum):
    ADDED = "added"
    ALREADY_PRESENT = "already_present"
    LIMIT_REACHED = "limit_reached"


class RemoveResult(str, Enum):
    REMOVED = "removed"
    NOT_PRESENT = "not_present"


class ChatRegistry:
    """Set of destination chat ids backed by a JSON file.

    Mutations are serialized with a lock and every successful mutation rewrites
    the whole file. When the write fails the in-memory change stays applied and
    ``PersistenceWriteFailed`` is raised; the next successful write brings the
    file back in line with memory.
    """

    def __init__(self, path: str | Path, max_size: int) -> None:
        if max_size <= 0:
            raise ValueError("max_size_must_be_positive")
        self.path = Path(path)
        self.max_size = max_size
        # dict keeps insertion order and gives set semantics
        self._chats: dict[int, None] = {}
        self._lock = asyncio.Lock()

    def load(self) -> int:
        self._chats = {}
        if not self.path.exists():
            logger.info("registry_file_absent", extra={"action": "registry_load", "reason": str(self.path)})
            return 0
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceCorrupt(f"unreadable:{self.path}") from exc
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise PersistenceCorrupt(f"invalid_json:{self.path}") from exc
        if not isinstance(data, list):
            raise PersistenceCorrupt(f"not_a_list:{self.path}")
        chats: dict[int, None] = {}
        for item in data:
            if isinstance(item, bool) or not isinstance(item, int):
                raise PersistenceCorrupt(f"invalid_chat_id:{item!r}")
            chats[item] = None
        self._chats = chats
        logger.info("registry_loaded", extra={"action": "registry_load", "count": len(chats)})
        return len(chats)

    def list(self) -> list[int]:
        return list(self._chats)

    def size(self) -> int:
        return len(self._chats)

    def contains(self, chat_id: int) -> bool:
        return chat_id in self._chats

    async def add(self, chat_id: int) -> AddResult:
        async with self._lock:
            if chat_id in self._chats:
                return AddResult.ALREADY_PRESENT
            if len(self._chats) >= self.max_size:
                return AddResult.LIMIT_REACHED
            self._chats[chat_id] = None
            self._persist()
        logger.info("registry_chat_added", extra={"action": "registry_add", "chat_id": chat_id})
        return AddResult.ADDED

    async def remove(self, chat_id: int) -> RemoveResult:
        async with self._lock:
            if chat_id not in self._chats:
                return RemoveResult.NOT_PRESENT
            del self._chats[chat_id]
            self._persist()
        logger.info("registry_chat_removed", extra={"action": "registry_remove", "chat_id": chat_id})
        return RemoveResult.REMOVED

    async def remove_many(self, chat_ids: Iterable[int]) -> frozenset[int]:
        async with self._lock:
            removed = frozenset(chat_id for chat_id in chat_ids if chat_id in self._chats)
            if not removed:
                return removed
            for chat_id in removed:
                del self._chats[chat_id]
            self._persist()
        logger.info(
            "registry_chats_removed",
            extra={"action": "registry_remove", "removed": removed, "count": len(self._chats)},
        )
        return removed

    def _persist(self) -> None:
        payload = json.dumps(list(self._chats), indent=2)
        directory = self.path.parent
        tmp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            logger.error(
                "registry_persist_failed",
                extra={"action": "registry_persist", "reason": str(exc), "count": len(self._chats)},
            )
            raise PersistenceWriteFailed(str(self.path)) from exc
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
