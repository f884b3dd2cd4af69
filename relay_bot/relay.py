from __future__ import annotations

import asyncio
import logging
from enum import Enum

from relay_bot.models import BotApi, InboundEvent, RelayOutcome, SendResult, SendStatus
from relay_bot.registry import ChatRegistry, PersistenceWriteFailed

logger = logging.getLogger(__name__)


class Delivery(str, Enum):
    SUCCESS = "success"
    PERMANENTLY_UNREACHABLE = "permanently_unreachable"
    TRANSIENT_OR_UNKNOWN = "transient_or_unknown"


_PERMANENT_STATUSES = frozenset({SendStatus.FORBIDDEN, SendStatus.NOT_FOUND})


class RelayEngine:
    def __init__(
        self,
        registry: ChatRegistry,
        api: BotApi,
        source_channel_id: int | None,
        concurrency: int = 8,
    ) -> None:
        self.registry = registry
        self.api = api
        self.source_channel_id = source_channel_id
        self._semaphore = asyncio.Semaphore(max(1, concurrency))

    @property
    def is_active(self) -> bool:
        return self.source_channel_id is not None

    def is_source(self, chat_id: int) -> bool:
        return self.source_channel_id is not None and chat_id == self.source_channel_id

    @staticmethod
    def classify(result: SendResult | BaseException) -> Delivery:
        if isinstance(result, BaseException):
            return Delivery.TRANSIENT_OR_UNKNOWN
        if result.ok:
            return Delivery.SUCCESS
        if result.status in _PERMANENT_STATUSES:
            return Delivery.PERMANENTLY_UNREACHABLE
        return Delivery.TRANSIENT_OR_UNKNOWN

    async def relay(self, event: InboundEvent) -> RelayOutcome:
        targets = self.registry.list()
        if not targets:
            logger.info(
                "relay_skipped_no_targets",
                extra={"action": "relay", "chat_id": event.chat_id, "message_id": event.message_id},
            )
            return RelayOutcome()

        results = await asyncio.gather(
            *(self._forward(target, event) for target in targets),
            return_exceptions=True,
        )

        success = 0
        failed = 0
        unreachable: list[int] = []
        for target, result in zip(targets, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            delivery = self.classify(result)
            if delivery is Delivery.SUCCESS:
                success += 1
                continue
            failed += 1
            if isinstance(result, BaseException):
                logger.warning(
                    "relay_forward_error",
                    exc_info=result,
                    extra={"action": "relay_forward", "chat_id": target, "reason": delivery.value},
                )
            else:
                logger.warning(
                    "relay_forward_failed",
                    extra={
                        "action": "relay_forward",
                        "chat_id": target,
                        "status": result.status.value,
                        "reason": result.description or delivery.value,
                    },
                )
            if delivery is Delivery.PERMANENTLY_UNREACHABLE:
                unreachable.append(target)

        removed: frozenset[int] = frozenset()
        if unreachable:
            try:
                removed = await self.registry.remove_many(unreachable)
            except PersistenceWriteFailed:
                # memory already reflects the removal
                removed = frozenset(
                    target for target in unreachable if not self.registry.contains(target)
                )
                logger.exception("relay_reconcile_persist_failed", extra={"removed": removed})

        outcome = RelayOutcome(success=success, failed=failed, removed=removed)
        logger.info(
            "relay_completed",
            extra={
                "action": "relay",
                "chat_id": event.chat_id,
                "message_id": event.message_id,
                "success": outcome.success,
                "failed": outcome.failed,
                "removed": outcome.removed,
            },
        )
        return outcome

    async def _forward(self, target: int, event: InboundEvent) -> SendResult:
        async with self._semaphore:
            return await self.api.forward(target, event.chat_id, event.message_id)
