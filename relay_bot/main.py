from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from aiohttp import ClientError
from dotenv import load_dotenv

from relay_bot.auth import AuthorizationGate
from relay_bot.bot import RelayBot
from relay_bot.commands import CommandRouter
from relay_bot.config import Settings
from relay_bot.health import HealthServer
from relay_bot.logging_setup import configure_logging
from relay_bot.registry import ChatRegistry, PersistenceCorrupt
from relay_bot.relay import RelayEngine
from relay_bot.telegram_api import TelegramApiError, TelegramBotApi

logger = logging.getLogger(__name__)


def build_registry(settings: Settings) -> ChatRegistry:
    registry = ChatRegistry(settings.target_chats_file, settings.max_target_chats)
    try:
        registry.load()
    except PersistenceCorrupt:
        logger.warning(
            "registry_load_failed_starting_empty",
            exc_info=True,
            extra={"action": "registry_load", "reason": settings.target_chats_file},
        )
    return registry


async def main() -> None:
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    for warning in settings.config_warnings:
        logger.warning("config_problem", extra={"action": "startup", "reason": warning})

    gate = AuthorizationGate(settings.authorized_user_ids)
    if gate.is_open:
        logger.warning(
            "authorization_open_to_everyone",
            extra={"action": "startup", "reason": "AUTHORIZED_USER_IDS empty"},
        )
    registry = build_registry(settings)

    health: HealthServer | None = None
    if settings.health_enabled:
        health = HealthServer(
            host=settings.health_host,
            port=settings.health_port,
            registry=registry,
            relay_active=settings.relay_configured,
        )

    bot: RelayBot | None = None
    if settings.bot_token:
        api = TelegramBotApi(
            settings.bot_token,
            request_timeout_sec=settings.request_timeout_sec,
            poll_timeout_sec=settings.poll_timeout_sec,
        )
        relay = RelayEngine(
            registry,
            api,
            settings.source_channel_id,
            concurrency=settings.forward_concurrency,
        )
        router = CommandRouter(registry, gate, api, settings)
        bot = RelayBot(api, registry, relay, router)

    try:
        if health:
            await health.start()
        if bot is None:
            logger.warning("bot_disabled_no_token", extra={"action": "startup"})
            await asyncio.Event().wait()
            return
        await bot.start()
        try:
            me = await bot.api.get_me()
            logger.info(
                "bot_identity",
                extra={"action": "startup", "user_id": me.get("id"), "reason": me.get("username")},
            )
        except (TelegramApiError, ClientError, asyncio.TimeoutError):
            logger.exception("bot_identity_failed")
        await bot.wait()
    finally:
        if bot:
            with suppress(Exception):
                await bot.stop()
        if health:
            with suppress(Exception):
                await health.stop()


def run() -> None:
    with suppress(KeyboardInterrupt):
        asyncio.run(main())


if __name__ == "__main__":
    run()
