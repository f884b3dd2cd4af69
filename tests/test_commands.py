import asyncio

from relay_bot.auth import AuthorizationGate
from relay_bot.commands import (
    AUTH_USAGE_TEXT,
    DENIED_TEXT,
    NO_AUTH_USERS_TEXT,
    NO_TARGETS_TEXT,
    NOT_SAVED_SUFFIX,
    UNKNOWN_TEXT,
    CommandRequest,
    CommandRouter,
)
from relay_bot.config import Settings
from relay_bot.models import ChatInfo, SendResult, SendStatus
from relay_bot.registry import ChatRegistry

ADMIN_ID = 1001
STRANGER_ID = 2002


class FakeApi:
    def __init__(self, infos: dict[int, ChatInfo] | None = None) -> None:
        self.infos = infos or {}
        self.lookups: list[int] = []

    async def send_text(self, chat_id: int, text: str) -> SendResult:
        return SendResult(SendStatus.OK)

    async def forward(self, chat_id: int, from_chat_id: int, message_id: int) -> SendResult:
        return SendResult(SendStatus.OK)

    async def get_chat_info(self, chat_id: int) -> ChatInfo | None:
        self.lookups.append(chat_id)
        return self.infos.get(chat_id)


def _router(tmp_path, *, admins=(ADMIN_ID,), max_size=3, source=-100500, api=None):
    settings = Settings(
        source_channel_id=source,
        authorized_user_ids=tuple(admins),
        max_target_chats=max_size,
        target_chats_file=str(tmp_path / "targets.json"),
    )
    registry = ChatRegistry(settings.target_chats_file, settings.max_target_chats)
    router = CommandRouter(registry, AuthorizationGate(settings.authorized_user_ids), api or FakeApi(), settings)
    return router, registry


def _request(text: str, *, user_id=ADMIN_ID, chat_id=-2001, title="Team chat") -> CommandRequest:
    return CommandRequest(chat_id=chat_id, chat_type="supergroup", user_id=user_id, text=text, chat_title=title)


def test_parse_command_strips_bot_suffix() -> None:
    assert CommandRouter.parse_command("/add@relay_bot") == ("/add", "")
    assert CommandRouter.parse_command("  /auth   list ") == ("/auth", "list")
    assert CommandRouter.parse_command("") == ("", "")


def test_add_by_authorized_user(tmp_path) -> None:
    router, registry = _router(tmp_path)

    reply = asyncio.run(router.route(_request("/add")))
    assert reply.messages == ("Team chat has been added to the target list.",)
    assert registry.list() == [-2001]


def test_add_denied_for_unauthorized_user(tmp_path) -> None:
    router, registry = _router(tmp_path)

    reply = asyncio.run(router.route(_request("/add", user_id=STRANGER_ID)))
    assert reply.messages == (DENIED_TEXT,)
    assert registry.size() == 0


def test_add_already_present(tmp_path) -> None:
    router, registry = _router(tmp_path)

    async def run():
        await router.route(_request("/add"))
        return await router.route(_request("/add"))

    reply = asyncio.run(run())
    assert reply.messages == ("This chat is already in the target list.",)
    assert registry.size() == 1


def test_add_limit_reached_mentions_max(tmp_path) -> None:
    router, registry = _router(tmp_path, max_size=1)

    async def run():
        await router.route(_request("/add", chat_id=-1))
        return await router.route(_request("/add", chat_id=-2))

    reply = asyncio.run(run())
    assert "1 chats" in reply.messages[0]
    assert registry.list() == [-1]


def test_remove_outcomes(tmp_path) -> None:
    router, registry = _router(tmp_path)

    async def run():
        missing = await router.route(_request("/remove"))
        await router.route(_request("/add"))
        removed = await router.route(_request("/remove"))
        return missing, removed

    missing, removed = asyncio.run(run())
    assert missing.messages == ("This chat is not in the target list.",)
    assert removed.messages == ("Team chat has been removed from the target list.",)
    assert registry.size() == 0


def test_list_empty_and_populated(tmp_path) -> None:
    api = FakeApi({-1: ChatInfo(chat_id=-1, title="Alpha"), -2: ChatInfo(chat_id=-2, username="beta")})
    router, _ = _router(tmp_path, api=api)

    async def run():
        empty = await router.route(_request("/list"))
        for chat_id in (-1, -2, -3):
            await router.route(_request("/add", chat_id=chat_id))
        full = await router.route(_request("/list"))
        return empty, full

    empty, full = asyncio.run(run())
    assert empty.messages == (NO_TARGETS_TEXT,)
    text = full.messages[0]
    assert text.startswith("Target chats (3):")
    assert "- Alpha (-1)" in text
    assert "- @beta (-2)" in text
    assert "- Unknown chat (-3)" in text


def test_status_reports_counts(tmp_path) -> None:
    api = FakeApi({-100500: ChatInfo(chat_id=-100500, title="Announcements")})
    router, _ = _router(tmp_path, admins=(ADMIN_ID, 7), api=api)

    async def run():
        await router.route(_request("/add"))
        return await router.route(_request("/status"))

    text = asyncio.run(run()).messages[0]
    assert "Target chats: 1/3" in text
    assert "Announcements (-100500)" in text
    assert "Relay active: yes" in text
    assert "Authorized users: 2" in text


def test_status_without_source_channel(tmp_path) -> None:
    router, _ = _router(tmp_path, admins=(), source=None)

    text = asyncio.run(router.route(_request("/status", user_id=STRANGER_ID))).messages[0]
    assert "not configured" in text
    assert "Relay active: no" in text
    assert "everyone" in text


def test_auth_list(tmp_path) -> None:
    router, _ = _router(tmp_path, admins=(ADMIN_ID, 5))

    reply = asyncio.run(router.route(_request("/auth list")))
    assert len(reply.messages) == 2
    assert reply.messages[0].splitlines() == ["Authorized users (2):", "- 5", f"- {ADMIN_ID}"]

    usage = asyncio.run(router.route(_request("/auth add 9")))
    assert usage.messages == (AUTH_USAGE_TEXT,)


def test_auth_list_without_allow_list(tmp_path) -> None:
    router, _ = _router(tmp_path, admins=())

    reply = asyncio.run(router.route(_request("/auth list", user_id=STRANGER_ID)))
    assert reply.messages[0] == NO_AUTH_USERS_TEXT


def test_open_commands_skip_authorization(tmp_path) -> None:
    router, _ = _router(tmp_path)

    start = asyncio.run(router.route(_request("/start", user_id=STRANGER_ID)))
    help_reply = asyncio.run(router.route(_request("/help", user_id=STRANGER_ID)))
    test_reply = asyncio.run(router.route(_request("/test", user_id=STRANGER_ID)))
    assert "/add" in start.messages[0]
    assert "/auth list" in help_reply.messages[0]
    assert len(test_reply.messages) == 2
    details = test_reply.messages[1]
    assert f"Your user ID: {STRANGER_ID}" in details
    assert "This chat ID: -2001" in details
    assert "Chat type: supergroup" in details
    assert "Authorized: no" in details


def test_unknown_and_case_sensitive(tmp_path) -> None:
    router, registry = _router(tmp_path)

    assert asyncio.run(router.route(_request("/ADD"))).messages == (UNKNOWN_TEXT,)
    assert asyncio.run(router.route(_request("/addme"))).messages == (UNKNOWN_TEXT,)
    assert registry.size() == 0


def _block_writes(registry: ChatRegistry, tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    registry.path = blocker / "targets.json"


def test_add_and_remove_warn_when_not_saved(tmp_path) -> None:
    router, registry = _router(tmp_path)
    _block_writes(registry, tmp_path)

    added = asyncio.run(router.route(_request("/add")))
    assert added.messages == (f"Team chat has been added to the target list.\n{NOT_SAVED_SUFFIX}",)
    assert registry.list() == [-2001]

    removed = asyncio.run(router.route(_request("/remove")))
    assert removed.messages == (f"Team chat has been removed from the target list.\n{NOT_SAVED_SUFFIX}",)
    assert registry.size() == 0


def test_status_replies_when_lookup_raises(tmp_path) -> None:
    class ExplodingApi(FakeApi):
        async def get_chat_info(self, chat_id: int) -> ChatInfo | None:
            raise RuntimeError("lookup exploded")

    router, _ = _router(tmp_path, api=ExplodingApi())

    reply = asyncio.run(router.route(_request("/status")))
    assert len(reply.messages) == 1
    assert "Source channel: -100500 (info unavailable)" in reply.messages[0]
