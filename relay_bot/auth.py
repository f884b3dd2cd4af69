from __future__ import annotations

from collections.abc import Iterable


class AuthorizationGate:
    """Allow-list check for administrative commands.

    An empty allow-list authorizes every user. This keeps older deployments
    working without AUTHORIZED_USER_IDS, but it also means anyone who can talk
    to the bot can add or remove destinations. Set the list in production.
    """

    def __init__(self, user_ids: Iterable[int]) -> None:
        self._user_ids = frozenset(user_ids)

    @property
    def is_open(self) -> bool:
        return not self._user_ids

    @property
    def user_ids(self) -> tuple[int, ...]:
        return tuple(sorted(self._user_ids))

    def is_authorized(self, user_id: int | None) -> bool:
        if not self._user_ids:
            return True
        return user_id is not None and user_id in self._user_ids
