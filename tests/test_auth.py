from relay_bot.auth import AuthorizationGate


def test_empty_allow_list_authorizes_everyone() -> None:
    gate = AuthorizationGate([])
    assert gate.is_open is True
    assert gate.is_authorized(1)
    assert gate.is_authorized(-5)
    assert gate.is_authorized(None)


def test_allow_list_only_authorizes_listed_ids() -> None:
    gate = AuthorizationGate([30, 10])
    assert gate.is_open is False
    assert gate.is_authorized(10)
    assert gate.is_authorized(30)
    assert not gate.is_authorized(20)
    assert not gate.is_authorized(None)


def test_user_ids_sorted() -> None:
    assert AuthorizationGate([3, 1, 2, 1]).user_ids == (1, 2, 3)
