from socialchat.presence import PresenceRegistry


def test_register_and_resolve():
    registry = PresenceRegistry()
    conn = object()
    assert registry.register(1, conn) is None
    assert registry.resolve(1) is conn
    assert registry.is_online(1)
    assert registry.list_online() == {1}


def test_second_session_supersedes_first():
    registry = PresenceRegistry()
    first, second = object(), object()
    registry.register(1, first)
    assert registry.register(1, second) is first
    assert registry.resolve(1) is second
    assert len(registry) == 1


def test_stale_unregister_keeps_newer_session():
    registry = PresenceRegistry()
    first, second = object(), object()
    registry.register(1, first)
    registry.register(1, second)

    assert registry.unregister(1, first) is False
    assert registry.resolve(1) is second

    assert registry.unregister(1, second) is True
    assert registry.resolve(1) is None
    assert registry.list_online() == set()


def test_unregister_unknown_user():
    registry = PresenceRegistry()
    assert registry.unregister(42, object()) is False


def test_clear():
    registry = PresenceRegistry()
    registry.register(1, object())
    registry.register(2, object())
    registry.clear()
    assert registry.list_online() == set()
