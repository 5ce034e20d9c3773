"""Tests for the live connection registry."""

from volunteer_portal.notifications.registry import ConnectionRegistry


def test_broadcast_reaches_every_connection_of_the_user():
    registry = ConnectionRegistry()
    phone = registry.register(1, "phone")
    laptop = registry.register(1, "laptop")
    other = registry.register(2, "tab")

    assert registry.broadcast(1, {"event": "ping"}) == 2
    assert phone.get_nowait() == {"event": "ping"}
    assert laptop.get_nowait() == {"event": "ping"}
    assert other.empty()


def test_broadcast_to_nobody():
    assert ConnectionRegistry().broadcast(42, {"event": "ping"}) == 0


def test_remove_connection():
    registry = ConnectionRegistry()
    registry.register(1, "a")
    registry.register(1, "b")
    registry.remove(1, "a")
    assert registry.connection_count(1) == 1
    registry.remove(1, "b")
    assert registry.connection_count() == 0
    # removing twice is harmless
    registry.remove(1, "b")


def test_full_queue_drops_event_instead_of_blocking():
    registry = ConnectionRegistry(max_queue_size=1)
    events = registry.register(1, "slow")
    assert registry.broadcast(1, {"n": 1}) == 1
    assert registry.broadcast(1, {"n": 2}) == 0
    assert events.get_nowait() == {"n": 1}
    assert events.empty()


def test_registries_are_independent():
    first, second = ConnectionRegistry(), ConnectionRegistry()
    first.register(1, "a")
    assert second.connection_count() == 0
