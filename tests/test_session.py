from localfeed.core import PackageIdentity
from localfeed.session import PackageSession, SessionRegistry


def test_session_keeps_first_seen_order():
    session = PackageSession()
    session.set(PackageIdentity("Foo", "1.0.0"))
    session.set_many(
        [PackageIdentity("Bar", "1.0.0"), PackageIdentity("foo", "1.0")]
    )
    assert [(i.id, str(i.version)) for i in session.get()] == [
        ("Foo", "1.0.0"),
        ("Bar", "1.0.0"),
    ]
    assert len(session) == 2


def test_registry_creates_sessions():
    registry = SessionRegistry()
    key, session = registry.get(None)
    assert key
    assert registry.get(key) == (key, session)

    other_key, other = registry.get("unknown-key")
    assert other_key != "unknown-key"
    assert other is not session


def test_registry_drops_least_recently_used():
    registry = SessionRegistry(max_sessions=2)
    first, _ = registry.get(None)
    second, _ = registry.get(None)
    registry.get(first)  # touch
    registry.get(None)
    assert len(registry) == 2
    assert registry.get(first)[0] == first
    assert registry.get(second)[0] != second
