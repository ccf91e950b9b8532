from market_server.messaging.presence import PresenceStore
from tests.fakes import FakeClock


def make_store(window=60):
    clock = FakeClock()
    return PresenceStore(online_threshold_seconds=window, clock=clock), clock


def test_heartbeat_marks_user_online():
    store, clock = make_store()
    store.heartbeat('alice')
    assert store.is_online('alice') is True
    assert store.last_seen('alice') == clock.now


def test_user_goes_offline_after_window_without_any_event():
    store, clock = make_store(window=60)
    store.heartbeat('alice')

    clock.advance(59)
    assert store.is_online('alice') is True
    clock.advance(1)
    assert store.is_online('alice') is False


def test_new_heartbeat_refreshes_window():
    store, clock = make_store(window=60)
    store.heartbeat('alice')
    clock.advance(50)
    store.heartbeat('alice')
    clock.advance(50)
    assert store.is_online('alice') is True


def test_unknown_user_is_offline():
    store, _ = make_store()
    assert store.is_online('nobody') is False
    assert store.last_seen('nobody') is None


def test_batch_contains_every_requested_id():
    store, clock = make_store(window=60)
    store.heartbeat('alice')
    store.heartbeat('bob')
    clock.advance(61)
    store.heartbeat('carol')

    statuses = store.is_online_batch(['alice', 'carol', 'dave'])
    assert statuses == {'alice': False, 'carol': True, 'dave': False}


def test_online_users_and_remove():
    store, _ = make_store()
    store.heartbeat('alice')
    store.heartbeat('bob')
    assert sorted(store.online_users()) == ['alice', 'bob']

    assert store.remove('alice') is True
    assert store.remove('alice') is False
    assert store.online_users() == ['bob']


def test_cleanup_drops_entries_older_than_twice_the_window():
    store, clock = make_store(window=60)
    store.heartbeat('alice')
    clock.advance(90)
    store.heartbeat('bob')

    assert store.cleanup() == 0
    clock.advance(30)
    assert store.cleanup() == 1
    assert store.last_seen('alice') is None
    assert store.last_seen('bob') is not None
    assert len(store) == 1
