import pytest

from market_server.client.delivery_adapter import RealtimeClient, ConnectionState
from market_server.messaging.models import Message
from tests.fakes import FakeSioClient

SERVER_URL = 'http://localhost:5000'


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_client(sleeps):
    def _make(fake):
        return RealtimeClient(SERVER_URL, client_factory=lambda: fake, sleep=sleeps.append)
    return _make


def wire_message(mid='m1'):
    return {
        'id': mid,
        'listingId': 'bike',
        'senderId': 'bob',
        'receiverId': 'alice',
        'content': 'Is it still available?',
        'isRead': False,
        'createdAt': '2024-03-01T09:00:00+00:00'
    }


def test_start_connects_and_authenticates(make_client):
    fake = FakeSioClient()
    client = make_client(fake)

    assert client.start('alice', 'token-a') is True
    assert client.is_connected
    assert client.state == ConnectionState.CONNECTED
    assert fake.emitted_events('authenticate') == [{'userId': 'alice', 'token': 'token-a'}]
    assert fake.connect_kwargs['transports'] == ['websocket', 'polling']
    assert fake.connect_kwargs['socketio_path'] == 'socket.io'
    assert fake.connect_kwargs['wait_timeout'] == 10


def test_start_twice_for_same_user_keeps_one_connection(make_client):
    fake = FakeSioClient()
    client = make_client(fake)
    client.start('alice', 'token-a')
    client.start('alice', 'token-a')
    assert fake.connect_calls == 1


def test_reconnect_gives_up_after_five_attempts(make_client, sleeps):
    fake = FakeSioClient(refuse=True)
    client = make_client(fake)
    states = []
    client.on_connection_change(states.append)

    assert client.start('alice', 'token-a') is False

    assert fake.connect_calls == 1 + 5
    assert sleeps == [1.0, 2.0, 4.0, 5.0, 5.0]
    assert client.state == ConnectionState.FAILED
    assert client.is_connected is False
    assert client.reconnect_attempts == 5
    assert states[-1] == ConnectionState.FAILED

    # no further attempt after failure
    client.join_conversation('bike', 'bob')
    assert fake.connect_calls == 6


def test_drop_then_reconnect_rejoins_and_keeps_subscriptions(make_client, sleeps):
    fake = FakeSioClient()
    client = make_client(fake)
    received = []
    client.on_new_message(received.append)

    client.start('alice', 'token-a')
    fake.trigger('authenticated', {'userId': 'alice'})
    client.join_conversation('bike', 'bob')
    assert fake.emitted_events('join_conversation') == [{'listingId': 'bike', 'otherUserId': 'bob'}]

    fake.refuse = 2
    fake.drop()

    assert client.is_connected
    assert sleeps == [1.0, 2.0, 4.0]
    assert len(fake.emitted_events('authenticate')) == 2

    fake.trigger('authenticated', {'userId': 'alice'})
    assert fake.emitted_events('join_conversation') == [{'listingId': 'bike', 'otherUserId': 'bob'}] * 2

    fake.trigger('new_message', wire_message())
    assert len(received) == 1
    assert isinstance(received[0], Message)
    assert received[0].content == 'Is it still available?'


def test_join_before_handshake_is_sent_once_authenticated(make_client):
    fake = FakeSioClient()
    client = make_client(fake)
    client.start('alice', 'token-a')

    assert client.join_conversation('bike', 'bob') is True
    assert fake.emitted_events('join_conversation') == []

    fake.trigger('authenticated', {'userId': 'alice'})
    assert fake.emitted_events('join_conversation') == [{'listingId': 'bike', 'otherUserId': 'bob'}]


def test_operations_are_noops_when_not_connected(make_client):
    fake = FakeSioClient()
    client = make_client(fake)

    assert client.join_conversation('bike', 'bob') is False
    assert client.leave_conversation('bike', 'bob') is False
    assert client.send_typing_indicator('bike', 'bob', True) is False
    assert fake.emitted == []
    assert client.joined_conversations() == set()


def test_typing_and_leave_are_emitted(make_client):
    fake = FakeSioClient()
    client = make_client(fake)
    client.start('alice', 'token-a')
    fake.trigger('authenticated', {'userId': 'alice'})
    client.join_conversation('bike', 'bob')

    client.send_typing_indicator('bike', 'bob', True)
    client.leave_conversation('bike', 'bob')

    assert fake.emitted_events('typing') == [{'listingId': 'bike', 'receiverId': 'bob', 'isTyping': True}]
    assert fake.emitted_events('leave_conversation') == [{'listingId': 'bike', 'otherUserId': 'bob'}]
    assert client.joined_conversations() == set()


def test_stop_does_not_reconnect(make_client, sleeps):
    fake = FakeSioClient()
    client = make_client(fake)
    client.start('alice', 'token-a')

    client.stop()

    assert client.state == ConnectionState.DISCONNECTED
    assert fake.connect_calls == 1
    assert sleeps == []


def test_callbacks_run_in_order_and_failures_are_isolated(make_client):
    fake = FakeSioClient()
    client = make_client(fake)
    calls = []

    def broken(payload):
        raise ValueError('bad handler')

    client.on_message_read(lambda p: calls.append(('first', p['messageId'])))
    client.on_message_read(broken)
    client.on_message_read(lambda p: calls.append(('third', p['messageId'])))
    client.start('alice', 'token-a')

    fake.trigger('message_read', {'messageId': 'm1', 'readBy': 'bob', 'readAt': None})
    assert calls == [('first', 'm1'), ('third', 'm1')]


def test_unsubscribe_stops_delivery(make_client):
    fake = FakeSioClient()
    client = make_client(fake)
    typing_events = []
    unsubscribe = client.on_user_typing(typing_events.append)
    client.start('alice', 'token-a')

    fake.trigger('user_typing', {'listingId': 'bike', 'userId': 'bob', 'username': 'Bob', 'isTyping': True})
    unsubscribe()
    fake.trigger('user_typing', {'listingId': 'bike', 'userId': 'bob', 'username': 'Bob', 'isTyping': False})

    assert len(typing_events) == 1


def test_subscriptions_survive_stop_and_start(make_client):
    fake = FakeSioClient()
    client = make_client(fake)
    notifications = []
    client.on_message_notification(notifications.append)

    client.start('alice', 'token-a')
    client.stop()
    client.start('alice', 'token-a')
    fake.trigger('message_notification', {'messageId': 'm1', 'preview': 'hi'})

    assert notifications == [{'messageId': 'm1', 'preview': 'hi'}]
