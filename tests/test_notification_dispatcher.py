from datetime import datetime, timezone

import pytest

from market_server.messaging.models import Message
from market_server.notification.dispatcher import (
    NotificationDispatcher, NotificationPrompt, NotificationPermission,
    UnsupportedNotificationBackend, build_message_notification
)
from tests.fakes import FakeNotificationBackend, FakeTimer

CREATED = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def incoming(content='Is the bike still available?', sender='bob', receiver='alice', listing='bike'):
    return Message('m1', listing, sender, receiver, content, False, CREATED)


@pytest.fixture(autouse=True)
def reset_timers():
    FakeTimer.created = []


@pytest.fixture
def backend():
    return FakeNotificationBackend()


@pytest.fixture
def navigated():
    return []


@pytest.fixture
def dispatcher(backend, navigated):
    return NotificationDispatcher(backend, 'alice', on_navigate=navigated.append, timer_factory=FakeTimer)


def test_notifies_receiver(dispatcher, backend):
    handle = dispatcher.notify_new_message(incoming(), sender_name='Bob', listing_title='Road bike')

    assert handle is backend.shown[0]
    assert handle.title == 'New message from Bob'
    assert handle.body == 'Road bike\nIs the bike still available?'
    assert handle.tag == 'new-message'


def test_defaults_for_unknown_sender_and_listing(dispatcher):
    handle = dispatcher.notify_new_message(incoming())
    assert handle.title == 'New message from Someone'
    assert handle.body.startswith('Item\n')


def test_preview_truncated_to_100_characters(dispatcher):
    handle = dispatcher.notify_new_message(incoming(content='x' * 250), listing_title='Road bike')
    assert handle.body == 'Road bike\n' + 'x' * 100


def test_own_messages_do_not_notify(dispatcher, backend):
    assert dispatcher.notify_new_message(incoming(sender='alice', receiver='bob')) is None
    assert backend.shown == []


def test_active_focused_thread_does_not_notify(dispatcher, backend):
    dispatcher.set_active_thread('bike', 'bob')
    dispatcher.set_window_focused(True)
    assert dispatcher.notify_new_message(incoming()) is None

    dispatcher.set_window_focused(False)
    assert dispatcher.notify_new_message(incoming()) is not None


def test_other_thread_notifies_even_when_focused(dispatcher, backend):
    dispatcher.set_active_thread('desk', 'bob')
    dispatcher.set_window_focused(True)
    assert dispatcher.notify_new_message(incoming()) is not None


@pytest.mark.parametrize('permission', [NotificationPermission.DEFAULT, NotificationPermission.DENIED])
def test_requires_explicit_grant_and_never_asks(permission, navigated):
    backend = FakeNotificationBackend(permission=permission)
    dispatcher = NotificationDispatcher(backend, 'alice', timer_factory=FakeTimer)

    assert dispatcher.notify_new_message(incoming()) is None
    assert backend.shown == []
    assert backend.permission_requests == 0


def test_unsupported_platform_is_silent():
    dispatcher = NotificationDispatcher(UnsupportedNotificationBackend(), 'alice', timer_factory=FakeTimer)
    assert dispatcher.notify_new_message(incoming()) is None
    assert dispatcher.request_permission() == NotificationPermission.DENIED


def test_backend_error_is_swallowed():
    backend = FakeNotificationBackend(fail_show=True)
    dispatcher = NotificationDispatcher(backend, 'alice', timer_factory=FakeTimer)
    assert dispatcher.notify_new_message(incoming()) is None


def test_click_focuses_navigates_and_closes(dispatcher, backend, navigated):
    message = incoming()
    handle = dispatcher.notify_new_message(message)

    handle.on_click()

    assert backend.focus_calls == 1
    assert navigated == [message]
    assert handle.closed is True


def test_auto_close_after_five_seconds(dispatcher):
    handle = dispatcher.notify_new_message(incoming())

    [timer] = FakeTimer.created
    assert timer.interval == 5
    assert timer.started is True
    assert handle.closed is False
    timer.fire()
    assert handle.closed is True


def test_request_permission_is_explicit(dispatcher, backend):
    backend._permission = NotificationPermission.DEFAULT
    assert dispatcher.request_permission() == NotificationPermission.GRANTED
    assert backend.permission_requests == 1


def test_build_message_notification_payload():
    payload = build_message_notification(incoming(content='y' * 150))
    assert payload == {
        'messageId': 'm1',
        'listingId': 'bike',
        'senderId': 'bob',
        'preview': 'y' * 100,
        'createdAt': CREATED.isoformat()
    }


class TestNotificationPrompt:

    def test_shown_when_permission_undecided(self, tmp_path):
        backend = FakeNotificationBackend(permission=NotificationPermission.DEFAULT)
        assert NotificationPrompt(backend, str(tmp_path / 'state.json')).should_show() is True

    @pytest.mark.parametrize('permission', [NotificationPermission.GRANTED, NotificationPermission.DENIED])
    def test_hidden_once_decided(self, tmp_path, permission):
        backend = FakeNotificationBackend(permission=permission)
        assert NotificationPrompt(backend, str(tmp_path / 'state.json')).should_show() is False

    def test_hidden_when_unsupported(self, tmp_path):
        prompt = NotificationPrompt(UnsupportedNotificationBackend(), str(tmp_path / 'state.json'))
        assert prompt.should_show() is False
        assert prompt.enable() is False

    def test_dismissal_persists(self, tmp_path):
        backend = FakeNotificationBackend(permission=NotificationPermission.DEFAULT)
        path = str(tmp_path / 'prefs' / 'state.json')

        assert NotificationPrompt(backend, path).dismiss() is True
        assert NotificationPrompt(backend, path).should_show() is False
        assert NotificationPrompt(backend, path).dismissed is True

    def test_corrupt_state_file_is_ignored(self, tmp_path):
        path = tmp_path / 'state.json'
        path.write_text('{not json')
        backend = FakeNotificationBackend(permission=NotificationPermission.DEFAULT)
        assert NotificationPrompt(backend, str(path)).should_show() is True

    def test_enable_requests_permission(self, tmp_path):
        backend = FakeNotificationBackend(permission=NotificationPermission.DEFAULT)
        prompt = NotificationPrompt(backend, str(tmp_path / 'state.json'))
        assert prompt.enable() is True
        assert backend.permission_requests == 1
        assert prompt.should_show() is False
