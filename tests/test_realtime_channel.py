from tests.fakes import events


def send(client, auth_headers, sender, receiver, content='Hi there', listing='listing-bike'):
    resp = client.post(
        '/api/messages',
        json={'listingId': listing, 'receiverId': receiver, 'content': content},
        headers=auth_headers(sender)
    )
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()['message']


def join(sc, other_user_id, listing='listing-bike'):
    sc.emit('join_conversation', {'listingId': listing, 'otherUserId': other_user_id})


def test_authenticate_binds_session(connect, make_token, hub):
    sc = connect()
    sc.emit('authenticate', {'userId': 'alice', 'token': make_token('alice', 'Alice')})

    [payload] = events(sc.get_received(), 'authenticated')
    assert payload == {'userId': 'alice', 'username': 'Alice'}
    assert hub.is_user_online('alice') is True
    assert hub.online_user_count() == 1


def test_authenticate_rejects_bad_token(connect, hub):
    sc = connect()
    sc.emit('authenticate', {'userId': 'alice', 'token': 'not-a-token'})

    received = sc.get_received()
    assert events(received, 'authenticated') == []
    assert len(events(received, 'error')) == 1
    assert hub.is_user_online('alice') is False


def test_authenticate_rejects_token_for_another_user(connect, make_token, hub):
    sc = connect()
    sc.emit('authenticate', {'userId': 'alice', 'token': make_token('mallory')})

    assert len(events(sc.get_received(), 'error')) == 1
    assert hub.is_user_online('alice') is False
    assert hub.is_user_online('mallory') is False


def test_unauthenticated_session_cannot_join_or_receive(connect, client, auth_headers):
    anonymous = connect()
    join(anonymous, 'alice')
    assert len(events(anonymous.get_received(), 'error')) == 1

    send(client, auth_headers, 'alice', 'bob')
    assert events(anonymous.get_received(), 'new_message') == []


def test_join_is_idempotent(connect, client, auth_headers, hub):
    bob = connect('bob')
    join(bob, 'alice')
    join(bob, 'alice')
    bob.get_received()

    send(client, auth_headers, 'alice', 'bob', 'only once')

    assert [m['content'] for m in events(bob.get_received(), 'new_message')] == ['only once']
    [session] = [s for s in hub.sessions.values() if s.user_id == 'bob']
    assert len(session.rooms) == 1


def test_both_participants_compute_the_same_room(connect, client, auth_headers):
    alice = connect('alice')
    bob = connect('bob')
    join(alice, 'bob')
    join(bob, 'alice')

    send(client, auth_headers, 'alice', 'bob', 'hello bob')

    assert [m['content'] for m in events(alice.get_received(), 'new_message')] == ['hello bob']
    assert [m['content'] for m in events(bob.get_received(), 'new_message')] == ['hello bob']


def test_two_tabs_both_receive_new_message(connect, client, auth_headers):
    tab1 = connect('bob')
    tab2 = connect('bob')
    join(tab1, 'alice')
    join(tab2, 'alice')

    sent = send(client, auth_headers, 'alice', 'bob', 'two tabs')

    for tab in (tab1, tab2):
        [message] = events(tab.get_received(), 'new_message')
        assert message['id'] == sent['id']
        assert message['senderId'] == 'alice'
        assert message['isRead'] is False


def test_leave_stops_delivery(connect, client, auth_headers):
    bob = connect('bob')
    join(bob, 'alice')
    bob.emit('leave_conversation', {'listingId': 'listing-bike', 'otherUserId': 'alice'})

    send(client, auth_headers, 'alice', 'bob')
    assert events(bob.get_received(), 'new_message') == []


def test_other_conversation_does_not_receive(connect, client, auth_headers):
    bob = connect('bob')
    join(bob, 'alice', listing='listing-desk')

    send(client, auth_headers, 'alice', 'bob', listing='listing-bike')
    assert events(bob.get_received(), 'new_message') == []


def test_typing_reaches_receiver_only(connect):
    alice_tab1 = connect('alice', username='Alice')
    alice_tab2 = connect('alice', username='Alice')
    bob = connect('bob')
    carol = connect('carol')
    for tab in (alice_tab1, alice_tab2):
        join(tab, 'bob')
    join(bob, 'alice')
    join(carol, 'alice')

    alice_tab1.emit('typing', {'listingId': 'listing-bike', 'receiverId': 'bob', 'isTyping': True})

    assert events(bob.get_received(), 'user_typing') == [
        {'listingId': 'listing-bike', 'userId': 'alice', 'username': 'Alice', 'isTyping': True}
    ]
    assert events(alice_tab1.get_received(), 'user_typing') == []
    assert events(alice_tab2.get_received(), 'user_typing') == []
    assert events(carol.get_received(), 'user_typing') == []


def test_typing_requires_authentication(connect):
    anonymous = connect()
    anonymous.emit('typing', {'listingId': 'listing-bike', 'receiverId': 'bob', 'isTyping': True})
    assert len(events(anonymous.get_received(), 'error')) == 1


def test_bad_join_payload_is_rejected(connect):
    bob = connect('bob')
    bob.emit('join_conversation', {'listingId': 'listing-bike'})
    assert len(events(bob.get_received(), 'error')) == 1


def test_receiver_gets_notification_without_joining(connect, client, auth_headers):
    bob = connect('bob')

    sent = send(client, auth_headers, 'alice', 'bob', 'z' * 140)

    received = bob.get_received()
    assert events(received, 'new_message') == []
    [notification] = events(received, 'message_notification')
    assert notification['messageId'] == sent['id']
    assert notification['senderId'] == 'alice'
    assert notification['preview'] == 'z' * 100


def test_message_read_goes_to_sender(connect, client, auth_headers, db):
    alice = connect('alice')
    bob = connect('bob')
    sent = send(client, auth_headers, 'alice', 'bob')
    alice.get_received()
    bob.get_received()

    resp = client.post(f"/api/messages/{sent['id']}/read", headers=auth_headers('bob'))
    assert resp.status_code == 200

    [receipt] = events(alice.get_received(), 'message_read')
    assert receipt['messageId'] == sent['id']
    assert receipt['readBy'] == 'bob'
    assert receipt['readAt'] == db['messages'].docs[0]['read_at'].isoformat()
    assert events(bob.get_received(), 'message_read') == []


def test_ping_pong(connect):
    sc = connect()
    sc.emit('ping')
    assert len(events(sc.get_received(), 'pong')) == 1


def test_disconnect_forgets_session(connect, hub):
    tab1 = connect('bob')
    tab2 = connect('bob')

    tab1.disconnect()
    assert hub.is_user_online('bob') is True
    tab2.disconnect()
    assert hub.is_user_online('bob') is False
    assert hub.online_user_count() == 0


def test_authenticate_counts_as_heartbeat(connect, app):
    connect('bob')
    assert app.extensions['presence_store'].is_online('bob') is True


def test_username_resolved_from_users_when_token_has_none(connect, make_token):
    alice = connect()
    alice.emit('authenticate', {'userId': 'alice', 'token': make_token('alice')})
    [payload] = events(alice.get_received(), 'authenticated')
    assert payload == {'userId': 'alice', 'username': 'Alice'}

    bob = connect('bob')
    join(alice, 'bob')
    join(bob, 'alice')
    alice.emit('typing', {'listingId': 'listing-bike', 'receiverId': 'bob', 'isTyping': True})

    [typing] = events(bob.get_received(), 'user_typing')
    assert typing['username'] == 'Alice'


def test_unknown_user_falls_back_to_id_as_username(connect, make_token):
    sc = connect()
    sc.emit('authenticate', {'userId': 'carol', 'token': make_token('carol')})
    [payload] = events(sc.get_received(), 'authenticated')
    assert payload['username'] == 'carol'


def test_reauthenticating_as_another_user_drops_previous_rooms(connect, client, auth_headers, make_token, hub):
    sc = connect('alice')
    join(sc, 'bob')

    sc.emit('authenticate', {'userId': 'carol', 'token': make_token('carol')})
    assert len(events(sc.get_received(), 'authenticated')) == 1

    send(client, auth_headers, 'bob', 'alice', 'private to alice')

    received = sc.get_received()
    assert events(received, 'new_message') == []
    assert events(received, 'message_notification') == []
    assert hub.is_user_online('alice') is False
    assert hub.is_user_online('carol') is True
    [session] = hub.sessions.values()
    assert session.user_id == 'carol'
    assert session.rooms == set()
