import os

os.environ['FLASK_ENV'] = 'testing'
os.environ['APP_ENV'] = 'testing'

import pytest

from market_server.app import create_app
from market_server.security.authentication import AuthSecurity
from tests.fakes import FakeDatabase, FakeClock

LISTINGS = [
    {'_id': 'listing-bike', 'listing_id': 'listing-bike', 'title': 'Road bike', 'images': ['bike-1.jpg', 'bike-2.jpg']},
    {'_id': 'listing-desk', 'listing_id': 'listing-desk', 'title': 'Oak desk', 'images': []},
]


@pytest.fixture
def db():
    database = FakeDatabase()
    for doc in LISTINGS:
        database['listings'].insert_one(doc)
    database['users'].insert_one({'_id': 'alice', 'user_id': 'alice', 'username': 'Alice'})
    database['users'].insert_one({'_id': 'bob', 'user_id': 'bob', 'username': 'Bob'})
    return database


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(db, clock):
    app = create_app(db=db, clock=clock)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def socketio(app):
    return app.extensions['socketio']


@pytest.fixture
def hub(app):
    return app.extensions['websocket_hub']


@pytest.fixture
def make_token(app):
    def _make(user_id, username=None, **extra):
        data = {'user_id': user_id, **extra}
        if username:
            data['username'] = username
        return AuthSecurity.encode_token(data)
    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(user_id):
        return {'Authorization': f'Bearer {make_token(user_id)}'}
    return _headers


@pytest.fixture
def connect(app, socketio, make_token):
    """Open a Socket.IO test session, authenticated as ``user_id`` unless None."""
    clients = []

    def _connect(user_id=None, username=None):
        sc = socketio.test_client(app, flask_test_client=app.test_client())
        clients.append(sc)
        if user_id is not None:
            sc.emit('authenticate', {'userId': user_id, 'token': make_token(user_id, username)})
            received = sc.get_received()
            assert any(r['name'] == 'authenticated' for r in received), received
        return sc

    yield _connect
    for sc in clients:
        if sc.is_connected():
            sc.disconnect()
