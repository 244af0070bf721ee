import os
import sys
import pytest

# Ensure the project root (containing the `pruno` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from pruno import create_app, db, socketio
from pruno.services.sessions import NAMESPACE, OUTBOUND_EVENT, sessions


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ['http://localhost:5173']
    SOCKETIO_ASYNC_MODE = 'threading'


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import pruno.models  # noqa: F401
        db.create_all()
        yield application
        sessions.clear()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def connect(flask_app):
    """Factory for Socket.IO test clients attached to a room code."""
    clients = []

    def _connect(room_code='ABC123'):
        query = f'room={room_code}' if room_code else None
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace=NAMESPACE,
            query_string=query,
        )
        clients.append(test_client)
        return test_client

    yield _connect
    for test_client in clients:
        try:
            test_client.disconnect(namespace=NAMESPACE)
        except Exception:
            pass


def room_messages(test_client, kind=None):
    """Drain the client's queue and return outbound room messages, optionally of one type."""
    messages = [
        pkt['args'][0]
        for pkt in test_client.get_received(NAMESPACE)
        if pkt['name'] == OUTBOUND_EVENT
    ]
    if kind:
        messages = [m for m in messages if m['type'] == kind]
    return messages


def send_action(test_client, action_type, **payload):
    test_client.emit('action', {'type': action_type, 'payload': payload}, namespace=NAMESPACE)
