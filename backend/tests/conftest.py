import os
import sys
import pytest

# Ensure the backend root (containing the `raidscore` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from raidscore import create_app, db, socketio
from raidscore.services.scoring import Roster, RosterPlayer


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    LOG_LEVEL = 'DEBUG'


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import raidscore.models  # noqa: F401
        from raidscore import sessions
        # In-memory sqlite reuses ids between tests
        sessions._sessions.clear()
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


def make_roster(size=7):
    """Team A players a1..aN, team B players b1..bN."""
    return Roster(
        team_a_id='A-team',
        team_b_id='B-team',
        players_a=tuple(RosterPlayer(id=f'a{i}', name=f'A {i}', team_id='A-team', jersey_number=i) for i in range(1, size + 1)),
        players_b=tuple(RosterPlayer(id=f'b{i}', name=f'B {i}', team_id='B-team', jersey_number=i) for i in range(1, size + 1)),
    )


@pytest.fixture()
def roster():
    return make_roster()


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()
