import os
import sys
import pytest

# Ensure the backend root (containing the `voteroom` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from voteroom import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    STORE_BACKEND = 'sql'
    SESSION_TTL_SEC = 7200
    MAX_PARTICIPANTS = 25
    TIMER_TICK_SEC = 0.05
    TIMER_HEARTBEAT_SEC = 0


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import voteroom.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def service(flask_app):
    return flask_app.extensions['voting']


@pytest.fixture()
def connect(flask_app):
    """Factory for Socket.IO test clients on /ws; all are disconnected on teardown."""
    opened = []

    def _connect(identity=None):
        auth = {'identity': identity} if identity else None
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws',
            auth=auth,
        )
        opened.append(test_client)
        return test_client

    yield _connect
    for test_client in opened:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass


@pytest.fixture()
def sio_client(connect):
    return connect()


class RecordingBroadcaster:
    """Stands in for SessionBroadcaster; records what would go over the wire."""

    def __init__(self):
        import threading
        self._lock = threading.Lock()
        self.published = []
        self.attached = []
        self.detached = []
        self.ended = []

    def attach(self, sid, code):
        with self._lock:
            self.attached.append((sid, code))

    def detach(self, sid, code):
        with self._lock:
            self.detached.append((sid, code))

    def publish(self, code, snapshot):
        with self._lock:
            self.published.append((code, snapshot))

    def end(self, code):
        with self._lock:
            self.ended.append(code)

    def last_snapshot(self, code):
        with self._lock:
            for c, snapshot in reversed(self.published):
                if c == code:
                    return snapshot
        return None


class ThreadedSocketIO:
    """Just the background-task surface of flask_socketio.SocketIO."""

    def start_background_task(self, target, *args, **kwargs):
        import threading
        worker = threading.Thread(target=target, args=args, kwargs=kwargs, daemon=True)
        worker.start()
        return worker

    def sleep(self, seconds):
        import time
        time.sleep(seconds)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture()
def memory_service(broadcaster, clock):
    import logging
    from voteroom.services.voting.service import VotingService
    from voteroom.services.voting.settings import VotingSettings
    from voteroom.services.voting.store import MemorySessionStore
    from voteroom.services.voting.timer import RoundTimer

    settings = VotingSettings(timer_tick_sec=0.02)
    timer = RoundTimer(ThreadedSocketIO(), logging.getLogger('test.timer'), tick_sec=0.02)
    return VotingService(
        store=MemorySessionStore(clock=clock),
        broadcaster=broadcaster,
        timer=timer,
        settings=settings,
        logger=logging.getLogger('test.voting'),
    )


@pytest.fixture()
def threaded_socketio():
    return ThreadedSocketIO()
