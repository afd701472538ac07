import os
import sys
import uuid
from collections import deque
from datetime import datetime, timedelta, timezone

import pytest

# Ensure the backend root (containing the `predictor` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from predictor import create_app, db
from predictor.config import Config
from predictor.errors import SchedulingFailed
from predictor.models import Player
from predictor.services import get_services
from predictor.services.guesses import GuessLifecycle, GuessStore, ScheduleAck
from predictor.services.prices import PriceQuote, to_price


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ['*']
    ENABLE_SCHEDULER_IN_TESTS = False
    TIMER_HEARTBEAT_SEC = 0


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class StubOracle:
    """Hands out queued prices; repeats the last one when the queue runs dry."""

    def __init__(self, clock):
        self.clock = clock
        self.queue = deque()
        self.last = to_price('50000.00')
        self.calls = 0
        self.on_fetch = None

    def push(self, *prices):
        self.queue.extend(to_price(p) for p in prices)

    def current_price(self):
        self.calls += 1
        if self.queue:
            self.last = self.queue.popleft()
        if self.on_fetch is not None:
            hook, self.on_fetch = self.on_fetch, None
            hook()
        return self.last

    def cached_price(self):
        return PriceQuote(price=self.last, as_of=self.clock())


class RecordingScheduler:
    def __init__(self):
        self.calls = []
        self.fail = False

    def schedule_once(self, when, payload):
        if self.fail:
            raise SchedulingFailed('scheduler offline')
        self.calls.append((when, dict(payload)))
        return ScheduleAck(name=f"resolve-guess-{payload['guess_id']}", run_at=when)


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import predictor.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def oracle(clock):
    return StubOracle(clock)


@pytest.fixture()
def scheduler():
    return RecordingScheduler()


@pytest.fixture()
def store(flask_app, clock):
    return GuessStore(clock=clock)


@pytest.fixture()
def lifecycle(flask_app, store, oracle, scheduler, clock):
    engine = GuessLifecycle(store, oracle, scheduler, clock=clock)
    # Route the app's endpoints and CLI through the same stubs
    services = get_services(flask_app)
    services.store = store
    services.oracle = oracle
    services.scheduler = scheduler
    services.lifecycle = engine
    return engine


@pytest.fixture()
def client(flask_app, lifecycle):
    return flask_app.test_client()


@pytest.fixture()
def make_player(flask_app, store, clock):
    def _make(name='Ada', score=0):
        player = Player(id=str(uuid.uuid4()), name=name, score=score,
                        created_at=clock(), last_active=clock())
        store.put_player(player)
        return player.id
    return _make
