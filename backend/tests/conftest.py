import os
import sys
import pytest

# Ensure the backend root (containing the `hodl` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from hodl import create_app, db, socketio
from hodl.errors import ExternalDependencyError
from hodl.services.rounds.chain import RoundInfo


WALLET_A = '0x' + 'AA' * 20
WALLET_B = '0x' + 'bb' * 20
WALLET_C = '0x' + 'cc' * 20
TX_HASH = '0x' + 'ab' * 32
ONE_ETH = 10 ** 18


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ['http://localhost:5173']
    ENTRY_FEE_ETH = '0.0003'
    POT_MULTIPLIER = 333
    POT_THRESHOLD_ETH = '0.1'
    TIME_TOLERANCE_MS = 4000
    LEADERBOARD_MAX_LIMIT = 100
    ADMIN_API_KEY = 'test-admin-key'


class FakeChain:
    """In-process stand-in for the settlement contract."""

    def __init__(self):
        self.payments = set()
        self.round = RoundInfo(id=7, pot_wei=0, start_time=0, end_time=0, finalized=False)
        self.signer = '0x' + '99' * 20
        self.round_info_error = False
        self.finalize_error = False
        self.finalize_calls = []

    def pay(self, wallet, round_id=7):
        self.payments.add((wallet.lower(), round_id))

    @property
    def can_finalize(self):
        return self.signer is not None

    @property
    def signer_address(self):
        return self.signer

    def has_paid(self, wallet, round_id):
        return (wallet.lower(), int(round_id)) in self.payments

    def current_round_info(self):
        if self.round_info_error:
            raise ExternalDependencyError('round info unavailable: timeout')
        return self.round

    def finalize_round(self, winner):
        self.finalize_calls.append(winner)
        if self.finalize_error:
            raise ExternalDependencyError('finalizeRound failed: nonce too low')
        return TX_HASH


class Clock:
    def __init__(self, start_ms=1_700_000_000_000):
        self.now = start_ms

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture()
def chain():
    return FakeChain()


@pytest.fixture()
def flask_app(chain):
    application = create_app(TestConfig, chain=chain)
    with application.app_context():
        # Ensure models are imported so tables are created
        import hodl.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def clock(monkeypatch):
    c = Clock()
    monkeypatch.setattr('hodl.services.rounds.sessions.now_ms', c)
    monkeypatch.setattr('hodl.services.rounds.ledger.now_ms', c)
    monkeypatch.setattr('hodl.services.rounds.finalizer.now_ms', c)
    return c


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
