import threading

import pytest

from conftest import TestConfig, WALLET_A
from hodl import create_app, db
from hodl.errors import AuthorizationError
from hodl.models import AttemptSession, Score
from hodl.services.rounds import sessions
from hodl.services.rounds.ledger import record_if_best


@pytest.fixture()
def shared_app(tmp_path, chain):
    # Threads need real separate connections, so use a file database
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'hodl.db'}"

    application = create_app(FileConfig, chain=chain)
    with application.app_context():
        db.create_all()
    yield application
    with application.app_context():
        db.drop_all()
        db.engine.dispose()


def _run_threads(targets):
    threads = [threading.Thread(target=t) for t in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    assert not any(t.is_alive() for t in threads)


def test_parallel_submissions_keep_the_maximum(shared_app):
    values = [500, 12_000, 3000, 11_999, 7, 12_000, 8000, 250, 9000, 10_500, 1, 4000]
    returned = []
    errors = []

    def submit(value):
        def run():
            with shared_app.app_context():
                try:
                    returned.append(record_if_best(7, WALLET_A, value))
                except Exception as exc:  # surfaced by the assertion below
                    errors.append(exc)
        return run

    _run_threads([submit(v) for v in values])

    assert errors == []
    assert len(returned) == len(values)
    # every caller sees at least its own value
    assert all(r >= min(values) for r in returned)
    with shared_app.app_context():
        rows = db.session.query(Score).all()
        assert len(rows) == 1
        assert rows[0].best_score_ms == max(values)


def test_same_token_is_consumed_exactly_once(shared_app, chain, monkeypatch):
    chain.pay(WALLET_A)
    with shared_app.app_context():
        token = sessions.start_attempt(WALLET_A, 7)

    # Hold both submitters after they have read the session so both reach the delete
    both_read = threading.Barrier(2, timeout=10)
    real_compare = sessions.secrets.compare_digest

    def compare_after_both_read(a, b):
        both_read.wait()
        return real_compare(a, b)

    monkeypatch.setattr(sessions.secrets, 'compare_digest', compare_after_both_read)

    outcomes = []

    def submit():
        with shared_app.app_context():
            try:
                accepted = sessions.verify_and_consume(WALLET_A, token, 1, round_id=7)
                db.session.commit()
                outcomes.append(('ok', accepted))
            except AuthorizationError as exc:
                outcomes.append(('rejected', exc.message))

    _run_threads([submit, submit])

    assert sorted(outcomes) == [('ok', 1), ('rejected', 'session not found')]
    with shared_app.app_context():
        assert db.session.query(AttemptSession).count() == 0
