"""Timed attempt sessions.

A session proves when an attempt started according to the server clock.
There is at most one per wallet: starting a new attempt overwrites the old
row, which is how a stale token gets invalidated. A session is removed
exactly once, by the submission that uses it or by the rejection of that
submission.
"""

import secrets
from typing import Optional

from flask import current_app
from sqlalchemy import delete, select

from hodl import db, get_chain
from hodl.errors import AuthorizationError
from hodl.models import AttemptSession, RoundClosure
from .store import dialect_insert, now_ms


def _is_closed(round_id: int) -> bool:
    return db.session.get(RoundClosure, round_id) is not None


def start_attempt(wallet: str, round_id: int) -> str:
    wallet = wallet.lower()
    if _is_closed(round_id):
        current_app.logger.info(f"[attempt-denied] wallet={wallet} round={round_id} round already closed")
        raise AuthorizationError('round closed')
    chain = get_chain()
    if chain is None or not chain.has_paid(wallet, round_id):
        current_app.logger.info(f"[attempt-denied] wallet={wallet} round={round_id} no payment found")
        raise AuthorizationError('entry fee required')

    token = secrets.token_urlsafe(32)
    started = now_ms()
    stmt = dialect_insert(AttemptSession).values(
        wallet=wallet, token=token, round_id=round_id, started_at_ms=started
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[AttemptSession.wallet],
        set_={
            'token': stmt.excluded.token,
            'round_id': stmt.excluded.round_id,
            'started_at_ms': stmt.excluded.started_at_ms,
        },
    )
    db.session.execute(stmt)
    db.session.commit()
    current_app.logger.info(f"[attempt-start] wallet={wallet} round={round_id} started_at={started}")
    return token


def _reject(wallet: str, token: str, message: str) -> None:
    db.session.execute(
        delete(AttemptSession).where(AttemptSession.wallet == wallet, AttemptSession.token == token)
    )
    db.session.commit()
    raise AuthorizationError(message)


def verify_and_consume(wallet: str, token: str, claimed_ms: int, round_id: Optional[int] = None) -> int:
    """Check a claimed duration against the session and burn the session.

    On success the delete is left pending so the caller commits it together
    with the score write. Every rejection commits the delete first.
    """
    wallet = wallet.lower()
    session_row = db.session.execute(
        select(AttemptSession).where(AttemptSession.wallet == wallet)
    ).scalar_one_or_none()
    if session_row is None:
        raise AuthorizationError('session not found')

    current_token = session_row.token
    session_round = session_row.round_id
    started = session_row.started_at_ms
    # Row is about to be deleted with Core statements; drop it from the identity map
    db.session.expunge(session_row)

    if not secrets.compare_digest(str(current_token).encode(), str(token).encode()):
        current_app.logger.info(f"[session-invalid] wallet={wallet} stale or replayed token")
        _reject(wallet, current_token, 'invalid session')
    if round_id is not None and int(round_id) != session_round:
        current_app.logger.info(f"[session-invalid] wallet={wallet} round={round_id} session_round={session_round}")
        _reject(wallet, current_token, 'invalid session')

    result = db.session.execute(
        delete(AttemptSession).where(AttemptSession.wallet == wallet, AttemptSession.token == current_token)
    )
    if result.rowcount != 1:
        # A concurrent submission consumed it first
        db.session.rollback()
        raise AuthorizationError('session not found')

    if _is_closed(session_round):
        db.session.commit()
        current_app.logger.info(f"[session-invalid] wallet={wallet} round={session_round} round already closed")
        raise AuthorizationError('round closed')

    observed = now_ms() - started
    tolerance = int(current_app.config.get('TIME_TOLERANCE_MS', 4000))
    if claimed_ms > observed + tolerance:
        db.session.commit()
        current_app.logger.warning(
            f"[cheat] wallet={wallet} round={session_round} claimed={claimed_ms}ms observed={observed}ms tolerance={tolerance}ms"
        )
        raise AuthorizationError('time verification failed')
    return claimed_ms
