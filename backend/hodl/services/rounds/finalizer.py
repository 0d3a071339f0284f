from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from web3 import Web3

from hodl import db, get_chain, socketio
from hodl.errors import ExternalDependencyError
from hodl.models import RoundClosure
from .ledger import select_winner
from .store import dialect_insert, now_ms


def pot_threshold_wei(config) -> int:
    explicit = (config.get('POT_THRESHOLD_ETH') or '').strip()
    if explicit:
        eth = Decimal(explicit)
    else:
        eth = Decimal(str(config.get('ENTRY_FEE_ETH', '0.0003'))) * int(config.get('POT_MULTIPLIER', 333))
    return int(Web3.to_wei(eth, 'ether'))


def get_closure(round_id: int) -> Optional[RoundClosure]:
    return db.session.get(RoundClosure, round_id)


def _close_once(round_id: int, winner: str, pot_wei: int, tx_hash: str) -> RoundClosure:
    stmt = dialect_insert(RoundClosure).values(
        round_id=round_id,
        winner=winner,
        final_pot_wei=str(pot_wei),
        tx_hash=tx_hash,
        closed_at_ms=now_ms(),
    ).on_conflict_do_nothing(index_elements=[RoundClosure.round_id])
    db.session.execute(stmt)
    db.session.commit()
    # Whoever inserted first owns the record
    return get_closure(round_id)


def maybe_close(round_id: int) -> Optional[RoundClosure]:
    """Pay out ``round_id`` if the pot has crossed the threshold.

    - Returns the existing closure without touching the chain if already closed
    - Never closes an empty round or one below threshold
    - A failed or unconfirmed payout leaves the round open for the next call
    """
    closure = get_closure(round_id)
    if closure is not None:
        return closure

    chain = get_chain()
    if chain is None:
        return None
    try:
        info = chain.current_round_info()
    except ExternalDependencyError as exc:
        current_app.logger.warning(f"[pot-check] round={round_id} skipped: {exc.message}")
        return None

    threshold = pot_threshold_wei(current_app.config)
    current_app.logger.info(
        f"[pot-check] round={round_id} onchain_id={info.id} pot={info.pot_wei} threshold={threshold} finalized={info.finalized}"
    )
    if info.id != round_id or info.finalized:
        return None
    if info.pot_wei < threshold:
        return None

    winner = select_winner(round_id)
    if winner is None:
        current_app.logger.info(f"[finalize-skip] round={round_id} threshold reached but no scores")
        return None
    if not chain.can_finalize:
        current_app.logger.warning(f"[finalize-skip] round={round_id} winner={winner} no signer configured")
        return None

    try:
        tx_hash = chain.finalize_round(winner)
    except ExternalDependencyError as exc:
        current_app.logger.error(f"[finalize-fail] round={round_id} winner={winner}: {exc.message}")
        return None

    try:
        closure = _close_once(round_id, winner, info.pot_wei, tx_hash)
    except SQLAlchemyError as exc:
        # Paid on chain; the chain has moved past round_id so no repeat payout follows
        db.session.rollback()
        current_app.logger.error(f"[close-record-fail] round={round_id} winner={winner} tx={tx_hash}: {exc}")
        return None
    current_app.logger.info(
        f"[round-closed] round={round_id} winner={closure.winner} pot={closure.final_pot_eth} ETH tx={closure.tx_hash}"
    )
    socketio.emit(
        'round_closed',
        {'roundId': round_id, 'winner': closure.winner, 'txHash': closure.tx_hash},
        to=f"round:{round_id}",
        namespace='/ws',
    )
    return closure
