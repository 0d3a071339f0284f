"""Best-score ledger and the ranked reads over it."""

from typing import List, Optional

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from hodl import db
from hodl.errors import ExternalDependencyError
from hodl.models import Score
from .store import dialect_insert, now_ms


def record_if_best(round_id: int, wallet: str, score_ms: int) -> int:
    """Keep the larger of ``score_ms`` and the stored best; return the stored best.

    The comparison happens inside a single ``INSERT ... ON CONFLICT DO UPDATE
    WHERE`` so concurrent submissions cannot overwrite a higher value from a
    stale read. Commits the request's transaction, including any pending
    session delete.
    """
    wallet = wallet.lower()
    stmt = dialect_insert(Score).values(
        round_id=round_id, wallet=wallet, best_score_ms=score_ms, updated_at_ms=now_ms()
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Score.round_id, Score.wallet],
        set_={
            'best_score_ms': stmt.excluded.best_score_ms,
            'updated_at_ms': stmt.excluded.updated_at_ms,
        },
        where=Score.best_score_ms < stmt.excluded.best_score_ms,
    )
    try:
        db.session.execute(stmt)
        best = db.session.execute(
            select(Score.best_score_ms).where(Score.round_id == round_id, Score.wallet == wallet)
        ).scalar_one()
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[score-store] round={round_id} wallet={wallet} write failed: {exc}")
        raise ExternalDependencyError('internal error') from exc
    current_app.logger.info(f"[score] round={round_id} wallet={wallet} submitted={score_ms} best={best}")
    return int(best)


def _ranked(round_id: int):
    # Highest score first; earliest achiever wins ties, wallet keeps it total
    return (
        select(Score)
        .where(Score.round_id == round_id)
        .order_by(Score.best_score_ms.desc(), Score.updated_at_ms.asc(), Score.wallet.asc())
    )


def leaderboard(round_id: int, limit: int = 100) -> List[Score]:
    max_limit = int(current_app.config.get('LEADERBOARD_MAX_LIMIT', 100))
    limit = max(1, min(int(limit), max_limit))
    return list(db.session.execute(_ranked(round_id).limit(limit)).scalars())


def select_winner(round_id: int) -> Optional[str]:
    top = db.session.execute(_ranked(round_id).limit(1)).scalar_one_or_none()
    return top.wallet if top else None
