import time
from typing import Optional

from hodl import get_chain, socketio
from hodl.errors import ExternalDependencyError
from hodl.models import RoundClosure
from .finalizer import maybe_close


def sweep_once(app) -> Optional[RoundClosure]:
    """Run the threshold check for the chain's current round.

    Covers rounds that crossed the threshold with no later submission to
    trigger the check.
    """
    with app.app_context():
        chain = get_chain()
        if chain is None:
            return None
        try:
            info = chain.current_round_info()
        except ExternalDependencyError as exc:
            app.logger.warning(f"[sweep] round info unavailable: {exc.message}")
            return None
        return maybe_close(info.id)


def start_finalize_sweep(app) -> bool:
    """Start the periodic sweep worker. Returns False when disabled.

    - No-ops in TESTING mode
    - FINALIZE_SWEEP_SEC <= 0 disables it (trigger-on-write only)
    """
    if app.config.get('TESTING'):
        return False
    try:
        interval = int(app.config.get('FINALIZE_SWEEP_SEC', 0))
    except (TypeError, ValueError):
        interval = 0
    if interval <= 0:
        return False

    def _worker(delay: int):
        while True:
            time.sleep(delay)
            try:
                sweep_once(app)
            except Exception as exc:
                app.logger.error(f"[sweep] iteration failed: {exc}")

    app.logger.info(f"[sweep] finalize sweep every {interval}s")
    socketio.start_background_task(_worker, interval)
    return True
