from decimal import InvalidOperation

from flask import Blueprint, jsonify, request, current_app
from sqlalchemy.exc import SQLAlchemyError
from web3 import Web3
import secrets

from hodl import db, get_chain
from hodl.errors import RoundError, ValidationError, ExternalDependencyError
from hodl.services.rounds.sessions import start_attempt as svc_start_attempt
from hodl.services.rounds.sessions import verify_and_consume as svc_verify_and_consume
from hodl.services.rounds.ledger import record_if_best as svc_record_if_best
from hodl.services.rounds.ledger import leaderboard as svc_leaderboard
from hodl.services.rounds.finalizer import maybe_close as svc_maybe_close
from hodl.services.rounds.finalizer import get_closure, pot_threshold_wei
from hodl.socketio_events import emit_score_update


rounds = Blueprint('rounds', __name__)

# round_id is an INTEGER column, best_score_ms a BIGINT
MAX_ROUND_ID = 2 ** 31 - 1
MAX_SCORE_MS = 2 ** 63 - 1


@rounds.errorhandler(RoundError)
def handle_round_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


@rounds.errorhandler(SQLAlchemyError)
def handle_store_error(exc):
    db.session.rollback()
    current_app.logger.error(f"[store] {request.path} failed: {exc}")
    return jsonify({'error': 'internal error'}), 500


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _wallet(data) -> str:
    wallet = data.get('wallet') or data.get('walletAddress')
    if not wallet or not isinstance(wallet, str):
        raise ValidationError('wallet address required')
    if not Web3.is_address(wallet):
        raise ValidationError('invalid wallet address')
    return wallet.lower()


def _positive_int(value, field: str, maximum: int = MAX_ROUND_ID) -> int:
    if value is None or value == '':
        raise ValidationError(f'{field} required')
    if isinstance(value, bool):
        raise ValidationError(f'invalid {field}')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'invalid {field}')
    if isinstance(value, float) and value != number:
        raise ValidationError(f'invalid {field}')
    if number <= 0 or number > maximum:
        raise ValidationError(f'invalid {field}')
    return number


def _current_round_id() -> int:
    chain = get_chain()
    if chain is None:
        raise ValidationError('roundId required')
    try:
        return chain.current_round_info().id
    except ExternalDependencyError:
        raise ExternalDependencyError('chain unavailable', status_code=503)


@rounds.route('/start-attempt', methods=['POST'])
def start_attempt():
    data = _json_body()
    wallet = _wallet(data)
    round_id = _positive_int(data.get('roundId'), 'roundId')
    token = svc_start_attempt(wallet, round_id)
    return jsonify({'sessionToken': token, 'roundId': round_id})


@rounds.route('/submit-score', methods=['POST'])
def submit_score():
    data = _json_body()
    wallet = _wallet(data)
    round_id = _positive_int(data.get('roundId'), 'roundId')
    score_ms = _positive_int(data.get('scoreMs'), 'scoreMs', maximum=MAX_SCORE_MS)
    token = data.get('sessionToken')
    if not token or not isinstance(token, str):
        raise ValidationError('sessionToken required')

    accepted_ms = svc_verify_and_consume(wallet, token, score_ms, round_id=round_id)
    best = svc_record_if_best(round_id, wallet, accepted_ms)
    emit_score_update(round_id, wallet, best)

    # Payout is opportunistic; its failures never affect the recorded score
    try:
        closure = svc_maybe_close(round_id)
    except (SQLAlchemyError, InvalidOperation) as exc:
        db.session.rollback()
        current_app.logger.error(f"[finalize-fail] round={round_id} after score from {wallet}: {exc}")
        closure = None
    return jsonify({
        'roundId': round_id,
        'bestScoreMs': best,
        'roundClosed': closure is not None,
        'winner': closure.winner if closure else None,
    })


@rounds.route('/leaderboard', methods=['GET'])
def get_leaderboard():
    raw_round = request.args.get('roundId')
    round_id = _positive_int(raw_round, 'roundId') if raw_round else _current_round_id()
    max_limit = int(current_app.config.get('LEADERBOARD_MAX_LIMIT', 100))
    raw_limit = request.args.get('limit')
    limit = _positive_int(raw_limit, 'limit') if raw_limit else max_limit
    rows = svc_leaderboard(round_id, limit)
    return jsonify([row.to_dict() for row in rows])


@rounds.route('/current-round', methods=['GET'])
def current_round():
    chain = get_chain()
    if chain is None:
        raise ExternalDependencyError('chain unavailable', status_code=503)
    try:
        info = chain.current_round_info()
    except ExternalDependencyError:
        raise ExternalDependencyError('chain unavailable', status_code=503)
    threshold = pot_threshold_wei(current_app.config)
    closure = get_closure(info.id)
    return jsonify({
        'roundId': info.id,
        'potWei': str(info.pot_wei),
        'potEth': info.pot_eth,
        'thresholdWei': str(threshold),
        'thresholdEth': str(Web3.from_wei(threshold, 'ether')),
        'finalized': info.finalized,
        'closed': closure is not None,
        'winner': closure.winner if closure else None,
    })


@rounds.route('/admin/finalize-round', methods=['POST'])
def admin_finalize_round():
    expected = current_app.config.get('ADMIN_API_KEY') or ''
    provided = request.headers.get('X-Api-Key') or ''
    if not expected or not secrets.compare_digest(provided.encode(), expected.encode()):
        return jsonify({'error': 'unauthorized'}), 401
    data = _json_body()
    round_id = _positive_int(data.get('roundId'), 'roundId') if data.get('roundId') is not None else _current_round_id()
    closure = svc_maybe_close(round_id)
    return jsonify({
        'roundId': round_id,
        'closed': closure is not None,
        'winner': closure.winner if closure else None,
        'txHash': closure.tx_hash if closure else None,
    })
