from flask_socketio import join_room, leave_room, emit
from hodl import socketio


def _round_room(data):
    try:
        round_id = int((data or {}).get('roundId'))
    except (TypeError, ValueError):
        return None
    return f"round:{round_id}" if round_id > 0 else None


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_round(data):
    room = _round_room(data)
    if not room:
        emit('error', {'message': 'roundId is required'})
        return
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_round(data):
    room = _round_room(data)
    if not room:
        emit('error', {'message': 'roundId is required'})
        return
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def emit_score_update(round_id: int, wallet: str, best_score_ms: int) -> None:
    socketio.emit(
        'score_update',
        {'roundId': round_id, 'wallet': wallet, 'bestScoreMs': best_score_ms},
        to=f"round:{round_id}",
        namespace='/ws',
    )


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('join_round', handle_join_round, namespace='/ws')
    socketio.on_event('leave_round', handle_leave_round, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('join_round', handle_join_round, namespace='/')
        socketio.on_event('leave_round', handle_leave_round, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
