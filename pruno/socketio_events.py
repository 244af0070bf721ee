from flask_socketio import join_room, emit, ConnectionRefusedError
from flask import current_app, request

from pruno.models import normalize_room_code
from pruno.services.rooms import dispatch_action
from pruno.services.sessions import NAMESPACE, OUTBOUND_EVENT, sessions, room_channel, error
from pruno.services.uno.actions import Join, MalformedAction, parse_action


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _attach(sid: str, room_code: str) -> None:
    join_room(room_channel(room_code))
    sessions.attach(sid, room_code)


def handle_connect(auth=None):
    auth_room = auth.get('room') if isinstance(auth, dict) else None
    raw_code = request.args.get('room') or auth_room
    room_code = normalize_room_code(raw_code)
    if raw_code and not room_code:
        raise ConnectionRefusedError('invalid room code')
    sid = _get_sid()
    if room_code:
        _attach(sid, room_code)
    else:
        sessions.attach(sid, None)
    current_app.logger.info(f"[connect] sid={sid} room={room_code}")
    emit('connected', {'message': f'Connected to {NAMESPACE}', 'room': room_code})


def handle_disconnect(*args):
    sid = _get_sid()
    ctx = sessions.detach(sid)
    # The player stays seated; reconnecting with the same id picks the hand back up
    current_app.logger.info(
        f"[disconnect] sid={sid} room={ctx.room_code if ctx else None} player={ctx.player_id if ctx else None}"
    )


def handle_action(data):
    sid = _get_sid()
    try:
        action = parse_action(data)
    except MalformedAction as exc:
        current_app.logger.warning(f"[action-drop] sid={sid} {exc}")
        return

    room_code = sessions.room_for(sid)
    if not room_code and isinstance(action, Join):
        room_code = normalize_room_code(action.room_id)
        if room_code:
            _attach(sid, room_code)
    if not room_code:
        emit(OUTBOUND_EVENT, error('Not connected to a room'))
        return

    dispatch_action(sid, room_code, action)


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    from pruno import socketio

    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('action', handle_action, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
