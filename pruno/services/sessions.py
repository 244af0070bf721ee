"""Session registry and broadcast.

Maps Socket.IO connections (sids) to the room they address and the player
they speak for. Subscribers of a room are never taken from this registry:
they are read from the Socket.IO room membership at send time, so a
connection keeps receiving updates even when the in-memory context has been
lost.
"""
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from flask import current_app
from flask_socketio import rooms

from pruno import socketio


NAMESPACE = '/ws'
OUTBOUND_EVENT = 'room_message'
CHANNEL_PREFIX = 'room:'


def room_channel(room_code: str) -> str:
    return f"{CHANNEL_PREFIX}{room_code}"


def state_update(state) -> Dict[str, Any]:
    return {'type': 'STATE_UPDATE', 'payload': state.sanitized()}


def notification(message: str) -> Dict[str, Any]:
    return {'type': 'NOTIFICATION', 'message': message}


def error(message: str) -> Dict[str, Any]:
    return {'type': 'ERROR', 'message': message}


def chat_message(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {'type': 'CHAT_MESSAGE', 'payload': payload}


@dataclass
class SessionContext:
    room_code: Optional[str] = None
    player_id: Optional[str] = None


class SessionRegistry:
    def __init__(self, namespace: str = NAMESPACE):
        self.namespace = namespace
        self._contexts: Dict[str, SessionContext] = {}
        self._lock = threading.Lock()

    def attach(self, sid: str, room_code: Optional[str]) -> SessionContext:
        with self._lock:
            ctx = self._contexts.setdefault(sid, SessionContext())
            ctx.room_code = room_code
            return ctx

    def bind_player(self, sid: str, player_id: str) -> None:
        with self._lock:
            self._contexts.setdefault(sid, SessionContext()).player_id = player_id

    def detach(self, sid: str) -> Optional[SessionContext]:
        with self._lock:
            return self._contexts.pop(sid, None)

    def clear(self) -> None:
        with self._lock:
            self._contexts.clear()

    def player_for(self, sid: str) -> Optional[str]:
        ctx = self._contexts.get(sid)
        return ctx.player_id if ctx else None

    def room_for(self, sid: str) -> Optional[str]:
        ctx = self._contexts.get(sid)
        if ctx and ctx.room_code:
            return ctx.room_code
        # Context lost (e.g. after a restart of this worker): ask the transport
        try:
            joined = rooms(sid=sid, namespace=self.namespace)
        except (KeyError, ValueError):
            return None
        for name in joined:
            if isinstance(name, str) and name.startswith(CHANNEL_PREFIX):
                code = name[len(CHANNEL_PREFIX):]
                self.attach(sid, code)
                return code
        return None

    def subscribers(self, room_code: str) -> List[str]:
        participants = socketio.server.manager.get_participants(self.namespace, room_channel(room_code))
        return [sid for sid, _eio_sid in participants]

    def send(self, sid: str, message: Dict[str, Any]) -> bool:
        try:
            socketio.emit(OUTBOUND_EVENT, message, to=sid, namespace=self.namespace)
        except Exception as exc:
            current_app.logger.warning(f"[send-failed] sid={sid} type={message.get('type')} error={exc}")
            return False
        return True

    def broadcast(self, room_code: str, message: Dict[str, Any]) -> int:
        """Send ``message`` to every live subscriber of the room; returns how many got it."""
        delivered = 0
        for sid in self.subscribers(room_code):
            if self.send(sid, message):
                delivered += 1
        return delivered


sessions = SessionRegistry()
