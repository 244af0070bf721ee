"""Room coordinator: serialize, apply, persist, deliver.

One lock per room code keeps actions for the same room strictly ordered
while different rooms run in parallel. The state is reloaded from the
database on every action, so the persisted row is the single source of
truth and a restarted worker picks up exactly where the last commit left it.
"""
import dataclasses
import threading
import weakref
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from pruno import db
from pruno.models import Room
from pruno.services.sessions import sessions, state_update, notification, error, chat_message
from pruno.services.uno import actions as a
from pruno.services.uno.machine import Outcome, RoomStateMachine


# An entry disappears once no action holds its lock
_room_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
_room_locks_guard = threading.Lock()


def room_lock(room_code: str) -> threading.Lock:
    with _room_locks_guard:
        lock = _room_locks.get(room_code)
        if lock is None:
            lock = _room_locks[room_code] = threading.Lock()
        return lock


def _resolve_actor(sid: str, action: a.Action) -> Optional[a.Action]:
    """Fill in the acting player from the connection, or None if the two disagree.

    JOIN goes through the same check: a seated connection can only rejoin as itself.
    """
    bound = sessions.player_for(sid)
    if not bound:
        return action
    if action.player_id and action.player_id != bound:
        return None
    return dataclasses.replace(action, player_id=bound)


def _deliver(sid: str, room_code: str, outcome: Outcome, state) -> None:
    if outcome.player_id:
        sessions.bind_player(sid, outcome.player_id)
    if outcome.error:
        sessions.send(sid, error(outcome.error))
    if outcome.reply_state:
        sessions.send(sid, state_update(state))
    if outcome.changed:
        sessions.broadcast(room_code, state_update(state))
    for message in outcome.notifications:
        sessions.broadcast(room_code, notification(message))
    if outcome.chat:
        sessions.broadcast(room_code, chat_message(outcome.chat))


def dispatch_action(sid: str, room_code: str, action: a.Action) -> Optional[Outcome]:
    logger = current_app.logger
    resolved = _resolve_actor(sid, action)
    if resolved is None:
        logger.info(f"[action-ignored] room={room_code} sid={sid} actor mismatch for {type(action).__name__}")
        return None

    with room_lock(room_code):
        room = Room.query.filter_by(room_code=room_code).first()
        if room is None:
            if not isinstance(resolved, a.Join):
                logger.info(f"[action-ignored] room={room_code} unknown room for {type(resolved).__name__}")
                return None
            room = Room(room_code=room_code)
            db.session.add(room)
            logger.info(f"[room-create] room={room_code}")

        machine = RoomStateMachine(room.load_state())
        try:
            outcome = machine.apply(resolved)
        except Exception:
            logger.exception(f"[action-failed] room={room_code} action={resolved!r}")
            db.session.rollback()
            return None

        if outcome.ignored:
            logger.debug(f"[action-ignored] room={room_code} {type(resolved).__name__}: {outcome.ignored}")
        if outcome.error:
            logger.info(f"[action-rejected] room={room_code} {type(resolved).__name__}: {outcome.error}")

        if outcome.changed:
            room.save_state(machine.state)
            try:
                db.session.add(room)
                db.session.commit()
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.error(f"[persist-failed] room={room_code} error={exc}")
                sessions.send(sid, error('Could not save game state'))
                return None
            logger.info(
                f"[room-update] room={room_code} action={type(resolved).__name__} "
                f"status={machine.state.status} turn={machine.state.turn_index}"
            )
        else:
            db.session.rollback()

        # Broadcast only after the commit, and still under the lock so clients see updates in order
        _deliver(sid, room_code, outcome, machine.state)
        return outcome
