"""Inbound action envelope: ``{"type": ..., "payload": {...}}``.

Each action type maps to its own frozen dataclass so the state machine never
sees a loose payload dict. ``parse_action`` is the only way in and raises
``MalformedAction`` for anything it cannot make sense of.
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union


class MalformedAction(ValueError):
    """The inbound message could not be parsed into a known action."""


@dataclass(frozen=True)
class Join:
    player_id: Optional[str] = None
    name: Optional[str] = None
    room_id: Optional[str] = None


@dataclass(frozen=True)
class Start:
    player_id: Optional[str] = None


@dataclass(frozen=True)
class PlayCard:
    card_id: str
    player_id: Optional[str] = None
    chosen_color: Optional[str] = None


@dataclass(frozen=True)
class DrawCard:
    player_id: Optional[str] = None


@dataclass(frozen=True)
class PassTurn:
    player_id: Optional[str] = None


@dataclass(frozen=True)
class SayUno:
    player_id: Optional[str] = None


@dataclass(frozen=True)
class CatchUno:
    target_id: str
    player_id: Optional[str] = None  # the accuser


@dataclass(frozen=True)
class NextRound:
    player_id: Optional[str] = None


@dataclass(frozen=True)
class Chat:
    encrypted_message: Any
    player_id: Optional[str] = None  # the sender


Action = Union[Join, Start, PlayCard, DrawCard, PassTurn, SayUno, CatchUno, NextRound, Chat]


def _opt_str(payload: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if value is None or value == '':
            continue
        if not isinstance(value, (str, int)):
            raise MalformedAction(f'{key} must be a string')
        return str(value)
    return None


def _parse_join(p):
    return Join(player_id=_opt_str(p, 'playerId', 'id'), name=_opt_str(p, 'name'),
                room_id=_opt_str(p, 'roomId'))


def _parse_play_card(p):
    card = p.get('card')
    card_id = card.get('id') if isinstance(card, dict) else p.get('cardId')
    if not card_id or not isinstance(card_id, (str, int)):
        raise MalformedAction('PLAY_CARD requires a card id')
    return PlayCard(card_id=str(card_id), player_id=_opt_str(p, 'playerId'),
                    chosen_color=_opt_str(p, 'chosenColor'))


def _parse_catch_uno(p):
    target = _opt_str(p, 'targetId')
    if not target:
        raise MalformedAction('CATCH_UNO requires targetId')
    return CatchUno(target_id=target, player_id=_opt_str(p, 'playerId', 'accuserId'))


def _parse_chat(p):
    if 'encryptedMessage' not in p:
        raise MalformedAction('CHAT requires encryptedMessage')
    return Chat(encrypted_message=p['encryptedMessage'], player_id=_opt_str(p, 'playerId', 'senderId'))


_PARSERS = {
    'JOIN': _parse_join,
    'START': lambda p: Start(player_id=_opt_str(p, 'playerId')),
    'PLAY_CARD': _parse_play_card,
    'DRAW_CARD': lambda p: DrawCard(player_id=_opt_str(p, 'playerId')),
    'PASS_TURN': lambda p: PassTurn(player_id=_opt_str(p, 'playerId')),
    'SAY_UNO': lambda p: SayUno(player_id=_opt_str(p, 'playerId')),
    'CATCH_UNO': _parse_catch_uno,
    'NEXT_ROUND': lambda p: NextRound(player_id=_opt_str(p, 'playerId')),
    'CHAT': _parse_chat,
}

ACTION_TYPES = tuple(_PARSERS)


def parse_action(message: Union[str, bytes, Dict[str, Any]]) -> Action:
    if isinstance(message, (bytes, bytearray)):
        try:
            message = message.decode('utf-8')
        except UnicodeDecodeError as exc:
            raise MalformedAction('message is not valid utf-8') from exc
    if isinstance(message, str):
        try:
            message = json.loads(message)
        except ValueError as exc:
            raise MalformedAction(f'invalid JSON: {exc}') from exc
    if not isinstance(message, dict):
        raise MalformedAction('envelope must be an object')

    action_type = message.get('type')
    parser = _PARSERS.get(action_type) if isinstance(action_type, str) else None
    if parser is None:
        raise MalformedAction(f'unknown action type: {action_type!r}')

    payload = message.get('payload') or {}
    if not isinstance(payload, dict):
        raise MalformedAction('payload must be an object')
    return parser(payload)
