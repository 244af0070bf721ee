"""Game state for a single room.

Everything here is plain data: the state machine mutates these objects and
the persistence layer turns them into JSON with ``to_dict`` / ``from_dict``.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


COLORS = ('red', 'blue', 'green', 'yellow')
WILD = 'wild'

NUMBER_VALUES = tuple(str(n) for n in range(10))
SKIP = 'skip'
REVERSE = 'reverse'
DRAW_TWO = 'draw_two'
WILD_CARD = 'wild'
WILD_DRAW_FOUR = 'wild_draw_four'
ACTION_VALUES = (SKIP, REVERSE, DRAW_TWO)
WILD_VALUES = (WILD_CARD, WILD_DRAW_FOUR)

# Room status
WAITING = 'waiting'
PLAYING = 'playing'
ROUND_OVER = 'round_over'
FINISHED = 'finished'
STATUSES = (WAITING, PLAYING, ROUND_OVER, FINISHED)


@dataclass(frozen=True)
class Card:
    id: str
    color: str
    value: str

    @property
    def is_wild(self) -> bool:
        return self.color == WILD

    def to_dict(self) -> Dict[str, str]:
        return {'id': self.id, 'color': self.color, 'value': self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Card':
        return cls(id=str(data['id']), color=data['color'], value=data['value'])


@dataclass
class Player:
    id: str
    name: str
    hand: List[Card] = field(default_factory=list)
    score: int = 0
    said_uno: bool = False  # cleared once the hand grows past one card
    has_drawn: bool = False  # drew a playable card, must play or pass

    def card(self, card_id: str) -> Optional[Card]:
        for c in self.hand:
            if c.id == card_id:
                return c
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'hand': [c.to_dict() for c in self.hand],
            'score': self.score,
            'saidUno': self.said_uno,
            'hasDrawn': self.has_drawn,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Player':
        return cls(
            id=str(data['id']),
            name=data.get('name') or 'Guest',
            hand=[Card.from_dict(c) for c in data.get('hand', [])],
            score=int(data.get('score', 0)),
            said_uno=bool(data.get('saidUno', False)),
            has_drawn=bool(data.get('hasDrawn', False)),
        )


@dataclass
class GameState:
    room_id: str = ''
    players: List[Player] = field(default_factory=list)
    turn_index: int = 0
    direction: int = 1
    status: str = WAITING
    discard_pile: List[Card] = field(default_factory=list)
    current_color: str = 'red'
    draw_pile: List[Card] = field(default_factory=list)
    round_winner_id: Optional[str] = None
    winner_id: Optional[str] = None

    @property
    def deck_count(self) -> int:
        return len(self.draw_pile)

    @property
    def top_card(self) -> Optional[Card]:
        return self.discard_pile[-1] if self.discard_pile else None

    @property
    def current_player(self) -> Optional[Player]:
        if 0 <= self.turn_index < len(self.players):
            return self.players[self.turn_index]
        return None

    def find_player(self, player_id: Optional[str]) -> Optional[Player]:
        if not player_id:
            return None
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def index_of(self, player: Player) -> int:
        return self.players.index(player)

    def all_cards(self) -> List[Card]:
        cards = list(self.draw_pile) + list(self.discard_pile)
        for p in self.players:
            cards.extend(p.hand)
        return cards

    def to_dict(self) -> Dict[str, Any]:
        """Full-fidelity snapshot, draw pile included. This is what gets persisted."""
        return {
            'roomId': self.room_id,
            'players': [p.to_dict() for p in self.players],
            'turnIndex': self.turn_index,
            'direction': self.direction,
            'status': self.status,
            'discardPile': [c.to_dict() for c in self.discard_pile],
            'currentColor': self.current_color,
            'drawPile': [c.to_dict() for c in self.draw_pile],
            'roundWinnerId': self.round_winner_id,
            'winnerId': self.winner_id,
            'deckCount': self.deck_count,
        }

    def sanitized(self) -> Dict[str, Any]:
        """Snapshot safe to send to clients: the draw pile order never leaves the server."""
        payload = self.to_dict()
        del payload['drawPile']
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GameState':
        return cls(
            room_id=data.get('roomId', ''),
            players=[Player.from_dict(p) for p in data.get('players', [])],
            turn_index=int(data.get('turnIndex', 0)),
            direction=-1 if data.get('direction') == -1 else 1,
            status=data.get('status') if data.get('status') in STATUSES else WAITING,
            discard_pile=[Card.from_dict(c) for c in data.get('discardPile', [])],
            current_color=data.get('currentColor') or 'red',
            draw_pile=[Card.from_dict(c) for c in data.get('drawPile', [])],
            round_winner_id=data.get('roundWinnerId'),
            winner_id=data.get('winnerId'),
        )
