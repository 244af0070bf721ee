"""Room state machine.

Owns the rules of one room: every action goes through ``RoomStateMachine.apply``
which validates it against the current status and turn, mutates the state,
and reports what the caller has to persist and tell the clients.

Status flow: waiting -> playing -> (round_over -> playing)* -> finished.
"""
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from . import actions as a
from .deck import build_deck, shuffle
from .rules import can_play, is_valid_color, next_turn
from .scoring import round_points
from .state import (
    DRAW_TWO, FINISHED, PLAYING, REVERSE, ROUND_OVER, SKIP, WAITING, WILD_DRAW_FOUR,
    Card, GameState, Player,
)


MIN_PLAYERS = 2
MAX_PLAYERS = 6
HAND_SIZE = 7
WINNING_SCORE = 500
FALLBACK_COLOR = 'red'


class IllegalAction(Exception):
    """The action does not apply to the room in its current state."""

    def __init__(self, message: str = ''):
        super().__init__(message)
        self.message = message


class ActionIgnored(IllegalAction):
    """Dropped without telling the sender (wrong turn, wrong phase, unknown card)."""


class ActionRejected(IllegalAction):
    """Answered with an ERROR message to the sender only."""


@dataclass
class Outcome:
    changed: bool = False
    error: Optional[str] = None
    ignored: Optional[str] = None
    reply_state: bool = False
    player_id: Optional[str] = None
    notifications: List[str] = field(default_factory=list)
    chat: Optional[dict] = None


class RoomStateMachine:
    def __init__(self, state: GameState, rng: Optional[random.Random] = None,
                 clock: Callable[[], float] = time.time):
        self.state = state
        self.rng = rng
        self.clock = clock
        self._handlers = {
            a.Join: self._join,
            a.Start: self._start,
            a.PlayCard: self._play_card,
            a.DrawCard: self._draw_card,
            a.PassTurn: self._pass_turn,
            a.SayUno: self._say_uno,
            a.CatchUno: self._catch_uno,
            a.NextRound: self._next_round,
            a.Chat: self._chat,
        }

    def apply(self, action: a.Action) -> Outcome:
        outcome = Outcome()
        handler = self._handlers.get(type(action))
        if handler is None:
            outcome.ignored = f'unsupported action {type(action).__name__}'
            return outcome
        try:
            handler(action, outcome)
        except ActionRejected as exc:
            return Outcome(error=exc.message)
        except ActionIgnored as exc:
            return Outcome(ignored=exc.message or type(action).__name__)
        return outcome

    # ---- helpers ----

    def _require_status(self, *statuses: str) -> None:
        if self.state.status not in statuses:
            raise ActionIgnored(f'room is {self.state.status}')

    def _require_player(self, player_id: Optional[str]) -> Player:
        player = self.state.find_player(player_id)
        if player is None:
            raise ActionIgnored(f'unknown player {player_id!r}')
        return player

    def _require_turn(self, player_id: Optional[str]) -> Player:
        self._require_status(PLAYING)
        player = self._require_player(player_id)
        if self.state.current_player is not player:
            raise ActionIgnored(f'not the turn of {player.id}')
        return player

    def _advance(self, steps: int = 1) -> None:
        count = len(self.state.players)
        for _ in range(steps):
            self.state.turn_index = next_turn(self.state.turn_index, count, self.state.direction)

    def _recycle_discard(self, outcome: Outcome) -> None:
        """Shuffle everything under the top discard back into the draw pile."""
        if len(self.state.discard_pile) < 2:
            return
        top = self.state.discard_pile[-1]
        self.state.draw_pile = shuffle(self.state.discard_pile[:-1], self.rng)
        self.state.discard_pile = [top]
        outcome.notifications.append('Draw pile was empty, discard pile reshuffled')

    def _draw(self, count: int, outcome: Outcome) -> List[Card]:
        drawn: List[Card] = []
        for _ in range(count):
            if not self.state.draw_pile:
                self._recycle_discard(outcome)
            if not self.state.draw_pile:
                break
            drawn.append(self.state.draw_pile.pop(0))
        return drawn

    def _give(self, player: Player, count: int, outcome: Outcome) -> None:
        player.hand.extend(self._draw(count, outcome))
        if len(player.hand) > 1:
            player.said_uno = False

    def _deal_round(self) -> None:
        deck = shuffle(build_deck(), self.rng)
        for player in self.state.players:
            player.hand = deck[:HAND_SIZE]
            del deck[:HAND_SIZE]
            player.said_uno = False
            player.has_drawn = False

        starter = deck.pop(0)
        buried = []
        while starter.is_wild:
            buried.append(starter)
            starter = deck.pop(0)
        deck.extend(buried)

        self.state.discard_pile = [starter]
        self.state.current_color = starter.color
        self.state.draw_pile = deck
        self.state.status = PLAYING
        self.state.turn_index = 0
        self.state.direction = 1
        self.state.round_winner_id = None

    def _end_round(self, winner: Player, outcome: Outcome) -> None:
        points = round_points(self.state.players, winner.id)
        winner.score += points
        self.state.round_winner_id = winner.id
        for p in self.state.players:
            p.has_drawn = False
        if winner.score >= WINNING_SCORE:
            self.state.status = FINISHED
            self.state.winner_id = winner.id
            outcome.notifications.append(f'{winner.name} won the match with {winner.score} points!')
        else:
            self.state.status = ROUND_OVER
            outcome.notifications.append(f'{winner.name} won the round (+{points} points)')

    # ---- handlers ----

    def _join(self, action: a.Join, outcome: Outcome) -> None:
        existing = self.state.find_player(action.player_id)
        if existing is not None:
            # Reconnection: nothing changes, the sender just gets the current state
            outcome.reply_state = True
            outcome.player_id = existing.id
            return
        if self.state.status != WAITING:
            raise ActionRejected('Game already in progress')
        if len(self.state.players) >= MAX_PLAYERS:
            raise ActionRejected('Room full')

        player = Player(id=action.player_id or str(uuid.uuid4()), name=action.name or 'Guest')
        self.state.players.append(player)
        outcome.player_id = player.id
        outcome.changed = True
        outcome.notifications.append(f'{player.name} joined the room')

    def _start(self, action: a.Start, outcome: Outcome) -> None:
        self._require_status(WAITING)
        if action.player_id:
            self._require_player(action.player_id)
        if len(self.state.players) < MIN_PLAYERS:
            raise ActionRejected(f'At least {MIN_PLAYERS} players are required to start')
        self._deal_round()
        outcome.changed = True

    def _play_card(self, action: a.PlayCard, outcome: Outcome) -> None:
        player = self._require_turn(action.player_id)
        card = player.card(action.card_id)
        if card is None:
            raise ActionIgnored(f'{player.id} does not hold {action.card_id}')
        if not can_play(card, self.state.top_card, self.state.current_color):
            raise ActionRejected('That card cannot be played')

        player.hand.remove(card)
        self.state.discard_pile.append(card)
        for p in self.state.players:
            p.has_drawn = False

        player_count = len(self.state.players)
        steps = 1
        penalty = 0
        if card.value == SKIP:
            steps = 2
        elif card.value == REVERSE:
            self.state.direction *= -1
            # With two players a reverse hands the turn straight back, like a skip
            if player_count == 2:
                steps = 2
        elif card.value == DRAW_TWO:
            steps, penalty = 2, 2
        elif card.value == WILD_DRAW_FOUR:
            steps, penalty = 2, 4

        if penalty:
            victim = self.state.players[next_turn(self.state.turn_index, player_count, self.state.direction)]
            self._give(victim, penalty, outcome)
        self._advance(steps)

        if card.is_wild:
            color = action.chosen_color
            self.state.current_color = color if is_valid_color(color) else FALLBACK_COLOR
        else:
            self.state.current_color = card.color

        if len(player.hand) > 1:
            player.said_uno = False
        outcome.changed = True

        if not player.hand:
            self._end_round(player, outcome)

    def _draw_card(self, action: a.DrawCard, outcome: Outcome) -> None:
        player = self._require_turn(action.player_id)
        if player.has_drawn:
            raise ActionIgnored(f'{player.id} already drew this turn')

        drawn = self._draw(1, outcome)
        player.said_uno = False
        outcome.changed = True
        if not drawn:
            outcome.notifications.append(f'No cards left to draw, {player.name} passes')
            self._advance(1)
            return

        card = drawn[0]
        player.hand.append(card)
        if can_play(card, self.state.top_card, self.state.current_color):
            player.has_drawn = True
        else:
            self._advance(1)

    def _pass_turn(self, action: a.PassTurn, outcome: Outcome) -> None:
        player = self._require_turn(action.player_id)
        if not player.has_drawn:
            raise ActionIgnored(f'{player.id} must draw before passing')
        player.has_drawn = False
        self._advance(1)
        outcome.changed = True

    def _say_uno(self, action: a.SayUno, outcome: Outcome) -> None:
        self._require_status(PLAYING)
        player = self._require_player(action.player_id)
        if len(player.hand) not in (1, 2):
            raise ActionIgnored(f'{player.id} holds {len(player.hand)} cards')
        player.said_uno = True
        outcome.changed = True
        outcome.notifications.append(f'{player.name} shouted UNO!')

    def _catch_uno(self, action: a.CatchUno, outcome: Outcome) -> None:
        self._require_status(PLAYING)
        accuser = self._require_player(action.player_id)
        target = self._require_player(action.target_id)
        if accuser is target or len(target.hand) != 1 or target.said_uno:
            raise ActionRejected('Nothing to catch')
        self._give(target, 2, outcome)
        target.said_uno = False
        outcome.changed = True
        outcome.notifications.append(f'{accuser.name} caught {target.name} without UNO! +2 cards')

    def _next_round(self, action: a.NextRound, outcome: Outcome) -> None:
        self._require_status(ROUND_OVER)
        if action.player_id:
            self._require_player(action.player_id)
        self._deal_round()
        outcome.changed = True

    def _chat(self, action: a.Chat, outcome: Outcome) -> None:
        sender = self._require_player(action.player_id)
        outcome.chat = {
            'senderId': sender.id,
            'senderName': sender.name,
            'encryptedMessage': action.encrypted_message,
            'timestamp': int(self.clock() * 1000),
        }
