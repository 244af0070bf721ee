import random
import uuid
from collections import Counter
from typing import Iterable, List, Optional

from .state import ACTION_VALUES, COLORS, NUMBER_VALUES, WILD, WILD_VALUES, Card


_system_random = random.SystemRandom()


def build_deck() -> List[Card]:
    """Build the 108-card deck in construction order.

    Per color: one "0", two of "1".."9", two of each action card.
    Then four of each wild, colorless.
    """
    deck: List[Card] = []
    for color in COLORS:
        deck.append(Card(id=str(uuid.uuid4()), color=color, value='0'))
        for _ in range(2):
            for value in NUMBER_VALUES[1:]:
                deck.append(Card(id=str(uuid.uuid4()), color=color, value=value))
        for _ in range(2):
            for value in ACTION_VALUES:
                deck.append(Card(id=str(uuid.uuid4()), color=color, value=value))
    for _ in range(4):
        for value in WILD_VALUES:
            deck.append(Card(id=str(uuid.uuid4()), color=WILD, value=value))
    return deck


def shuffle(deck: Iterable[Card], rng: Optional[random.Random] = None) -> List[Card]:
    """Return a uniformly shuffled copy of ``deck``; the input is left untouched."""
    shuffled = list(deck)
    (rng or _system_random).shuffle(shuffled)
    return shuffled


def composition(cards: Iterable[Card]) -> Counter:
    return Counter((c.color, c.value) for c in cards)
