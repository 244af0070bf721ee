from typing import Iterable

from .state import ACTION_VALUES, WILD_VALUES, Card, Player


ACTION_CARD_POINTS = 20
WILD_CARD_POINTS = 50


def hand_points(hand: Iterable[Card]) -> int:
    """Penalty points left in a hand: face value, 20 per action card, 50 per wild."""
    total = 0
    for card in hand:
        if card.value.isdigit():
            total += int(card.value)
        elif card.value in ACTION_VALUES:
            total += ACTION_CARD_POINTS
        elif card.value in WILD_VALUES:
            total += WILD_CARD_POINTS
    return total


def round_points(players: Iterable[Player], winner_id: str) -> int:
    """Points the round winner collects from everyone else's hand."""
    return sum(hand_points(p.hand) for p in players if p.id != winner_id)
