from .state import COLORS, WILD, Card


def can_play(candidate: Card, top: Card, active_color: str) -> bool:
    """Whether ``candidate`` may be played on ``top``.

    ``active_color`` is always a resolved suit, so a wild on top needs no
    special case: matching the active color covers it.
    """
    if candidate.color == WILD:
        return True
    if candidate.color == active_color:
        return True
    return candidate.value == top.value


def next_turn(current: int, player_count: int, direction: int) -> int:
    return (current + direction + player_count) % player_count


def is_valid_color(color) -> bool:
    return color in COLORS
