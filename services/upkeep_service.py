"""
Upkeep service: the eligibility predicate polled by external automation.

Pure function over already-loaded values, never touches the session, so
pollers can call it as often as they like.
"""
from typing import Tuple

from models import Raffle, RaffleState

# Reserved for forward compatibility; always empty.
PERFORM_DATA = b""


def check_upkeep(raffle: Raffle, player_count: int, now: int) -> Tuple[bool, bytes]:
    """
    A draw may be triggered when the interval has fully elapsed since the
    last settlement, the raffle is OPEN and at least one player entered.
    """
    time_has_passed = (now - raffle.last_timestamp) > raffle.interval
    is_open = raffle.state == RaffleState.OPEN
    has_players = player_count > 0
    return (time_has_passed and is_open and has_players), PERFORM_DATA
