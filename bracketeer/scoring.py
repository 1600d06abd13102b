"""
bracketeer/scoring.py - Score entry, tie-breaks, and the per-match countdown

The progression engine only takes a winner. This is the layer above it that
turns two scores into that winner, and the clock an operator runs while the
match is being played. The clock knows nothing about the bracket.
"""

import copy
import logging
import random
from dataclasses import replace

from .bracket import Bracket, BracketMode, BracketModeError, Competitor, InvalidDecisionError, Match
from .progression import record_result

logger = logging.getLogger(__name__)

DEFAULT_TIMER_SECONDS = 300
WARNING_SECONDS = 60


# ============================================================================
# Tie-break
# ============================================================================


def pick_winner(
    match: Match,
    score_a: int,
    score_b: int,
    rng: random.Random | None = None,
) -> Competitor:
    """
    Higher score wins. Equal scores go to a coin flip.

    Returns a copy of the winning occupant with its score attached.
    """
    if match.a is None or match.b is None:
        raise InvalidDecisionError("Both slots must be filled to score a match")
    if score_a < 0 or score_b < 0:
        raise InvalidDecisionError(f"Scores can't be negative ({score_a}-{score_b})")

    a = replace(match.a, score=score_a)
    b = replace(match.b, score=score_b)
    if score_a > score_b:
        return a
    if score_b > score_a:
        return b

    winner = (rng or random.Random()).choice([a, b])
    logger.info(f"Tied {score_a}-{score_b}, coin flip goes to {winner.name}")
    return winner


def decide_match(
    bracket: Bracket,
    round_index: int,
    match_index: int,
    score_a: int,
    score_b: int,
    rng: random.Random | None = None,
) -> Bracket:
    """Record both scores on the match, then progress whoever won."""
    if bracket.mode is BracketMode.RANDOM:
        raise BracketModeError("Random brackets are resolved at build time")

    match = bracket.match(round_index, match_index)
    winner = pick_winner(match, score_a, score_b, rng)

    scored = copy.deepcopy(bracket)
    target = scored.rounds[round_index][match_index]
    target.a = replace(target.a, score=score_a)
    target.b = replace(target.b, score=score_b)
    return record_result(scored, round_index, match_index, winner)


# ============================================================================
# Match Timer
# ============================================================================


def format_clock(seconds: int) -> str:
    """Seconds as MM:SS."""
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"


class MatchTimer:
    """
    Countdown for one match. Driven by tick(), one call per elapsed second.

    Closing the match simply drops the timer; nothing else holds a reference.
    """

    def __init__(self, duration: int = DEFAULT_TIMER_SECONDS):
        if duration < 0:
            raise ValueError("Timer duration can't be negative")
        self.duration = duration
        self.remaining = duration
        self.running = False
        self.expired = False

    @property
    def warning(self) -> bool:
        """Last minute of play."""
        return not self.expired and self.remaining <= WARNING_SECONDS

    @property
    def display(self) -> str:
        return format_clock(self.remaining)

    def toggle(self) -> bool:
        """Start or pause. Starting an expired clock rewinds it first. Returns running."""
        if self.running:
            self.running = False
            return False
        if self.remaining == 0:
            self.remaining = self.duration
            self.expired = False
        self.running = True
        return True

    def reset(self) -> None:
        self.remaining = self.duration
        self.running = False
        self.expired = False

    def set_duration(self, minutes: int, seconds: int = 0) -> None:
        """Change the length of the match. Resets the clock."""
        if minutes < 0 or not 0 <= seconds < 60:
            raise ValueError(f"Invalid duration {minutes}m {seconds}s")
        self.duration = minutes * 60 + seconds
        self.reset()

    def tick(self) -> bool:
        """Advance one second. Returns True on the tick that hits zero."""
        if not self.running or self.remaining <= 0:
            return False
        self.remaining -= 1
        if self.remaining == 0:
            self.running = False
            self.expired = True
            logger.info("Match timer expired")
            return True
        return False
