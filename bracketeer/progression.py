"""
bracketeer/progression.py - Recording results and moving winners forward

record_result() never touches the bracket it is given. It deep-copies the
tree, undoes whatever the match previously pushed downstream, records the new
winner, then walks every later round placing winners and absorbing byes.
"""

import copy
import logging

from .bracket import (
    Bracket,
    BracketMode,
    BracketModeError,
    Competitor,
    InvalidDecisionError,
    Match,
    next_slot,
)

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "subtitle")


# ============================================================================
# Public API
# ============================================================================


def record_result(
    bracket: Bracket,
    round_index: int,
    match_index: int,
    winner: Competitor,
) -> Bracket:
    """
    Apply one match decision and return the new bracket.

    Args:
        bracket: Current state. Left untouched.
        round_index: Round of the decided match.
        match_index: Position of the match within the round.
        winner: One of the two occupants, score already attached.

    Returns:
        A new Bracket. Deciding a match that lacks two occupants (a bye, or an
        opponent not known yet) returns an unchanged copy.

    Raises:
        BracketModeError: The bracket was auto-resolved at build time.
        InvalidDecisionError: Index out of range, or winner isn't in the match.
    """
    if bracket.mode is BracketMode.RANDOM:
        raise BracketModeError("Random brackets are resolved at build time")

    match = bracket.match(round_index, match_index)

    if not match.holds(winner.id):
        raise InvalidDecisionError(
            f"{winner.id} is not playing in round {round_index} match {match_index}"
        )

    if len(match.occupants()) < 2:
        logger.debug(f"Round {round_index} match {match_index} has no opponent yet, nothing to decide")
        return copy.deepcopy(bracket)

    result = copy.deepcopy(bracket)
    _clear_downstream(result, round_index, match_index)
    _record(result, round_index, result.rounds[round_index][match_index], copy.deepcopy(winner))
    propagate(result, round_index)

    logger.info(f"Round {round_index} match {match_index}: {winner.name} wins")
    if result.champion is not None and round_index == len(result.rounds) - 1:
        logger.info(f"Champion: {result.champion.name}")
    return result


def propagate(bracket: Bracket, start_round: int = 0) -> None:
    """Place every recorded winner from start_round onward into its next slot (in place)."""
    for r in range(start_round, len(bracket.rounds) - 1):
        current = bracket.rounds[r]
        upcoming = bracket.rounds[r + 1]
        for w in bracket.winners[r]:
            mi = _find_match(current, w.id)
            if mi is None:
                continue
            nmi, slot = next_slot(mi)
            setattr(upcoming[nmi], slot, w)
        _absorb_byes(bracket, r + 1)


def is_bye(bracket: Bracket, round_index: int, match_index: int) -> bool:
    """True when slot b of this match can never be filled."""
    if round_index == 0:
        m = bracket.rounds[0][match_index]
        return m.a is not None and m.b is None
    return match_index * 2 + 1 >= len(bracket.rounds[round_index - 1])


def rename_competitor(bracket: Bracket, competitor_id: str, field: str, value: str) -> Bracket:
    """Change a competitor's name or subtitle everywhere it appears in the tree."""
    if field not in EDITABLE_FIELDS:
        raise ValueError(f"Can't edit {field!r}; expected one of {EDITABLE_FIELDS}")
    if field == "name" and not value.strip():
        raise ValueError("Competitor name can't be blank")

    result = copy.deepcopy(bracket)
    touched = 0
    for rnd in result.rounds:
        for m in rnd:
            for c in m.occupants():
                if c.id == competitor_id:
                    setattr(c, field, value)
                    touched += 1
    for rnd in result.winners:
        for w in rnd:
            if w.id == competitor_id:
                setattr(w, field, value)
                touched += 1

    if touched:
        logger.info(f"Renamed {competitor_id} {field} -> {value!r}")
    return result


# ============================================================================
# Internals
# ============================================================================


def _clear_downstream(bracket: Bracket, round_index: int, match_index: int) -> None:
    """Empty the slot this match fed and everything that slot fed in turn."""
    if round_index + 1 >= len(bracket.rounds):
        return
    nmi, slot = next_slot(match_index)
    upcoming = bracket.rounds[round_index + 1][nmi]
    progressed = getattr(upcoming, slot)
    if progressed is None:
        return

    setattr(upcoming, slot, None)
    bracket.winners[round_index + 1] = [
        w for w in bracket.winners[round_index + 1] if w.id != progressed.id
    ]
    _clear_downstream(bracket, round_index + 1, nmi)


def _record(bracket: Bracket, round_index: int, match: Match, winner: Competitor) -> None:
    """Swap this match's entry in the round's winners, keeping its position."""
    previous = bracket.winners[round_index]
    position = next((i for i, w in enumerate(previous) if match.holds(w.id)), len(previous))
    kept = [w for w in previous[:position] if not match.holds(w.id)]
    rest = [w for w in previous[position:] if not match.holds(w.id)]
    bracket.winners[round_index] = kept + [winner] + rest


def _absorb_byes(bracket: Bracket, round_index: int) -> None:
    # An unopposed occupant wins its round without a decision
    winners = bracket.winners[round_index]
    for mi, m in enumerate(bracket.rounds[round_index]):
        if m.a is None or m.b is not None or not is_bye(bracket, round_index, mi):
            continue
        if not any(w.id == m.a.id for w in winners):
            winners.append(m.a)


def _find_match(matches: list[Match], competitor_id: str) -> int | None:
    for i, m in enumerate(matches):
        if m.holds(competitor_id):
            return i
    return None
