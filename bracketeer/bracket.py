"""
bracketeer/bracket.py - Bracket data types and the bracket builder

A bracket is a list of rounds (each a list of two-slot matches) plus a
parallel list of winners per round. Competitors are matched by id, never by
object identity: the progression engine copies the tree on every change.
"""

import logging
import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


# ============================================================================
# Errors
# ============================================================================


class InvalidDecisionError(ValueError):
    """Raised when a match decision doesn't fit the bracket (bad index, stranger winner)."""


class BracketModeError(InvalidDecisionError):
    """Raised when a decision is made on an auto-resolved bracket."""


class BracketIntegrityError(RuntimeError):
    """Raised when the tree breaks its own invariants. Always a bug."""


# ============================================================================
# Data Types
# ============================================================================


class BracketMode(str, Enum):
    RANDOM = "random"  # every match auto-resolved at build time
    MANUAL = "manual"  # results recorded one by one


@dataclass
class Competitor:
    """One entrant. Identity is the id; everything else is cosmetic."""

    id: str
    name: str
    subtitle: str = ""
    image_url: str | None = None
    score: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "subtitle": self.subtitle,
            "image_url": self.image_url,
            "score": self.score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Competitor":
        return cls(
            id=data["id"],
            name=data["name"],
            subtitle=data.get("subtitle") or "",
            image_url=data.get("image_url") or _first_image(data),
            score=data.get("score"),
        )


def _first_image(data: dict[str, Any]) -> str | None:
    """Older roster documents carry images as [{"url": ...}]."""
    images = data.get("images") or []
    if images and isinstance(images[0], dict):
        return images[0].get("url")
    return None


@dataclass
class Match:
    """Two slots. None means a bye or an opponent not decided yet."""

    a: Competitor | None = None
    b: Competitor | None = None

    def occupants(self) -> list[Competitor]:
        return [c for c in (self.a, self.b) if c is not None]

    def holds(self, competitor_id: str) -> bool:
        return any(c.id == competitor_id for c in self.occupants())

    def to_dict(self) -> dict[str, Any]:
        return {
            "a": self.a.to_dict() if self.a else None,
            "b": self.b.to_dict() if self.b else None,
        }


@dataclass
class Bracket:
    """Rounds plus the winners registry, built in one mode for its whole life."""

    rounds: list[list[Match]] = field(default_factory=list)
    winners: list[list[Competitor]] = field(default_factory=list)
    mode: BracketMode = BracketMode.MANUAL

    @property
    def champion(self) -> Competitor | None:
        if not self.winners or not self.winners[-1]:
            return None
        return self.winners[-1][0]

    def match(self, round_index: int, match_index: int) -> Match:
        """Look up a match, raising InvalidDecisionError when out of range."""
        if not 0 <= round_index < len(self.rounds):
            raise InvalidDecisionError(
                f"Round {round_index} out of range (bracket has {len(self.rounds)} rounds)"
            )
        matches = self.rounds[round_index]
        if not 0 <= match_index < len(matches):
            raise InvalidDecisionError(
                f"Match {match_index} out of range (round {round_index} has {len(matches)} matches)"
            )
        return matches[match_index]

    def winner_of(self, round_index: int, match_index: int) -> Competitor | None:
        """The recorded winner of a match, if any."""
        match = self.rounds[round_index][match_index]
        for w in self.winners[round_index]:
            if match.holds(w.id):
                return w
        return None

    def to_dict(self) -> dict[str, Any]:
        champion = self.champion
        return {
            "mode": self.mode.value,
            "rounds": [[m.to_dict() for m in rnd] for rnd in self.rounds],
            "winners": [[w.to_dict() for w in rnd] for rnd in self.winners],
            "champion": champion.to_dict() if champion else None,
        }


def next_slot(match_index: int) -> tuple[int, str]:
    """Where the winner of a match lands in the following round."""
    return match_index // 2, "a" if match_index % 2 == 0 else "b"


def round_count(n_competitors: int) -> int:
    """Number of rounds a bracket of n competitors needs."""
    if n_competitors < 2:
        return 0
    return math.ceil(math.log2(n_competitors))


# ============================================================================
# Builder
# ============================================================================


def build_bracket(
    competitors: list[Competitor],
    mode: BracketMode = BracketMode.MANUAL,
    rng: random.Random | None = None,
) -> Bracket:
    """
    Seed and pair a fresh bracket.

    Args:
        competitors: Entrants in roster order. Fewer than two gives an empty bracket.
        mode: RANDOM resolves every match now; MANUAL leaves them for record_result.
        rng: Source of randomness (seeded in tests).

    Returns:
        A new Bracket. The input list is not modified.
    """
    mode = BracketMode(mode)
    if len(competitors) < 2:
        return Bracket(mode=mode)

    rng = rng or random.Random()
    players = list(competitors)
    rng.shuffle(players)

    bye = players.pop() if len(players) % 2 else None

    first_round = [Match(a=players[i], b=players[i + 1]) for i in range(0, len(players), 2)]
    if bye is not None:
        first_round.append(Match(a=bye, b=None))

    if mode is BracketMode.RANDOM:
        bracket = _resolve_randomly(first_round, rng)
    else:
        bracket = _allocate_manual(first_round)

    logger.info(
        f"Built {mode.value} bracket: {len(competitors)} competitors, "
        f"{len(bracket.rounds)} rounds"
        + (f", bye for {bye.name}" if bye else "")
    )
    return bracket


def _resolve_randomly(first_round: list[Match], rng: random.Random) -> Bracket:
    rounds = [first_round]
    winners = [[_coin_flip(m, rng) for m in first_round]]

    current = winners[0]
    while len(current) > 1:
        matches = [
            Match(a=current[i], b=current[i + 1] if i + 1 < len(current) else None)
            for i in range(0, len(current), 2)
        ]
        current = [_coin_flip(m, rng) for m in matches]
        rounds.append(matches)
        winners.append(current)

    return Bracket(rounds=rounds, winners=winners, mode=BracketMode.RANDOM)


def _coin_flip(match: Match, rng: random.Random) -> Competitor:
    if match.b is None:
        return match.a
    return rng.choice([match.a, match.b])


def _allocate_manual(first_round: list[Match]) -> Bracket:
    # Only byes win round 0 up front
    rounds = [first_round]
    winners = [[m.a for m in first_round if m.a is not None and m.b is None]]

    size = len(first_round)
    while size > 1:
        size = math.ceil(size / 2)
        rounds.append([Match() for _ in range(size)])
        winners.append([])

    bracket = Bracket(rounds=rounds, winners=winners, mode=BracketMode.MANUAL)

    from .progression import propagate

    propagate(bracket, 0)
    return bracket


# ============================================================================
# Integrity
# ============================================================================


def check_integrity(bracket: Bracket) -> None:
    """
    Verify the tree invariants. Raises BracketIntegrityError on the first violation.

    - rounds and winners are parallel, and round sizes halve (rounding up)
    - nobody sits in two matches of the same round
    - every winner is an occupant of exactly one match in its round
    - every winner below the final sits in the slot its match feeds
    - every occupied slot past round 0 is fed by a recorded winner
    """
    if len(bracket.rounds) != len(bracket.winners):
        raise BracketIntegrityError(
            f"{len(bracket.rounds)} rounds but {len(bracket.winners)} winner lists"
        )

    for r in range(1, len(bracket.rounds)):
        expected = math.ceil(len(bracket.rounds[r - 1]) / 2)
        if len(bracket.rounds[r]) != expected:
            raise BracketIntegrityError(
                f"Round {r} has {len(bracket.rounds[r])} matches, expected {expected}"
            )

    for r, matches in enumerate(bracket.rounds):
        seen: set[str] = set()
        for m in matches:
            for c in m.occupants():
                if c.id in seen:
                    raise BracketIntegrityError(f"{c.id} appears twice in round {r}")
                seen.add(c.id)

        winner_ids = [w.id for w in bracket.winners[r]]
        if len(winner_ids) != len(set(winner_ids)):
            raise BracketIntegrityError(f"Duplicate winners in round {r}")
        for w in bracket.winners[r]:
            if w.id not in seen:
                raise BracketIntegrityError(f"Winner {w.id} is not in round {r}")

        if r + 1 >= len(bracket.rounds):
            continue

        for w in bracket.winners[r]:
            mi = next(i for i, m in enumerate(matches) if m.holds(w.id))
            nmi, slot = next_slot(mi)
            placed = getattr(bracket.rounds[r + 1][nmi], slot)
            if placed is None or placed.id != w.id:
                raise BracketIntegrityError(
                    f"Winner {w.id} of round {r} match {mi} missing from "
                    f"round {r + 1} match {nmi} slot {slot}"
                )

        for nmi, m in enumerate(bracket.rounds[r + 1]):
            for slot in ("a", "b"):
                occupant = getattr(m, slot)
                if occupant is None:
                    continue
                feeder = nmi * 2 + (0 if slot == "a" else 1)
                recorded = bracket.winner_of(r, feeder) if feeder < len(matches) else None
                if recorded is None or recorded.id != occupant.id:
                    raise BracketIntegrityError(
                        f"Round {r + 1} match {nmi} slot {slot} holds {occupant.id} "
                        f"without a recorded win in round {r}"
                    )


# ============================================================================
# Persistence Records
# ============================================================================


def match_records(bracket: Bracket, tournament_id: str) -> list[dict[str, Any]]:
    """Flatten the tree into one document per match, keyed for upsert."""
    records = []
    for r, matches in enumerate(bracket.rounds):
        for mi, m in enumerate(matches):
            winner = bracket.winner_of(r, mi)
            records.append({
                "tournament_id": tournament_id,
                "round_index": r,
                "match_index": mi,
                "a": m.a.to_dict() if m.a else None,
                "b": m.b.to_dict() if m.b else None,
                "winner_id": winner.id if winner else None,
            })
    return records
