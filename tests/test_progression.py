"""Tests for bracketeer/progression.py — recording results, cascades, byes."""

import random

import pytest

from bracketeer.bracket import (
    BracketMode,
    BracketModeError,
    Competitor,
    InvalidDecisionError,
    build_bracket,
    check_integrity,
)
from bracketeer.progression import is_bye, record_result, rename_competitor


def _roster(n: int) -> list[Competitor]:
    return [Competitor(id=f"c{i}", name=f"Player {i}") for i in range(n)]


def _manual(n: int, seed: int = 0):
    return build_bracket(_roster(n), BracketMode.MANUAL, random.Random(seed))


def _everywhere_after(bracket, round_index: int) -> set[str]:
    """Every id in slots or winner lists of rounds past round_index."""
    ids = set()
    for r in range(round_index + 1, len(bracket.rounds)):
        ids |= {c.id for m in bracket.rounds[r] for c in m.occupants()}
        ids |= {w.id for w in bracket.winners[r]}
    return ids


# ============================================================================
# Basic progression
# ============================================================================


class TestFourCompetitors:
    def test_winners_fill_final_slots_then_champion(self):
        bracket = _manual(4)
        m0, m1 = bracket.rounds[0]

        bracket = record_result(bracket, 0, 0, m0.a)
        assert bracket.rounds[1][0].a.id == m0.a.id
        assert bracket.rounds[1][0].b is None
        assert bracket.champion is None

        bracket = record_result(bracket, 0, 1, m1.b)
        assert bracket.rounds[1][0].b.id == m1.b.id
        assert bracket.champion is None

        bracket = record_result(bracket, 1, 0, bracket.rounds[1][0].b)
        assert bracket.champion is not None
        assert bracket.champion.id == m1.b.id
        check_integrity(bracket)

    def test_original_left_untouched(self):
        bracket = _manual(4)
        winner = bracket.rounds[0][0].a
        after = record_result(bracket, 0, 0, winner)
        assert after is not bracket
        assert bracket.rounds[1][0].a is None
        assert bracket.winners[0] == []

    def test_score_travels_with_winner(self):
        bracket = _manual(4)
        m0 = bracket.rounds[0][0]
        scored = Competitor(id=m0.a.id, name=m0.a.name, score=3)
        bracket = record_result(bracket, 0, 0, scored)
        assert bracket.rounds[1][0].a.score == 3
        assert bracket.winners[0][0].score == 3

    def test_changing_mind_swaps_the_slot(self):
        bracket = _manual(4)
        m0 = bracket.rounds[0][0]
        bracket = record_result(bracket, 0, 0, m0.a)
        bracket = record_result(bracket, 0, 0, m0.b)
        assert bracket.rounds[1][0].a.id == m0.b.id
        assert [w.id for w in bracket.winners[0]] == [m0.b.id]
        check_integrity(bracket)


# ============================================================================
# Idempotence
# ============================================================================


class TestIdempotence:
    def test_same_decision_twice(self):
        bracket = _manual(8)
        winner = bracket.rounds[0][2].b
        once = record_result(bracket, 0, 2, winner)
        twice = record_result(once, 0, 2, winner)
        assert twice == once

    def test_same_decision_twice_with_other_results_recorded(self):
        bracket = _manual(8)
        for mi, m in enumerate(bracket.rounds[0]):
            bracket = record_result(bracket, 0, mi, m.a)
        winner = bracket.rounds[0][1].a
        again = record_result(bracket, 0, 1, winner)
        assert again == bracket

    def test_final_twice(self):
        bracket = _manual(2)
        winner = bracket.rounds[0][0].a
        once = record_result(bracket, 0, 0, winner)
        assert record_result(once, 0, 0, winner) == once
        assert once.champion.id == winner.id


# ============================================================================
# Cascade
# ============================================================================


def _play_to_champion(bracket, pick: str = "a"):
    """Decide every match in order, always taking the same slot."""
    for r in range(len(bracket.rounds)):
        for mi in range(len(bracket.rounds[r])):
            m = bracket.rounds[r][mi]
            if len(m.occupants()) == 2:
                bracket = record_result(bracket, r, mi, getattr(m, pick))
    return bracket


class TestCascade:
    def test_overturned_first_round_clears_two_rounds_ahead(self):
        bracket = _play_to_champion(_manual(8))
        old = bracket.rounds[0][0].a
        new = bracket.rounds[0][0].b
        assert bracket.champion.id == old.id

        bracket = record_result(bracket, 0, 0, new)

        assert old.id not in _everywhere_after(bracket, 0)
        assert bracket.rounds[1][0].a.id == new.id
        assert bracket.rounds[2][0].a is None
        assert bracket.champion is None
        check_integrity(bracket)

    def test_other_branch_untouched(self):
        bracket = _play_to_champion(_manual(8))
        right_finalist = bracket.rounds[2][0].b
        bracket = record_result(bracket, 0, 0, bracket.rounds[0][0].b)
        assert bracket.rounds[2][0].b.id == right_finalist.id
        assert right_finalist.id in {w.id for w in bracket.winners[1]}

    def test_opponents_win_stands_against_the_new_entrant(self):
        bracket = _manual(8)
        for mi, m in enumerate(bracket.rounds[0]):
            bracket = record_result(bracket, 0, mi, m.a)
        semi = bracket.rounds[1][0]
        bracket = record_result(bracket, 1, 0, semi.b)
        survivor = semi.b

        replacement = bracket.rounds[0][0].b
        bracket = record_result(bracket, 0, 0, replacement)

        assert bracket.rounds[1][0].a.id == replacement.id
        assert bracket.rounds[2][0].a.id == survivor.id
        check_integrity(bracket)

    def test_overturn_deep_in_large_bracket(self):
        bracket = _play_to_champion(_manual(32, seed=7), pick="b")
        champion = bracket.champion
        # Find the first-round match the champion came from and flip it
        mi = next(i for i, m in enumerate(bracket.rounds[0]) if m.holds(champion.id))
        m = bracket.rounds[0][mi]
        other = m.a if m.b.id == champion.id else m.b
        bracket = record_result(bracket, 0, mi, other)
        assert champion.id not in _everywhere_after(bracket, 0)
        assert bracket.champion is None
        check_integrity(bracket)


# ============================================================================
# Byes beyond round 0
# ============================================================================


class TestByeAbsorption:
    def test_unopposed_in_round_one_advances_without_decision(self):
        # 6 -> 3 matches -> 2 matches; round 1 match 1 has no second feeder
        bracket = _manual(6)
        assert is_bye(bracket, 1, 1)
        assert not is_bye(bracket, 1, 0)

        m2 = bracket.rounds[0][2]
        bracket = record_result(bracket, 0, 2, m2.b)

        assert bracket.rounds[1][1].a.id == m2.b.id
        assert m2.b.id in {w.id for w in bracket.winners[1]}
        assert bracket.rounds[2][0].b.id == m2.b.id
        check_integrity(bracket)

    def test_overturning_a_bye_chain(self):
        bracket = _manual(6)
        m2 = bracket.rounds[0][2]
        bracket = record_result(bracket, 0, 2, m2.b)
        bracket = record_result(bracket, 0, 2, m2.a)
        assert m2.b.id not in _everywhere_after(bracket, 0)
        assert bracket.rounds[2][0].b.id == m2.a.id
        assert [w.id for w in bracket.winners[1]] == [m2.a.id]
        check_integrity(bracket)

    def test_half_filled_match_is_not_a_bye(self):
        bracket = _manual(4)
        bracket = record_result(bracket, 0, 0, bracket.rounds[0][0].a)
        assert bracket.winners[1] == []

    def test_odd_roster_plays_out(self):
        for n in (3, 5, 7, 11, 13, 23):
            bracket = _play_to_champion(_manual(n, seed=n))
            assert bracket.champion is not None
            check_integrity(bracket)


# ============================================================================
# Rejections and no-ops
# ============================================================================


class TestRejections:
    def test_random_mode_rejected(self):
        bracket = build_bracket(_roster(4), BracketMode.RANDOM, random.Random(0))
        with pytest.raises(BracketModeError):
            record_result(bracket, 0, 0, bracket.rounds[0][0].a)

    def test_out_of_range(self):
        bracket = _manual(4)
        winner = bracket.rounds[0][0].a
        with pytest.raises(InvalidDecisionError):
            record_result(bracket, 0, 5, winner)
        with pytest.raises(InvalidDecisionError):
            record_result(bracket, 3, 0, winner)

    def test_winner_not_in_match(self):
        bracket = _manual(4)
        stranger = bracket.rounds[0][1].a
        with pytest.raises(InvalidDecisionError):
            record_result(bracket, 0, 0, stranger)

    def test_bye_match_is_noop(self):
        bracket = _manual(5)
        bye = bracket.rounds[0][2].a
        after = record_result(bracket, 0, 2, bye)
        assert after == bracket
        assert after is not bracket

    def test_undetermined_match_is_noop(self):
        bracket = _manual(4)
        bracket = record_result(bracket, 0, 0, bracket.rounds[0][0].a)
        waiting = bracket.rounds[1][0].a
        after = record_result(bracket, 1, 0, waiting)
        assert after == bracket

    def test_stranger_on_bye_match_rejected(self):
        bracket = _manual(5)
        stranger = bracket.rounds[0][0].a
        with pytest.raises(InvalidDecisionError):
            record_result(bracket, 0, 2, stranger)

    def test_anyone_on_empty_match_rejected(self):
        bracket = _manual(4)
        with pytest.raises(InvalidDecisionError):
            record_result(bracket, 1, 0, bracket.rounds[0][0].a)


# ============================================================================
# Rename
# ============================================================================


class TestRename:
    def test_rename_everywhere(self):
        bracket = _play_to_champion(_manual(4))
        champ_id = bracket.champion.id
        renamed = rename_competitor(bracket, champ_id, "name", "The Champ")
        assert renamed.champion.name == "The Champ"
        for r in range(len(renamed.rounds)):
            for m in renamed.rounds[r]:
                for c in m.occupants():
                    if c.id == champ_id:
                        assert c.name == "The Champ"
        assert bracket.champion.name != "The Champ"

    def test_rename_subtitle(self):
        bracket = _manual(4)
        target = bracket.rounds[0][0].a.id
        renamed = rename_competitor(bracket, target, "subtitle", "Team Blue")
        assert renamed.rounds[0][0].a.subtitle == "Team Blue"

    def test_rename_blank_name(self):
        bracket = _manual(4)
        with pytest.raises(ValueError):
            rename_competitor(bracket, bracket.rounds[0][0].a.id, "name", "   ")

    def test_blank_subtitle_allowed(self):
        bracket = _manual(4)
        target = bracket.rounds[0][0].a.id
        renamed = rename_competitor(bracket, target, "subtitle", "")
        assert renamed.rounds[0][0].a.subtitle == ""

    def test_rename_bad_field(self):
        with pytest.raises(ValueError):
            rename_competitor(_manual(4), "c0", "id", "x")

    def test_rename_unknown_id_changes_nothing(self):
        bracket = _manual(4)
        assert rename_competitor(bracket, "nobody", "name", "x") == bracket
