"""Tests for scoreboard/db.py — SQLite roster and match-record storage."""

import json
import random

import pytest

from bracketeer.bracket import BracketMode, Competitor, build_bracket, match_records
from scoreboard.db import ROSTER_DOC_ID, BracketDB


@pytest.fixture
def db():
    """Fresh in-memory DB for each test."""
    return BracketDB(":memory:")


def _record(tournament_id="cup", round_index=0, match_index=0, **extra):
    return {
        "tournament_id": tournament_id,
        "round_index": round_index,
        "match_index": match_index,
        "a": None,
        "b": None,
        "winner_id": None,
        **extra,
    }


class TestCompetitors:
    def test_empty(self, db):
        assert db.load_competitors() == []

    def test_save_and_load(self, db):
        roster = [
            Competitor(id="competitor_1", name="Ana", subtitle="Red", image_url="data:image/png;base64,AA=="),
            Competitor(id="competitor_2", name="Bo", score=3),
        ]
        assert db.save_competitors(roster) is True
        assert db.load_competitors() == roster

    def test_save_replaces(self, db):
        db.save_competitors([Competitor(id="x", name="X")])
        db.save_competitors([Competitor(id="y", name="Y")])
        assert [c.id for c in db.load_competitors()] == ["y"]

    def test_save_twice_is_harmless(self, db):
        roster = [Competitor(id="x", name="X")]
        db.save_competitors(roster)
        db.save_competitors(roster)
        assert db.load_competitors() == roster

    def test_reads_legacy_image_list(self, db):
        legacy = [{"id": "c1", "name": "Ana", "images": [{"url": "https://example.com/a.png"}]}]
        db._conn.execute(
            "INSERT INTO competitors (id, data) VALUES (?, ?)", (ROSTER_DOC_ID, json.dumps(legacy))
        )
        assert db.load_competitors()[0].image_url == "https://example.com/a.png"


class TestMatches:
    def test_upsert_by_key(self, db):
        db.save_matches([_record(winner_id=None)])
        first = db.load_matches("cup")[0]

        db.save_matches([_record(winner_id="c1")])
        rows = db.load_matches("cup")
        assert len(rows) == 1
        assert rows[0]["winner_id"] == "c1"
        assert rows[0]["created_at"] == first["created_at"]
        assert rows[0]["updated_at"] >= first["updated_at"]

    def test_extra_fields_kept(self, db):
        db.save_matches([_record(note="rematch")])
        assert db.load_matches("cup")[0]["note"] == "rematch"

    def test_filter_by_tournament(self, db):
        db.save_matches([_record("cup"), _record("league"), _record("cup", 0, 1)])
        assert len(db.load_matches("cup")) == 2
        assert len(db.load_matches("league")) == 1
        assert len(db.load_matches()) == 3
        assert db.load_matches("nothing") == []

    def test_ordered_by_position(self, db):
        db.save_matches([_record(round_index=1), _record(match_index=1), _record()])
        keys = [(m["round_index"], m["match_index"]) for m in db.load_matches("cup")]
        assert keys == [(0, 0), (0, 1), (1, 0)]

    def test_delete_counts(self, db):
        db.save_matches([_record("cup"), _record("cup", 0, 1), _record("league")])
        assert db.delete_matches("cup") == 2
        assert db.delete_matches("cup") == 0
        assert db.match_count() == 1

    def test_empty_save(self, db):
        assert db.save_matches([]) is True
        assert db.match_count() == 0

    def test_bracket_records(self, db):
        roster = [Competitor(id=f"c{i}", name=str(i)) for i in range(6)]
        bracket = build_bracket(roster, BracketMode.RANDOM, random.Random(0))
        db.save_matches(match_records(bracket, "cup"))
        rows = db.load_matches("cup")
        assert len(rows) == db.match_count("cup") == sum(len(r) for r in bracket.rounds)
        assert rows[-1]["winner_id"] == bracket.champion.id
