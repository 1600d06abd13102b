"""
scoreboard/db.py - SQLite document storage for rosters and match records.

All queries go through BracketDB. One instance per server lifetime,
backed by a single SQLite file (or :memory: for tests). Documents are
stored as JSON text; the only indexed fields are the ones we upsert on.
"""

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any

from bracketeer.bracket import Competitor

ROSTER_DOC_ID = "roster"


class BracketDB:
    """Thin wrapper around SQLite for the roster document and match records."""

    def __init__(self, path: str = "bracketeer.db"):
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS competitors (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                updated_at TEXT
            );

            CREATE TABLE IF NOT EXISTS matches (
                tournament_id TEXT NOT NULL,
                round_index INTEGER NOT NULL,
                match_index INTEGER NOT NULL,
                data TEXT NOT NULL,
                created_at TEXT,
                updated_at TEXT,
                PRIMARY KEY (tournament_id, round_index, match_index)
            );
            """
        )

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Competitors
    # ------------------------------------------------------------------

    def load_competitors(self) -> list[Competitor]:
        """The saved roster, or [] if nothing was saved yet."""
        row = self._conn.execute(
            "SELECT data FROM competitors WHERE id = ?", (ROSTER_DOC_ID,)
        ).fetchone()
        if row is None:
            return []
        return [Competitor.from_dict(c) for c in json.loads(row["data"])]

    def save_competitors(self, competitors: list[Competitor]) -> bool:
        """Replace the whole roster. Saving the same list twice is harmless."""
        data = json.dumps([c.to_dict() for c in competitors])
        self._conn.execute(
            "INSERT INTO competitors (id, data, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at",
            (ROSTER_DOC_ID, data, _now()),
        )
        self._conn.commit()
        return True

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------

    def load_matches(self, tournament_id: str | None = None) -> list[dict[str, Any]]:
        """Match records for one tournament (or every tournament), in bracket order."""
        if tournament_id is None:
            rows = self._conn.execute(
                "SELECT * FROM matches ORDER BY tournament_id, round_index, match_index"
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM matches WHERE tournament_id = ? ORDER BY round_index, match_index",
                (tournament_id,),
            ).fetchall()
        return [_match_record(row) for row in rows]

    def save_matches(self, matches: list[dict[str, Any]]) -> bool:
        """Upsert records keyed by (tournament_id, round_index, match_index).

        created_at is kept from the first write; updated_at is bumped every time.
        """
        if not matches:
            return True
        now = _now()
        rows = []
        for m in matches:
            body = {
                k: v for k, v in m.items()
                if k not in ("tournament_id", "round_index", "match_index", "created_at", "updated_at")
            }
            rows.append((
                m["tournament_id"],
                int(m["round_index"]),
                int(m["match_index"]),
                json.dumps(body),
                m.get("created_at") or now,
                now,
            ))
        with self._conn:
            self._conn.executemany(
                "INSERT INTO matches (tournament_id, round_index, match_index, data, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(tournament_id, round_index, match_index) DO UPDATE SET "
                "data = excluded.data, updated_at = excluded.updated_at",
                rows,
            )
        return True

    def delete_matches(self, tournament_id: str) -> int:
        """Drop every record of a tournament. Returns how many went."""
        cursor = self._conn.execute(
            "DELETE FROM matches WHERE tournament_id = ?", (tournament_id,)
        )
        self._conn.commit()
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def match_count(self, tournament_id: str | None = None) -> int:
        if tournament_id is None:
            return self._conn.execute("SELECT COUNT(*) FROM matches").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM matches WHERE tournament_id = ?", (tournament_id,)
        ).fetchone()[0]


def _match_record(row: sqlite3.Row) -> dict[str, Any]:
    record = json.loads(row["data"])
    record.update(
        tournament_id=row["tournament_id"],
        round_index=row["round_index"],
        match_index=row["match_index"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
    return record


def _now() -> str:
    """ISO timestamp in UTC."""
    return datetime.now(timezone.utc).isoformat()
