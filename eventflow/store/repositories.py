"""SQLite repositories for core entities.

Repositories never commit: the caller owns the transaction
(see ``Database.transaction``).
"""

from __future__ import annotations

import sqlite3
from typing import Any, Iterable

from eventflow.errors import NotFoundError, PreconditionError
from eventflow.tournaments.base import (
    MatchRecord,
    Participant,
    PerformanceState,
    Performer,
    Tournament,
    make_tournament,
)

ALL_PAGES = ("index", "bracket", "brochure", "map", "link", "tournament")


def _row_to_dict(row: sqlite3.Row | None) -> dict[str, Any] | None:
    if row is None:
        return None
    return dict(row)


class TournamentRepository:
    """Repository for tournament data access."""

    _SELECT = """
        SELECT
            t.id, t.name, t.background_path, t.mode,
            (SELECT COUNT(*) FROM matches m WHERE m.tournament_id = t.id) AS match_count,
            (SELECT COUNT(*) FROM performers p WHERE p.tournament_id = t.id) AS performer_count
        FROM tournaments t
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection

    def create(self, name: str, background_path: str | None, mode: str) -> int:
        cursor = self._connection.execute(
            "INSERT INTO tournaments (name, background_path, mode) VALUES (?, ?, ?)",
            (name, background_path, mode),
        )
        return int(cursor.lastrowid)

    def get(self, tournament_id: int) -> Tournament | None:
        row = self._connection.execute(
            self._SELECT + " WHERE t.id = ?", (tournament_id,)
        ).fetchone()
        return _row_to_tournament(row) if row else None

    def require(self, tournament_id: int) -> Tournament:
        tournament = self.get(tournament_id)
        if tournament is None:
            raise NotFoundError("tournament", tournament_id)
        return tournament

    def list(self) -> list[Tournament]:
        rows = self._connection.execute(self._SELECT + " ORDER BY t.id DESC").fetchall()
        return [_row_to_tournament(row) for row in rows]

    def delete(self, tournament_id: int) -> None:
        cursor = self._connection.execute(
            "DELETE FROM tournaments WHERE id = ?", (tournament_id,)
        )
        if cursor.rowcount == 0:
            raise NotFoundError("tournament", tournament_id)

    def count(self) -> int:
        return int(self._connection.execute("SELECT COUNT(*) FROM tournaments").fetchone()[0])


def _row_to_tournament(row: sqlite3.Row) -> Tournament:
    return make_tournament(
        ident=row["id"],
        name=row["name"],
        background_path=row["background_path"],
        mode=row["mode"],
        match_count=row["match_count"],
        performer_count=row["performer_count"],
    )


class ParticipantRepository:
    """Repository for participant data access."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection

    def create(self, name: str) -> int:
        cursor = self._connection.execute(
            "INSERT INTO participants (name) VALUES (?)", (name,)
        )
        return int(cursor.lastrowid)

    def get(self, participant_id: int) -> Participant | None:
        row = self._connection.execute(
            "SELECT id, name FROM participants WHERE id = ?", (participant_id,)
        ).fetchone()
        return Participant(id=row["id"], name=row["name"]) if row else None

    def delete(self, participant_id: int) -> None:
        cursor = self._connection.execute(
            "DELETE FROM participants WHERE id = ?", (participant_id,)
        )
        if cursor.rowcount == 0:
            raise NotFoundError("participant", participant_id)

    def delete_unreferenced(self, participant_ids: Iterable[int]) -> int:
        """Delete those of ``participant_ids`` that no match or performer points at."""
        removed = 0
        for participant_id in sorted(set(participant_ids)):
            cursor = self._connection.execute(
                """
                DELETE FROM participants
                WHERE id = ?
                  AND NOT EXISTS (
                      SELECT 1 FROM matches
                      WHERE ? IN (participant1_id, participant2_id, winner_id)
                  )
                  AND NOT EXISTS (SELECT 1 FROM performers WHERE participant_id = ?)
                """,
                (participant_id, participant_id, participant_id),
            )
            removed += cursor.rowcount
        return removed


class MatchRepository:
    """Repository for match rows and their forward edges."""

    _SELECT = """
        SELECT
            m.id, m.tournament_id,
            m.participant1_id, p1.name AS participant1_name,
            m.participant2_id, p2.name AS participant2_name,
            m.winner_id, w.name AS winner_name,
            m.score1, m.score2,
            m.next_match_id, m.next_match_slot
        FROM matches m
        LEFT JOIN participants p1 ON m.participant1_id = p1.id
        LEFT JOIN participants p2 ON m.participant2_id = p2.id
        LEFT JOIN participants w ON m.winner_id = w.id
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection

    def create(
        self,
        tournament_id: int,
        participant1_id: int | None = None,
        participant2_id: int | None = None,
        next_match_id: int | None = None,
        next_match_slot: int | None = None,
    ) -> int:
        cursor = self._connection.execute(
            """
            INSERT INTO matches (
                tournament_id,
                participant1_id,
                participant2_id,
                next_match_id,
                next_match_slot
            )
            VALUES (?, ?, ?, ?, ?)
            """,
            (tournament_id, participant1_id, participant2_id, next_match_id, next_match_slot),
        )
        return int(cursor.lastrowid)

    def get(self, match_id: int) -> MatchRecord | None:
        row = self._connection.execute(
            self._SELECT + " WHERE m.id = ?", (match_id,)
        ).fetchone()
        return MatchRecord(**dict(row)) if row else None

    def require(self, match_id: int) -> MatchRecord:
        match = self.get(match_id)
        if match is None:
            raise NotFoundError("match", match_id)
        return match

    def list_for_tournament(self, tournament_id: int) -> list[MatchRecord]:
        rows = self._connection.execute(
            self._SELECT + " WHERE m.tournament_id = ? ORDER BY m.id ASC",
            (tournament_id,),
        ).fetchall()
        return [MatchRecord(**dict(row)) for row in rows]

    def referencing_participant(self, participant_id: int) -> list[MatchRecord]:
        rows = self._connection.execute(
            self._SELECT
            + " WHERE ? IN (m.participant1_id, m.participant2_id, m.winner_id) ORDER BY m.id ASC",
            (participant_id,),
        ).fetchall()
        return [MatchRecord(**dict(row)) for row in rows]

    def set_result(
        self, match_id: int, winner_id: int, score1: int | None, score2: int | None
    ) -> None:
        self._connection.execute(
            "UPDATE matches SET winner_id = ?, score1 = ?, score2 = ? WHERE id = ?",
            (winner_id, score1, score2, match_id),
        )

    def set_slot(self, match_id: int, slot: int, participant_id: int | None) -> None:
        # Column name comes from a fixed mapping, never from caller input.
        column = _SLOT_COLUMNS[slot]
        self._connection.execute(
            f"UPDATE matches SET {column} = ? WHERE id = ?", (participant_id, match_id)
        )

    def delete_for_tournament(self, tournament_id: int) -> int:
        cursor = self._connection.execute(
            "DELETE FROM matches WHERE tournament_id = ?", (tournament_id,)
        )
        return cursor.rowcount


_SLOT_COLUMNS = {1: "participant1_id", 2: "participant2_id"}


class PerformerRepository:
    """Repository for the ordered performer roster of a tournament."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection

    def create(
        self,
        tournament_id: int,
        display_name: str,
        order_index: int,
        participant_id: int | None = None,
    ) -> int:
        cursor = self._connection.execute(
            """
            INSERT INTO performers (tournament_id, participant_id, display_name, order_index)
            VALUES (?, ?, ?, ?)
            """,
            (tournament_id, participant_id, display_name, order_index),
        )
        return int(cursor.lastrowid)

    def list_ordered(self, tournament_id: int) -> list[Performer]:
        rows = self._connection.execute(
            """
            SELECT * FROM performers
            WHERE tournament_id = ?
            ORDER BY order_index ASC, id ASC
            """,
            (tournament_id,),
        ).fetchall()
        return [_row_to_performer(row) for row in rows]

    def next_order_index(self, tournament_id: int) -> int:
        row = self._connection.execute(
            "SELECT COALESCE(MAX(order_index), -1) + 1 FROM performers WHERE tournament_id = ?",
            (tournament_id,),
        ).fetchone()
        return int(row[0])

    def set_order_index(self, performer_id: int, order_index: int) -> None:
        self._connection.execute(
            "UPDATE performers SET order_index = ? WHERE id = ?", (order_index, performer_id)
        )

    def set_score(self, tournament_id: int, performer_id: int, score: float) -> int:
        cursor = self._connection.execute(
            "UPDATE performers SET total_score = ? WHERE tournament_id = ? AND id = ?",
            (score, tournament_id, performer_id),
        )
        return cursor.rowcount

    def clear_selection(self, tournament_id: int) -> None:
        self._connection.execute(
            "UPDATE performers SET is_selected_winner = 0 WHERE tournament_id = ?",
            (tournament_id,),
        )

    def mark_selected(self, tournament_id: int, performer_ids: Iterable[int]) -> None:
        ids = list(performer_ids)
        if not ids:
            return
        placeholders = ",".join("?" for _ in ids)
        self._connection.execute(
            f"""
            UPDATE performers SET is_selected_winner = 1
            WHERE tournament_id = ? AND id IN ({placeholders})
            """,
            (tournament_id, *ids),
        )

    def top_by_score(self, tournament_id: int, limit: int) -> list[int]:
        rows = self._connection.execute(
            """
            SELECT id FROM performers
            WHERE tournament_id = ?
            ORDER BY total_score DESC, order_index ASC, id ASC
            LIMIT ?
            """,
            (tournament_id, limit),
        ).fetchall()
        return [row["id"] for row in rows]

    def delete(self, tournament_id: int, performer_id: int) -> int:
        cursor = self._connection.execute(
            "DELETE FROM performers WHERE tournament_id = ? AND id = ?",
            (tournament_id, performer_id),
        )
        return cursor.rowcount

    def delete_for_tournament(self, tournament_id: int) -> None:
        self._connection.execute(
            "DELETE FROM performers WHERE tournament_id = ?", (tournament_id,)
        )


def _row_to_performer(row: sqlite3.Row) -> Performer:
    return Performer(
        id=row["id"],
        tournament_id=row["tournament_id"],
        participant_id=row["participant_id"],
        display_name=row["display_name"] or "",
        order_index=row["order_index"],
        total_score=float(row["total_score"]),
        is_selected_winner=bool(row["is_selected_winner"]),
    )


class PerformanceStateRepository:
    """Repository for the single PerformanceState row of a tournament."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection

    def ensure(
        self, tournament_id: int, max_winners: int = 10, scoring_enabled: bool = True
    ) -> None:
        """Create the row with the given defaults unless it already exists."""
        self._connection.execute(
            """
            INSERT OR IGNORE INTO performance_state (tournament_id, max_winners, scoring_enabled)
            VALUES (?, ?, ?)
            """,
            (tournament_id, max_winners, int(scoring_enabled)),
        )

    def get(self, tournament_id: int) -> PerformanceState | None:
        row = self._connection.execute(
            "SELECT * FROM performance_state WHERE tournament_id = ?", (tournament_id,)
        ).fetchone()
        if row is None:
            return None
        return PerformanceState(
            tournament_id=row["tournament_id"],
            current_index=row["current_index"],
            show_view=row["show_view"],
            max_winners=row["max_winners"],
            scoring_enabled=bool(row["scoring_enabled"]),
            finalized=bool(row["finalized"]),
        )

    def update(self, tournament_id: int, **fields: Any) -> None:
        allowed = {"current_index", "show_view", "max_winners", "scoring_enabled", "finalized"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown performance state fields: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{name} = ?" for name in fields)
        values = [int(v) if isinstance(v, bool) else v for v in fields.values()]
        self._connection.execute(
            f"UPDATE performance_state SET {assignments} WHERE tournament_id = ?",
            (*values, tournament_id),
        )

    def reset(self, tournament_id: int) -> None:
        self._connection.execute(
            """
            UPDATE performance_state
            SET current_index = -1, show_view = 'order', finalized = 0
            WHERE tournament_id = ?
            """,
            (tournament_id,),
        )


class SettingsRepository:
    """Generic key/value settings the engine stores but never interprets."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection

    def get(self, key: str) -> str | None:
        row = self._connection.execute(
            "SELECT setting_value FROM settings WHERE setting_key = ?", (key,)
        ).fetchone()
        return row["setting_value"] if row else None

    def set(self, key: str, value: str | None) -> None:
        self._connection.execute(
            """
            INSERT INTO settings (setting_key, setting_value) VALUES (?, ?)
            ON CONFLICT(setting_key) DO UPDATE
            SET setting_value = excluded.setting_value, updated_at = CURRENT_TIMESTAMP
            """,
            (key, value),
        )


class BackgroundRepository:
    """Background image assets and their per-page assignment."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection

    def create(self, url: str, file_path: str | None = None, name: str | None = None) -> int:
        cursor = self._connection.execute(
            "INSERT INTO backgrounds (file_path, url, name) VALUES (?, ?, ?)",
            (file_path, url, name),
        )
        return int(cursor.lastrowid)

    def list(self) -> list[dict[str, Any]]:
        rows = self._connection.execute(
            "SELECT * FROM backgrounds ORDER BY created_at DESC, id DESC"
        ).fetchall()
        return [
            {
                "id": row["id"],
                "path": row["file_path"],
                "url": row["url"],
                "name": row["name"],
                "created_at": row["created_at"],
            }
            for row in rows
        ]

    def delete(self, background_id: int) -> str | None:
        """Delete a background and return its file path for the caller to clean up."""
        row = _row_to_dict(
            self._connection.execute(
                "SELECT file_path FROM backgrounds WHERE id = ?", (background_id,)
            ).fetchone()
        )
        if row is None:
            raise NotFoundError("background", background_id)
        self._connection.execute("DELETE FROM backgrounds WHERE id = ?", (background_id,))
        return row["file_path"]

    def assign_page(self, page_name: str, background_id: int | None) -> None:
        if page_name != "all" and page_name not in ALL_PAGES:
            raise PreconditionError(f"Unknown page {page_name!r}. Valid pages: {', '.join(ALL_PAGES)}, all")
        if background_id is not None and self._connection.execute(
            "SELECT 1 FROM backgrounds WHERE id = ?", (background_id,)
        ).fetchone() is None:
            raise NotFoundError("background", background_id)
        pages = ALL_PAGES if page_name == "all" else (page_name,)
        for page in pages:
            self._connection.execute(
                """
                INSERT INTO page_backgrounds (page_name, background_id) VALUES (?, ?)
                ON CONFLICT(page_name) DO UPDATE SET background_id = excluded.background_id
                """,
                (page, background_id),
            )

    def page_urls(self) -> dict[str, str | None]:
        rows = self._connection.execute(
            """
            SELECT pb.page_name, b.url
            FROM page_backgrounds pb
            LEFT JOIN backgrounds b ON pb.background_id = b.id
            """
        ).fetchall()
        return {row["page_name"]: row["url"] for row in rows}
