"""
Sequential performance mode — an ordered roster with a cursor and winners.

The roster is a dense 0..n-1 ``order_index`` sequence. Every operation that
moves or removes performers rewrites the whole sequence inside the same
transaction, so readers never see a gap or a duplicate.

Each mutating method returns the full PerformanceSnapshot after the change;
callers broadcast that whole snapshot rather than a delta.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Iterable, Literal

from eventflow.config import PerformanceConfig
from eventflow.errors import NotFoundError, PreconditionError
from eventflow.store.database import Database
from eventflow.store.repositories import (
    PerformanceStateRepository,
    PerformerRepository,
    TournamentRepository,
)
from eventflow.tournaments.base import SHOW_VIEWS, PerformanceState
from eventflow.tournaments.events import PerformanceSnapshot, PerformerView

logger = logging.getLogger(__name__)

FinalizeSource = Literal["score", "manual"]

FINALIZE_SOURCES: tuple[FinalizeSource, ...] = ("score", "manual")
FINALIZE_CAP = 10   # automatic top-N selection when finalizing by score


class PerformanceEngine:
    """State machine over one tournament's performer roster."""

    def __init__(self, db: Database, defaults: PerformanceConfig | None = None) -> None:
        self._db = db
        self._defaults = defaults or PerformanceConfig()

    # ------------------------------------------------------------------ #
    # Reads                                                                #
    # ------------------------------------------------------------------ #

    def snapshot(self, tournament_id: int) -> PerformanceSnapshot:
        with self._db.read() as conn:
            return self._build_snapshot(conn, tournament_id)

    # ------------------------------------------------------------------ #
    # Roster                                                               #
    # ------------------------------------------------------------------ #

    def replace_roster(self, tournament_id: int, names: Iterable[str]) -> PerformanceSnapshot:
        with self._db.transaction() as conn:
            self._prepare(conn, tournament_id)
            performers = PerformerRepository(conn)
            performers.delete_for_tournament(tournament_id)
            index = 0
            for raw in names:
                name = (raw or "").strip()
                if not name:
                    continue
                performers.create(tournament_id, name, index)
                index += 1
            logger.info("Roster of tournament %d replaced with %d performers", tournament_id, index)
            return self._build_snapshot(conn, tournament_id)

    def append(self, tournament_id: int, name: str) -> PerformanceSnapshot:
        cleaned = (name or "").strip()
        if not cleaned:
            raise PreconditionError("Performer name must not be blank")
        with self._db.transaction() as conn:
            self._prepare(conn, tournament_id)
            performers = PerformerRepository(conn)
            index = performers.next_order_index(tournament_id)
            performers.create(tournament_id, cleaned, index)
            logger.info("Appended %r at %d to tournament %d", cleaned, index, tournament_id)
            return self._build_snapshot(conn, tournament_id)

    def reorder(self, tournament_id: int, from_index: int, to_index: int) -> PerformanceSnapshot:
        """Move one performer; out-of-range or equal indices leave the roster alone."""
        with self._db.transaction() as conn:
            self._prepare(conn, tournament_id)
            performers = PerformerRepository(conn)
            roster = performers.list_ordered(tournament_id)
            size = len(roster)
            if from_index != to_index and 0 <= from_index < size and 0 <= to_index < size:
                moved = roster.pop(from_index)
                roster.insert(to_index, moved)
                _repack(performers, [p.id for p in roster])
                logger.info(
                    "Tournament %d: moved performer %d from %d to %d",
                    tournament_id, moved.id, from_index, to_index,
                )
            return self._build_snapshot(conn, tournament_id)

    def remove(self, tournament_id: int, performer_id: int) -> PerformanceSnapshot:
        with self._db.transaction() as conn:
            self._prepare(conn, tournament_id)
            performers = PerformerRepository(conn)
            if performers.delete(tournament_id, performer_id) == 0:
                raise NotFoundError("performer", performer_id)
            _repack(performers, [p.id for p in performers.list_ordered(tournament_id)])
            logger.info("Tournament %d: removed performer %d", tournament_id, performer_id)
            return self._build_snapshot(conn, tournament_id)

    # ------------------------------------------------------------------ #
    # Live state                                                           #
    # ------------------------------------------------------------------ #

    def set_cursor(self, tournament_id: int, index: int) -> PerformanceSnapshot:
        """Point the "now performing" cursor; the caller keeps it within the roster."""
        with self._db.transaction() as conn:
            self._prepare(conn, tournament_id)
            PerformanceStateRepository(conn).update(tournament_id, current_index=index)
            return self._build_snapshot(conn, tournament_id)

    def set_score(self, tournament_id: int, performer_id: int, score: float) -> PerformanceSnapshot:
        with self._db.transaction() as conn:
            self._prepare(conn, tournament_id)
            if PerformerRepository(conn).set_score(tournament_id, performer_id, score) == 0:
                raise NotFoundError("performer", performer_id)
            return self._build_snapshot(conn, tournament_id)

    def set_view(self, tournament_id: int, view: str) -> PerformanceSnapshot:
        if view not in SHOW_VIEWS:
            raise PreconditionError(f"View must be one of {SHOW_VIEWS}, got {view!r}")
        with self._db.transaction() as conn:
            self._prepare(conn, tournament_id)
            PerformanceStateRepository(conn).update(tournament_id, show_view=view)
            return self._build_snapshot(conn, tournament_id)

    def configure(
        self,
        tournament_id: int,
        max_winners: int | None = None,
        scoring_enabled: bool | None = None,
    ) -> PerformanceSnapshot:
        fields: dict[str, object] = {}
        if max_winners is not None:
            if max_winners < 1:
                raise PreconditionError("max_winners must be >= 1")
            fields["max_winners"] = max_winners
        if scoring_enabled is not None:
            fields["scoring_enabled"] = scoring_enabled
        with self._db.transaction() as conn:
            self._prepare(conn, tournament_id)
            PerformanceStateRepository(conn).update(tournament_id, **fields)
            return self._build_snapshot(conn, tournament_id)

    # ------------------------------------------------------------------ #
    # Winners                                                              #
    # ------------------------------------------------------------------ #

    def select_winners(self, tournament_id: int, performer_ids: Iterable[int]) -> PerformanceSnapshot:
        """Make exactly ``performer_ids`` the selected winners; foreign ids are ignored."""
        with self._db.transaction() as conn:
            self._prepare(conn, tournament_id)
            _select(PerformerRepository(conn), tournament_id, performer_ids)
            return self._build_snapshot(conn, tournament_id)

    def finalize(self, tournament_id: int, source: str = "manual") -> PerformanceSnapshot:
        """
        Lock in the winners and switch viewers to the winners screen.

        With ``source == "score"`` the selection is recomputed as the top
        FINALIZE_CAP performers by (score desc, order asc). There is no
        un-finalize; only clear() resets the flag.
        """
        if source not in FINALIZE_SOURCES:
            raise PreconditionError(f"Finalize source must be one of {FINALIZE_SOURCES}, got {source!r}")
        with self._db.transaction() as conn:
            self._prepare(conn, tournament_id)
            performers = PerformerRepository(conn)
            if source == "score":
                _select(performers, tournament_id, performers.top_by_score(tournament_id, FINALIZE_CAP))
            PerformanceStateRepository(conn).update(
                tournament_id, finalized=True, show_view="winners"
            )
            logger.info("Tournament %d finalized (source=%s)", tournament_id, source)
            return self._build_snapshot(conn, tournament_id)

    def clear(self, tournament_id: int) -> PerformanceSnapshot:
        """Drop the roster and reset the state row to its initial values."""
        with self._db.transaction() as conn:
            self._prepare(conn, tournament_id)
            PerformerRepository(conn).delete_for_tournament(tournament_id)
            PerformanceStateRepository(conn).reset(tournament_id)
            logger.info("Tournament %d performance cleared", tournament_id)
            return self._build_snapshot(conn, tournament_id)

    # ------------------------------------------------------------------ #
    # Internal                                                             #
    # ------------------------------------------------------------------ #

    def _prepare(self, conn: sqlite3.Connection, tournament_id: int) -> None:
        TournamentRepository(conn).require(tournament_id)
        PerformanceStateRepository(conn).ensure(
            tournament_id,
            max_winners=self._defaults.max_winners,
            scoring_enabled=self._defaults.scoring_enabled,
        )

    def _build_snapshot(self, conn: sqlite3.Connection, tournament_id: int) -> PerformanceSnapshot:
        tournament = TournamentRepository(conn).require(tournament_id)
        # No state row until the first mutation; until then the defaults apply.
        state = PerformanceStateRepository(conn).get(tournament_id) or PerformanceState(
            tournament_id=tournament_id,
            max_winners=self._defaults.max_winners,
            scoring_enabled=self._defaults.scoring_enabled,
        )
        roster = [
            PerformerView(
                id=p.id,
                display_name=p.display_name,
                order_index=p.order_index,
                total_score=p.total_score,
                is_selected_winner=p.is_selected_winner,
            )
            for p in PerformerRepository(conn).list_ordered(tournament_id)
        ]
        return PerformanceSnapshot(
            tournament_id=tournament_id,
            tournament_name=tournament.name,
            mode=tournament.mode,
            max_winners=state.max_winners,
            show_view=state.show_view,
            current_index=state.current_index,
            scoring_enabled=state.scoring_enabled,
            finalized=state.finalized,
            performers=roster,
            winners=[p.id for p in roster if p.is_selected_winner],
        )


def _repack(performers: PerformerRepository, ordered_ids: list[int]) -> None:
    for index, performer_id in enumerate(ordered_ids):
        performers.set_order_index(performer_id, index)


def _select(performers: PerformerRepository, tournament_id: int, performer_ids: Iterable[int]) -> None:
    performers.clear_selection(tournament_id)
    performers.mark_selected(tournament_id, performer_ids)
