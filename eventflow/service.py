"""
Async façade over the engines — the single entry point for host actions.

Every mutating call follows the same shape:

  1. check the tournament's mode owns the operation
  2. run the blocking engine call (one store transaction) in a worker thread
  3. build the full snapshot and publish it to the tournament's viewers
  4. return the snapshot to the caller

If step 2 raises, nothing is published: viewers keep the last good snapshot.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Any, Callable, TypeVar

from eventflow.config import PerformanceConfig
from eventflow.errors import PreconditionError
from eventflow.store.database import Database
from eventflow.store.repositories import (
    BackgroundRepository,
    MatchRepository,
    SettingsRepository,
    TournamentRepository,
)
from eventflow.tournaments.base import Mode, Tournament, normalize_mode
from eventflow.tournaments.bracket import BracketAdvancer
from eventflow.tournaments.events import (
    BracketUpdatedEvent,
    BracketView,
    PerformanceSnapshot,
    PerformanceUpdatedEvent,
    TournamentDeletedEvent,
    TournamentEvent,
)
from eventflow.tournaments.performance import PerformanceEngine
from eventflow.tournaments.reconstruct import reconstruct_bracket
from eventflow.web.broadcaster import TournamentBroadcaster

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TournamentService:
    def __init__(
        self,
        db: Database,
        broadcaster: TournamentBroadcaster | None = None,
        performance_defaults: PerformanceConfig | None = None,
    ) -> None:
        self.db = db
        self.broadcaster = broadcaster or TournamentBroadcaster()
        self.bracket = BracketAdvancer(db)
        self.performance = PerformanceEngine(db, performance_defaults)

    # ------------------------------------------------------------------ #
    # Tournaments                                                          #
    # ------------------------------------------------------------------ #

    async def list_tournaments(self) -> list[Tournament]:
        return await self._read(lambda conn: TournamentRepository(conn).list())

    async def get_tournament(self, tournament_id: int) -> Tournament:
        return await self._read(lambda conn: TournamentRepository(conn).require(tournament_id))

    async def create_tournament(
        self, name: str, background_path: str | None = None, mode: str | None = None
    ) -> Tournament:
        cleaned = (name or "").strip()
        if not cleaned:
            raise PreconditionError("Tournament name must not be blank")
        resolved = normalize_mode(mode)

        def work(conn: sqlite3.Connection) -> Tournament:
            repo = TournamentRepository(conn)
            return repo.require(repo.create(cleaned, background_path or None, resolved))

        tournament = await self._write(work)
        logger.info("Created %s tournament %d (%r)", tournament.mode, tournament.id, tournament.name)
        return tournament

    async def delete_tournament(self, tournament_id: int) -> None:
        await self._write(lambda conn: TournamentRepository(conn).delete(tournament_id))
        logger.info("Deleted tournament %d", tournament_id)
        await self.broadcaster.publish(TournamentDeletedEvent(tournament_id=tournament_id))

    async def snapshot(self, tournament_id: int) -> TournamentEvent:
        """What a viewer asking "show me tournament X" receives, for that viewer only."""
        tournament = await self.get_tournament(tournament_id)
        if tournament.mode == "sequential":
            snap = await asyncio.to_thread(self.performance.snapshot, tournament_id)
            return PerformanceUpdatedEvent(tournament_id=tournament_id, snapshot=snap)
        return BracketUpdatedEvent(
            tournament_id=tournament_id, bracket=await self._load_bracket(tournament_id)
        )

    # ------------------------------------------------------------------ #
    # Elimination                                                          #
    # ------------------------------------------------------------------ #

    async def bracket_view(self, tournament_id: int) -> BracketView | None:
        await self._require_mode(tournament_id, "elimination")
        return await self._load_bracket(tournament_id)

    async def build_bracket(self, tournament_id: int, names: list[str]) -> BracketView | None:
        await self._require_mode(tournament_id, "elimination")
        await asyncio.to_thread(self.bracket.build_bracket, tournament_id, names)
        return await self._publish_bracket(tournament_id)

    async def record_result(
        self,
        match_id: int,
        winner_id: int,
        score1: int | None = None,
        score2: int | None = None,
    ) -> BracketView | None:
        tournament_id = await asyncio.to_thread(
            self.bracket.record_result, match_id, winner_id, score1, score2
        )
        return await self._publish_bracket(tournament_id)

    async def assign_slot(
        self, match_id: int, slot: int, participant_id: int | None
    ) -> BracketView | None:
        tournament_id = await asyncio.to_thread(
            self.bracket.assign_slot, match_id, slot, participant_id
        )
        return await self._publish_bracket(tournament_id)

    async def clear_bracket(self, tournament_id: int) -> None:
        await self._require_mode(tournament_id, "elimination")
        await asyncio.to_thread(self.bracket.clear_matches, tournament_id)
        await self._publish_bracket(tournament_id)

    async def add_participant(self, name: str) -> int:
        return await asyncio.to_thread(self.bracket.add_participant, name)

    async def remove_participant(self, participant_id: int) -> None:
        affected = await self._read(
            lambda conn: sorted({
                m.tournament_id
                for m in MatchRepository(conn).referencing_participant(participant_id)
            })
        )
        await asyncio.to_thread(self.bracket.remove_participant, participant_id)
        for tournament_id in affected:
            await self._publish_bracket(tournament_id)

    # ------------------------------------------------------------------ #
    # Sequential performance                                               #
    # ------------------------------------------------------------------ #

    async def performance_snapshot(self, tournament_id: int) -> PerformanceSnapshot:
        await self._require_mode(tournament_id, "sequential")
        return await asyncio.to_thread(self.performance.snapshot, tournament_id)

    async def replace_roster(self, tournament_id: int, names: list[str]) -> PerformanceSnapshot:
        return await self._perform(tournament_id, self.performance.replace_roster, names)

    async def append_performer(self, tournament_id: int, name: str) -> PerformanceSnapshot:
        return await self._perform(tournament_id, self.performance.append, name)

    async def reorder_performers(
        self, tournament_id: int, from_index: int, to_index: int
    ) -> PerformanceSnapshot:
        return await self._perform(tournament_id, self.performance.reorder, from_index, to_index)

    async def remove_performer(self, tournament_id: int, performer_id: int) -> PerformanceSnapshot:
        return await self._perform(tournament_id, self.performance.remove, performer_id)

    async def set_cursor(self, tournament_id: int, index: int) -> PerformanceSnapshot:
        return await self._perform(tournament_id, self.performance.set_cursor, index)

    async def set_score(
        self, tournament_id: int, performer_id: int, score: float
    ) -> PerformanceSnapshot:
        return await self._perform(tournament_id, self.performance.set_score, performer_id, score)

    async def select_winners(
        self, tournament_id: int, performer_ids: list[int]
    ) -> PerformanceSnapshot:
        return await self._perform(tournament_id, self.performance.select_winners, performer_ids)

    async def finalize(self, tournament_id: int, source: str = "manual") -> PerformanceSnapshot:
        return await self._perform(tournament_id, self.performance.finalize, source)

    async def set_view(self, tournament_id: int, view: str) -> PerformanceSnapshot:
        return await self._perform(tournament_id, self.performance.set_view, view)

    async def configure_performance(
        self,
        tournament_id: int,
        max_winners: int | None = None,
        scoring_enabled: bool | None = None,
    ) -> PerformanceSnapshot:
        return await self._perform(
            tournament_id, self.performance.configure, max_winners, scoring_enabled
        )

    async def clear_performance(self, tournament_id: int) -> PerformanceSnapshot:
        return await self._perform(tournament_id, self.performance.clear)

    # ------------------------------------------------------------------ #
    # Settings & backgrounds (stored, never interpreted)                   #
    # ------------------------------------------------------------------ #

    async def get_setting(self, key: str) -> str | None:
        return await self._read(lambda conn: SettingsRepository(conn).get(key))

    async def set_setting(self, key: str, value: str | None) -> None:
        await self._write(lambda conn: SettingsRepository(conn).set(key, value))

    async def list_backgrounds(self) -> list[dict[str, Any]]:
        return await self._read(lambda conn: BackgroundRepository(conn).list())

    async def add_background(
        self, url: str, file_path: str | None = None, name: str | None = None
    ) -> int:
        if not (url or "").strip():
            raise PreconditionError("Background url must not be blank")
        return await self._write(lambda conn: BackgroundRepository(conn).create(url, file_path, name))

    async def delete_background(self, background_id: int) -> str | None:
        return await self._write(lambda conn: BackgroundRepository(conn).delete(background_id))

    async def assign_page_background(self, page_name: str, background_id: int | None) -> None:
        await self._write(lambda conn: BackgroundRepository(conn).assign_page(page_name, background_id))

    async def page_backgrounds(self) -> dict[str, str | None]:
        return await self._read(lambda conn: BackgroundRepository(conn).page_urls())

    # ------------------------------------------------------------------ #
    # Internal helpers                                                     #
    # ------------------------------------------------------------------ #

    async def _require_mode(self, tournament_id: int, mode: Mode) -> Tournament:
        tournament = await self.get_tournament(tournament_id)
        if tournament.mode != mode:
            raise PreconditionError(
                f"Tournament {tournament_id} runs in {tournament.mode} mode, not {mode}"
            )
        return tournament

    async def _perform(
        self, tournament_id: int, op: Callable[..., PerformanceSnapshot], *args: Any
    ) -> PerformanceSnapshot:
        await self._require_mode(tournament_id, "sequential")
        snap = await asyncio.to_thread(op, tournament_id, *args)
        await self.broadcaster.publish(
            PerformanceUpdatedEvent(tournament_id=tournament_id, snapshot=snap)
        )
        return snap

    async def _publish_bracket(self, tournament_id: int) -> BracketView | None:
        view = await self._load_bracket(tournament_id)
        await self.broadcaster.publish(
            BracketUpdatedEvent(tournament_id=tournament_id, bracket=view)
        )
        return view

    async def _load_bracket(self, tournament_id: int) -> BracketView | None:
        def work(conn: sqlite3.Connection) -> BracketView | None:
            tournament = TournamentRepository(conn).require(tournament_id)
            rows = MatchRepository(conn).list_for_tournament(tournament_id)
            return reconstruct_bracket(rows, tournament_id, tournament.name)

        return await self._read(work)

    async def _read(self, work: Callable[[sqlite3.Connection], T]) -> T:
        def run() -> T:
            with self.db.read() as conn:
                return work(conn)

        return await asyncio.to_thread(run)

    async def _write(self, work: Callable[[sqlite3.Connection], T]) -> T:
        def run() -> T:
            with self.db.transaction() as conn:
                return work(conn)

        return await asyncio.to_thread(run)
