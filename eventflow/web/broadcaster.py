"""
Per-tournament fan-out of snapshot events to connected viewers.

Each WebSocket subscribes with its own asyncio.Queue. The latest event per
tournament is kept and replayed to anyone who subscribes later, so a
reconnecting browser starts from the current state instead of a blank page.
"""

from __future__ import annotations

import asyncio
import logging

from eventflow.tournaments.events import TournamentDeletedEvent, TournamentEvent

logger = logging.getLogger(__name__)


class TournamentBroadcaster:
    def __init__(self) -> None:
        self._subscribers: dict[int, set[asyncio.Queue[TournamentEvent]]] = {}
        self._latest: dict[int, TournamentEvent] = {}

    def subscribe(self, tournament_id: int) -> asyncio.Queue[TournamentEvent]:
        queue: asyncio.Queue[TournamentEvent] = asyncio.Queue()
        self._subscribers.setdefault(tournament_id, set()).add(queue)
        latest = self._latest.get(tournament_id)
        if latest is not None:
            queue.put_nowait(latest)
        logger.debug("Viewer joined tournament %d (%d watching)",
                     tournament_id, len(self._subscribers[tournament_id]))
        return queue

    def unsubscribe(self, tournament_id: int, queue: asyncio.Queue[TournamentEvent]) -> None:
        watchers = self._subscribers.get(tournament_id)
        if not watchers:
            return
        watchers.discard(queue)
        if not watchers:
            del self._subscribers[tournament_id]

    async def publish(self, event: TournamentEvent) -> int:
        """Deliver ``event`` to everyone watching its tournament. Returns the audience size."""
        tournament_id = event.tournament_id
        if isinstance(event, TournamentDeletedEvent):
            self._latest.pop(tournament_id, None)
        else:
            self._latest[tournament_id] = event

        watchers = list(self._subscribers.get(tournament_id, ()))
        for queue in watchers:
            queue.put_nowait(event)
        logger.debug("Published %s for tournament %d to %d viewers",
                     type(event).__name__, tournament_id, len(watchers))
        return len(watchers)

    def latest(self, tournament_id: int) -> TournamentEvent | None:
        return self._latest.get(tournament_id)

    def viewer_count(self, tournament_id: int | None = None) -> int:
        if tournament_id is not None:
            return len(self._subscribers.get(tournament_id, ()))
        return sum(len(v) for v in self._subscribers.values())
