"""
Tournament event dataclasses — the shared language between the engine and any
consumer (WebSocket broadcaster, CLI display, tests).

All snapshots and events are frozen and safe to pass across async boundaries.
The web layer's _to_json_dict() serialises them to JSON-compatible dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from eventflow.tournaments.base import Mode, ShowView

Side = Literal["top", "bottom"]


@dataclass(frozen=True)
class NextLink:
    """Where a match's winner flows to: (round, position within round, side)."""

    round: int
    index: int
    side: Side


@dataclass(frozen=True)
class BracketMatch:
    match_id: int
    player1: str | None          # None renders as an empty slot
    player2: str | None
    winner: str | None
    score1: int | None
    score2: int | None
    next: NextLink | None        # None for the final


@dataclass(frozen=True)
class BracketRound:
    index: int                   # 0 = first round (leaves)
    name: str                    # "Final", "Semifinal", "Round 1", …
    matches: list[BracketMatch]


@dataclass(frozen=True)
class BracketView:
    tournament_id: int
    tournament_name: str | None
    rounds: list[BracketRound]
    champion: str | None         # winner of the final, once recorded
    bracket_size: int

    @property
    def total_rounds(self) -> int:
        return len(self.rounds)


@dataclass(frozen=True)
class PerformerView:
    id: int
    display_name: str
    order_index: int
    total_score: float
    is_selected_winner: bool


@dataclass(frozen=True)
class PerformanceSnapshot:
    tournament_id: int
    tournament_name: str | None
    mode: Mode
    max_winners: int
    show_view: ShowView
    current_index: int
    scoring_enabled: bool
    finalized: bool
    performers: list[PerformerView]
    winners: list[int]           # ids of selected performers, in roster order

    @property
    def current_performer(self) -> PerformerView | None:
        if 0 <= self.current_index < len(self.performers):
            return self.performers[self.current_index]
        return None


@dataclass(frozen=True)
class BracketUpdatedEvent:
    """Full bracket snapshot; ``bracket`` is None when the tournament has no matches."""

    tournament_id: int
    bracket: BracketView | None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class PerformanceUpdatedEvent:
    tournament_id: int
    snapshot: PerformanceSnapshot
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class TournamentDeletedEvent:
    tournament_id: int
    timestamp: datetime = field(default_factory=datetime.now)


# Union type for type-safe pattern matching in consumers
TournamentEvent = BracketUpdatedEvent | PerformanceUpdatedEvent | TournamentDeletedEvent
