"""
Tournament abstractions — the records the engine reads from and writes to the store.

A tournament is a tagged variant: EliminationTournament owns a match graph,
SequentialTournament owns a performer roster and its PerformanceState.
Both carry a ``mode`` discriminant so consumers can dispatch on it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from eventflow.errors import PreconditionError

Mode = Literal["elimination", "sequential"]
ShowView = Literal["order", "winners"]
Slot = Literal[1, 2]

MODES: tuple[Mode, ...] = ("elimination", "sequential")
SHOW_VIEWS: tuple[ShowView, ...] = ("order", "winners")


@dataclass(frozen=True)
class EliminationTournament:
    id: int
    name: str
    background_path: str | None = None
    match_count: int = 0
    mode: Mode = field(default="elimination", init=False)

    @property
    def has_bracket(self) -> bool:
        return self.match_count > 0


@dataclass(frozen=True)
class SequentialTournament:
    id: int
    name: str
    background_path: str | None = None
    performer_count: int = 0
    mode: Mode = field(default="sequential", init=False)

    @property
    def has_roster(self) -> bool:
        return self.performer_count > 0


Tournament = EliminationTournament | SequentialTournament


def normalize_mode(mode: str | None) -> Mode:
    """Blank or absent mode means elimination; anything else must be a known mode."""
    cleaned = (mode or "").strip()
    if not cleaned:
        return "elimination"
    if cleaned not in MODES:
        raise PreconditionError(
            f"Unknown tournament mode: {cleaned!r}. Valid modes: {', '.join(MODES)}"
        )
    return cleaned  # type: ignore[return-value]


def make_tournament(
    ident: int,
    name: str,
    background_path: str | None,
    mode: str | None,
    match_count: int = 0,
    performer_count: int = 0,
) -> Tournament:
    """Build the variant matching a stored mode column."""
    if normalize_mode(mode) == "sequential":
        return SequentialTournament(
            id=ident,
            name=name,
            background_path=background_path,
            performer_count=performer_count,
        )
    return EliminationTournament(
        id=ident,
        name=name,
        background_path=background_path,
        match_count=match_count,
    )


@dataclass(frozen=True)
class Participant:
    id: int
    name: str


@dataclass(frozen=True)
class MatchRecord:
    """One stored match row, with the slot and winner names already joined in."""

    id: int
    tournament_id: int
    participant1_id: int | None = None
    participant2_id: int | None = None
    winner_id: int | None = None
    score1: int | None = None
    score2: int | None = None
    next_match_id: int | None = None
    next_match_slot: int | None = None
    participant1_name: str | None = None
    participant2_name: str | None = None
    winner_name: str | None = None

    @property
    def is_root(self) -> bool:
        return self.next_match_id is None

    def occupants(self) -> set[int]:
        return {p for p in (self.participant1_id, self.participant2_id) if p is not None}


@dataclass(frozen=True)
class Performer:
    id: int
    tournament_id: int
    display_name: str
    order_index: int
    total_score: float = 0.0
    is_selected_winner: bool = False
    participant_id: int | None = None


@dataclass(frozen=True)
class PerformanceState:
    tournament_id: int
    current_index: int = -1      # -1 = not started
    show_view: ShowView = "order"
    max_winners: int = 10
    scoring_enabled: bool = True
    finalized: bool = False
