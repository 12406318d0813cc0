"""
Tournament package.

Pure pieces (records, snapshots, reconstruction) are re-exported here. The
store-backed engines live in their own modules and are imported from there:

  eventflow.tournaments.bracket.BracketAdvancer
  eventflow.tournaments.performance.PerformanceEngine

Keeping them out of this namespace lets eventflow.store import the record
types without pulling the engines in.
"""

from __future__ import annotations

from eventflow.tournaments.base import (
    MODES,
    SHOW_VIEWS,
    EliminationTournament,
    MatchRecord,
    Mode,
    Participant,
    PerformanceState,
    Performer,
    SequentialTournament,
    ShowView,
    Tournament,
    make_tournament,
    normalize_mode,
)
from eventflow.tournaments.events import (
    BracketMatch,
    BracketRound,
    BracketUpdatedEvent,
    BracketView,
    NextLink,
    PerformanceSnapshot,
    PerformanceUpdatedEvent,
    PerformerView,
    TournamentDeletedEvent,
    TournamentEvent,
)
from eventflow.tournaments.reconstruct import reconstruct_bracket

__all__ = [
    # Records
    "MODES",
    "SHOW_VIEWS",
    "EliminationTournament",
    "MatchRecord",
    "Mode",
    "Participant",
    "PerformanceState",
    "Performer",
    "SequentialTournament",
    "ShowView",
    "Tournament",
    "make_tournament",
    "normalize_mode",
    # Snapshots and events
    "BracketMatch",
    "BracketRound",
    "BracketView",
    "NextLink",
    "PerformerView",
    "PerformanceSnapshot",
    "BracketUpdatedEvent",
    "PerformanceUpdatedEvent",
    "TournamentDeletedEvent",
    "TournamentEvent",
    # Reconstruction
    "reconstruct_bracket",
]
