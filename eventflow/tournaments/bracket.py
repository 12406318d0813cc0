"""
Single-elimination match graph: building it, seeding slots, advancing winners.

Rules:
- Every match except the final points to exactly one downstream match and
  slot (1 = top, 2 = bottom).
- Recording a result writes winner + scores and fills the downstream slot in
  the same transaction. Advancement is one hop only; the downstream match
  waits for its own result.
- A declared winner must occupy one of the match's slots. A walkover (one
  empty slot) is fine as long as the winner is the occupant.
- Entrant order is taken as given. When the count is not a power of 2 the
  bottom of the list is folded against byes, and bye matches are resolved as
  walkovers straight away.
"""

from __future__ import annotations

import logging
import math

from eventflow.errors import NotFoundError, PreconditionError
from eventflow.store.database import Database
from eventflow.store.repositories import (
    MatchRepository,
    ParticipantRepository,
    TournamentRepository,
)
from eventflow.tournaments.base import MatchRecord, Slot
from eventflow.tournaments.reconstruct import next_power_of_two

logger = logging.getLogger(__name__)

SLOTS: tuple[Slot, ...] = (1, 2)


class BracketAdvancer:
    """Write side of the match graph. Every public method is one transaction."""

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------ #
    # Results                                                              #
    # ------------------------------------------------------------------ #

    def record_result(
        self,
        match_id: int,
        winner_id: int,
        score1: int | None = None,
        score2: int | None = None,
    ) -> int:
        """
        Record a result and move the winner into the next match.

        Returns the owning tournament id.

        Raises:
            NotFoundError: unknown match.
            PreconditionError: the winner does not occupy a slot of this match,
                or already occupies the other slot of the next match.
        """
        with self._db.transaction() as conn:
            matches = MatchRepository(conn)
            match = matches.require(match_id)

            if winner_id not in match.occupants():
                logger.warning(
                    "Rejected result for match %d: participant %s is not in %s",
                    match_id, winner_id, sorted(match.occupants()),
                )
                raise PreconditionError(
                    f"Participant {winner_id} does not occupy a slot of match {match_id}"
                )

            matches.set_result(match_id, winner_id, score1, score2)

            if match.next_match_id is not None:
                target = matches.require(match.next_match_id)
                slot = match.next_match_slot or 1
                _check_not_in_other_slot(target, slot, winner_id)
                matches.set_slot(target.id, slot, winner_id)
                logger.info(
                    "Match %d won by %d → match %d slot %d",
                    match_id, winner_id, target.id, slot,
                )
            else:
                logger.info("Final %d won by %d", match_id, winner_id)

            return match.tournament_id

    def assign_slot(self, match_id: int, slot: Slot, participant_id: int | None) -> int:
        """Overwrite one competitor slot (manual seeding / correction). No propagation."""
        if slot not in SLOTS:
            raise PreconditionError(f"Slot must be 1 or 2, got {slot!r}")

        with self._db.transaction() as conn:
            matches = MatchRepository(conn)
            match = matches.require(match_id)
            if participant_id is not None:
                if ParticipantRepository(conn).get(participant_id) is None:
                    raise NotFoundError("participant", participant_id)
                _check_not_in_other_slot(match, slot, participant_id)
            matches.set_slot(match_id, slot, participant_id)
            logger.info("Match %d slot %d set to %s", match_id, slot, participant_id)
            return match.tournament_id

    # ------------------------------------------------------------------ #
    # Graph construction                                                   #
    # ------------------------------------------------------------------ #

    def create_match(
        self,
        tournament_id: int,
        participant1_id: int | None = None,
        participant2_id: int | None = None,
        next_match_id: int | None = None,
        next_match_slot: int | None = None,
    ) -> int:
        """Insert one match row after checking its edge stays inside the tournament."""
        if participant1_id is not None and participant1_id == participant2_id:
            raise PreconditionError("A participant cannot fill both slots of one match")
        if (next_match_id is None) != (next_match_slot is None):
            raise PreconditionError("next_match_id and next_match_slot must be given together")
        if next_match_slot is not None and next_match_slot not in SLOTS:
            raise PreconditionError(f"Slot must be 1 or 2, got {next_match_slot!r}")

        with self._db.transaction() as conn:
            TournamentRepository(conn).require(tournament_id)
            matches = MatchRepository(conn)
            if next_match_id is not None:
                target = matches.require(next_match_id)
                if target.tournament_id != tournament_id:
                    raise PreconditionError(
                        f"Match {next_match_id} belongs to tournament {target.tournament_id}, "
                        f"not {tournament_id}"
                    )
            return matches.create(
                tournament_id, participant1_id, participant2_id, next_match_id, next_match_slot
            )

    def build_bracket(self, tournament_id: int, names: list[str]) -> list[int]:
        """
        Replace the tournament's bracket with a fresh one for ``names``.

        Matches are created from the final outward so every row can point at
        its parent on insert. Returns the created match ids, final first.
        """
        entrants = [n.strip() for n in names if n and n.strip()]
        if len(entrants) < 2:
            raise PreconditionError("A bracket requires at least 2 participants.")

        with self._db.transaction() as conn:
            TournamentRepository(conn).require(tournament_id)
            matches = MatchRepository(conn)
            participants = ParticipantRepository(conn)

            removed = _clear_graph(matches, participants, tournament_id)
            if removed:
                logger.info("Cleared %d old matches of tournament %d", removed, tournament_id)

            slots = _place_byes([participants.create(name) for name in entrants])
            leaf_count = len(slots) // 2

            created: list[int] = []
            parents: list[int] = []
            level_size = 1
            while True:
                level: list[int] = []
                for i in range(level_size):
                    p1 = p2 = None
                    if level_size == leaf_count:
                        p1, p2 = slots[2 * i], slots[2 * i + 1]
                    level.append(
                        matches.create(
                            tournament_id,
                            participant1_id=p1,
                            participant2_id=p2,
                            next_match_id=parents[i // 2] if parents else None,
                            next_match_slot=(i % 2 + 1) if parents else None,
                        )
                    )
                created.extend(level)
                if level_size == leaf_count:
                    break
                parents = level
                level_size *= 2

            # Byes: the lone occupant walks over into the next round.
            first_round = created[-leaf_count:]
            for i, match_id in enumerate(first_round):
                a, b = slots[2 * i], slots[2 * i + 1]
                if (a is None) != (b is None):
                    self.record_result(match_id, a if a is not None else b)

            logger.info(
                "Built bracket for tournament %d: %d entrants, %d matches, %d rounds",
                tournament_id, len(entrants), len(created), int(math.log2(len(slots))),
            )
            return created

    def clear_matches(self, tournament_id: int) -> int:
        with self._db.transaction() as conn:
            TournamentRepository(conn).require(tournament_id)
            removed = _clear_graph(MatchRepository(conn), ParticipantRepository(conn), tournament_id)
        logger.info("Cleared %d matches of tournament %d", removed, tournament_id)
        return removed

    # ------------------------------------------------------------------ #
    # Participants                                                         #
    # ------------------------------------------------------------------ #

    def add_participant(self, name: str) -> int:
        cleaned = (name or "").strip()
        if not cleaned:
            raise PreconditionError("Participant name must not be blank")
        with self._db.transaction() as conn:
            return ParticipantRepository(conn).create(cleaned)

    def remove_participant(self, participant_id: int) -> None:
        """Delete a participant; matches keep their rows with the references nulled."""
        with self._db.transaction() as conn:
            ParticipantRepository(conn).delete(participant_id)
        logger.info("Removed participant %d", participant_id)


# ------------------------------------------------------------------ #
# Bracket helpers                                                     #
# ------------------------------------------------------------------ #

def _clear_graph(
    matches: MatchRepository, participants: ParticipantRepository, tournament_id: int
) -> int:
    """Delete the tournament's matches and the participants only they referenced."""
    referenced = {
        pid
        for m in matches.list_for_tournament(tournament_id)
        for pid in (m.participant1_id, m.participant2_id, m.winner_id)
        if pid is not None
    }
    removed = matches.delete_for_tournament(tournament_id)
    orphans = participants.delete_unreferenced(referenced)
    if orphans:
        logger.debug("Dropped %d orphaned participants of tournament %d", orphans, tournament_id)
    return removed


def _place_byes(entrants: list[int]) -> list[int | None]:
    """
    Pad to a power of two and fold the list so each bye faces an entrant.

    Position i of the first half meets position i of the reversed second
    half, so with fewer byes than matches no match gets two byes.
    """
    slots: list[int | None] = list(entrants) + [None] * (
        next_power_of_two(len(entrants)) - len(entrants)
    )
    half = len(slots) // 2
    top = slots[:half]
    bottom = slots[half:][::-1]
    result: list[int | None] = []
    for t, b in zip(top, bottom):
        result.extend((t, b))
    return result


def _check_not_in_other_slot(match: MatchRecord, slot: int, participant_id: int) -> None:
    other = match.participant2_id if slot == 1 else match.participant1_id
    if other == participant_id:
        raise PreconditionError(
            f"Participant {participant_id} already occupies the other slot of match {match.id}"
        )
