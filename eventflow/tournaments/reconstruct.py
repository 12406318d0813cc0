"""
Bracket reconstruction — flat match rows in, ordered rounds out.

The store keeps the bracket as rows with forward pointers
(``next_match_id`` / ``next_match_slot``). This module rebuilds the
displayable structure on every read:

  1. find the single root (the final); no rows, or no rootless row, means
     "no bracket"
  2. reverse the edges into a children map
  3. walk breadth-first from the root; a row the walk never reaches sits on
     a cycle or points outside the set, so the graph is rejected
  4. depth of a match = longest child chain below it; round = R - distance
  5. order each round by (parent position in the round above, parent slot)

Everything here is pure: the same rows in any order give the same view.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Iterable

from eventflow.errors import InvalidGraphError
from eventflow.tournaments.base import MatchRecord
from eventflow.tournaments.events import (
    BracketMatch,
    BracketRound,
    BracketView,
    NextLink,
    Side,
)

logger = logging.getLogger(__name__)

_SIDES: dict[int, Side] = {1: "top", 2: "bottom"}


def reconstruct_bracket(
    matches: Iterable[MatchRecord],
    tournament_id: int,
    tournament_name: str | None = None,
) -> BracketView | None:
    """
    Rebuild the round structure for one tournament.

    Returns None when there are no matches, or when no match is rootless
    (every row points forward, so there is no final to hang rounds from).

    Raises:
        InvalidGraphError: more than one root, a cycle beside the root, or an edge
            whose target is not among ``matches``.
    """
    by_id = {m.id: m for m in matches}
    if not by_id:
        return None

    root = _find_root(by_id)
    if root is None:
        logger.warning(
            "Tournament %d has %d matches but no final; reporting no bracket",
            tournament_id, len(by_id),
        )
        return None
    children = _reverse_adjacency(by_id)
    order, distance = _walk_from_root(root, children, by_id)
    depth = _depths(order, children)

    total = depth[root]  # R: the root sits in round R, leaves of the longest chain in 0
    members: list[list[int]] = [[] for _ in range(total + 1)]
    for match_id in order:
        members[total - distance[match_id]].append(match_id)

    positions: list[dict[int, int]] = [dict() for _ in range(total + 1)]
    positions[total] = {root: 0}
    for r in range(total - 1, -1, -1):
        above = positions[r + 1]
        members[r].sort(
            key=lambda mid: (above[by_id[mid].next_match_id], by_id[mid].next_match_slot or 0, mid)
        )
        positions[r] = {mid: i for i, mid in enumerate(members[r])}

    rounds: list[BracketRound] = []
    for r, ids in enumerate(members):
        views = [_match_view(by_id[mid], r, positions) for mid in ids]
        rounds.append(BracketRound(index=r, name=round_name(r, total, len(ids)), matches=views))

    return BracketView(
        tournament_id=tournament_id,
        tournament_name=tournament_name,
        rounds=rounds,
        champion=by_id[root].winner_name,
        bracket_size=next_power_of_two(len(members[0])),
    )


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (1 for n <= 1)."""
    if n <= 1:
        return 1
    return 1 << (n - 1).bit_length()


def round_name(round_index: int, total: int, matches_in_round: int) -> str:
    """Human-readable label for a round; ``total`` is the root's round index."""
    if round_index == total:
        return "Final"
    if round_index == total - 1 and matches_in_round <= 2:
        return "Semifinal"
    if round_index == total - 2 and matches_in_round <= 4:
        return "Quarterfinal"
    return f"Round {round_index + 1}"


# ------------------------------------------------------------------ #
# Internal helpers                                                     #
# ------------------------------------------------------------------ #

def _find_root(by_id: dict[int, MatchRecord]) -> int | None:
    roots = sorted(mid for mid, m in by_id.items() if m.is_root)
    if not roots:
        return None
    if len(roots) > 1:
        raise InvalidGraphError(f"Match graph has {len(roots)} finals: {roots}")
    return roots[0]


def _reverse_adjacency(by_id: dict[int, MatchRecord]) -> dict[int, list[int]]:
    children: dict[int, list[int]] = {mid: [] for mid in by_id}
    for mid in sorted(by_id):
        target = by_id[mid].next_match_id
        if target is None:
            continue
        if target not in by_id:
            raise InvalidGraphError(
                f"Match {mid} feeds match {target}, which is not part of this bracket"
            )
        children[target].append(mid)
    return children


def _walk_from_root(
    root: int,
    children: dict[int, list[int]],
    by_id: dict[int, MatchRecord],
) -> tuple[list[int], dict[int, int]]:
    """Breadth-first order from the root plus each match's distance to it."""
    distance = {root: 0}
    order: list[int] = []
    queue = deque([root])
    while queue:
        current = queue.popleft()
        order.append(current)
        for child in children[current]:
            distance[child] = distance[current] + 1
            queue.append(child)

    unreached = sorted(set(by_id) - set(distance))
    if unreached:
        raise InvalidGraphError(f"Matches {unreached} never lead to the final (cycle)")
    return order, distance


def _depths(order: list[int], children: dict[int, list[int]]) -> dict[int, int]:
    """Longest child chain below each match; leaves are 0."""
    depth: dict[int, int] = {}
    for mid in reversed(order):  # children always come after their parent in BFS order
        kids = children[mid]
        depth[mid] = 1 + max(depth[k] for k in kids) if kids else 0
    return depth


def _match_view(match: MatchRecord, r: int, positions: list[dict[int, int]]) -> BracketMatch:
    link = None
    if match.next_match_id is not None:
        link = NextLink(
            round=r + 1,
            index=positions[r + 1][match.next_match_id],
            side=_SIDES.get(match.next_match_slot or 1, "top"),
        )
    return BracketMatch(
        match_id=match.id,
        player1=match.participant1_name,
        player2=match.participant2_name,
        winner=match.winner_name,
        score1=match.score1,
        score2=match.score2,
        next=link,
    )
