"""
Tests for reconstruct_bracket — flat match rows in, ordered rounds out.

The reconstruction is pure, so every test builds MatchRecord lists by hand
and never touches the store.
"""

import random
import unittest

from eventflow.errors import InvalidGraphError
from eventflow.tournaments.base import MatchRecord
from eventflow.tournaments.events import NextLink
from eventflow.tournaments.reconstruct import (
    next_power_of_two,
    reconstruct_bracket,
    round_name,
)


def _m(mid, nxt=None, slot=None, p1=None, p2=None, winner=None, s1=None, s2=None):
    return MatchRecord(
        id=mid,
        tournament_id=1,
        next_match_id=nxt,
        next_match_slot=slot,
        participant1_name=p1,
        participant2_name=p2,
        winner_name=winner,
        score1=s1,
        score2=s2,
    )


def _eight_player_rows():
    # Final 10; semis 21 (top) and 20 (bottom); quarters under each.
    return [
        _m(10),
        _m(20, 10, 2),
        _m(21, 10, 1),
        _m(30, 20, 1, "Eve", "Fay"),
        _m(31, 20, 2, "Gus", "Hal"),
        _m(32, 21, 1, "Ann", "Ben"),
        _m(33, 21, 2, "Cat", "Dan"),
    ]


class ReconstructBracketTests(unittest.TestCase):

    def test_no_matches_means_no_bracket(self):
        self.assertIsNone(reconstruct_bracket([], tournament_id=1))

    def test_single_match_is_the_final(self):
        view = reconstruct_bracket([_m(5, p1="Ann", p2="Ben")], 1, "Cup")
        self.assertIsNotNone(view)
        self.assertEqual(view.total_rounds, 1)
        self.assertEqual(view.rounds[0].name, "Final")
        self.assertEqual(view.bracket_size, 1)
        self.assertIsNone(view.rounds[0].matches[0].next)

    def test_rounds_ordered_leaves_first(self):
        view = reconstruct_bracket(_eight_player_rows(), 1, "Cup")
        self.assertEqual([r.index for r in view.rounds], [0, 1, 2])
        self.assertEqual([len(r.matches) for r in view.rounds], [4, 2, 1])
        self.assertEqual(
            [r.name for r in view.rounds], ["Quarterfinal", "Semifinal", "Final"]
        )
        self.assertEqual(view.bracket_size, 4)
        self.assertEqual(view.tournament_name, "Cup")

    def test_siblings_follow_parent_position_then_slot(self):
        view = reconstruct_bracket(_eight_player_rows(), 1)
        # 21 feeds the final's top slot, so it comes first despite its larger id.
        self.assertEqual([m.match_id for m in view.rounds[1].matches], [21, 20])
        self.assertEqual([m.match_id for m in view.rounds[0].matches], [32, 33, 30, 31])

    def test_next_links_point_at_round_position_and_side(self):
        view = reconstruct_bracket(_eight_player_rows(), 1)
        quarters = {m.match_id: m for m in view.rounds[0].matches}
        self.assertEqual(quarters[32].next, NextLink(round=1, index=0, side="top"))
        self.assertEqual(quarters[33].next, NextLink(round=1, index=0, side="bottom"))
        self.assertEqual(quarters[31].next, NextLink(round=1, index=1, side="bottom"))
        semis = {m.match_id: m for m in view.rounds[1].matches}
        self.assertEqual(semis[20].next, NextLink(round=2, index=0, side="bottom"))

    def test_input_order_does_not_matter(self):
        rows = _eight_player_rows()
        expected = reconstruct_bracket(rows, 1, "Cup")
        rng = random.Random(7)
        for _ in range(5):
            shuffled = list(rows)
            rng.shuffle(shuffled)
            self.assertEqual(reconstruct_bracket(shuffled, 1, "Cup"), expected)

    def test_champion_and_scores_carried_through(self):
        rows = [
            _m(1, p1="Ann", p2="Ben", winner="Ann", s1=3, s2=1),
            _m(2, 1, 1, "Ann", "Cat", "Ann", 2, 0),
            _m(3, 1, 2, "Ben", "Dan", "Ben", 1, 0),
        ]
        view = reconstruct_bracket(rows, 1)
        self.assertEqual(view.champion, "Ann")
        final = view.rounds[1].matches[0]
        self.assertEqual((final.player1, final.player2, final.winner), ("Ann", "Ben", "Ann"))
        self.assertEqual((final.score1, final.score2), (3, 1))

    def test_champion_absent_until_final_decided(self):
        rows = [_m(1, p1="Ann"), _m(2, 1, 1, "Ann", "Cat", "Ann"), _m(3, 1, 2, "Ben", "Dan")]
        self.assertIsNone(reconstruct_bracket(rows, 1).champion)

    def test_unbalanced_graph_places_rounds_by_distance_from_final(self):
        # 3 has no feeders but sits one round below the final, beside 2.
        rows = [_m(1), _m(2, 1, 1), _m(3, 1, 2), _m(4, 2, 1), _m(5, 2, 2)]
        view = reconstruct_bracket(rows, 1)
        placement = {m.match_id: r.index for r in view.rounds for m in r.matches}
        self.assertEqual(placement, {4: 0, 5: 0, 2: 1, 3: 1, 1: 2})
        self.assertEqual(view.total_rounds, 3)
        self.assertEqual([m.match_id for m in view.rounds[1].matches], [2, 3])
        self.assertEqual(view.rounds[1].matches[1].next, NextLink(round=2, index=0, side="bottom"))

    def test_empty_slots_render_as_none(self):
        rows = [_m(1), _m(2, 1, 1), _m(3, 1, 2)]
        final = reconstruct_bracket(rows, 1).rounds[1].matches[0]
        self.assertIsNone(final.player1)
        self.assertIsNone(final.player2)


class InvalidGraphTests(unittest.TestCase):

    def test_two_finals_rejected(self):
        with self.assertRaises(InvalidGraphError):
            reconstruct_bracket([_m(1), _m(2)], 1)

    def test_rows_without_a_final_mean_no_bracket(self):
        self.assertIsNone(reconstruct_bracket([_m(1, 2, 1), _m(2, 1, 1)], 1))

    def test_cycle_beside_a_root_rejected(self):
        rows = [_m(1), _m(2, 1, 1), _m(3, 4, 1), _m(4, 3, 1)]
        with self.assertRaises(InvalidGraphError):
            reconstruct_bracket(rows, 1)

    def test_edge_leaving_the_tournament_rejected(self):
        with self.assertRaises(InvalidGraphError):
            reconstruct_bracket([_m(1), _m(2, 99, 1)], 1)


class BracketHelperTests(unittest.TestCase):

    def test_next_power_of_two(self):
        self.assertEqual(
            [next_power_of_two(n) for n in (0, 1, 2, 3, 4, 5, 8, 9)],
            [1, 1, 2, 4, 4, 8, 8, 16],
        )

    def test_round_names(self):
        self.assertEqual(round_name(3, 3, 1), "Final")
        self.assertEqual(round_name(2, 3, 2), "Semifinal")
        self.assertEqual(round_name(1, 3, 4), "Quarterfinal")
        self.assertEqual(round_name(0, 3, 8), "Round 1")


if __name__ == "__main__":
    unittest.main()
