"""
Tests for PerformanceEngine — the sequential-mode roster state machine.
"""

import sqlite3
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

from eventflow.config import PerformanceConfig
from eventflow.errors import NotFoundError, PreconditionError, StoreError
from eventflow.store.database import Database
from eventflow.store.repositories import (
    PerformanceStateRepository,
    PerformerRepository,
    TournamentRepository,
)
from eventflow.tournaments.performance import FINALIZE_CAP, PerformanceEngine


class _PerformanceTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db = Database(Path(self._tmp.name) / "eventflow.db")
        self.engine = PerformanceEngine(self.db)
        self.tid = self._create_tournament("Talent Night")

    def tearDown(self):
        self.db.close()
        self._tmp.cleanup()

    def _create_tournament(self, name):
        with self.db.transaction() as conn:
            return TournamentRepository(conn).create(name, None, "sequential")

    def _ids(self, snap):
        return {p.display_name: p.id for p in snap.performers}

    def _names(self, snap):
        return [p.display_name for p in snap.performers]

    def _indices(self, snap):
        return [p.order_index for p in snap.performers]


class RosterTests(_PerformanceTestCase):

    def test_initial_snapshot(self):
        snap = self.engine.snapshot(self.tid)
        self.assertEqual(snap.performers, [])
        self.assertEqual(snap.current_index, -1)
        self.assertEqual(snap.show_view, "order")
        self.assertEqual(snap.mode, "sequential")
        self.assertFalse(snap.finalized)
        self.assertIsNone(snap.current_performer)

    def test_defaults_come_from_config(self):
        engine = PerformanceEngine(self.db, PerformanceConfig(max_winners=3, scoring_enabled=False))
        snap = engine.snapshot(self.tid)
        self.assertEqual(snap.max_winners, 3)
        self.assertFalse(snap.scoring_enabled)

    def test_replace_roster_skips_blank_names(self):
        snap = self.engine.replace_roster(self.tid, ["Amy", " ", "Bo", "", " Cy "])
        self.assertEqual(self._names(snap), ["Amy", "Bo", "Cy"])
        self.assertEqual([p.order_index for p in snap.performers], [0, 1, 2])

    def test_replace_roster_drops_previous_roster(self):
        self.engine.replace_roster(self.tid, ["Amy", "Bo"])
        snap = self.engine.replace_roster(self.tid, ["Dee"])
        self.assertEqual(self._names(snap), ["Dee"])

    def test_append_goes_to_the_end(self):
        self.engine.replace_roster(self.tid, ["Amy", "Bo"])
        snap = self.engine.append(self.tid, "Cy")
        self.assertEqual(self._names(snap), ["Amy", "Bo", "Cy"])
        self.assertEqual(snap.performers[-1].order_index, 2)

    def test_append_rejects_blank(self):
        with self.assertRaises(PreconditionError):
            self.engine.append(self.tid, "  ")

    def test_reorder_keeps_indices_dense(self):
        self.engine.replace_roster(self.tid, ["Amy", "Bo", "Cy", "Dee"])
        snap = self.engine.reorder(self.tid, 0, 2)
        self.assertEqual(self._names(snap), ["Bo", "Cy", "Amy", "Dee"])
        self.assertEqual([p.order_index for p in snap.performers], [0, 1, 2, 3])

        snap = self.engine.reorder(self.tid, 3, 0)
        self.assertEqual(self._names(snap), ["Dee", "Bo", "Cy", "Amy"])

    def test_reorder_out_of_range_is_a_no_op(self):
        before = self.engine.replace_roster(self.tid, ["Amy", "Bo"])
        for frm, to in ((0, 5), (-1, 0), (1, 1)):
            self.assertEqual(self.engine.reorder(self.tid, frm, to).performers, before.performers)

    def test_remove_repacks(self):
        snap = self.engine.replace_roster(self.tid, ["Amy", "Bo", "Cy", "Dee"])
        snap = self.engine.remove(self.tid, self._ids(snap)["Bo"])
        self.assertEqual(self._names(snap), ["Amy", "Cy", "Dee"])
        self.assertEqual([p.order_index for p in snap.performers], [0, 1, 2])

    def test_remove_unknown_performer(self):
        with self.assertRaises(NotFoundError):
            self.engine.remove(self.tid, 4242)

    def test_unknown_tournament(self):
        with self.assertRaises(NotFoundError):
            self.engine.snapshot(999)

    def test_append_then_move_last_to_front(self):
        self.engine.replace_roster(self.tid, ["Amy", "Bo", "Cy"])
        snap = self.engine.append(self.tid, "Dee")
        self.assertEqual(self._indices(snap), [0, 1, 2, 3])

        snap = self.engine.reorder(self.tid, 3, 0)
        self.assertEqual(self._names(snap), ["Dee", "Amy", "Bo", "Cy"])
        self.assertEqual(self._indices(snap), [0, 1, 2, 3])


def _fail_on_second_renumber():
    original = PerformerRepository.set_order_index
    calls = []

    def set_order_index(repo, performer_id, order_index):
        calls.append(performer_id)
        if len(calls) == 2:
            raise sqlite3.OperationalError("database is locked")
        return original(repo, performer_id, order_index)

    return patch.object(PerformerRepository, "set_order_index", set_order_index)


class RenumberRollbackTests(_PerformanceTestCase):

    def setUp(self):
        super().setUp()
        self.before = self.engine.replace_roster(self.tid, ["Amy", "Bo", "Cy", "Dee"])

    def test_failed_reorder_leaves_indices_untouched(self):
        with _fail_on_second_renumber():
            with self.assertRaises(StoreError):
                self.engine.reorder(self.tid, 3, 0)
        after = self.engine.snapshot(self.tid)
        self.assertEqual(after.performers, self.before.performers)
        self.assertEqual(self._indices(after), [0, 1, 2, 3])

    def test_failed_remove_keeps_the_performer_and_indices(self):
        amy = self._ids(self.before)["Amy"]
        with _fail_on_second_renumber():
            with self.assertRaises(StoreError):
                self.engine.remove(self.tid, amy)
        after = self.engine.snapshot(self.tid)
        self.assertEqual(self._names(after), ["Amy", "Bo", "Cy", "Dee"])
        self.assertEqual(self._indices(after), [0, 1, 2, 3])


class SnapshotReadTests(_PerformanceTestCase):

    def test_snapshot_does_not_create_state(self):
        snap = self.engine.snapshot(self.tid)
        self.assertEqual(snap.max_winners, 10)
        with self.db.read() as conn:
            self.assertIsNone(PerformanceStateRepository(conn).get(self.tid))

    def test_snapshot_while_another_read_is_open(self):
        self.engine.replace_roster(self.tid, ["Amy", "Bo"])
        holding = threading.Event()
        release = threading.Event()

        def hold_read():
            with self.db.read() as conn:
                PerformerRepository(conn).list_ordered(self.tid)
                holding.set()
                release.wait(5)

        holder = threading.Thread(target=hold_read)
        holder.start()
        try:
            self.assertTrue(holding.wait(5))
            names = []
            reader = threading.Thread(
                target=lambda: names.extend(self._names(self.engine.snapshot(self.tid)))
            )
            reader.start()
            reader.join(2)
            self.assertFalse(reader.is_alive())
            self.assertEqual(names, ["Amy", "Bo"])
        finally:
            release.set()
            holder.join()


class LiveStateTests(_PerformanceTestCase):

    def test_cursor_tracks_current_performer(self):
        self.engine.replace_roster(self.tid, ["Amy", "Bo"])
        snap = self.engine.set_cursor(self.tid, 1)
        self.assertEqual(snap.current_index, 1)
        self.assertEqual(snap.current_performer.display_name, "Bo")

    def test_set_score(self):
        snap = self.engine.replace_roster(self.tid, ["Amy"])
        snap = self.engine.set_score(self.tid, self._ids(snap)["Amy"], 8.5)
        self.assertEqual(snap.performers[0].total_score, 8.5)

    def test_set_score_on_foreign_performer(self):
        other = self._create_tournament("Other")
        foreign = self.engine.replace_roster(other, ["Zed"]).performers[0].id
        with self.assertRaises(NotFoundError):
            self.engine.set_score(self.tid, foreign, 1.0)

    def test_set_view(self):
        self.assertEqual(self.engine.set_view(self.tid, "winners").show_view, "winners")
        with self.assertRaises(PreconditionError):
            self.engine.set_view(self.tid, "podium")

    def test_configure(self):
        snap = self.engine.configure(self.tid, max_winners=3, scoring_enabled=False)
        self.assertEqual((snap.max_winners, snap.scoring_enabled), (3, False))
        with self.assertRaises(PreconditionError):
            self.engine.configure(self.tid, max_winners=0)


class WinnerTests(_PerformanceTestCase):

    def test_select_replaces_previous_selection(self):
        snap = self.engine.replace_roster(self.tid, ["Amy", "Bo", "Cy"])
        ids = self._ids(snap)
        self.engine.select_winners(self.tid, [ids["Amy"], ids["Bo"]])
        snap = self.engine.select_winners(self.tid, [ids["Cy"]])
        self.assertEqual(snap.winners, [ids["Cy"]])

    def test_select_ignores_foreign_ids(self):
        other = self._create_tournament("Other")
        foreign = self.engine.replace_roster(other, ["Zed"]).performers[0].id
        snap = self.engine.replace_roster(self.tid, ["Amy"])
        amy = snap.performers[0].id

        snap = self.engine.select_winners(self.tid, [amy, foreign])
        self.assertEqual(snap.winners, [amy])
        self.assertEqual(self.engine.snapshot(other).winners, [])

    def test_winners_listed_in_roster_order(self):
        snap = self.engine.replace_roster(self.tid, ["Amy", "Bo", "Cy"])
        ids = self._ids(snap)
        snap = self.engine.select_winners(self.tid, [ids["Cy"], ids["Amy"]])
        self.assertEqual(snap.winners, [ids["Amy"], ids["Cy"]])

    def test_full_show_scenario(self):
        snap = self.engine.replace_roster(self.tid, ["Amy", "Bo", "Cy", "Dee"])
        snap = self.engine.reorder(self.tid, 0, 2)            # Bo, Cy, Amy, Dee
        ids = self._ids(snap)
        for name, score in (("Amy", 7), ("Bo", 9), ("Cy", 9), ("Dee", 5)):
            self.engine.set_score(self.tid, ids[name], score)
        self.engine.set_cursor(self.tid, 3)

        snap = self.engine.finalize(self.tid, "score")
        self.assertTrue(snap.finalized)
        self.assertEqual(snap.show_view, "winners")
        self.assertEqual(snap.winners, [ids["Bo"], ids["Cy"], ids["Amy"], ids["Dee"]])

    def test_finalize_by_score_caps_selection(self):
        names = [f"P{i}" for i in range(FINALIZE_CAP + 2)]
        snap = self.engine.replace_roster(self.tid, names)
        for i, p in enumerate(snap.performers):
            self.engine.set_score(self.tid, p.id, float(i))
        snap = self.engine.finalize(self.tid, "score")

        self.assertEqual(len(snap.winners), FINALIZE_CAP)
        losers = {p.display_name for p in snap.performers if not p.is_selected_winner}
        self.assertEqual(losers, {"P0", "P1"})

    def test_finalize_ties_broken_by_running_order(self):
        names = [f"P{i}" for i in range(FINALIZE_CAP + 1)]
        snap = self.engine.replace_roster(self.tid, names)  # everyone scores 0
        snap = self.engine.finalize(self.tid, "score")
        losers = [p.display_name for p in snap.performers if not p.is_selected_winner]
        self.assertEqual(losers, [f"P{FINALIZE_CAP}"])

    def test_finalize_manual_keeps_selection(self):
        snap = self.engine.replace_roster(self.tid, ["Amy", "Bo"])
        bo = self._ids(snap)["Bo"]
        self.engine.set_score(self.tid, self._ids(snap)["Amy"], 10)
        self.engine.select_winners(self.tid, [bo])
        snap = self.engine.finalize(self.tid, "manual")
        self.assertEqual(snap.winners, [bo])
        self.assertTrue(snap.finalized)

    def test_finalize_rejects_unknown_source(self):
        with self.assertRaises(PreconditionError):
            self.engine.finalize(self.tid, "applause")

    def test_clear_resets_everything(self):
        snap = self.engine.replace_roster(self.tid, ["Amy", "Bo"])
        self.engine.set_cursor(self.tid, 1)
        self.engine.finalize(self.tid, "score")

        snap = self.engine.clear(self.tid)
        self.assertEqual(snap.performers, [])
        self.assertEqual(snap.winners, [])
        self.assertEqual(snap.current_index, -1)
        self.assertEqual(snap.show_view, "order")
        self.assertFalse(snap.finalized)

    def test_finalize_after_clear_on_empty_roster(self):
        self.engine.replace_roster(self.tid, ["Amy"])
        self.engine.clear(self.tid)
        snap = self.engine.finalize(self.tid, "score")
        self.assertEqual(snap.winners, [])
        self.assertTrue(snap.finalized)


if __name__ == "__main__":
    unittest.main()
