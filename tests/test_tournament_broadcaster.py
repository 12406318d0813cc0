"""
Unit tests for TournamentBroadcaster — per-tournament fan-out and replay of
the latest snapshot to late subscribers.
"""

import unittest

from eventflow.tournaments.events import BracketUpdatedEvent, TournamentDeletedEvent
from eventflow.web.broadcaster import TournamentBroadcaster


class TournamentBroadcasterTests(unittest.IsolatedAsyncioTestCase):

    async def test_publish_reaches_only_that_tournament(self):
        b = TournamentBroadcaster()
        mine = b.subscribe(1)
        theirs = b.subscribe(2)

        audience = await b.publish(BracketUpdatedEvent(tournament_id=1, bracket=None))

        self.assertEqual(audience, 1)
        self.assertEqual(mine.qsize(), 1)
        self.assertTrue(theirs.empty())

    async def test_late_subscriber_gets_latest_only(self):
        b = TournamentBroadcaster()
        await b.publish(BracketUpdatedEvent(tournament_id=1, bracket=None))
        newest = BracketUpdatedEvent(tournament_id=1, bracket=None)
        await b.publish(newest)

        queue = b.subscribe(1)
        self.assertEqual(queue.qsize(), 1)
        self.assertIs(queue.get_nowait(), newest)

    async def test_delete_forgets_latest(self):
        b = TournamentBroadcaster()
        await b.publish(BracketUpdatedEvent(tournament_id=1, bracket=None))
        await b.publish(TournamentDeletedEvent(tournament_id=1))
        self.assertIsNone(b.latest(1))
        self.assertTrue(b.subscribe(1).empty())

    async def test_unsubscribe_and_viewer_count(self):
        b = TournamentBroadcaster()
        q1 = b.subscribe(1)
        b.subscribe(1)
        b.subscribe(2)
        self.assertEqual(b.viewer_count(), 3)
        self.assertEqual(b.viewer_count(1), 2)

        b.unsubscribe(1, q1)
        b.unsubscribe(1, q1)  # second call is harmless
        self.assertEqual(b.viewer_count(1), 1)
        self.assertEqual(await b.publish(BracketUpdatedEvent(tournament_id=1, bracket=None)), 1)


if __name__ == "__main__":
    unittest.main()
