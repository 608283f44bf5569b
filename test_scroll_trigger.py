import asyncio
import unittest

from fake_ledger import FakeLedger, listing_page
from market_feed.processors.aggregation import AggregationPipeline
from market_feed.processors.metadata_cache import MetadataCache
from market_feed.processors.pagination import PaginationController
from market_feed.processors.scroll_trigger import ScrollTrigger
from market_feed.rpc.ledger_client import TransportError
from market_feed.session import Session


class TestScrollTrigger(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.ledger = FakeLedger(listing_pages={
            None: listing_page([1, 2], next_cursor=2),
            2: listing_page([3, 4], next_cursor=4),
            4: listing_page([5], next_cursor=None),
        })
        session = Session('acct-1')

        async def fetch(account, cursor, limit):
            return await self.ledger.get_listings(cursor, limit)

        pipeline = AggregationPipeline(MetadataCache(self.ledger, session))
        self.controller = PaginationController('listings', fetch, pipeline, session, page_size=2)
        self.trigger = ScrollTrigger(self.controller, threshold=100)

    async def test_sentinel_follows_last_loaded_item(self):
        self.assertIsNone(self.trigger.sentinel)

        await self.trigger.on_intersect(None)
        self.assertEqual(self.trigger.sentinel, 2)
        self.assertTrue(self.trigger.armed)

        await self.trigger.on_intersect(2)
        self.assertEqual(self.trigger.sentinel, 4)
        self.assertEqual(self.controller.keys(), [1, 2, 3, 4])

    async def test_only_the_sentinel_triggers(self):
        await self.trigger.on_intersect(None)
        self.assertIsNone(self.trigger.on_intersect(1))
        self.assertEqual(len(self.ledger.calls_to('get_listings')), 1)

    async def test_fires_once_per_sentinel(self):
        task = self.trigger.on_intersect(None)
        self.assertIsNotNone(task)
        self.assertIsNone(self.trigger.on_intersect(None))
        await task
        self.assertEqual(len(self.ledger.calls_to('get_listings')), 1)

    async def test_failed_fetch_stays_disarmed_until_rearm(self):
        await self.trigger.on_intersect(None)
        self.ledger.page_error = TransportError('offline')

        self.assertFalse(await self.trigger.on_intersect(2))
        self.assertFalse(self.trigger.armed)
        self.assertIsNone(self.trigger.on_intersect(2))

        self.ledger.page_error = None
        self.trigger.rearm()
        self.assertTrue(await self.trigger.on_intersect(2))
        self.assertEqual(self.controller.keys(), [1, 2, 3, 4])

    async def test_exhausted_collection_never_triggers(self):
        await self.trigger.on_intersect(None)
        await self.trigger.on_intersect(2)
        await self.trigger.on_intersect(4)
        self.assertTrue(self.controller.state.exhausted)

        self.assertIsNone(self.trigger.on_intersect(5))
        self.assertEqual(len(self.ledger.calls_to('get_listings')), 3)

    async def test_scroll_near_end_triggers(self):
        await self.trigger.on_intersect(None)

        self.assertIsNone(self.trigger.on_scroll(offset=0, viewport=500, content_length=1000))
        task = self.trigger.on_scroll(offset=450, viewport=500, content_length=1000)
        self.assertIsNotNone(task)
        await task
        self.assertEqual(self.controller.keys(), [1, 2, 3, 4])

    async def test_reset_rearms(self):
        await self.trigger.on_intersect(None)
        self.ledger.page_error = TransportError('offline')
        await self.trigger.on_intersect(2)
        self.assertFalse(self.trigger.armed)

        self.ledger.page_error = None
        self.controller.reset()

        self.assertIsNone(self.trigger.sentinel)
        self.assertTrue(self.trigger.armed)
        await self.trigger.on_intersect(None)
        self.assertEqual(self.controller.keys(), [1, 2])

    async def test_repeated_page_with_new_cursor_rearms(self):
        self.ledger.listing_pages = {
            None: listing_page([1, 2], next_cursor=2),
            2: listing_page([1, 2], next_cursor=4),
            4: listing_page([3], next_cursor=None),
        }
        await self.trigger.on_intersect(None)
        self.assertTrue(await self.trigger.on_intersect(2))

        # Nothing new arrived, but the cursor moved on
        self.assertEqual(self.controller.keys(), [1, 2])
        self.assertEqual(self.controller.state.cursor, 4)
        self.assertTrue(self.trigger.armed)

        task = self.trigger.on_intersect(self.trigger.sentinel)
        self.assertIsNotNone(task)
        await task
        self.assertEqual(self.controller.keys(), [1, 2, 3])
        self.assertTrue(self.controller.state.exhausted)

    async def test_unexpected_fetch_error_is_logged(self):
        self.ledger.page_error = RuntimeError('decoder crashed')

        with self.assertLogs('market_feed.processors.scroll_trigger', level='ERROR') as logs:
            task = self.trigger.on_intersect(None)
            await asyncio.wait([task])

        self.assertIsInstance(task.exception(), RuntimeError)
        self.assertIn('decoder crashed', logs.output[0])
        self.assertFalse(self.controller.state.busy)

    async def test_closed_trigger_is_inert(self):
        self.trigger.close()
        self.assertIsNone(self.trigger.on_intersect(None))
        self.assertEqual(self.ledger.calls, [])


if __name__ == '__main__':
    unittest.main()
