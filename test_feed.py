import unittest

from fake_ledger import FakeLedger, distribution_page, hub_attributes, listing_page
from market_feed.config import Config
from market_feed.core.feed import MarketFeed
from market_feed.core.main import FeedRunner, main, parse_args
from market_feed.models import LISTING_SOLD, ListingSummary
from market_feed.session import AuthRequiredError, Session


class TestMarketFeed(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.ledger = FakeLedger(
            listing_pages={
                None: listing_page([1, 3], next_cursor=3, total=6),
                3: listing_page([5], next_cursor=None, total=6),
            },
            distribution_pages={
                0: distribution_page([(10, 1, 50_000_000, 100), (11, 3, 25_000_000, 200)], next_cursor=2, total=3),
                2: distribution_page([(12, 1, 5, 300)], next_cursor=None, total=3),
            },
            metadata={
                0: hub_attributes('Seoul', price=400_000_000),
                2: hub_attributes('Busan', price=250_000_000),
                4: hub_attributes('Jeju', price=100_000_000),
            },
            total_supply=5,
            balance=123_456_789,
        )
        self.session = Session('acct-1')
        self.feed = MarketFeed(self.ledger, self.session, page_size=2)

    async def test_listing_summary_tracks_loaded_pages(self):
        await self.feed.listings.fetch_next()
        self.assertEqual(self.feed.listing_summary(), ListingSummary(total=6, available=2, sold=4, total_value=600_000_000))

        await self.feed.listing_trigger.on_intersect(self.feed.listing_trigger.sentinel)
        summary = self.feed.listing_summary()
        self.assertEqual(summary.available, 3)
        self.assertEqual(summary.sold, 3)

    async def test_distributions_start_at_cursor_zero_for_current_account(self):
        await self.feed.distributions.fetch_next()
        await self.feed.distributions.fetch_next()

        calls = self.ledger.calls_to('get_user_revenue_transactions')
        self.assertEqual(calls[0], ('get_user_revenue_transactions', 'acct-1', 0, 2))
        self.assertEqual(calls[1], ('get_user_revenue_transactions', 'acct-1', 2, 2))
        self.assertEqual(self.feed.distributions.keys(), [10, 11, 12])

        summary = self.feed.revenue_summary()
        self.assertEqual(summary.count, 3)
        self.assertEqual(summary.total_amount, 75_000_005)
        self.assertEqual(summary.token_count, 2)
        self.assertEqual(summary.latest_distributed_at, 300)

    async def test_collections_share_one_metadata_cache(self):
        self.ledger.metadata[1] = hub_attributes('Daegu')
        await self.feed.listings.fetch_next()
        await self.feed.distributions.fetch_next()
        await self.feed.cache.wait_idle()

        batches = [call[1] for call in self.ledger.calls_to('get_asset_metadata')]
        self.assertEqual(sum(batch.count(1) for batch in batches), 1)
        self.assertEqual(self.feed.listings.items()[0].location, 'Daegu')
        self.assertEqual(self.feed.distributions.items()[0].location, 'Daegu')

    async def test_sold_listings_are_priced_from_metadata(self):
        sold = await self.feed.fetch_sold_listings()

        self.assertEqual([item.token_id for item in sold], [0, 2, 4])
        self.assertTrue(all(item.record.status == LISTING_SOLD for item in sold))
        self.assertEqual([item.location for item in sold], ['Seoul', 'Busan', 'Jeju'])
        self.assertEqual(sold[0].price, 400_000_000)
        self.assertEqual(sold[0].price_text, '4.00000000')
        self.assertIn(('get_listings', None, Config.SOLD_SCAN_LIMIT), self.ledger.calls)

    async def test_sold_listings_require_login(self):
        self.session.logout()
        with self.assertRaises(AuthRequiredError):
            await self.feed.fetch_sold_listings()
        self.assertEqual(self.ledger.calls, [])

    async def test_balance_text(self):
        self.assertEqual(await self.feed.balance_text(), '1.23456789')
        self.assertEqual(self.ledger.calls_to('get_balance'), [('get_balance', 'acct-1')])

    async def test_refresh_starts_both_collections_over(self):
        await self.feed.listings.fetch_next()
        await self.feed.distributions.fetch_next()
        await self.feed.cache.wait_idle()

        self.feed.refresh()

        self.assertEqual(self.feed.listings.keys(), [])
        self.assertEqual(self.feed.distributions.keys(), [])
        self.assertEqual(self.feed.distributions.state.cursor, 0)
        self.assertEqual(len(self.feed.cache), 0)

    async def test_close_stops_everything(self):
        self.feed.close()
        self.assertTrue(self.feed.listings.closed)
        self.assertTrue(self.feed.distributions.closed)
        self.assertFalse(await self.feed.listings.fetch_next())
        self.assertIsNone(self.feed.listing_trigger.on_intersect(None))


class TestFeedRunner(unittest.IsolatedAsyncioTestCase):
    def _runner(self, ledger):
        runner = FeedRunner(account='acct-1', rpc_url='http://ledger.test/rpc')
        runner.service = ledger
        runner.feed = MarketFeed(ledger, runner.session, page_size=2)
        return runner

    async def test_run_pages_through_listings(self):
        ledger = FakeLedger(
            listing_pages={
                None: listing_page([1, 2], next_cursor=2, total=5),
                2: listing_page([3, 4], next_cursor=4, total=5),
                4: listing_page([5], next_cursor=None, total=5),
            },
            metadata={1: hub_attributes('Seoul')},
        )
        runner = self._runner(ledger)

        df = await runner.run('listings', max_pages=2)

        self.assertEqual(df['key'].to_list(), [1, 2, 3, 4])
        self.assertEqual(df['location'][0], 'Seoul')
        self.assertTrue(ledger.closed)
        self.assertIn('pagination', runner.performance_metrics)

    async def test_run_sold_scan(self):
        ledger = FakeLedger(
            listing_pages={None: listing_page([0], next_cursor=None)},
            metadata={1: hub_attributes('Busan', price=100_000_000)},
            total_supply=2,
        )
        runner = self._runner(ledger)

        df = await runner.run('sold', max_pages=1)

        self.assertEqual(df['token_id'].to_list(), [1])
        self.assertEqual(df['price'].to_list(), [100_000_000])


class TestMain(unittest.TestCase):
    def test_parse_args_defaults(self):
        args = parse_args(['--account', 'acct-1'])
        self.assertEqual(args.collection, 'listings')
        self.assertEqual(args.pages, 3)
        self.assertEqual(args.account, 'acct-1')
        self.assertIsNone(args.rpc_url)

    def test_rejects_unknown_collection(self):
        with self.assertRaises(SystemExit):
            parse_args(['--collection', 'auctions'])

    def test_main_without_account_fails(self):
        self.assertEqual(main(['--account', '']), 1)


if __name__ == '__main__':
    unittest.main()
