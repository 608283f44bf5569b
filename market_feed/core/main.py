import argparse
import asyncio
import logging
import time
from typing import Optional

import polars as pl

from ..config import Config, setup_logging
from ..processors import to_frame
from ..rpc import AsyncLedgerService, LedgerRpcClient
from ..session import Session
from .feed import MarketFeed

logger = logging.getLogger(__name__)

COLLECTIONS = ('listings', 'distributions', 'sold')


class FeedRunner:
    """
    Drives a MarketFeed from the command line: pages through one collection the way
    a scrolling view would, waits for metadata to settle, then reports.
    """

    def __init__(self, account: Optional[str] = None, rpc_url: Optional[str] = None):
        logger.info('Initializing feed runner')
        self.service = AsyncLedgerService(LedgerRpcClient(rpc_url))
        self.session = Session(account)
        self.feed = MarketFeed(self.service, self.session)
        self.performance_metrics = {}
        logger.info(f'Ledger RPC: {self.service.client.rpc_url}')
        logger.info(f'Page size: {self.feed.listings.page_size}')

    async def run(self, collection: str, max_pages: int) -> pl.DataFrame:
        total_start = time.time()
        try:
            if collection == 'sold':
                step_start = time.time()
                items = await self.feed.fetch_sold_listings()
                self.performance_metrics['sold_scan'] = time.time() - step_start
            else:
                controller = self.feed.listings if collection == 'listings' else self.feed.distributions
                trigger = self.feed.listing_trigger if collection == 'listings' else self.feed.distribution_trigger

                step_start = time.time()
                await controller.fetch_next()
                pages = 1
                # Each page's last item plays the part of the sentinel scrolling into view
                while pages < max_pages and controller.state.has_more and controller.state.error is None:
                    task = trigger.on_intersect(trigger.sentinel)
                    if task is None:
                        break
                    await task
                    pages += 1
                self.performance_metrics['pagination'] = time.time() - step_start

                if controller.state.error is not None:
                    logger.error(f'{collection} stopped with error: {controller.state.error}')

                step_start = time.time()
                await self.feed.cache.wait_idle()
                self.performance_metrics['metadata'] = time.time() - step_start
                items = list(controller.state.items)

            self.performance_metrics['total'] = time.time() - total_start
            df = to_frame(items)
            self._print_results(collection, df)
            self._print_performance_report()
            return df
        finally:
            self.feed.close()
            self.service.close()

    def _print_results(self, collection: str, df: pl.DataFrame):
        logger.info('')
        logger.info('=' * 100)
        logger.info(f'RESULTS: {collection}')
        logger.info('=' * 100)

        print(df.head(20))

        if collection == 'listings':
            summary = self.feed.listing_summary()
            logger.info(f'Total hubs: {summary.total:,}')
            logger.info(f'Listed hubs loaded: {summary.available:,}')
            logger.info(f'Sold hubs: {summary.sold:,}')
            logger.info(f'Asking price total: {self.feed.codec.format(summary.total_value)}')
        elif collection == 'distributions':
            summary = self.feed.revenue_summary()
            logger.info(f'Distributions loaded: {summary.count:,}')
            logger.info(f'Hubs paying out: {summary.token_count:,}')
            logger.info(f'Revenue received: {self.feed.codec.format(summary.total_amount)}')
        else:
            logger.info(f'Sold hubs: {df.height:,}')

        logger.info(f'Metadata unresolved: {df.filter(~pl.col("resolved")).height:,}')
        logger.info('=' * 100)

    def _print_performance_report(self):
        logger.info('')
        logger.info('=' * 100)
        logger.info('PERFORMANCE REPORT')
        logger.info('=' * 100)
        logger.info(f"{'Step':<40} {'Time (s)':<15} {'% of Total':<15}")
        logger.info('-' * 100)

        total_time = self.performance_metrics['total'] or 1e-9

        for step, duration in self.performance_metrics.items():
            if step != 'total':
                percentage = (duration / total_time) * 100
                logger.info(f'{step:<40} {duration:>10.2f}s     {percentage:>10.1f}%')

        logger.info('-' * 100)
        logger.info(f'{"TOTAL TIME":<40} {self.performance_metrics["total"]:>10.2f}s     {100.0:>10.1f}%')
        logger.info('=' * 100)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Page through the charging-hub marketplace ledger')
    parser.add_argument('--collection', choices=COLLECTIONS, default='listings')
    parser.add_argument('--pages', type=int, default=3, help='Maximum number of pages to load')
    parser.add_argument('--account', default=Config.LEDGER_ACCOUNT, help='Account identifier (default: LEDGER_ACCOUNT)')
    parser.add_argument('--rpc-url', default=None, help='Ledger RPC URL (default: LEDGER_RPC_URL)')
    return parser.parse_args(argv)


def main(argv=None):
    setup_logging()
    args = parse_args(argv)

    logger.info('=' * 100)
    logger.info(f'CHARGING HUB LEDGER FEED ({args.collection})')
    logger.info('=' * 100)

    if not args.account:
        logger.error('No account given; set LEDGER_ACCOUNT or pass --account (login required)')
        return 1

    runner = FeedRunner(account=args.account, rpc_url=args.rpc_url)
    try:
        df = asyncio.run(runner.run(args.collection, max(args.pages, 1)))
        logger.info(f'Successfully loaded {df.height:,} {args.collection} records')
    except Exception as e:
        logger.error(f'Error in main: {e}', exc_info=True)
        raise
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
