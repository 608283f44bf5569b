import logging
from typing import List, Optional

from ..config import Config
from ..models import LISTING_SOLD, DisplayRecord, ListingRecord, ListingSummary, PageResult, RevenueSummary
from ..processors import (
    AggregationPipeline,
    MetadataCache,
    PaginationController,
    ScrollTrigger,
    TokenAmountCodec,
    sold_token_ids,
    summarize_distributions,
    summarize_listings,
)
from ..session import Session

logger = logging.getLogger(__name__)


class MarketFeed:
    """
    Everything one mounted view needs: the shared metadata cache, the listings and
    revenue-distribution collections, and a scroll trigger for each.
    """

    def __init__(self, service, session: Session, page_size: Optional[int] = None, codec: Optional[TokenAmountCodec] = None):
        self.service = service
        self.session = session
        self.codec = codec or TokenAmountCodec()
        self.cache = MetadataCache(service, session)
        self.pipeline = AggregationPipeline(self.cache, self.codec)

        self.listings = PaginationController(
            'listings',
            self._fetch_listings,
            self.pipeline,
            session,
            page_size=page_size,
            initial_cursor=None,
        )
        self.distributions = PaginationController(
            'distributions',
            self._fetch_distributions,
            self.pipeline,
            session,
            page_size=page_size,
            initial_cursor=0,
        )
        self.listing_trigger = ScrollTrigger(self.listings)
        self.distribution_trigger = ScrollTrigger(self.distributions)

    async def _fetch_listings(self, account: str, cursor: Optional[int], limit: int) -> PageResult:
        return await self.service.get_listings(cursor, limit)

    async def _fetch_distributions(self, account: str, cursor: Optional[int], limit: int) -> PageResult:
        return await self.service.get_user_revenue_transactions(account, cursor or 0, limit)

    def listing_summary(self) -> ListingSummary:
        state = self.listings.state
        return summarize_listings(state.items, state.total)

    def revenue_summary(self) -> RevenueSummary:
        return summarize_distributions(self.distributions.state.items)

    async def fetch_sold_listings(self) -> List[DisplayRecord]:
        """
        Hubs that have been minted but are no longer listed, priced from metadata.

        Raises:
            AuthRequiredError: If nobody is logged in
            TransportError: If the ledger cannot be reached
        """
        self.session.require_account()
        total_supply = await self.service.get_total_supply()
        listed = await self.service.get_listings(None, Config.SOLD_SCAN_LIMIT)
        sold_ids = sold_token_ids(total_supply, (record.token_id for record in listed.items))
        logger.info(f'{len(sold_ids)} of {total_supply} hubs are sold ({len(listed.items)} listed)')

        records = [ListingRecord(token_id=token_id, price=0, status=LISTING_SOLD) for token_id in sold_ids]
        self.pipeline.merge(records)
        for token_id in sold_ids:
            await self.cache.resolve(token_id)
        return self.pipeline.merge(records)

    async def balance_text(self) -> str:
        account = self.session.require_account()
        return self.codec.format(await self.service.get_balance(account))

    def refresh(self):
        """Manual refresh: start both collections over and forget cached metadata."""
        self.listings.reset()
        self.distributions.reset()
        self.cache.clear()

    def close(self):
        self.listing_trigger.close()
        self.distribution_trigger.close()
        self.listings.close()
        self.distributions.close()
