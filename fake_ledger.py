"""
In-memory stand-in for the ledger service, shared by the unittest modules.
"""

import asyncio
from typing import Dict, List, Optional

from market_feed.models import DistributionRecord, ListingRecord, PageResult


def listing_page(token_ids, next_cursor=None, has_more=None, total=None, price=100_000_000) -> PageResult:
    items = tuple(ListingRecord(token_id=t, price=price * (t + 1)) for t in token_ids)
    if has_more is None:
        has_more = next_cursor is not None
    return PageResult(items=items, next_cursor=next_cursor, total=total if total is not None else len(items), has_more=has_more)


def distribution_page(rows, next_cursor=None, has_more=None, total=None) -> PageResult:
    """rows: (record_id, token_id, amount, distributed_at) tuples"""
    items = tuple(DistributionRecord(*row) for row in rows)
    if has_more is None:
        has_more = next_cursor is not None
    return PageResult(items=items, next_cursor=next_cursor, total=total if total is not None else len(items), has_more=has_more)


def hub_attributes(location: str, chargers: int = 4, price: int = 0, name: Optional[str] = None) -> list:
    attrs = [['location', {'Text': location}], ['chargerCount', {'Nat': chargers}], ['price', {'Nat': price}]]
    if name is not None:
        attrs.append(['name', {'Text': name}])
    return attrs


class FakeLedger:
    def __init__(self, listing_pages=None, distribution_pages=None, metadata=None, total_supply=0, balance=0):
        self.listing_pages: Dict[Optional[int], PageResult] = dict(listing_pages or {})
        self.distribution_pages: Dict[int, PageResult] = dict(distribution_pages or {})
        self.metadata: Dict[int, list] = dict(metadata or {})
        self.total_supply = total_supply
        self.balance = balance
        self.calls: List[tuple] = []
        self.page_gate: Optional[asyncio.Event] = None
        self.metadata_gate: Optional[asyncio.Event] = None
        self.page_error: Optional[Exception] = None
        self.metadata_error: Optional[Exception] = None
        self.closed = False

    def calls_to(self, method: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == method]

    async def _page(self, pages, cursor):
        if self.page_gate is not None:
            await self.page_gate.wait()
        if self.page_error is not None:
            raise self.page_error
        return pages[cursor]

    async def get_listings(self, cursor, limit):
        self.calls.append(('get_listings', cursor, limit))
        return await self._page(self.listing_pages, cursor)

    async def get_user_revenue_transactions(self, account, cursor, limit):
        self.calls.append(('get_user_revenue_transactions', account, cursor, limit))
        return await self._page(self.distribution_pages, cursor)

    async def get_asset_metadata(self, identifiers):
        self.calls.append(('get_asset_metadata', list(identifiers)))
        if self.metadata_gate is not None:
            await self.metadata_gate.wait()
        if self.metadata_error is not None:
            raise self.metadata_error
        return {i: self.metadata[i] for i in identifiers if i in self.metadata}

    async def get_total_supply(self):
        self.calls.append(('get_total_supply',))
        return self.total_supply

    async def get_balance(self, account):
        self.calls.append(('get_balance', account))
        return self.balance

    def close(self):
        self.closed = True
