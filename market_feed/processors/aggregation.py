import logging
from typing import Callable, Collection, Iterable, List, Optional, Sequence

import polars as pl

from ..models import (
    DisplayRecord,
    DistributionRecord,
    ListingSummary,
    MetadataEntry,
    RawRecord,
    RevenueSummary,
)
from .metadata_cache import MetadataCache
from .token_amount import TokenAmountCodec

logger = logging.getLogger(__name__)

DISPLAY_SCHEMA = {
    'key': pl.Int64,
    'token_id': pl.Int64,
    'name': pl.Utf8,
    'location': pl.Utf8,
    'charger_count': pl.Int64,
    'price': pl.Int64,
    'amount': pl.Int64,
    'distributed_at': pl.Int64,
    'resolved': pl.Boolean,
}

_default_codec = TokenAmountCodec()


def build_display_record(record: RawRecord, metadata: MetadataEntry, codec: Optional[TokenAmountCodec] = None) -> DisplayRecord:
    codec = codec or _default_codec
    display = DisplayRecord(record=record, metadata=metadata)
    amount = display.amount
    return DisplayRecord(
        record=record,
        metadata=metadata,
        price_text=codec.format(display.price),
        amount_text=codec.format(amount) if amount is not None else '',
    )


def merge(raw_items: Iterable[RawRecord], cache: MetadataCache, codec: Optional[TokenAmountCodec] = None) -> List[DisplayRecord]:
    """
    Join raw records with their cached metadata, one display record per raw item.

    Unresolved identifiers get placeholder metadata now; the cache resolves them in
    the background. Output order is raw arrival order. Callable with or without
    a running event loop; see MetadataCache.get().
    """
    return [build_display_record(record, cache.get(record.token_id), codec) for record in raw_items]


def remerge(
    items: Sequence[DisplayRecord],
    identifiers: Collection[int],
    cache: MetadataCache,
    codec: Optional[TokenAmountCodec] = None,
) -> List[DisplayRecord]:
    """Rebuild only the records whose asset is in identifiers; order and keys stay put."""
    out = []
    for item in items:
        if item.token_id in identifiers:
            metadata = cache.peek(item.token_id)
            if metadata is not None and metadata != item.metadata:
                item = build_display_record(item.record, metadata, codec)
        out.append(item)
    return out


class AggregationPipeline:
    def __init__(self, cache: MetadataCache, codec: Optional[TokenAmountCodec] = None):
        self.cache = cache
        self.codec = codec or _default_codec

    def merge(self, raw_items: Iterable[RawRecord]) -> List[DisplayRecord]:
        return merge(raw_items, self.cache, self.codec)

    def remerge(self, items: Sequence[DisplayRecord], identifiers: Collection[int]) -> List[DisplayRecord]:
        return remerge(items, identifiers, self.cache, self.codec)

    def subscribe(self, listener: Callable[[int], None]) -> Callable[[], None]:
        """Listen for metadata resolutions that call for a re-merge."""
        return self.cache.subscribe(listener)


def to_frame(items: Sequence[DisplayRecord]) -> pl.DataFrame:
    rows = [
        {
            'key': item.key,
            'token_id': item.token_id,
            'name': item.name,
            'location': item.location,
            'charger_count': item.charger_count,
            'price': item.price,
            'amount': item.amount,
            'distributed_at': item.distributed_at,
            'resolved': item.resolved,
        }
        for item in items
    ]
    return pl.DataFrame(rows, schema=DISPLAY_SCHEMA)


def summarize_listings(items: Sequence[DisplayRecord], total: int) -> ListingSummary:
    """
    Market statistics from every listing loaded so far.

    Rescans all items on each call (O(n) per page), which keeps the numbers in
    step with the item list without incremental bookkeeping.
    """
    df = to_frame(items)
    available = df.height
    total_value = df.select(pl.col('price').sum()).item() if available else 0
    return ListingSummary(
        total=total,
        available=available,
        sold=max(total - available, 0),
        total_value=int(total_value or 0),
    )


def summarize_distributions(items: Sequence[DisplayRecord]) -> RevenueSummary:
    """Revenue statistics from every distribution loaded so far (full rescan)."""
    df = to_frame([item for item in items if isinstance(item.record, DistributionRecord)])
    if df.height == 0:
        return RevenueSummary(count=0, total_amount=0, token_count=0, latest_distributed_at=None)

    stats = df.select([
        pl.col('amount').sum().alias('total_amount'),
        pl.col('token_id').n_unique().alias('token_count'),
        pl.col('distributed_at').max().alias('latest_distributed_at'),
    ]).row(0, named=True)

    return RevenueSummary(
        count=df.height,
        total_amount=int(stats['total_amount']),
        token_count=int(stats['token_count']),
        latest_distributed_at=int(stats['latest_distributed_at']),
    )


def sold_token_ids(total_supply: int, listed_ids: Iterable[int]) -> List[int]:
    """Token ids minted so far (0..total_supply-1) that are not currently listed."""
    listed = set(listed_ids)
    return [token_id for token_id in range(total_supply) if token_id not in listed]
