"""
Incremental pagination and aggregation client for the charging-hub marketplace ledger.
"""

from .core import MarketFeed
from .models import (
    DisplayRecord,
    DistributionRecord,
    ListingRecord,
    MetadataEntry,
    PageResult,
    PaginationState,
)
from .processors import (
    AggregationPipeline,
    MetadataCache,
    PaginationController,
    ScrollTrigger,
    TokenAmountCodec,
)
from .session import AuthRequiredError, Session

__all__ = [
    'MarketFeed',
    'DisplayRecord',
    'DistributionRecord',
    'ListingRecord',
    'MetadataEntry',
    'PageResult',
    'PaginationState',
    'AggregationPipeline',
    'MetadataCache',
    'PaginationController',
    'ScrollTrigger',
    'TokenAmountCodec',
    'AuthRequiredError',
    'Session',
]
