from .token_amount import TokenAmountCodec, format_amount, to_display, to_raw
from .metadata_cache import MetadataCache, MetadataResolutionError, parse_attributes
from .aggregation import (
    AggregationPipeline,
    merge,
    remerge,
    sold_token_ids,
    summarize_distributions,
    summarize_listings,
    to_frame,
)
from .pagination import PaginationController
from .scroll_trigger import ScrollTrigger

__all__ = [
    'TokenAmountCodec',
    'format_amount',
    'to_display',
    'to_raw',
    'MetadataCache',
    'MetadataResolutionError',
    'parse_attributes',
    'AggregationPipeline',
    'merge',
    'remerge',
    'sold_token_ids',
    'summarize_distributions',
    'summarize_listings',
    'to_frame',
    'PaginationController',
    'ScrollTrigger',
]
