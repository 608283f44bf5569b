"""
Record types shared by the pagination and aggregation layers.

Everything here is immutable. A DisplayRecord is rebuilt whenever its raw
record or its metadata entry changes, so consumers can compare snapshots by
value.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

PLACEHOLDER_LOCATION = 'loading'
MISSING_LOCATION = 'Location unavailable'

LISTING_AVAILABLE = 'available'
LISTING_SOLD = 'sold'


def default_asset_name(identifier: int) -> str:
    return f'Charging Hub #{identifier}'


@dataclass(frozen=True)
class ListingRecord:
    token_id: int
    price: int
    status: str = LISTING_AVAILABLE

    @property
    def key(self) -> int:
        return self.token_id


@dataclass(frozen=True)
class DistributionRecord:
    record_id: int
    token_id: int
    amount: int
    distributed_at: int  # nanoseconds since epoch

    @property
    def key(self) -> int:
        return self.record_id


RawRecord = Union[ListingRecord, DistributionRecord]


@dataclass(frozen=True)
class PageResult:
    items: Tuple[RawRecord, ...]
    next_cursor: Optional[int]
    total: int
    has_more: bool


@dataclass(frozen=True)
class MetadataEntry:
    identifier: int
    name: str
    location: str
    charger_count: int = 0
    price: int = 0
    resolved: bool = False

    @classmethod
    def placeholder(cls, identifier: int) -> 'MetadataEntry':
        return cls(
            identifier=identifier,
            name=default_asset_name(identifier),
            location=PLACEHOLDER_LOCATION,
        )


@dataclass(frozen=True)
class DisplayRecord:
    record: RawRecord
    metadata: MetadataEntry
    price_text: str = ''
    amount_text: str = ''

    @property
    def key(self) -> int:
        return self.record.key

    @property
    def token_id(self) -> int:
        return self.record.token_id

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def location(self) -> str:
        return self.metadata.location

    @property
    def charger_count(self) -> int:
        return self.metadata.charger_count

    @property
    def resolved(self) -> bool:
        return self.metadata.resolved

    @property
    def price(self) -> int:
        # Live listings carry their asking price; everything else uses the minted price
        if isinstance(self.record, ListingRecord) and self.record.status == LISTING_AVAILABLE:
            return self.record.price
        return self.metadata.price

    @property
    def amount(self) -> Optional[int]:
        if isinstance(self.record, DistributionRecord):
            return self.record.amount
        return None

    @property
    def distributed_at(self) -> Optional[int]:
        if isinstance(self.record, DistributionRecord):
            return self.record.distributed_at
        return None


@dataclass(frozen=True)
class PaginationState:
    cursor: Optional[int] = None
    items: Tuple[DisplayRecord, ...] = ()
    has_more: bool = True
    busy: bool = False
    total: int = 0
    error: Optional[Exception] = field(default=None, compare=False)

    @property
    def exhausted(self) -> bool:
        return not self.has_more


@dataclass(frozen=True)
class ListingSummary:
    total: int
    available: int
    sold: int
    total_value: int


@dataclass(frozen=True)
class RevenueSummary:
    count: int
    total_amount: int
    token_count: int
    latest_distributed_at: Optional[int]
