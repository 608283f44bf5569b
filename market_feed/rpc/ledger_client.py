import asyncio
import itertools
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

import requests

from ..config import Config
from ..models import DistributionRecord, ListingRecord, PageResult, RawRecord

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """The remote call failed: network error, HTTP status, or a JSON-RPC error member."""
    pass


class MalformedPageError(Exception):
    """A response is missing fields the client needs."""
    pass


def _unwrap_optional(value: Any) -> Any:
    # Optional values may arrive candid-style: [] for none, [x] for some
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _to_int(value: Any) -> int:
    # Big integers are sent as decimal strings
    if isinstance(value, bool):
        raise ValueError(f'expected an integer, got {value!r}')
    return int(value)


def _optional_int(value: Any) -> Optional[int]:
    value = _unwrap_optional(value)
    if value is None:
        return None
    return _to_int(value)


def parse_listing(item: dict) -> ListingRecord:
    return ListingRecord(token_id=_to_int(item['tokenId']), price=_to_int(item['price']))


def parse_distribution(item: dict) -> DistributionRecord:
    return DistributionRecord(
        record_id=_to_int(item['recordId']),
        token_id=_to_int(item['tokenId']),
        amount=_to_int(item['amount']),
        distributed_at=_to_int(item['distributedAt']),
    )


def parse_page(result: Any, parse_item: Callable[[dict], RawRecord]) -> PageResult:
    """
    Build a PageResult from a raw page object.

    An explicit hasMore field is authoritative; when the server leaves it out,
    the presence of a next cursor decides.

    Raises:
        MalformedPageError: If items are missing or an item cannot be parsed
    """
    if not isinstance(result, dict) or not isinstance(result.get('items'), list):
        raise MalformedPageError(f'Page response has no items list: {result!r}')

    try:
        items = tuple(parse_item(item) for item in result['items'])
        raw_cursor = result['nextCursor'] if 'nextCursor' in result else result.get('nextStart')
        next_cursor = _optional_int(raw_cursor)
        total = _to_int(result['total']) if result.get('total') is not None else len(items)
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedPageError(f'Could not parse page: {e}') from e

    has_more = _unwrap_optional(result.get('hasMore'))
    if has_more is None:
        has_more = next_cursor is not None

    return PageResult(items=items, next_cursor=next_cursor, total=total, has_more=bool(has_more))


def parse_metadata_result(identifiers: List[int], result: Any) -> Dict[int, list]:
    """
    Map identifiers to their raw attribute lists.

    The ledger answers either with a list aligned to the requested identifiers,
    where every entry is optional-wrapped ([] or [attributes]), or with an
    object keyed by identifier whose values are attribute lists or null.
    Identifiers without metadata are left out.
    """
    out: Dict[int, list] = {}
    if isinstance(result, dict):
        for key, attributes in result.items():
            if attributes is not None:
                out[_to_int(key)] = attributes
        return out

    if isinstance(result, list):
        for identifier, entry in zip(identifiers, result):
            attributes = _unwrap_optional(entry)
            if attributes is not None:
                out[identifier] = attributes
        return out

    raise MalformedPageError(f'Unexpected metadata response: {result!r}')


class LedgerRpcClient:
    def __init__(self, rpc_url: Optional[str] = None, timeout: Optional[float] = None):
        self.rpc_url = rpc_url or Config.LEDGER_RPC_URL
        self.timeout = timeout if timeout is not None else Config.LEDGER_RPC_TIMEOUT_SECONDS
        self._session = requests.Session()
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _next_id(self) -> int:
        with self._lock:
            return next(self._ids)

    def _post(self, payload: Any) -> Any:
        try:
            resp = self._session.post(
                self.rpc_url,
                json=payload,
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
            )
            resp.raise_for_status()
            return resp.json()
        except Exception as e:
            raise TransportError(f"Ledger RPC request failed: {e}") from e

    def call(self, method: str, params: Dict[str, Any]) -> Any:
        request_id = self._next_id()
        logger.debug(f'-> {method} #{request_id} {params}')
        response = self._post({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
        if not isinstance(response, dict):
            raise TransportError(f"{method}: unexpected response type {type(response).__name__}")
        if response.get("error") is not None:
            error = response["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise TransportError(f"{method} rejected by ledger: {message}")
        if "result" not in response:
            raise TransportError(f"{method}: response has neither result nor error")
        return response["result"]

    def get_listings(self, cursor: Optional[int], limit: int) -> PageResult:
        result = self.call("getListings", {"cursor": cursor, "limit": limit})
        return parse_page(result, parse_listing)

    def get_user_revenue_transactions(self, account: str, cursor: int, limit: int) -> PageResult:
        result = self.call(
            "getUserRevenueTransactions",
            {"account": account, "cursor": cursor, "limit": limit},
        )
        return parse_page(result, parse_distribution)

    def get_asset_metadata(self, identifiers: List[int]) -> Dict[int, list]:
        if not identifiers:
            return {}
        result = self.call("getAssetMetadata", {"tokenIds": list(identifiers)})
        return parse_metadata_result(list(identifiers), result)

    def get_total_supply(self) -> int:
        try:
            return _to_int(self.call("getTotalSupply", {}))
        except (TypeError, ValueError) as e:
            raise MalformedPageError(f'Total supply is not an integer: {e}') from e

    def get_balance(self, account: str) -> int:
        try:
            return _to_int(self.call("getBalance", {"account": account}))
        except (TypeError, ValueError) as e:
            raise MalformedPageError(f'Balance is not an integer: {e}') from e

    def close(self):
        self._session.close()


class AsyncLedgerService:
    """
    Coroutine face of LedgerRpcClient. Each call runs the blocking request in a
    worker thread so the event loop keeps serving triggers and other fetches.
    """

    def __init__(self, client: Optional[LedgerRpcClient] = None):
        self.client = client or LedgerRpcClient()

    async def get_listings(self, cursor: Optional[int], limit: int) -> PageResult:
        return await asyncio.to_thread(self.client.get_listings, cursor, limit)

    async def get_user_revenue_transactions(self, account: str, cursor: int, limit: int) -> PageResult:
        return await asyncio.to_thread(self.client.get_user_revenue_transactions, account, cursor, limit)

    async def get_asset_metadata(self, identifiers: List[int]) -> Dict[int, list]:
        return await asyncio.to_thread(self.client.get_asset_metadata, identifiers)

    async def get_total_supply(self) -> int:
        return await asyncio.to_thread(self.client.get_total_supply)

    async def get_balance(self, account: str) -> int:
        return await asyncio.to_thread(self.client.get_balance, account)

    def close(self):
        self.client.close()
