import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..config import Config
from ..session import Session
from ..models import MISSING_LOCATION, MetadataEntry, default_asset_name

logger = logging.getLogger(__name__)

MetadataListener = Callable[[int], None]


class MetadataResolutionError(Exception):
    """Metadata for a single identifier could not be resolved."""
    pass


def _chunks(seq: List[Any], size: int) -> Iterable[List[Any]]:
    for i in range(0, len(seq), size):
        yield seq[i : i + size]


def _attribute_value(value: Any) -> Any:
    # Ledger values are tagged by type, e.g. {"Text": "Seoul"} or {"Nat": 4}
    if isinstance(value, dict):
        for tag in ('Text', 'Nat', 'Int'):
            if tag in value:
                return value[tag]
        return None
    return value


def parse_attributes(identifier: int, attributes: Any) -> MetadataEntry:
    """
    Extract name, location, chargerCount and price from a raw attribute list.

    Args:
        identifier: Asset identifier the attributes belong to
        attributes: List of (key, value) pairs, or a mapping of key to value

    Returns:
        A resolved MetadataEntry; missing keys fall back to defaults

    Raises:
        MetadataResolutionError: If the attribute list cannot be read
    """
    try:
        pairs = attributes.items() if isinstance(attributes, dict) else attributes
        fields = {str(key): _attribute_value(value) for key, value in pairs}
        return MetadataEntry(
            identifier=identifier,
            name=str(fields.get('name') or default_asset_name(identifier)),
            location=str(fields.get('location') or MISSING_LOCATION),
            charger_count=int(fields.get('chargerCount') or 0),
            price=int(fields.get('price') or 0),
            resolved=True,
        )
    except (TypeError, ValueError) as e:
        raise MetadataResolutionError(f'Unreadable metadata for asset {identifier}: {e}') from e


class MetadataCache:
    """
    Cache-aside store of asset metadata, filled lazily.

    get() never blocks: a miss returns a placeholder straight away and queues the
    identifier. Identifiers queued in the same loop iteration go out as one
    batched request. Each identifier has at most one request in flight; the
    in-flight table only holds futures until their batch settles.

    get() also works with no event loop running. Such misses are deferred and
    go out with the next batch once the cache is used on a loop (any get(),
    resolve() or wait_idle()).
    """

    def __init__(self, service, session: Session, batch_size: Optional[int] = None):
        self.service = service
        self.session = session
        self.batch_size = batch_size or Config.METADATA_BATCH_SIZE
        self._entries: Dict[int, MetadataEntry] = {}
        self._in_flight: Dict[int, asyncio.Future] = {}
        self._queued: List[int] = []
        self._deferred: List[int] = []
        self._flush_scheduled = False
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[MetadataListener] = []
        self.failed: Set[int] = set()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identifier: int) -> bool:
        return identifier in self._entries

    def get(self, identifier: int) -> MetadataEntry:
        entry = self._entries.get(identifier)
        if entry is not None:
            if self._deferred:
                self._adopt_deferred()
            return entry

        if self.session.get_current_account() is None:
            logger.debug(f'Login required; not resolving metadata for asset {identifier}')
            return MetadataEntry.placeholder(identifier)

        entry = MetadataEntry.placeholder(identifier)
        self._entries[identifier] = entry
        self._deferred.append(identifier)
        self._adopt_deferred()
        return entry

    def _adopt_deferred(self):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f'No running event loop; {len(self._deferred)} metadata request(s) deferred')
            return

        deferred, self._deferred = self._deferred, []
        for identifier in deferred:
            if identifier in self._entries and identifier not in self._in_flight:
                self._in_flight[identifier] = loop.create_future()
                self._queued.append(identifier)
        if self._queued and not self._flush_scheduled:
            self._flush_scheduled = True
            loop.call_soon(self._flush)

    async def resolve(self, identifier: int) -> MetadataEntry:
        """Return the entry once its pending resolution (if any) has settled."""
        entry = self.get(identifier)
        future = self._in_flight.get(identifier)
        if entry.resolved or future is None:
            return entry
        return await asyncio.shield(future)

    def peek(self, identifier: int) -> Optional[MetadataEntry]:
        return self._entries.get(identifier)

    def snapshot(self) -> Dict[int, MetadataEntry]:
        return dict(self._entries)

    def is_pending(self, identifier: int) -> bool:
        return identifier in self._in_flight or identifier in self._deferred

    def put(self, entry: MetadataEntry):
        self._entries[entry.identifier] = entry
        if entry.resolved:
            self.failed.discard(entry.identifier)
            if entry.identifier in self._deferred:
                self._deferred.remove(entry.identifier)
        self._publish(entry.identifier)

    def invalidate(self, identifier: int):
        """Forget one identifier so the next get() asks the ledger again."""
        self._entries.pop(identifier, None)
        self.failed.discard(identifier)
        if identifier in self._queued:
            self._queued.remove(identifier)
        if identifier in self._deferred:
            self._deferred.remove(identifier)
        self._abandon(identifier, self._in_flight.pop(identifier, None))

    def clear(self):
        logger.info(f'Clearing metadata cache ({len(self._entries)} entries, {len(self._in_flight)} pending)')
        in_flight = self._in_flight
        self._entries = {}
        self._in_flight = {}
        self._queued = []
        self._deferred = []
        self.failed.clear()
        for identifier, future in in_flight.items():
            self._abandon(identifier, future)

    async def wait_idle(self):
        """Wait until no resolution is queued or in flight."""
        if self._deferred:
            self._adopt_deferred()
        while self._in_flight:
            await asyncio.wait(list(self._in_flight.values()))

    def subscribe(self, listener: MetadataListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, identifier: int):
        for listener in list(self._listeners):
            try:
                listener(identifier)
            except Exception as e:
                logger.error(f'Metadata listener failed for asset {identifier}: {e}', exc_info=True)

    @staticmethod
    def _abandon(identifier: int, future: Optional[asyncio.Future]):
        if future is not None and not future.done():
            future.set_result(MetadataEntry.placeholder(identifier))

    def _flush(self):
        self._flush_scheduled = False
        queued, self._queued = self._queued, []
        if not queued:
            return

        loop = asyncio.get_running_loop()
        batch = [(identifier, self._in_flight[identifier]) for identifier in queued if identifier in self._in_flight]
        for chunk in _chunks(batch, self.batch_size):
            task = loop.create_task(self._resolve_batch(chunk))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _resolve_batch(self, batch: List[Tuple[int, asyncio.Future]]):
        identifiers = [identifier for identifier, _ in batch]
        logger.debug(f'Resolving metadata for {len(identifiers)} assets: {identifiers}')

        try:
            result = await self.service.get_asset_metadata(identifiers)
        except Exception as e:
            logger.error(f'Metadata request for {len(identifiers)} assets failed: {e}')
            result = None

        resolved = []
        for identifier, future in batch:
            if self._in_flight.get(identifier) is not future:
                # Invalidated or cleared while the request was out
                self._abandon(identifier, future)
                continue
            del self._in_flight[identifier]

            entry = self._entries.get(identifier, MetadataEntry.placeholder(identifier))
            try:
                if result is None:
                    raise MetadataResolutionError(f'Metadata request failed for asset {identifier}')
                if identifier not in result:
                    raise MetadataResolutionError(f'Ledger returned no metadata for asset {identifier}')
                entry = parse_attributes(identifier, result[identifier])
            except MetadataResolutionError as e:
                logger.warning(f'{e}; keeping placeholder')
                self.failed.add(identifier)
            else:
                self._entries[identifier] = entry
                resolved.append(identifier)
            future.set_result(entry)

        for identifier in resolved:
            self._publish(identifier)

        if resolved:
            logger.debug(f'Resolved metadata for {len(resolved)}/{len(identifiers)} assets')
