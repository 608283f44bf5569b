import logging
from dataclasses import replace
from typing import Awaitable, Callable, List, Optional, Set

from ..config import Config
from ..models import DisplayRecord, PageResult, PaginationState, RawRecord
from ..rpc.ledger_client import MalformedPageError, TransportError
from ..session import AuthRequiredError, Session
from .aggregation import AggregationPipeline

logger = logging.getLogger(__name__)

FetchPage = Callable[[str, Optional[int], int], Awaitable[PageResult]]
StateListener = Callable[[PaginationState], None]


class PaginationController:
    """
    Cursor state machine for one growing collection.

    Idle(cursor, has_more) -> Fetching -> Idle(next_cursor, has_more), or
    Exhausted once the server reports nothing more. At most one fetch is in
    flight; a fetch_next() issued while busy is dropped. Results that land after
    reset() or close() are thrown away.
    """

    def __init__(
        self,
        name: str,
        fetch_page: FetchPage,
        pipeline: AggregationPipeline,
        session: Session,
        page_size: Optional[int] = None,
        initial_cursor: Optional[int] = None,
    ):
        self.name = name
        self.page_size = page_size or Config.PAGE_SIZE
        self.initial_cursor = initial_cursor
        self._fetch_page = fetch_page
        self._pipeline = pipeline
        self._session = session
        self._state = PaginationState(cursor=initial_cursor)
        self._keys: Set[int] = set()
        self._generation = 0
        self._closed = False
        self._listeners: List[StateListener] = []
        self.fetch_count = 0
        self._unsubscribe_metadata = pipeline.subscribe(self._on_metadata_resolved)

    @property
    def state(self) -> PaginationState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, **changes):
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.error(f'[{self.name}] State listener failed: {e}', exc_info=True)

    async def fetch_next(self) -> bool:
        """
        Fetch and append the next page.

        Returns:
            True if a page was applied, False if the call was a no-op, failed,
            or its result was discarded
        """
        if self._closed or self._state.busy or not self._state.has_more:
            return False

        account = self._session.get_current_account()
        if account is None:
            logger.warning(f'[{self.name}] Login required; not fetching')
            self._set_state(error=AuthRequiredError('Login required'))
            return False

        generation = self._generation
        cursor = self._state.cursor
        self.fetch_count += 1
        self._set_state(busy=True, error=None)
        logger.debug(f'[{self.name}] Fetching page at cursor={cursor} limit={self.page_size}')

        try:
            page = await self._fetch_page(account, cursor, self.page_size)
        except TransportError as e:
            if self._is_stale(generation):
                return False
            logger.error(f'[{self.name}] Page fetch failed at cursor={cursor}: {e}')
            self._set_state(busy=False, error=e)
            return False
        except MalformedPageError as e:
            if self._is_stale(generation):
                return False
            logger.warning(f'[{self.name}] Malformed page at cursor={cursor}, stopping: {e}')
            self._set_state(busy=False, has_more=False, error=e)
            return False
        except BaseException:
            if not self._is_stale(generation):
                self._set_state(busy=False)
            raise

        if self._is_stale(generation):
            return False

        self._apply_page(page)
        return True

    def _is_stale(self, generation: int) -> bool:
        if self._closed or generation != self._generation:
            logger.debug(f'[{self.name}] Discarding result of a fetch started before reset/close')
            return True
        return False

    def _apply_page(self, page: PageResult):
        fresh: List[RawRecord] = []
        for record in page.items:
            if record.key in self._keys:
                continue
            self._keys.add(record.key)
            fresh.append(record)

        duplicates = len(page.items) - len(fresh)
        if duplicates:
            logger.info(f'[{self.name}] Dropped {duplicates} duplicate item(s) from page')

        has_more = page.has_more
        error = None
        if not page.items:
            has_more = False
        elif has_more and page.next_cursor is None:
            error = MalformedPageError('Page reports more items but carries no next cursor')
            logger.warning(f'[{self.name}] {error}; treating collection as exhausted')
            has_more = False

        items = self._state.items + tuple(self._pipeline.merge(fresh))
        self._set_state(
            cursor=page.next_cursor,
            items=items,
            has_more=has_more,
            busy=False,
            total=page.total,
            error=error,
        )
        logger.info(
            f'[{self.name}] Page applied: +{len(fresh)} items, {len(items)} loaded, '
            f'total={page.total}, has_more={has_more}'
        )

    def _on_metadata_resolved(self, identifier: int):
        if self._closed or not any(item.token_id == identifier for item in self._state.items):
            return
        items = tuple(self._pipeline.remerge(self._state.items, {identifier}))
        if items != self._state.items:
            self._set_state(items=items)

    def reset(self):
        """Explicit refresh: drop everything and start again from the first page."""
        self._generation += 1
        self._keys = set()
        logger.info(f'[{self.name}] Reset')
        self._set_state(
            cursor=self.initial_cursor,
            items=(),
            has_more=True,
            busy=False,
            total=0,
            error=None,
        )

    def close(self):
        """The owning view went away; ignore anything still in flight."""
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        self._unsubscribe_metadata()
        self._listeners.clear()
        logger.debug(f'[{self.name}] Closed')

    def keys(self) -> List[int]:
        return [item.key for item in self._state.items]

    def items(self) -> List[DisplayRecord]:
        return list(self._state.items)
