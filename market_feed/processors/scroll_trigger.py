import asyncio
import logging
from typing import Optional

from ..config import Config
from ..models import PaginationState
from .pagination import PaginationController

logger = logging.getLogger(__name__)


class ScrollTrigger:
    """
    Requests the next page when the sentinel (last loaded item) comes into view.

    Fires at most once per sentinel. A successful fetch establishes a new
    sentinel or advances the cursor, which re-arms the trigger; a failed fetch
    leaves it disarmed until rearm() is called.
    """

    def __init__(self, controller: PaginationController, threshold: Optional[float] = None):
        self.controller = controller
        self.threshold = Config.SCROLL_THRESHOLD if threshold is None else threshold
        self.sentinel = self._sentinel_of(controller.state)
        self.cursor = controller.state.cursor
        self.armed = True
        self.pending: Optional[asyncio.Task] = None
        self._unsubscribe = controller.subscribe(self._on_state)

    @staticmethod
    def _sentinel_of(state: PaginationState) -> Optional[int]:
        return state.items[-1].key if state.items else None

    def _on_state(self, state: PaginationState):
        sentinel = self._sentinel_of(state)
        settled = not state.busy and state.error is None
        if sentinel != self.sentinel:
            self.sentinel = sentinel
            self.armed = True
        elif settled and state.cursor != self.cursor:
            # Page applied without new keys (a repeated page); the cursor still moved on
            self.armed = True
        elif not state.items and state.has_more and settled:
            # Fresh collection after reset()
            self.armed = True
        self.cursor = state.cursor

    def _on_fetch_done(self, task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f'[{self.controller.name}] Page fetch raised {type(error).__name__}: {error}',
                exc_info=error,
            )

    def on_intersect(self, key: Optional[int]) -> Optional[asyncio.Task]:
        """
        An item became visible. Only the current sentinel can trigger a fetch.

        Returns:
            The scheduled fetch task, or None when nothing was requested
        """
        if key != self.sentinel or not self.armed:
            return None
        state = self.controller.state
        if self.controller.closed or state.busy or state.exhausted:
            return None

        self.armed = False
        logger.debug(f'[{self.controller.name}] Sentinel {key} reached, requesting next page')
        self.pending = asyncio.get_running_loop().create_task(self.controller.fetch_next())
        self.pending.add_done_callback(self._on_fetch_done)
        return self.pending

    def on_scroll(self, offset: float, viewport: float, content_length: float) -> Optional[asyncio.Task]:
        """Scroll position report; near the end of content counts as reaching the sentinel."""
        remaining = content_length - (offset + viewport)
        if remaining > self.threshold:
            return None
        return self.on_intersect(self.sentinel)

    def rearm(self):
        self.armed = True

    def close(self):
        self._unsubscribe()
        self.armed = False
