"""Debounced search over the catalog client.

A query is sent only after it has been stable for ``debounce`` seconds and
differs (after trimming) from the previously settled query. Each dispatched
request carries a token; starting a new request cancels the previous one, and
a response whose token is no longer current is discarded.
"""
import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
import logging

from readers.errors import CatalogError
from readers.models import Book

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchState:
    """Snapshot handed to the subscriber on every change."""
    query: str
    results: Tuple[Book, ...]
    is_loading: bool
    error_message: Optional[str]
    is_waiting_for_input: bool


class SearchPipeline:
    """Debounced, cancelling search with a single subscriber."""

    def __init__(self, client, debounce: float = 0.5, min_length: int = 2):
        """
        Args:
            client: Async catalog client exposing ``search(query)``
            debounce: Quiescence window in seconds
            min_length: Shortest trimmed query that is sent
        """
        self.client = client
        self.debounce = debounce
        self.min_length = min_length

        self.query = ""
        self.results: List[Book] = []
        self.is_loading = False
        self.error_message: Optional[str] = None
        self.is_waiting_for_input = False

        self._last_term: Optional[str] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._request: Optional[asyncio.Task] = None
        self._token = 0
        self._subscriber: Optional[Callable[[SearchState], None]] = None

    @property
    def state(self) -> SearchState:
        return SearchState(
            query=self.query,
            results=tuple(self.results),
            is_loading=self.is_loading,
            error_message=self.error_message,
            is_waiting_for_input=self.is_waiting_for_input,
        )

    def subscribe(self, callback: Callable[[SearchState], None]) -> Callable[[], None]:
        """
        Register the pipeline's only subscriber.

        Raises:
            RuntimeError: If a subscriber is already registered
        """
        if self._subscriber is not None:
            raise RuntimeError("SearchPipeline already has a subscriber")
        self._subscriber = callback

        def unsubscribe():
            if self._subscriber is callback:
                self._subscriber = None

        return unsubscribe

    def _notify(self):
        if self._subscriber is not None:
            self._subscriber(self.state)

    def set_query(self, text: str) -> None:
        """Record a keystroke. Must be called from a running event loop."""
        loop = asyncio.get_running_loop()
        self.query = text
        self._cancel_timer()

        if not text.strip():
            # Empty input clears at once, no debounce
            self.is_waiting_for_input = False
            self._last_term = ""
            self._clear_results()
            return

        self.is_waiting_for_input = True
        self._timer = loop.call_later(self.debounce, self._on_quiet)
        self._notify()

    def _on_quiet(self):
        self._timer = None
        self.is_waiting_for_input = False
        term = self.query.strip()

        if term == self._last_term:
            logger.debug(f"Suppressing duplicate query '{term}'")
            self._notify()
            return

        self._last_term = term
        self._evaluate(term)

    def _evaluate(self, term: str):
        if not term:
            self._clear_results()
        elif len(term) < self.min_length:
            # Too short: leave previous results alone
            self._notify()
        else:
            self._dispatch(term)

    def _dispatch(self, term: str):
        self._cancel_request()
        self._token += 1
        self.is_loading = True
        self.error_message = None
        self._notify()

        logger.info(f"Dispatching search '{term}' (token {self._token})")
        self._request = asyncio.ensure_future(self._perform(term, self._token))

    async def _perform(self, term: str, token: int):
        try:
            books = await self.client.search(term)
        except CatalogError as e:
            if token != self._token:
                return
            logger.warning(f"Search '{term}' failed: {e}")
            self.error_message = e.message
        except Exception as e:
            if token != self._token:
                return
            logger.error(f"Search '{term}' failed unexpectedly: {e}", exc_info=True)
            self.error_message = str(e) or type(e).__name__
        else:
            if token != self._token:
                logger.debug(f"Discarding stale results for '{term}'")
                return
            self.results = books

        self.is_loading = False
        self._notify()

    async def search_now(self) -> None:
        """Run the current query immediately, skipping the debounce window."""
        self._cancel_timer()
        self.is_waiting_for_input = False
        term = self.query.strip()
        self._last_term = term
        self._evaluate(term)
        await self.wait_idle()

    def clear(self) -> None:
        """Reset the query, results and error, dropping pending work."""
        self.query = ""
        self._cancel_timer()
        self.is_waiting_for_input = False
        self._last_term = ""
        self._clear_results()

    def _clear_results(self):
        self._cancel_request()
        self._token += 1
        self.results = []
        self.error_message = None
        self.is_loading = False
        self._notify()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _cancel_request(self):
        if self._request is not None and not self._request.done():
            self._request.cancel()
        self._request = None

    async def wait_idle(self) -> None:
        """Wait until no debounce timer or request is outstanding."""
        while self._timer is not None or self._request is not None:
            request = self._request
            if request is not None:
                await asyncio.wait({request})
                if self._request is request:
                    self._request = None
            else:
                await asyncio.sleep(max(self.debounce / 4, 0.001))

    def close(self) -> None:
        self._cancel_timer()
        self._cancel_request()
