"""Local-first favorites list with best-effort mirroring to the remote store.

The local list is the source of truth. Every mutation rewrites the whole list
to durable storage, then (when a user is signed in) queues a mirror job for
the remote store. Mirror failures are logged and recorded on the queue; they
never reach the caller and never change the local list.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any
import logging

from readers.events import EventBus, SessionChanged
from readers.models import Book, utcnow
from readers.parse import deduplicate_books
from readers.storage import LocalStore

logger = logging.getLogger(__name__)

FAVORITES_KEY = "favoriteBooks"


class SyncAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class SyncJob:
    action: SyncAction
    user_id: str
    book_id: str


@dataclass
class SyncFailure:
    job: SyncJob
    error: str
    attempts: int
    failed_at: datetime = field(default_factory=utcnow)


class SyncQueue:
    """FIFO of mirror jobs drained by a single worker task.

    Each job is tried ``1 + max_retries`` times. Jobs still failing after
    that are dropped and recorded in ``failures``.
    """

    def __init__(self, store, max_retries: int = 0, retry_delay: float = 1.0):
        """
        Args:
            store: RemoteStore (anything with add_favorite/remove_favorite)
            max_retries: Extra attempts after the first failure
            retry_delay: Seconds between attempts
        """
        self.store = store
        self.max_retries = max(0, max_retries)
        self.retry_delay = retry_delay
        self.failures: List[SyncFailure] = []
        self.completed = 0
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._in_flight = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize() + self._in_flight

    @property
    def last_error(self) -> Optional[str]:
        return self.failures[-1].error if self.failures else None

    def status(self) -> Dict[str, Any]:
        """Snapshot of the queue for display."""
        return {
            "pending": self.pending,
            "completed": self.completed,
            "failed": len(self.failures),
            "last_error": self.last_error,
        }

    def enqueue(self, job: SyncJob) -> None:
        """Queue a job without blocking; the worker starts once a loop is running."""
        self._queue.put_nowait(job)
        self._ensure_worker()

    def _ensure_worker(self) -> bool:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return False
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run())
        return True

    async def _run(self):
        while True:
            job = await self._queue.get()
            self._in_flight = 1
            try:
                await self._process(job)
            finally:
                self._in_flight = 0
                self._queue.task_done()

    async def _process(self, job: SyncJob):
        attempts = 1 + self.max_retries
        for attempt in range(attempts):
            try:
                await asyncio.to_thread(self._apply, job)
                self.completed += 1
                return
            except Exception as e:
                logger.warning(
                    f"Sync {job.action.value} {job.book_id} failed "
                    f"(attempt {attempt + 1}/{attempts}): {e}"
                )
                if attempt < attempts - 1:
                    await asyncio.sleep(self.retry_delay)
                else:
                    logger.error(f"Giving up on sync {job.action.value} {job.book_id}: {e}")
                    self.failures.append(SyncFailure(job=job, error=str(e), attempts=attempts))

    def _apply(self, job: SyncJob):
        if job.action == SyncAction.ADD:
            self.store.add_favorite(job.user_id, job.book_id)
        else:
            self.store.remove_favorite(job.user_id, job.book_id)

    async def drain(self):
        """Wait until every queued job has been attempted."""
        if self._queue.empty() and not self._in_flight:
            return
        self._ensure_worker()
        await self._queue.join()

    async def close(self):
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None


class FavoritesCache:
    """Ordered list of favorite books persisted as a whole on every change."""

    def __init__(self, storage: LocalStore, sync_queue: Optional[SyncQueue] = None):
        self.storage = storage
        self.sync_queue = sync_queue
        self.user_id: Optional[str] = None
        self._books: List[Book] = []
        self.reload()

    @property
    def books(self) -> List[Book]:
        return list(self._books)

    @property
    def count(self) -> int:
        return len(self._books)

    def contains(self, book_id: str) -> bool:
        return any(book.id == book_id for book in self._books)

    def add(self, book: Book) -> bool:
        """
        Add a book if it is not already present.

        Returns:
            True if the list changed
        """
        if self.contains(book.id):
            return False

        self._books.append(book)
        self._persist()
        self._mirror(SyncAction.ADD, book.id)
        return True

    def remove(self, book_id: str) -> bool:
        """
        Remove a book by id; absent ids are ignored.

        Returns:
            True if the list changed
        """
        if not self.contains(book_id):
            return False

        self._books = [book for book in self._books if book.id != book_id]
        self._persist()
        self._mirror(SyncAction.REMOVE, book_id)
        return True

    def reload(self) -> None:
        """Replace the in-memory list with the stored one."""
        stored = self.storage.get(FAVORITES_KEY, [])
        if not isinstance(stored, list):
            logger.warning(f"Ignoring malformed favorites list ({type(stored).__name__})")
            stored = []

        books = []
        for entry in stored:
            try:
                books.append(Book.from_dict(entry))
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed favorite {entry!r}: {e}")

        self._books = deduplicate_books(books)

    def sync_all(self) -> int:
        """
        Queue an add mirror for every local favorite.

        Returns:
            Number of jobs queued (0 when signed out or without a queue)
        """
        if not self.user_id or self.sync_queue is None:
            return 0
        for book in self._books:
            self.sync_queue.enqueue(SyncJob(SyncAction.ADD, self.user_id, book.id))
        logger.info(f"Queued {len(self._books)} favorites for sync to {self.user_id}")
        return len(self._books)

    def attach(self, bus: EventBus):
        """Follow session changes: remember the user and push local favorites on sign-in."""
        return bus.subscribe(SessionChanged, self._on_session_changed)

    def _on_session_changed(self, event: SessionChanged):
        self.user_id = event.user.id if event.user else None
        # Local favorites are kept on sign-out
        if self.user_id:
            self.sync_all()

    def _persist(self):
        try:
            self.storage.set(FAVORITES_KEY, [book.to_dict() for book in self._books])
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save favorites locally: {e}")

    def _mirror(self, action: SyncAction, book_id: str):
        if not self.user_id or self.sync_queue is None:
            return
        self.sync_queue.enqueue(SyncJob(action, self.user_id, book_id))
