"""Tests for the local-first favorites cache and its sync queue."""
import pytest
from readers.errors import StoreError
from readers.events import EventBus, SessionChanged
from readers.favorites import FAVORITES_KEY, FavoritesCache, SyncAction, SyncJob, SyncQueue
from readers.models import Book, User
from readers.storage import LocalStore

GATSBY = Book("/works/OL1W", "The Great Gatsby", "F. Scott Fitzgerald", publish_year=1925)
DUNE = Book("/works/OL2W", "Dune", "Frank Herbert", cover_image_url="https://c/b/id/1-M.jpg")
EMMA = Book("/works/OL3W", "Emma", "Jane Austen")


class RecordingStore:
    """Remote store stand-in that records mirror calls."""

    def __init__(self, fail_times=0):
        self.calls = []
        self.fail_times = fail_times

    def _maybe_fail(self):
        if self.fail_times:
            self.fail_times -= 1
            raise StoreError("connection refused")

    def add_favorite(self, user_id, book_id):
        self._maybe_fail()
        self.calls.append(("add", user_id, book_id))

    def remove_favorite(self, user_id, book_id):
        self._maybe_fail()
        self.calls.append(("remove", user_id, book_id))


@pytest.fixture
def storage(tmp_path):
    return LocalStore(str(tmp_path))


def signed_in(cache, user_id="u1"):
    bus = EventBus()
    cache.attach(bus)
    bus.publish(SessionChanged(User(id=user_id, display_name="Ann", email="ann@example.com")))
    return bus


def test_add_new_book(storage):
    cache = FavoritesCache(storage)

    assert cache.add(GATSBY) is True
    assert cache.contains(GATSBY.id)
    assert cache.count == 1


def test_add_is_idempotent(storage):
    cache = FavoritesCache(storage)
    cache.add(GATSBY)

    assert cache.add(GATSBY) is False
    assert cache.books == [GATSBY]


def test_remove_present_and_absent(storage):
    cache = FavoritesCache(storage)
    cache.add(GATSBY)
    cache.add(DUNE)

    assert cache.remove(GATSBY.id) is True
    assert not cache.contains(GATSBY.id)
    assert cache.count == 1

    assert cache.remove("/works/missing") is False
    assert cache.books == [DUNE]


def test_persist_then_reload_keeps_order(storage):
    cache = FavoritesCache(storage)
    for book in (DUNE, GATSBY, EMMA):
        cache.add(book)

    reopened = FavoritesCache(storage)
    assert reopened.books == [DUNE, GATSBY, EMMA]


def test_reload_discards_in_memory_state(storage):
    cache = FavoritesCache(storage)
    cache.add(GATSBY)
    storage.set(FAVORITES_KEY, [EMMA.to_dict()])

    cache.reload()

    assert cache.books == [EMMA]


def test_reload_skips_malformed_entries(storage):
    storage.set(FAVORITES_KEY, [GATSBY.to_dict(), {"id": "broken"}, "junk", GATSBY.to_dict()])

    assert FavoritesCache(storage).books == [GATSBY]


def test_reload_ignores_non_list(storage):
    storage.set(FAVORITES_KEY, {"oops": True})
    assert FavoritesCache(storage).books == []


def test_local_persistence_failure_is_ignored(storage, monkeypatch):
    cache = FavoritesCache(storage)

    def broken_set(key, value):
        raise OSError("disk full")

    monkeypatch.setattr(storage, "set", broken_set)

    assert cache.add(GATSBY) is True
    assert cache.contains(GATSBY.id)


def test_no_mirror_when_signed_out(storage):
    store = RecordingStore()
    queue = SyncQueue(store)
    cache = FavoritesCache(storage, sync_queue=queue)

    cache.add(GATSBY)

    assert queue.pending == 0


@pytest.mark.asyncio
async def test_mutations_are_mirrored_when_signed_in(storage):
    store = RecordingStore()
    queue = SyncQueue(store)
    cache = FavoritesCache(storage, sync_queue=queue)
    signed_in(cache)

    cache.add(GATSBY)
    cache.remove(GATSBY.id)
    await queue.drain()

    assert store.calls == [("add", "u1", GATSBY.id), ("remove", "u1", GATSBY.id)]
    assert queue.status()["completed"] == 2
    await queue.close()


@pytest.mark.asyncio
async def test_sign_in_pushes_existing_favorites(storage):
    store = RecordingStore()
    queue = SyncQueue(store)
    cache = FavoritesCache(storage, sync_queue=queue)
    cache.add(GATSBY)
    cache.add(DUNE)

    signed_in(cache, "u7")
    await queue.drain()

    assert store.calls == [("add", "u7", GATSBY.id), ("add", "u7", DUNE.id)]
    await queue.close()


@pytest.mark.asyncio
async def test_sign_out_keeps_local_favorites(storage):
    queue = SyncQueue(RecordingStore())
    cache = FavoritesCache(storage, sync_queue=queue)
    bus = signed_in(cache)
    cache.add(GATSBY)

    bus.publish(SessionChanged(None))

    assert cache.user_id is None
    assert cache.books == [GATSBY]
    await queue.drain()
    await queue.close()


@pytest.mark.asyncio
async def test_remote_failure_never_touches_local_state(storage):
    """Failed mirrors are recorded on the queue, not raised."""
    store = RecordingStore(fail_times=5)
    queue = SyncQueue(store, max_retries=0)
    cache = FavoritesCache(storage, sync_queue=queue)
    signed_in(cache)

    assert cache.add(GATSBY) is True
    await queue.drain()

    assert cache.books == [GATSBY]
    assert FavoritesCache(storage).books == [GATSBY]
    assert store.calls == []
    assert len(queue.failures) == 1
    assert queue.failures[0].attempts == 1
    assert "connection refused" in queue.last_error
    await queue.close()


@pytest.mark.asyncio
async def test_bounded_retry_recovers():
    store = RecordingStore(fail_times=2)
    queue = SyncQueue(store, max_retries=2, retry_delay=0)

    queue.enqueue(SyncJob(SyncAction.ADD, "u1", "b1"))
    await queue.drain()

    assert store.calls == [("add", "u1", "b1")]
    assert queue.failures == []
    await queue.close()


@pytest.mark.asyncio
async def test_bounded_retry_gives_up():
    store = RecordingStore(fail_times=10)
    queue = SyncQueue(store, max_retries=2, retry_delay=0)

    queue.enqueue(SyncJob(SyncAction.REMOVE, "u1", "b1"))
    await queue.drain()

    assert queue.status() == {
        "pending": 0,
        "completed": 0,
        "failed": 1,
        "last_error": "connection refused",
    }
    assert store.fail_times == 7
    await queue.close()
