"""Tests for CLI commands that share the session and favorites sync."""
import argparse
import time
from unittest.mock import patch
import pytest
import explorer
from readers.app_state import SESSION_KEY
from readers.config import Config
from readers.errors import CatalogError, StoreError
from readers.favorites import FAVORITES_KEY
from readers.models import Book, User, UserFavorite
from readers.storage import LocalStore


class SlowStore:
    """Remote store whose favorite writes take a while and fail once closed."""

    def __init__(self):
        self.closed = False
        self.added = []
        self.errors_after_close = []

    def get_user(self, user_id):
        return User(id=user_id, display_name="Ann", email="ann@example.com")

    def add_favorite(self, user_id, book_id):
        time.sleep(0.1)
        if self.closed:
            self.errors_after_close.append(book_id)
            raise StoreError("connection pool is closed")
        self.added.append(book_id)
        return UserFavorite(user_id, book_id)

    def get_user_reviews(self, user_id):
        return []

    def close(self):
        self.closed = True


@pytest.fixture
def config(tmp_path):
    config = Config()
    config.DATA_DIR = str(tmp_path)
    storage = LocalStore(config.DATA_DIR)
    storage.set(SESSION_KEY, {"user_id": "u1"})
    storage.set(FAVORITES_KEY, [Book("/works/OL1W", "Gatsby", "Fitzgerald").to_dict()])
    return config


@pytest.mark.asyncio
async def test_reviews_command_finishes_sync_before_closing_store(config):
    """Restoring the session queues local favorites; they land before the store closes."""
    store = SlowStore()
    args = argparse.Namespace(action="list", book_id=None, mine=True)

    with patch.object(explorer, "open_store", return_value=store):
        await explorer.manage_reviews(args, config)

    assert store.added == ["/works/OL1W"]
    assert store.errors_after_close == []
    assert store.closed


@pytest.mark.asyncio
async def test_account_command_finishes_sync(config):
    store = SlowStore()
    args = argparse.Namespace(command="whoami")

    with patch.object(explorer, "open_store", return_value=store):
        await explorer.manage_account(args, config)

    assert store.added == ["/works/OL1W"]
    assert store.closed


@pytest.mark.asyncio
async def test_failed_favorite_lookup_still_finishes_sync(config):
    store = SlowStore()
    args = argparse.Namespace(action="add", book_id="OL2W", remote=False, format="table")

    with patch.object(explorer, "open_store", return_value=store), \
            patch.object(explorer.OpenLibraryClient, "fetch_details", side_effect=CatalogError("down")):
        await explorer.manage_favorites(args, config)

    assert store.added == ["/works/OL1W"]
    assert store.errors_after_close == []
    assert store.closed
