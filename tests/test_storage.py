"""Tests for local key-value storage and the profile image cache."""
import os
import pytest
from readers.profile_images import ProfileImageCache
from readers.storage import LocalStore


def test_set_then_get(tmp_path):
    store = LocalStore(str(tmp_path / "data"))
    store.set("favoriteBooks", [{"id": "b1"}])

    assert store.get("favoriteBooks") == [{"id": "b1"}]


def test_missing_key_returns_default(tmp_path):
    store = LocalStore(str(tmp_path))
    assert store.get("nothing") is None
    assert store.get("nothing", []) == []


def test_corrupt_file_returns_default(tmp_path):
    store = LocalStore(str(tmp_path))
    (tmp_path / "favoriteBooks.json").write_text("{not json")

    assert store.get("favoriteBooks", []) == []


def test_delete(tmp_path):
    store = LocalStore(str(tmp_path))
    store.set("session", {"user_id": "u1"})
    store.delete("session")
    store.delete("session")

    assert store.get("session") is None


def test_no_temp_files_left_behind(tmp_path):
    store = LocalStore(str(tmp_path))
    store.set("k", 1)
    store.set("k", 2)

    assert os.listdir(tmp_path) == ["k.json"]
    assert store.get("k") == 2


def test_rejects_path_like_keys(tmp_path):
    store = LocalStore(str(tmp_path))
    with pytest.raises(ValueError):
        store.set("../escape", 1)


def test_profile_image_round_trip(tmp_path):
    cache = ProfileImageCache(str(tmp_path))
    path = cache.save("u1", b"\xff\xd8jpeg")

    assert path.endswith(os.path.join("ProfileImages", "u1_profile.jpg"))
    assert cache.load("u1") == b"\xff\xd8jpeg"
    assert ProfileImageCache.local_url(path) == f"local://{path}"

    cache.delete("u1")
    assert cache.load("u1") is None


def test_profile_image_missing_user(tmp_path):
    cache = ProfileImageCache(str(tmp_path))
    assert cache.load("nobody") is None
