# python
"""
tests/test_coordinator.py
Unit tests for WriteCoordinator: post and user writes, post listing and the
upload-then-write photo flow.
"""
import asyncio
import threading
import time

import pytest

from livetree.coordinator import WriteCoordinator, image_blob_path
from livetree.database import Database
from livetree.errors import UploadFailedError
from livetree.identity import IdentityContext
from livetree.observation import EventKind


class RecordingBlobStore:
    def __init__(self, url="https://img/uploaded.jpg"):
        self.url = url
        self.uploads = []

    async def upload(self, path, data):
        self.uploads.append((path, data))
        return self.url


class FailingBlobStore:
    async def upload(self, path, data):
        raise ConnectionError("storage offline")


def test_create_post_writes_all_fields() -> None:
    db = Database()
    coordinator = WriteCoordinator(db)
    before = time.time()
    key = coordinator.create_post("u1", "https://img/x.jpg", 500.0)
    after = time.time()

    stored = db.tree.read(f"posts/u1/{key}")
    assert set(stored) == {"image_url", "image_height", "created_at"}
    assert stored["image_url"] == "https://img/x.jpg"
    assert stored["image_height"] == 500.0
    assert before - 1e-3 <= stored["created_at"] <= after + 1e-3
    assert len(key) == 20


def test_create_post_notifies_once() -> None:
    db = Database()
    seen = []
    db.reference("posts/u1").on(EventKind.VALUE, seen.append)
    WriteCoordinator(db).create_post("u1", "https://img/x.jpg", 500.0)
    assert len(seen) == 2


def test_create_post_keeps_other_users_untouched() -> None:
    db = Database()
    db.tree.write("users/u1/username", "ada")
    WriteCoordinator(db).create_post("u1", "https://img/x.jpg", 500.0)
    assert db.tree.read("users/u1") == {"username": "ada"}


def test_concurrent_posts_get_distinct_keys() -> None:
    db = Database()
    coordinator = WriteCoordinator(db)
    keys = []
    lock = threading.Lock()

    def worker():
        for _ in range(25):
            key = coordinator.create_post("u1", "https://img/x.jpg", 100.0)
            with lock:
                keys.append(key)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(set(keys)) == 100
    assert len(db.tree.child_keys("posts/u1")) == 100


@pytest.mark.parametrize("height", [0, -5.0])
def test_create_post_rejects_bad_height(height) -> None:
    db = Database()
    with pytest.raises(ValueError):
        WriteCoordinator(db).create_post("u1", "https://img/x.jpg", height)
    assert db.tree.read("posts") is None


def test_fetch_posts_oldest_first_and_skips_bad_records() -> None:
    db = Database()
    coordinator = WriteCoordinator(db)
    first = coordinator.create_post("u1", "https://img/1.jpg", 100.0)
    second = coordinator.create_post("u1", "https://img/2.jpg", 200.0)
    db.tree.write("posts/u1/zzz-broken", {"image_url": "https://img/3.jpg"})

    posts = coordinator.fetch_posts("u1")
    assert [p.key for p in posts] == [first, second]
    assert [p.image_height for p in posts] == [100.0, 200.0]
    assert coordinator.fetch_posts("nobody") == []


def test_new_user_is_none_until_created() -> None:
    db = Database()
    coordinator = WriteCoordinator(db)
    assert coordinator.create_or_fetch_user("42") is None

    user = coordinator.create_user("42", "ada")
    assert user.uid == "42"
    assert db.tree.read("users/42") == {"username": "ada"}
    assert coordinator.create_or_fetch_user("42") == user


def test_partial_user_record_counts_as_new() -> None:
    db = Database()
    db.tree.write("users/42/bio", "math")
    coordinator = WriteCoordinator(db)
    assert coordinator.fetch_user("42") is None
    coordinator.create_user("42", "ada")
    assert db.tree.read("users/42") == {"bio": "math", "username": "ada"}


def test_image_blob_path() -> None:
    assert image_blob_path("u1", 1700000000123) == "images/posts/u1/1700000000123.jpg"


def test_share_photo_uploads_then_writes() -> None:
    db = Database()
    store = RecordingBlobStore()
    coordinator = WriteCoordinator(db, blob_store=store)

    post = asyncio.run(coordinator.share_photo(IdentityContext("u1"), b"jpeg-bytes", 480.0))
    assert post.image_url == "https://img/uploaded.jpg"
    assert post.image_height == 480.0
    path, data = store.uploads[0]
    assert path.startswith("images/posts/u1/") and path.endswith(".jpg")
    assert data == b"jpeg-bytes"
    assert db.tree.child_keys("posts/u1") == [post.key]


@pytest.mark.parametrize("store", [None, FailingBlobStore(), RecordingBlobStore(url=None)])
def test_failed_upload_writes_nothing(store) -> None:
    db = Database()
    coordinator = WriteCoordinator(db, blob_store=store)
    with pytest.raises(UploadFailedError):
        asyncio.run(coordinator.share_photo(IdentityContext("u1"), b"jpeg-bytes", 480.0))
    assert db.tree.read("posts") is None


def test_fetch_posts_skips_out_of_range_timestamps() -> None:
    db = Database()
    coordinator = WriteCoordinator(db)
    good = coordinator.create_post("u1", "https://img/1.jpg", 100.0)
    db.tree.write("posts/u1/zz-far-future", {"image_url": "x", "image_height": 1, "created_at": 1e20})
    assert [p.key for p in coordinator.fetch_posts("u1")] == [good]


def test_share_photo_returns_the_written_post() -> None:
    db = Database()
    coordinator = WriteCoordinator(db, blob_store=RecordingBlobStore())
    post = asyncio.run(coordinator.share_photo(IdentityContext("u1"), b"jpeg-bytes", 480.0))
    stored = db.tree.read(f"posts/u1/{post.key}")
    assert stored == post.to_field_mapping()
