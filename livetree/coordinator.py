# python
"""
livetree/coordinator.py
Domain-level writes for the photo-sharing layout:

  users/{uid}              -> {"username": ...}
  posts/{uid}/{autoKey}    -> {"image_url", "image_height", "created_at"}

Posts are kept out of the user subtree so reading a user never pulls in posts.
"""
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

from .database import Database
from .errors import UploadFailedError
from .identity import BlobStore, IdentityContext
from .models import Post, User
from .paths import posts_path, users_path

logger = logging.getLogger(__name__)


def image_blob_path(uid: str, timestamp_ms: int) -> str:
    return f"images/posts/{uid}/{timestamp_ms}.jpg"


class WriteCoordinator:
    def __init__(self, database: Database, blob_store: Optional[BlobStore] = None):
        self.database = database
        self.blob_store = blob_store

    def create_post(self, owner_uid: str, image_url: str, image_height: float) -> str:
        """
        Write a new post under posts/{owner_uid} in one update and return its key.
        created_at is captured here, in seconds since the Unix epoch.
        """
        return self._write_post(owner_uid, image_url, image_height).key

    def _write_post(self, owner_uid: str, image_url: str, image_height: float) -> Post:
        post = Post(
            image_url=image_url,
            image_height=image_height,
            creation_date=datetime.now(timezone.utc),
        )
        tree = self.database.tree
        post.key = tree.key_generator.next_key()
        tree.update_children(posts_path(owner_uid).child(post.key), post.to_field_mapping())
        logger.info("created post %s for %s", post.key, owner_uid)
        return post

    def fetch_user(self, uid: str) -> Optional[User]:
        snapshot = self.database.reader.read_once(users_path(uid))
        return User.from_snapshot(snapshot)

    def create_or_fetch_user(self, uid: str) -> Optional[User]:
        """
        Return the stored user, or None when the caller should create one.
        Not atomic with create_user: two racing creators both win, last write last.
        """
        user = self.fetch_user(uid)
        if user is None:
            logger.info("no usable record at users/%s, treating as new user", uid)
        return user

    def create_user(self, uid: str, username: str) -> User:
        user = User(uid=uid, username=username)
        self.database.tree.update_children(users_path(uid), user.to_field_mapping())
        logger.info("created user %s", uid)
        return user

    def fetch_posts(self, uid: str) -> List[Post]:
        """All decodable posts of uid, oldest first (auto keys sort by creation)."""
        snapshot = self.database.reader.read_once(posts_path(uid))
        posts = []
        for child in snapshot.children:
            post = Post.from_snapshot(child)
            if post is None:
                logger.warning("skipping undecodable post at %s", child.path)
                continue
            posts.append(post)
        return posts

    async def share_photo(
        self,
        identity: IdentityContext,
        image_data: bytes,
        image_height: float,
    ) -> Post:
        """
        Upload the image, then write the post. A failed upload raises
        UploadFailedError and leaves the tree untouched.
        """
        if self.blob_store is None:
            raise UploadFailedError("no blob store configured")
        blob_path = image_blob_path(identity.uid, int(time.time() * 1000))
        try:
            url = await self.blob_store.upload(blob_path, image_data)
        except Exception as exc:
            raise UploadFailedError(f"upload to {blob_path} failed: {exc}") from exc
        if not url:
            raise UploadFailedError(f"upload to {blob_path} returned no URL")
        return self._write_post(identity.uid, url, image_height)
