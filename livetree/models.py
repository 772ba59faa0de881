# python
"""
livetree/models.py
Typed User and Post records and their mapping to stored snapshots.

Decoding never raises for bad or missing payloads: from_snapshot returns None
and the caller decides what that means (usually "new user" / "skip post").
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import jsonschema
from jsonschema.exceptions import best_match

from .snapshot import Snapshot

logger = logging.getLogger(__name__)

USERNAME_FIELD = "username"
IMAGE_URL_FIELD = "image_url"
IMAGE_HEIGHT_FIELD = "image_height"
CREATED_AT_FIELD = "created_at"

USER_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "$id": "user.schema.json",
    "type": "object",
    "properties": {
        USERNAME_FIELD: {"type": "string", "pattern": r"\S"},
    },
    "required": [USERNAME_FIELD],
}

POST_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "$id": "post.schema.json",
    "type": "object",
    "properties": {
        IMAGE_URL_FIELD: {"type": "string", "minLength": 1},
        IMAGE_HEIGHT_FIELD: {"type": "number", "exclusiveMinimum": 0},
        CREATED_AT_FIELD: {"type": "number"},
    },
    "required": [IMAGE_URL_FIELD, IMAGE_HEIGHT_FIELD, CREATED_AT_FIELD],
}

_USER_VALIDATOR = jsonschema.Draft7Validator(USER_SCHEMA)
_POST_VALIDATOR = jsonschema.Draft7Validator(POST_SCHEMA)


def _payload(snapshot: Optional[Snapshot], validator: jsonschema.Draft7Validator) -> Optional[Dict[str, Any]]:
    if snapshot is None or not snapshot.exists():
        return None
    value = snapshot.value
    error = best_match(validator.iter_errors(value))
    if error is not None:
        logger.debug("cannot decode %s: %s", snapshot.path, error.message)
        return None
    return value


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    uid: str
    username: str

    def __post_init__(self):
        if not self.uid:
            raise ValueError("uid is required")
        if not isinstance(self.username, str) or not self.username.strip():
            raise ValueError("username must be a non-empty string")

    @classmethod
    def from_snapshot(cls, snapshot: Optional[Snapshot]) -> Optional["User"]:
        """
        Decode a snapshot taken at users/{uid}. The uid always comes from the
        snapshot key; a uid field inside the payload is ignored.
        """
        data = _payload(snapshot, _USER_VALIDATOR)
        if data is None or not snapshot.key:
            return None
        return cls(uid=snapshot.key, username=data[USERNAME_FIELD])

    def to_field_mapping(self) -> Dict[str, Any]:
        return {USERNAME_FIELD: self.username}


@dataclass
class Post:
    image_url: str
    image_height: float
    creation_date: datetime = field(default_factory=_now)
    key: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.image_url, str) or not self.image_url:
            raise ValueError("image_url is required")
        if isinstance(self.image_height, bool) or not isinstance(self.image_height, (int, float)):
            raise ValueError("image_height must be a number")
        if self.image_height <= 0:
            raise ValueError("image_height must be positive")

    @property
    def created_at(self) -> float:
        """Creation time in seconds since the Unix epoch."""
        return self.creation_date.timestamp()

    @classmethod
    def from_snapshot(cls, snapshot: Optional[Snapshot]) -> Optional["Post"]:
        data = _payload(snapshot, _POST_VALIDATOR)
        if data is None:
            return None
        try:
            created = datetime.fromtimestamp(data[CREATED_AT_FIELD], tz=timezone.utc)
        except (OverflowError, ValueError, OSError) as exc:
            logger.debug("cannot decode %s: bad created_at: %s", snapshot.path, exc)
            return None
        return cls(
            image_url=data[IMAGE_URL_FIELD],
            image_height=data[IMAGE_HEIGHT_FIELD],
            creation_date=created,
            key=snapshot.key,
        )

    def to_field_mapping(self) -> Dict[str, Any]:
        return {
            IMAGE_URL_FIELD: self.image_url,
            IMAGE_HEIGHT_FIELD: self.image_height,
            CREATED_AT_FIELD: self.created_at,
        }
