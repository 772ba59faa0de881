"""Slash-delimited tree paths."""
from __future__ import annotations

import re
from typing import Iterable, Optional, Tuple, Union

from .errors import InvalidPathError

# Firebase-compatible segment rules: no '.', '$', '#', '[', ']' or control chars.
_FORBIDDEN = re.compile(r"[.$#\[\]\x00-\x1f\x7f]")

PathLike = Union[str, "TreePath", Iterable[str]]


def _check_segment(segment: str) -> str:
    if not isinstance(segment, str):
        raise InvalidPathError(f"path segment must be a string, got {type(segment).__name__}")
    if not segment:
        raise InvalidPathError("empty path segment")
    if "/" in segment:
        raise InvalidPathError(f"path segment {segment!r} contains '/'")
    if _FORBIDDEN.search(segment):
        raise InvalidPathError(f"path segment {segment!r} contains a forbidden character")
    return segment


class TreePath:
    """
    Immutable address of a node: an ordered tuple of string segments.
    The empty tuple is the root.
    """

    __slots__ = ("segments",)

    def __init__(self, segments: Tuple[str, ...] = ()):
        self.segments: Tuple[str, ...] = tuple(_check_segment(s) for s in segments)

    @classmethod
    def parse(cls, raw: PathLike) -> "TreePath":
        if isinstance(raw, TreePath):
            return raw
        if isinstance(raw, str):
            return cls(tuple(part for part in raw.split("/") if part))
        return cls(tuple(raw))

    @property
    def key(self) -> Optional[str]:
        return self.segments[-1] if self.segments else None

    @property
    def parent(self) -> Optional["TreePath"]:
        if not self.segments:
            return None
        return TreePath(self.segments[:-1])

    def is_root(self) -> bool:
        return not self.segments

    def child(self, segment: str) -> "TreePath":
        """Append one or more segments ('a/b' appends two)."""
        return TreePath(self.segments + TreePath.parse(segment).segments)

    def is_ancestor_of(self, other: "TreePath") -> bool:
        """Strict ancestry: a path is not its own ancestor."""
        n = len(self.segments)
        return n < len(other.segments) and other.segments[:n] == self.segments

    def contains(self, other: "TreePath") -> bool:
        return self == other or self.is_ancestor_of(other)

    def relative_to(self, ancestor: "TreePath") -> Tuple[str, ...]:
        if not ancestor.contains(self):
            raise InvalidPathError(f"{self} is not inside {ancestor}")
        return self.segments[len(ancestor.segments):]

    def __len__(self) -> int:
        return len(self.segments)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TreePath):
            return self.segments == other.segments
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.segments)

    def __str__(self) -> str:
        return "/".join(self.segments)

    def __repr__(self) -> str:
        return f"TreePath({str(self)!r})"


ROOT = TreePath()


def users_path(uid: str) -> TreePath:
    return TreePath(("users", uid))


def posts_path(uid: str) -> TreePath:
    return TreePath(("posts", uid))
