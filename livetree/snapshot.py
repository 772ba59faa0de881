"""Immutable point-in-time views of the tree."""
from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional

from .paths import PathLike, TreePath

if TYPE_CHECKING:  # pragma: no cover
    from .observation import EventKind, ObservationRegistry, Subscription
    from .tree import PathTree


class Snapshot:
    """
    Copy of a node's value and key at read time. Later tree changes never
    reach it, and `value` hands out a fresh copy on every access.
    """

    __slots__ = ("_path", "_value")

    def __init__(self, path: PathLike, value: Any):
        self._path = TreePath.parse(path)
        self._value = copy.deepcopy(value)

    @property
    def path(self) -> TreePath:
        return self._path

    @property
    def key(self) -> Optional[str]:
        return self._path.key

    @property
    def value(self) -> Any:
        return copy.deepcopy(self._value)

    def exists(self) -> bool:
        return self._value is not None

    def has_children(self) -> bool:
        return isinstance(self._value, dict) and bool(self._value)

    def child(self, rel: str) -> "Snapshot":
        target = self._path.child(rel)
        value = self._value
        for segment in target.relative_to(self._path):
            if not isinstance(value, dict):
                value = None
                break
            value = value.get(segment)
        return Snapshot(target, value)

    def has_child(self, rel: str) -> bool:
        return self.child(rel).exists()

    @property
    def children_count(self) -> int:
        return len(self._value) if isinstance(self._value, dict) else 0

    @property
    def children(self) -> Iterator["Snapshot"]:
        """Child snapshots in key order (auto keys sort chronologically)."""
        if not isinstance(self._value, dict):
            return iter(())
        return iter([self.child(k) for k in sorted(self._value)])

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Snapshot):
            return self._path == other._path and self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._path)

    def __repr__(self) -> str:
        return f"Snapshot(path={str(self._path)!r}, value={self._value!r})"


class SnapshotReader:
    """One-shot reads and standing observations over a PathTree."""

    def __init__(self, tree: "PathTree", registry: "ObservationRegistry"):
        self.tree = tree
        self.registry = registry

    def read_once(self, path: PathLike) -> Snapshot:
        path = TreePath.parse(path)
        return Snapshot(path, self.tree.read(path))

    def observe(self, path: PathLike, event_kind: "EventKind") -> "Subscription":
        """Async-iterable stream of snapshots; the first VALUE item is the current state."""
        return self.registry.subscribe(path, event_kind)

    def listen(
        self,
        path: PathLike,
        event_kind: "EventKind",
        callback: Callable[[Snapshot], Any],
    ) -> "Subscription":
        return self.registry.subscribe(path, event_kind, callback=callback)
