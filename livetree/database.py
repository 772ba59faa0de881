# python
"""
livetree/database.py
Explicit store handle and path references.

A Database owns one PathTree plus its observation registry; callers get
References from it instead of reaching for a global root.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from .observation import EventKind, ObservationRegistry, Subscription
from .paths import ROOT, PathLike, TreePath
from .snapshot import Snapshot, SnapshotReader
from .tree import PathTree

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, tree: Optional[PathTree] = None):
        self.tree = tree or PathTree()
        self.registry = ObservationRegistry(self.tree)
        self.reader = SnapshotReader(self.tree, self.registry)

    def reference(self, path: PathLike = ROOT) -> "Reference":
        return Reference(self, TreePath.parse(path))

    ref = reference

    def load(self, data: Mapping[str, Any]) -> None:
        """Replace the whole tree with data (one change at the root)."""
        self.tree.write(ROOT, dict(data))
        logger.info("loaded %d top-level keys", len(data))

    def export(self) -> Dict[str, Any]:
        return self.tree.read(ROOT) or {}


class Reference:
    """A path in one Database. Cheap to create; holds no data."""

    def __init__(self, database: Database, path: TreePath):
        self.database = database
        self.path = path

    @property
    def key(self) -> Optional[str]:
        return self.path.key

    @property
    def parent(self) -> Optional["Reference"]:
        parent = self.path.parent
        return Reference(self.database, parent) if parent is not None else None

    @property
    def root(self) -> "Reference":
        return Reference(self.database, ROOT)

    def child(self, rel: str) -> "Reference":
        return Reference(self.database, self.path.child(rel))

    def child_by_auto_id(self) -> "Reference":
        """Reference to a fresh auto-keyed child; nothing is written yet."""
        return self.child(self.database.tree.key_generator.next_key())

    # reads

    def read_once(self) -> Snapshot:
        return self.database.reader.read_once(self.path)

    async def get(self) -> Snapshot:
        return self.read_once()

    def observe(self, event_kind: EventKind = EventKind.VALUE) -> Subscription:
        return self.database.reader.observe(self.path, event_kind)

    def on(
        self,
        event_kind: EventKind,
        callback: Callable[[Snapshot], Any],
    ) -> Subscription:
        return self.database.reader.listen(self.path, event_kind, callback)

    # writes

    async def set(self, value: Any) -> None:
        self.database.tree.write(self.path, value)

    async def update(self, mapping: Mapping[str, Any]) -> None:
        self.database.tree.update_children(self.path, mapping)

    async def remove(self) -> bool:
        return self.database.tree.delete(self.path)

    async def push(self, value: Any = None) -> "Reference":
        key = self.database.tree.push(self.path, value)
        return self.child(key)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Reference):
            return self.database is other.database and self.path == other.path
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.path)

    def __str__(self) -> str:
        return "/" + str(self.path)

    def __repr__(self) -> str:
        return f"Reference({str(self)!r})"
