# python
"""
livetree/tree.py
In-memory hierarchical node store addressed by TreePath.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

import jsonschema

from .errors import InvalidValueError
from .keys import PushKeyGenerator
from .paths import ROOT, PathLike, TreePath

logger = logging.getLogger(__name__)

VALUE_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "$id": "value.schema.json",
    "anyOf": [
        {"type": "string"},
        {"type": "number"},
        {"type": "boolean"},
        {"type": "object", "additionalProperties": {"$ref": "#"}},
    ],
}

_VALUE_VALIDATOR = jsonschema.Draft7Validator(VALUE_SCHEMA)


def validate_value(value: Any) -> None:
    """
    Raise InvalidValueError unless value is a string, number, boolean or a
    nested mapping of those.
    """
    try:
        _VALUE_VALIDATOR.validate(value)
    except jsonschema.ValidationError as exc:
        raise InvalidValueError(f"unsupported value: {exc.message}") from exc
    _validate_keys(value)


def _validate_keys(value: Any) -> None:
    if not isinstance(value, Mapping):
        return
    for key, child in value.items():
        if not isinstance(key, str) or TreePath.parse(key).segments != (key,):
            raise InvalidValueError(f"invalid child key {key!r}")
        _validate_keys(child)


@dataclass
class Node:
    key: Optional[str]
    value: Any = None
    children: Optional[Dict[str, "Node"]] = None
    last_modified: int = 0

    @property
    def is_container(self) -> bool:
        return self.children is not None


@dataclass(frozen=True)
class Change:
    """One mutation of the tree: the value at `path` before and after it."""

    path: TreePath
    before: Any
    after: Any
    tick: int
    op: str
    keys: tuple = field(default=())
    # shallowest path that did not exist before this mutation and exists after it
    created: Optional[TreePath] = None


ChangeListener = Callable[[Change], None]
FlushHook = Callable[[], None]


class PathTree:
    """
    Node tree with path-scoped writes. Every mutation runs under one re-entrant
    lock and produces exactly one Change for the listener, which is called
    before the lock is released.
    """

    def __init__(
        self,
        listener: Optional[ChangeListener] = None,
        flusher: Optional[FlushHook] = None,
        key_generator: Optional[PushKeyGenerator] = None,
    ):
        self._root = Node(key=None, children={})
        self._lock = threading.RLock()
        self._clock = 0
        self._listener = listener
        self._flusher = flusher
        self.key_generator = key_generator or PushKeyGenerator()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def set_listener(
        self,
        listener: Optional[ChangeListener],
        flusher: Optional[FlushHook] = None,
    ) -> None:
        """
        listener runs under the lock once per mutation; flusher runs after the
        lock is released.
        """
        with self._lock:
            self._listener = listener
            self._flusher = flusher

    # reads

    def _find(self, path: TreePath) -> Optional[Node]:
        node = self._root
        for segment in path.segments:
            if not node.is_container:
                return None
            node = node.children.get(segment)
            if node is None:
                return None
        return node

    def _export(self, node: Optional[Node]) -> Any:
        if node is None:
            return None
        if not node.is_container:
            return node.value
        return {key: self._export(child) for key, child in node.children.items()}

    def read(self, path: PathLike) -> Any:
        path = TreePath.parse(path)
        with self._lock:
            return self._export(self._find(path))

    def exists(self, path: PathLike) -> bool:
        path = TreePath.parse(path)
        with self._lock:
            return self._find(path) is not None

    def child_keys(self, path: PathLike) -> Optional[List[str]]:
        """Sorted child keys of a container, or None for leaves and absent nodes."""
        path = TreePath.parse(path)
        with self._lock:
            node = self._find(path)
            if node is None or not node.is_container:
                return None
            return sorted(node.children)

    def last_modified(self, path: PathLike) -> Optional[int]:
        path = TreePath.parse(path)
        with self._lock:
            node = self._find(path)
            return node.last_modified if node is not None else None

    @property
    def clock(self) -> int:
        return self._clock

    # writes

    def _build(self, key: Optional[str], value: Any, tick: int) -> Node:
        if isinstance(value, Mapping):
            node = Node(key=key, children={}, last_modified=tick)
            for child_key, child_value in value.items():
                node.children[child_key] = self._build(child_key, child_value, tick)
            return node
        return Node(key=key, value=value, last_modified=tick)

    def _container_for(self, path: TreePath, tick: int) -> Node:
        """Walk to path, creating (or converting leaves into) empty containers."""
        node = self._root
        for segment in path.segments:
            child = node.children.get(segment)
            if child is None or not child.is_container:
                child = Node(key=segment, children={}, last_modified=tick)
                node.children[segment] = child
            node = child
        return node

    def _set(self, path: TreePath, value: Any, tick: int) -> None:
        if path.is_root():
            self._root = self._build(None, value, tick)
            return
        node = self._build(path.key, value, tick)
        self._container_for(path.parent, tick).children[path.key] = node

    def _remove(self, path: TreePath) -> bool:
        if path.is_root():
            had_children = bool(self._root.children)
            self._root = Node(key=None, children={})
            return had_children
        parent = self._find(path.parent)
        if parent is None or not parent.is_container or path.key not in parent.children:
            return False
        # parents left empty by this removal are kept
        del parent.children[path.key]
        return True

    def _stamp(self, path: TreePath, tick: int) -> None:
        node = self._root
        node.last_modified = tick
        for segment in path.segments:
            if not node.is_container:
                break
            node = node.children.get(segment)
            if node is None:
                break
            node.last_modified = tick

    def _first_missing(self, path: TreePath) -> Optional[TreePath]:
        node = self._root
        for depth, segment in enumerate(path.segments, start=1):
            child = node.children.get(segment) if node.is_container else None
            if child is None:
                return TreePath(path.segments[:depth])
            node = child
        return None

    def _created(self, missing: Optional[TreePath]) -> Optional[TreePath]:
        if missing is not None and self._find(missing) is not None:
            return missing
        return None

    def _tick(self) -> int:
        self._clock += 1
        return self._clock

    def _emit(self, change: Change) -> None:
        if self._listener is None:
            return
        try:
            self._listener(change)
        except Exception:
            logger.exception("change listener failed for %s at %s", change.op, change.path)

    def _flush(self) -> None:
        if self._flusher is not None:
            self._flusher()

    def write(self, path: PathLike, value: Any) -> None:
        """Create or replace the node at path. Writing None removes it."""
        path = TreePath.parse(path)
        if value is None:
            self.delete(path)
            return
        validate_value(value)
        if path.is_root() and not isinstance(value, Mapping):
            raise InvalidValueError("the root can only hold a mapping")
        with self._lock:
            before = self._export(self._find(path))
            missing = self._first_missing(path)
            tick = self._tick()
            self._set(path, value, tick)
            self._stamp(path, tick)
            after = self._export(self._find(path))
            logger.debug("write %s tick=%d", path, tick)
            self._emit(
                Change(
                    path=path,
                    before=before,
                    after=after,
                    tick=tick,
                    op="write",
                    created=self._created(missing),
                )
            )
        self._flush()

    def delete(self, path: PathLike) -> bool:
        """Remove the node at path. Returns False (and notifies nobody) if it was absent."""
        path = TreePath.parse(path)
        with self._lock:
            node = self._find(path)
            if node is None:
                return False
            before = self._export(node)
            if path.is_root() and not node.children:
                return False
            self._remove(path)
            tick = self._tick()
            self._stamp(path.parent or ROOT, tick)
            after = self._export(self._find(path))
            logger.debug("delete %s tick=%d", path, tick)
            self._emit(Change(path=path, before=before, after=after, tick=tick, op="delete"))
        self._flush()
        return True

    def update_children(self, path: PathLike, mapping: Mapping[str, Any]) -> None:
        """
        Write every entry of mapping as a child of path (keys may be relative
        paths; None removes that child). Children not named are left alone.
        Observers see the whole update as one change.
        """
        path = TreePath.parse(path)
        if not isinstance(mapping, Mapping):
            raise InvalidValueError("update_children expects a mapping")
        if not mapping:
            return
        targets = []
        for rel, value in mapping.items():
            target = path.child(rel)
            if len(target) == len(path):
                raise InvalidValueError(f"invalid child key {rel!r}")
            if value is not None:
                validate_value(value)
            targets.append((target, value))
        with self._lock:
            before = self._export(self._find(path))
            missing = self._first_missing(path)
            tick = self._tick()
            for target, value in targets:
                if value is None:
                    self._remove(target)
                    self._stamp(target.parent, tick)
                else:
                    self._set(target, value, tick)
                    self._stamp(target, tick)
            after = self._export(self._find(path))
            logger.debug("update %s keys=%s tick=%d", path, list(mapping), tick)
            self._emit(
                Change(
                    path=path,
                    before=before,
                    after=after,
                    tick=tick,
                    op="update",
                    keys=tuple(str(t) for t, _ in targets),
                    created=self._created(missing),
                )
            )
        self._flush()

    def push(self, path: PathLike, value: Any = None) -> str:
        """Generate an auto key under path, writing value there when given."""
        path = TreePath.parse(path)
        key = self.key_generator.next_key()
        if value is not None:
            self.write(path.child(key), value)
        return key
