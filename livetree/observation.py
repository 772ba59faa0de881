# python
"""
livetree/observation.py
Subscriptions keyed by (path, event kind) and change fan-out.

Publishing happens inside the tree lock so every subscription sees changes in
the order they were applied. Callbacks run afterwards, outside the lock, one
drainer per subscription at a time. Stream subscriptions are consumed with
`async for`.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from collections import deque
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from .errors import SubscriptionCancelledError
from .paths import PathLike, TreePath
from .snapshot import Snapshot
from .tree import Change, PathTree

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    VALUE = "value"
    CHILD_ADDED = "child_added"
    CHILD_CHANGED = "child_changed"
    CHILD_REMOVED = "child_removed"


SnapshotCallback = Callable[[Snapshot], Any]


def _extract(value: Any, rel: Tuple[str, ...]) -> Any:
    for segment in rel:
        if not isinstance(value, dict):
            return None
        value = value.get(segment)
    return value


def _children(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


class Subscription:
    """
    A standing observation. Async-iterable for stream consumers; callback
    subscriptions are drained by the registry. Either way, `cancel()` stops
    delivery: nothing is handed out once it returns.
    """

    def __init__(
        self,
        registry: "ObservationRegistry",
        sub_id: int,
        path: TreePath,
        event_kind: EventKind,
        callback: Optional[SnapshotCallback] = None,
    ):
        self.registry = registry
        self.id = sub_id
        self.path = path
        self.event_kind = event_kind
        self.callback = callback
        self._pending: Deque[Snapshot] = deque()
        self._lock = threading.Lock()
        self._active = True
        self._draining = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wakeup: Optional[asyncio.Event] = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def poll(self) -> Optional[Snapshot]:
        """Pop the next pending snapshot without waiting."""
        with self._lock:
            return self._pending.popleft() if self._pending else None

    def cancel(self) -> None:
        self.registry.unsubscribe(self)

    def _close(self) -> None:
        with self._lock:
            self._active = False
            self._pending.clear()
        self._signal()

    def _enqueue(self, items: List[Snapshot]) -> bool:
        with self._lock:
            if not self._active:
                return False
            self._pending.extend(items)
        self._signal()
        return True

    def _signal(self) -> None:
        wakeup, loop = self._wakeup, self._loop
        if wakeup is None or loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            wakeup.set()
            return
        try:
            loop.call_soon_threadsafe(wakeup.set)
        except RuntimeError:
            logger.debug("event loop for subscription %d is closed", self.id)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Snapshot:
        while True:
            with self._lock:
                if self._pending:
                    return self._pending.popleft()
                if not self._active:
                    raise StopAsyncIteration
                if self._wakeup is None:
                    self._loop = asyncio.get_running_loop()
                    self._wakeup = asyncio.Event()
                self._wakeup.clear()
            await self._wakeup.wait()

    async def next(self, timeout: Optional[float] = None) -> Snapshot:
        """Await the next snapshot; raises SubscriptionCancelledError once cancelled."""
        try:
            return await asyncio.wait_for(self.__anext__(), timeout)
        except StopAsyncIteration:
            raise SubscriptionCancelledError(f"subscription {self.id} was cancelled") from None

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()

    def __repr__(self) -> str:
        return (
            f"Subscription(id={self.id}, path={str(self.path)!r}, "
            f"event_kind={self.event_kind.value!r}, active={self._active})"
        )


class ObservationRegistry:
    def __init__(self, tree: PathTree):
        self.tree = tree
        self._lock = threading.Lock()
        self._subscriptions: Dict[Tuple[TreePath, EventKind], Dict[int, Subscription]] = {}
        self._ids = itertools.count(1)
        self._dirty: List[Subscription] = []
        tree.set_listener(self.publish, self.flush)

    def subscribe(
        self,
        path: PathLike,
        event_kind: EventKind = EventKind.VALUE,
        callback: Optional[SnapshotCallback] = None,
    ) -> Subscription:
        path = TreePath.parse(path)
        event_kind = EventKind(event_kind)
        # holding the tree lock keeps the initial state and registration consistent
        with self.tree.lock:
            sub = Subscription(self, next(self._ids), path, event_kind, callback)
            with self._lock:
                self._subscriptions.setdefault((path, event_kind), {})[sub.id] = sub
            initial = self._initial_items(path, event_kind)
            if initial:
                sub._enqueue(initial)
                self._mark_dirty(sub)
        logger.debug("subscribed %r", sub)
        self.flush()
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            group = self._subscriptions.get((sub.path, sub.event_kind))
            if group is not None:
                group.pop(sub.id, None)
                if not group:
                    del self._subscriptions[(sub.path, sub.event_kind)]
        sub._close()
        logger.debug("cancelled %r", sub)

    def subscription_count(self, path: Optional[PathLike] = None) -> int:
        with self._lock:
            if path is None:
                return sum(len(group) for group in self._subscriptions.values())
            path = TreePath.parse(path)
            return sum(
                len(group) for (p, _), group in self._subscriptions.items() if p == path
            )

    def _mark_dirty(self, sub: Subscription) -> None:
        if sub.callback is None:
            return
        with self._lock:
            self._dirty.append(sub)

    def _initial_items(self, path: TreePath, event_kind: EventKind) -> List[Snapshot]:
        value = self.tree.read(path)
        if event_kind is EventKind.VALUE:
            return [Snapshot(path, value)]
        if event_kind is EventKind.CHILD_ADDED:
            children = _children(value)
            return [Snapshot(path.child(k), children[k]) for k in sorted(children)]
        return []

    # fan-out

    def publish(self, change: Change) -> None:
        """Called by the tree, under its lock, once per mutation."""
        with self._lock:
            groups = [
                (path, kind, list(subs.values()))
                for (path, kind), subs in self._subscriptions.items()
                if subs
            ]
        for path, kind, subs in groups:
            items = self._items_for(path, kind, change)
            if not items:
                continue
            for sub in subs:
                if sub._enqueue(items):
                    self._mark_dirty(sub)

    def _items_for(self, path: TreePath, kind: EventKind, change: Change) -> List[Snapshot]:
        changed = change.path
        if path.contains(changed):
            if kind is EventKind.VALUE:
                return [Snapshot(path, self.tree.read(path))]
            if path == changed:
                return self._child_events(path, kind, change.before, change.after)
            return self._ancestor_child_event(path, kind, change)
        if changed.is_ancestor_of(path):
            rel = path.relative_to(changed)
            before = _extract(change.before, rel)
            after = _extract(change.after, rel)
            if kind is EventKind.VALUE:
                return [Snapshot(path, after)] if before != after else []
            return self._child_events(path, kind, before, after)
        return []

    def _child_events(
        self, path: TreePath, kind: EventKind, before: Any, after: Any
    ) -> List[Snapshot]:
        old, new = _children(before), _children(after)
        if kind is EventKind.CHILD_ADDED:
            keys = [k for k in new if k not in old]
            return [Snapshot(path.child(k), new[k]) for k in sorted(keys)]
        if kind is EventKind.CHILD_REMOVED:
            keys = [k for k in old if k not in new]
            return [Snapshot(path.child(k), old[k]) for k in sorted(keys)]
        keys = [k for k in new if k in old and old[k] != new[k]]
        return [Snapshot(path.child(k), new[k]) for k in sorted(keys)]

    def _ancestor_child_event(
        self, path: TreePath, kind: EventKind, change: Change
    ) -> List[Snapshot]:
        """The change sits below one direct child of path; classify that child."""
        child_path = path.child(change.path.segments[len(path)])
        if child_path == change.path:
            existed_before = change.before is not None
            exists_after = change.after is not None
        else:
            exists_after = self.tree.exists(child_path)
            created = change.created
            existed_before = exists_after and not (
                created is not None and len(created) <= len(child_path)
            )
        if kind is EventKind.CHILD_ADDED and exists_after and not existed_before:
            return [Snapshot(child_path, self.tree.read(child_path))]
        if kind is EventKind.CHILD_CHANGED and exists_after and existed_before:
            return [Snapshot(child_path, self.tree.read(child_path))]
        if kind is EventKind.CHILD_REMOVED and existed_before and not exists_after:
            return [Snapshot(child_path, change.before)]
        return []

    # callback delivery

    def flush(self) -> None:
        """Run pending callbacks; called by the tree after it releases its lock."""
        with self._lock:
            dirty, self._dirty = self._dirty, []
        seen = set()
        for sub in dirty:
            if sub.id in seen:
                continue
            seen.add(sub.id)
            self._drain(sub)

    def _drain(self, sub: Subscription) -> None:
        with sub._lock:
            if sub._draining:
                return
            sub._draining = True
        try:
            while True:
                with sub._lock:
                    if not sub._active or not sub._pending:
                        sub._draining = False
                        return
                    snapshot = sub._pending.popleft()
                try:
                    sub.callback(snapshot)
                except Exception:
                    logger.exception("callback for %r failed", sub)
        finally:
            with sub._lock:
                sub._draining = False
