# python
"""
livetree/session.py
Console session dataclass and JSONL event logging.
"""
from dataclasses import dataclass, field
import asyncio
import json
import datetime
import pathlib
from typing import Optional, Any, Dict, List

from .identity import IdentityContext

_EVENT_LOCK = asyncio.Lock()


def iso_ts():
    """
    Return a timezone-aware UTC ISO timestamp (Z suffix) for logging.
    """
    dt = datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")


def ensure_dir(path: pathlib.Path):
    path.mkdir(parents=True, exist_ok=True)


@dataclass
class Session:
    session_id: str
    remote_ip: str
    remote_port: int
    started_ts: str
    uid: Optional[str] = None
    tty_path: str = ""
    bytes_in: int = 0
    bytes_out: int = 0
    _events_file: str = "logs/events.jsonl"
    cwd: str = "/"
    history: List[str] = field(default_factory=list, repr=False)
    # watch id -> Subscription
    watches: Dict[int, Any] = field(default_factory=dict, repr=False)
    _tty_lock: asyncio.Lock = field(init=False, repr=False)

    def __post_init__(self):
        if self.tty_path:
            ensure_dir(pathlib.Path(self.tty_path).parent)
        self._tty_lock = asyncio.Lock()

    @property
    def identity(self) -> Optional[IdentityContext]:
        return IdentityContext(self.uid) if self.uid else None

    async def log(self, event: str, phase: str, **fields: Any) -> None:
        rec = {
            "ts": iso_ts(),
            "session_id": self.session_id,
            "remote_ip": self.remote_ip,
            "remote_port": self.remote_port,
            "uid": self.uid,
            "event": event,
            "phase": phase,
            "version": "0.1",
            "payload": fields or {}
        }
        async with _EVENT_LOCK:
            ensure_dir(pathlib.Path(self._events_file).parent)
            with open(self._events_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(rec, ensure_ascii=False) + "\n")

    async def write_tty(self, direction: str, data: str) -> None:
        if not self.tty_path:
            return
        prefix = "< " if direction == "in" else "> "
        async with self._tty_lock:
            with open(self.tty_path, "a", encoding="utf-8", errors="ignore") as f:
                f.write(f"{prefix}{data}\n")

    def record_command(self, command: str) -> None:
        """
        Track the raw command line for the history command.
        """
        if command:
            self.history.append(command)

    def add_watch(self, subscription: Any) -> int:
        self.watches[subscription.id] = subscription
        return subscription.id

    def drop_watch(self, watch_id: int) -> bool:
        sub = self.watches.pop(watch_id, None)
        if sub is None:
            return False
        sub.cancel()
        return True

    async def finalize_close(self) -> None:
        """
        Cancel every watch so no notification is written to a closed connection.
        """
        for watch_id in list(self.watches):
            self.drop_watch(watch_id)
