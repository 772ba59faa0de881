# python
"""
livetree/router.py
Console command router: parses one input line and runs it against the store.

Values go in and come out as JSON. Commands that take a JSON argument keep
everything after the path verbatim, so objects need no shell quoting:

    set users/42 {"username": "ada"}
"""
import json
import logging
import shlex
from typing import Any, Callable, List, Optional, Tuple

from .coordinator import WriteCoordinator
from .database import Database
from .errors import LiveTreeError
from .handlers import HANDLERS
from .observation import EventKind
from .paths import TreePath
from .session import Session
from .snapshot import Snapshot

logger = logging.getLogger(__name__)

HELP_TEXT = "\n".join(
    [
        "get [path]                 print the JSON value at path",
        "set <path> <json>          replace the value at path",
        "update <path> <json>       merge the object's keys into path",
        "push <path> [json]         create an auto-keyed child",
        "rm <path>                  remove the node at path",
        "ls [path]                  list child keys",
        "cd [path] / pwd            move around the tree",
        "watch [path] [kind]        stream changes (value, child_added, ...)",
        "unwatch <id>               stop a watch",
        "user [username]            show or create your user record",
        "post <image_url> <height>  create a post for yourself",
        "posts [uid]                list posts, oldest first",
        "whoami / history / exit",
    ]
)


def _dump(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False)


def _parse_json(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise LiveTreeError(f"invalid JSON: {exc}") from exc


class Router:
    def __init__(
        self,
        database: Database,
        coordinator: Optional[WriteCoordinator] = None,
        max_output: int = 16_384,
        notify: Optional[Callable[[str], None]] = None,
    ):
        self.database = database
        self.coordinator = coordinator or WriteCoordinator(database)
        self.max_output = int(max_output)
        self.notify = notify

    async def dispatch(self, session: Session, line: str) -> Tuple[str, bool]:
        """
        Dispatch a single input line and return (output, truncated_flag).
        Store errors become `error: ...` output instead of exceptions.
        """
        line = (line or "").strip()

        if not line:
            return ("", False)

        try:
            argv: List[str] = shlex.split(line)
        except ValueError:
            # fallback naive split if shlex fails (unbalanced quotes in JSON)
            argv = line.split()

        cmd = argv[0] if argv else ""
        try:
            if cmd in HANDLERS:
                out = await HANDLERS[cmd](session, argv)
            else:
                method = getattr(self, f"_cmd_{cmd}", None)
                if method is None:
                    return (f"livetree: {cmd}: command not found", False)
                out = await method(session, argv, line)
        except LiveTreeError as exc:
            await session.log("command.error", "shell", command=cmd, error=str(exc))
            out = f"error: {exc}"
        truncated = len(out.encode()) > self.max_output
        return (out[: self.max_output], truncated)

    # paths

    def resolve(self, session: Session, target: str) -> TreePath:
        """Resolve target against the session cwd, honouring '.' and '..'."""
        target = (target or "").strip()
        if target.startswith("/"):
            parts: List[str] = []
        else:
            parts = [pt for pt in session.cwd.strip("/").split("/") if pt]
        for entry in target.split("/"):
            if not entry or entry == ".":
                continue
            if entry == "..":
                if parts:
                    parts.pop()
                continue
            parts.append(entry)
        return TreePath(tuple(parts))

    def _split_json_args(self, line: str) -> Tuple[str, Optional[str]]:
        pieces = line.split(None, 2)
        if len(pieces) < 2:
            raise LiveTreeError("missing path")
        return pieces[1], (pieces[2] if len(pieces) > 2 else None)

    # store commands

    async def _cmd_help(self, session: Session, argv: List[str], line: str) -> str:
        return HELP_TEXT

    async def _cmd_get(self, session: Session, argv: List[str], line: str) -> str:
        path = self.resolve(session, argv[1] if len(argv) > 1 else "")
        snapshot = await self.database.reference(path).get()
        return _dump(snapshot.value)

    async def _cmd_set(self, session: Session, argv: List[str], line: str) -> str:
        raw_path, raw_value = self._split_json_args(line)
        if raw_value is None:
            raise LiveTreeError("usage: set <path> <json>")
        path = self.resolve(session, raw_path)
        await self.database.reference(path).set(_parse_json(raw_value))
        await session.log("store.set", "store", path=str(path))
        return ""

    async def _cmd_update(self, session: Session, argv: List[str], line: str) -> str:
        raw_path, raw_value = self._split_json_args(line)
        value = _parse_json(raw_value) if raw_value is not None else None
        if not isinstance(value, dict):
            raise LiveTreeError("usage: update <path> <json object>")
        path = self.resolve(session, raw_path)
        await self.database.reference(path).update(value)
        await session.log("store.update", "store", path=str(path), keys=sorted(value))
        return ""

    async def _cmd_push(self, session: Session, argv: List[str], line: str) -> str:
        raw_path, raw_value = self._split_json_args(line)
        path = self.resolve(session, raw_path)
        value = _parse_json(raw_value) if raw_value is not None else None
        ref = await self.database.reference(path).push(value)
        await session.log("store.push", "store", path=str(ref.path))
        return ref.key

    async def _cmd_rm(self, session: Session, argv: List[str], line: str) -> str:
        if len(argv) < 2:
            raise LiveTreeError("usage: rm <path>")
        path = self.resolve(session, argv[1])
        removed = await self.database.reference(path).remove()
        if not removed:
            return f"rm: /{path}: no such node"
        await session.log("store.remove", "store", path=str(path))
        return ""

    async def _cmd_ls(self, session: Session, argv: List[str], line: str) -> str:
        args = [arg for arg in argv[1:] if arg and not arg.startswith("-")]
        target = args[0] if args else ""
        path = self.resolve(session, target)
        tree = self.database.tree
        if not tree.exists(path):
            return f"ls: cannot access '{target or '.'}': No such node"
        keys = tree.child_keys(path)
        if keys is None:
            return path.key or ""
        return "\n".join(keys)

    async def _cmd_cd(self, session: Session, argv: List[str], line: str) -> str:
        dest = argv[1] if len(argv) > 1 else "/"
        path = self.resolve(session, dest)
        if self.database.tree.child_keys(path) is None:
            return f"cd: {dest}: No such container"
        session.cwd = "/" + str(path)
        return ""

    async def _cmd_pwd(self, session: Session, argv: List[str], line: str) -> str:
        return session.cwd

    async def _cmd_watch(self, session: Session, argv: List[str], line: str) -> str:
        path = self.resolve(session, argv[1] if len(argv) > 1 else "")
        kind_name = argv[2] if len(argv) > 2 else EventKind.VALUE.value
        try:
            kind = EventKind(kind_name)
        except ValueError:
            raise LiveTreeError(f"unknown event kind {kind_name!r}")

        def deliver(snapshot: Snapshot) -> None:
            if self.notify is not None:
                self.notify(f"[{kind.value}] /{snapshot.path} {_dump(snapshot.value)}")

        sub = self.database.reference(path).on(kind, deliver)
        session.add_watch(sub)
        await session.log("store.watch", "store", path=str(path), kind=kind.value, watch_id=sub.id)
        return f"watch {sub.id} on /{path} ({kind.value})"

    async def _cmd_unwatch(self, session: Session, argv: List[str], line: str) -> str:
        if len(argv) < 2 or not argv[1].isdigit():
            raise LiveTreeError("usage: unwatch <id>")
        if not session.drop_watch(int(argv[1])):
            return f"unwatch: {argv[1]}: no such watch"
        await session.log("store.unwatch", "store", watch_id=int(argv[1]))
        return ""

    # photo-sharing commands

    def _require_uid(self, session: Session) -> str:
        if not session.uid:
            raise LiveTreeError("not signed in")
        return session.uid

    async def _cmd_user(self, session: Session, argv: List[str], line: str) -> str:
        uid = self._require_uid(session)
        if len(argv) > 1:
            try:
                user = self.coordinator.create_user(uid, " ".join(argv[1:]))
            except ValueError as exc:
                raise LiveTreeError(str(exc)) from exc
            return f"created {user.uid} ({user.username})"
        user = self.coordinator.create_or_fetch_user(uid)
        if user is None:
            return f"no user record for {uid}; run: user <username>"
        return f"{user.uid} ({user.username})"

    async def _cmd_post(self, session: Session, argv: List[str], line: str) -> str:
        uid = self._require_uid(session)
        if len(argv) < 3:
            raise LiveTreeError("usage: post <image_url> <height>")
        try:
            height = float(argv[2])
            key = self.coordinator.create_post(uid, argv[1], height)
        except ValueError as exc:
            raise LiveTreeError(str(exc)) from exc
        await session.log("post.create", "store", key=key)
        return key

    async def _cmd_posts(self, session: Session, argv: List[str], line: str) -> str:
        uid = argv[1] if len(argv) > 1 else self._require_uid(session)
        posts = self.coordinator.fetch_posts(uid)
        return "\n".join(
            f"{p.key} {p.creation_date.isoformat()} {p.image_height:g} {p.image_url}"
            for p in posts
        )
