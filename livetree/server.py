# python
"""
livetree/server.py
Asyncio telnet console over one shared store, using telnetlib3.

Every connection signs in with an opaque uid and then gets a line-oriented
shell (see router.py). All connections share the same Database, so a `watch`
in one session sees writes from every other.
"""
import asyncio
import copy
import datetime
import logging
import os
import pathlib
import uuid
from typing import Any, Callable, Dict, Optional

import telnetlib3
from telnetlib3.telopt import ECHO, WILL

from .auth import IdentityGate
from .coordinator import WriteCoordinator
from .database import Database
from .env import load_env
from .router import Router
from .seed import SeedLoader
from .session import Session

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "server": {"host": "0.0.0.0", "port": 2424, "banner": "livetree console"},
    "paths": {
        "logs_dir": "logs",
        "tty_dir": "logs/tty",
        "events_file": "logs/events.jsonl",
        "seeds_dir": "seeds",
    },
    "seed": "",
    "identity": {"max_attempts": 3, "fail_delay_seconds": 1},
    "limits": {"max_output_bytes": 16384},
    "log_level": "INFO",
    "version": "0.1",
    "hostname": "livetree",
}


def load_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    DEFAULT_CONFIG, then LIVETREE_* environment variables (.env included),
    then explicit overrides (one level deep per section).
    """
    load_env()
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["server"]["host"] = os.getenv("LIVETREE_HOST", config["server"]["host"])
    port = os.getenv("LIVETREE_PORT")
    if port:
        config["server"]["port"] = int(port)
    config["seed"] = os.getenv("LIVETREE_SEED_FILE", config["seed"])
    config["log_level"] = os.getenv("LIVETREE_LOG_LEVEL", config["log_level"])
    for section, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(config.get(section), dict):
            config[section] = {**config[section], **value}
        else:
            config[section] = value
    return config


def _ensure_dirs(config: Dict[str, Any]):
    pathlib.Path(config["paths"]["logs_dir"]).mkdir(parents=True, exist_ok=True)
    pathlib.Path(config["paths"]["tty_dir"]).mkdir(parents=True, exist_ok=True)


def _normalize_for_terminal(text: str) -> str:
    """
    Convert newline usage to CRLF sequences that telnet clients expect.
    """
    if not text:
        return ""
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    return normalized.replace("\n", "\r\n")


def make_shell(database: Database, config: Dict[str, Any]) -> Callable:
    """Build the per-connection shell coroutine bound to one shared database."""
    coordinator = WriteCoordinator(database)

    async def shell(reader, writer) -> None:
        peer = writer.get_extra_info("peername") or ("0.0.0.0", 0)
        session_id = str(uuid.uuid4())
        tty_path = str(pathlib.Path(config["paths"]["tty_dir"]) / f"{session_id}.log")
        session = Session(
            session_id=session_id,
            remote_ip=peer[0],
            remote_port=peer[1],
            started_ts=datetime.datetime.now(datetime.timezone.utc).isoformat(),
            tty_path=tty_path,
            _events_file=config["paths"]["events_file"],
        )
        if hasattr(writer, "iac"):
            writer.iac(WILL, ECHO)
        await session.log("session.connect", "connect", banner=config["server"]["banner"])
        await session.write_tty("out", config["server"]["banner"])

        def notify(text: str) -> None:
            session.bytes_out += len(text)
            writer.write("\r\n" + _normalize_for_terminal(text) + "\r\n")

        try:
            writer.write(config["server"]["banner"] + "\r\n")
            await writer.drain()

            gate = IdentityGate(
                session,
                max_attempts=config["identity"]["max_attempts"],
                fail_delay=config["identity"]["fail_delay_seconds"],
            )
            if not await gate.run(reader, writer):
                return

            router = Router(
                database,
                coordinator=coordinator,
                max_output=config["limits"]["max_output_bytes"],
                notify=notify,
            )

            def prompt() -> str:
                return f"{session.uid}@{config['hostname']}:{session.cwd}$ "

            while True:
                writer.write(prompt())
                await writer.drain()
                line = await reader.readline()
                if not line:
                    break
                session.bytes_in += len(line)
                line = line.rstrip("\r\n")
                if not line.strip():
                    continue
                session.record_command(line)
                await session.write_tty("in", line)
                await session.log("command.input", "shell", raw=line)
                if not getattr(writer, "will_echo", False):
                    echo = getattr(writer, "echo", None) or writer.write
                    echo(_normalize_for_terminal(line) + "\r\n")
                cmd = line.split()[0]
                if cmd in ("exit", "logout", "quit"):
                    break
                out, truncated = await router.dispatch(session, line)
                await session.write_tty("out", out)
                await session.log(
                    "command.output", "shell", bytes=len(out.encode()), truncated=truncated
                )
                session.bytes_out += len(out)
                normalized = _normalize_for_terminal(out)
                if normalized:
                    writer.write("\r\n" + normalized + "\r\n")
                await writer.drain()
        except ConnectionError as exc:
            logger.info("connection %s dropped: %s", session_id, exc)
        except Exception:
            logger.exception("shell for %s failed", session_id)
        finally:
            started = datetime.datetime.fromisoformat(session.started_ts)
            now = datetime.datetime.now(datetime.timezone.utc)
            duration_ms = int((now - started).total_seconds() * 1000)
            await session.finalize_close()
            await session.log(
                "session.close",
                "close",
                duration_ms=duration_ms,
                tty_path=session.tty_path,
                bytes_in=session.bytes_in,
                bytes_out=session.bytes_out,
            )
            writer.close()

    return shell


async def start_server(config: Optional[Dict[str, Any]] = None, database: Optional[Database] = None):
    config = config or load_config()
    _ensure_dirs(config)
    database = database or Database()
    if config.get("seed"):
        loader = SeedLoader(config["paths"]["seeds_dir"])
        if loader.apply(database, config["seed"]):
            logger.info("seeded store from %s", config["seed"])
        else:
            logger.warning("seed %s not found or invalid; starting empty", config["seed"])

    host = config["server"]["host"]
    port = config["server"]["port"]
    server = await telnetlib3.create_server(
        shell=make_shell(database, config), host=host, port=port
    )

    # report the bound port so callers (and tests) can use port=0
    actual_host, actual_port = host, port
    socks = getattr(server, "sockets", None)
    if socks:
        sockname = socks[0].getsockname()
        actual_host, actual_port = sockname[0], sockname[1]
        if actual_host in ("0.0.0.0", "", "::"):
            actual_host = "127.0.0.1"

    print(f"Listening on {actual_host}:{actual_port}", flush=True)
    try:
        # block forever until cancelled (e.g., Ctrl+C)
        await asyncio.Event().wait()
    finally:
        server.close()
        await server.wait_closed()
    return server


def main(argv=None) -> None:
    import argparse

    parser = argparse.ArgumentParser(description="livetree telnet console")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--seed", default=None, help="seed name or path to a JSON export")
    args = parser.parse_args(argv)

    overrides: Dict[str, Any] = {"server": {}}
    if args.host is not None:
        overrides["server"]["host"] = args.host
    if args.port is not None:
        overrides["server"]["port"] = args.port
    if args.seed is not None:
        overrides["seed"] = args.seed
    config = load_config(overrides)

    logging.basicConfig(
        level=getattr(logging, str(config["log_level"]).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(start_server(config))
    except KeyboardInterrupt:
        print("shutting down")


if __name__ == "__main__":
    main()
