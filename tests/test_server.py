# python
"""
tests/test_server.py
Configuration helpers plus a pytest-asyncio test that starts the console server
as a subprocess, signs in over a raw TCP connection and runs a few commands.
"""
import asyncio
import re
import socket
import sys
import time
from pathlib import Path

import pytest

from livetree.server import DEFAULT_CONFIG, _normalize_for_terminal, load_config

PY = sys.executable

SERVER_CMD = [PY, "-u", "-m", "livetree.server", "--port", "0", "--host", "127.0.0.1"]


def test_load_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("LIVETREE_PORT", "2525")
    monkeypatch.setenv("LIVETREE_SEED_FILE", "demo")
    config = load_config()
    assert config["server"]["port"] == 2525
    assert config["seed"] == "demo"
    assert DEFAULT_CONFIG["server"]["port"] == 2424


def test_overrides_beat_environment(monkeypatch) -> None:
    monkeypatch.setenv("LIVETREE_PORT", "2525")
    config = load_config({"server": {"port": 0}, "log_level": "DEBUG"})
    assert config["server"]["port"] == 0
    assert config["server"]["banner"] == DEFAULT_CONFIG["server"]["banner"]
    assert config["log_level"] == "DEBUG"


def test_normalize_for_terminal() -> None:
    assert _normalize_for_terminal("a\nb\r\nc") == "a\r\nb\r\nc"
    assert _normalize_for_terminal("") == ""


async def start_server_proc():
    proc = await asyncio.create_subprocess_exec(
        *SERVER_CMD,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(Path(__file__).resolve().parents[1]),
    )
    port = None
    host = None
    start = time.time()
    while time.time() - start < 10:
        if proc.stdout.at_eof():
            break
        try:
            line = await asyncio.wait_for(proc.stdout.readline(), timeout=1.0)
        except asyncio.TimeoutError:
            continue
        m = re.search(r"Listening on ([0-9\.]+):([0-9]+)", line.decode("utf-8", errors="replace"))
        if m:
            host, port = m.group(1), int(m.group(2))
            break
    if port is None:
        proc.kill()
        err = await proc.stderr.read()
        raise RuntimeError("Failed to start server; stderr=" + err.decode("utf-8", errors="replace"))
    return proc, host, port


def _read_until(sock: socket.socket, marker: str, timeout: float = 10.0) -> str:
    deadline = time.time() + timeout
    buf = b""
    while time.time() < deadline:
        try:
            chunk = sock.recv(4096)
        except socket.timeout:
            continue
        if not chunk:
            break
        buf += chunk
        # drop telnet negotiation bytes so assertions see plain text
        text = re.sub(r"[^\x20-\x7E\r\n]+", "", buf.decode("utf-8", errors="replace"))
        if marker in text:
            return text
    raise AssertionError(f"did not see {marker!r}; got {buf!r}")


def console_roundtrip(host: str, port: int) -> str:
    sock = socket.create_connection((host, port), timeout=10)
    sock.settimeout(0.5)
    try:
        _read_until(sock, "uid: ")
        sock.sendall(b"42\r\n")
        _read_until(sock, "42@livetree:/$ ")
        sock.sendall(b'set users/42 {"username": "ada"}\r\n')
        _read_until(sock, "42@livetree:/$ ")
        sock.sendall(b"get users/42/username\r\n")
        out = _read_until(sock, '"ada"')
        sock.sendall(b"exit\r\n")
        return out
    finally:
        sock.close()


@pytest.mark.asyncio
async def test_console_session_over_telnet() -> None:
    proc, host, port = await start_server_proc()
    try:
        out = await asyncio.get_event_loop().run_in_executor(None, console_roundtrip, host, port)
        assert '"ada"' in out
    finally:
        proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=3.0)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
