# python
"""
tests/test_auth.py
Unit tests for the uid prompt that opens every console session.
"""
import asyncio
import json
from pathlib import Path

from livetree.auth import IdentityGate
from livetree.identity import OpaqueIdentityProvider
from livetree.session import Session, iso_ts


class FakeReader:
    def __init__(self, lines):
        self.lines = list(lines)

    async def readline(self):
        return self.lines.pop(0) if self.lines else ""


class FakeWriter:
    def __init__(self):
        self.output = []

    def write(self, data):
        self.output.append(data)

    async def drain(self):
        pass


def _make_session(tmp_path: Path) -> Session:
    return Session(
        session_id="test-session",
        remote_ip="127.0.0.1",
        remote_port=12345,
        started_ts=iso_ts(),
        _events_file=str(tmp_path / "events.jsonl"),
    )


def _events(tmp_path: Path):
    lines = (tmp_path / "events.jsonl").read_text(encoding="utf-8").splitlines()
    return [json.loads(line)["event"] for line in lines]


def test_uid_is_accepted(tmp_path: Path) -> None:
    session = _make_session(tmp_path)
    writer = FakeWriter()
    gate = IdentityGate(session, fail_delay=0)
    assert asyncio.run(gate.run(FakeReader(["42\r\n"]), writer))
    assert session.uid == "42"
    assert "uid: " in "".join(writer.output)
    assert _events(tmp_path) == ["identity.start", "identity.attempt", "identity.success"]


def test_blank_uid_is_retried(tmp_path: Path) -> None:
    session = _make_session(tmp_path)
    writer = FakeWriter()
    gate = IdentityGate(session, fail_delay=0)
    assert asyncio.run(gate.run(FakeReader(["\r\n", "users/42\r\n", "ada\r\n"]), writer))
    assert session.uid == "ada"
    assert "".join(writer.output).count("invalid uid") == 2


def test_attempts_run_out(tmp_path: Path) -> None:
    session = _make_session(tmp_path)
    gate = IdentityGate(session, max_attempts=2, fail_delay=0)
    assert not asyncio.run(gate.run(FakeReader(["\r\n", " \r\n", "42\r\n"]), FakeWriter()))
    assert session.uid is None
    assert _events(tmp_path)[-1] == "identity.exhausted"


def test_disconnect_ends_sign_in(tmp_path: Path) -> None:
    session = _make_session(tmp_path)
    gate = IdentityGate(session, fail_delay=0)
    assert not asyncio.run(gate.run(FakeReader([]), FakeWriter()))
    assert _events(tmp_path)[-1] == "identity.eof"


def test_opaque_provider() -> None:
    provider = OpaqueIdentityProvider()
    assert provider.sign_in(" 42 ") == "42"
    assert provider.sign_in("") is None
    assert provider.sign_in("a/b") is None
    for uid in ("a.b", "x$", "u#1", "[0]"):
        assert provider.sign_in(uid) is None
