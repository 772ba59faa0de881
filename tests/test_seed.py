# python
"""
tests/test_seed.py
Unit tests for locating and applying JSON seed files.
"""
import json
from pathlib import Path

from livetree.database import Database
from livetree.seed import SeedLoader


def _write(path: Path, data) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_named_seed_is_found_under_root(tmp_path: Path) -> None:
    _write(tmp_path / "demo.json", {"users": {"42": {"username": "ada"}}})
    loader = SeedLoader(tmp_path)
    assert loader.get_seed_path("demo") == (tmp_path / "demo.json").resolve()
    db = Database()
    assert loader.apply(db, "demo")
    assert db.export() == {"users": {"42": {"username": "ada"}}}


def test_unknown_name_falls_back_to_default(tmp_path: Path) -> None:
    _write(tmp_path / "default.json", {"flags": {"on": True}})
    loader = SeedLoader(tmp_path)
    assert loader.load("missing") == {"flags": {"on": True}}


def test_direct_json_path_wins(tmp_path: Path) -> None:
    direct = _write(tmp_path / "export.json", {"a": 1})
    _write(tmp_path / "default.json", {"b": 2})
    loader = SeedLoader(tmp_path)
    assert loader.load(str(direct)) == {"a": 1}


def test_missing_seed(tmp_path: Path) -> None:
    loader = SeedLoader(tmp_path)
    assert loader.get_seed_path("") is None
    assert loader.load("nothing") is None
    assert not loader.apply(Database(), "nothing")


def test_invalid_seeds_are_rejected(tmp_path: Path) -> None:
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
    _write(tmp_path / "list.json", [1, 2, 3])
    _write(tmp_path / "arrays.json", {"users": [1, 2]})
    loader = SeedLoader(tmp_path)
    db = Database()
    assert loader.load("broken") is None
    assert loader.load("list") is None
    assert not loader.apply(db, "arrays")
    assert db.export() == {}
