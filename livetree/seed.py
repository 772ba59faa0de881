from pathlib import Path
from typing import Optional, Dict, Any
import json
import logging

from .database import Database
from .errors import LiveTreeError

logger = logging.getLogger(__name__)


class SeedLoader:
    """
    Locate and load a JSON export to seed the tree at startup.

    Layout:
      {seeds_root}/{name}.json      e.g. seeds/default.json

    Public API:
      get_seed_path(name) -> Path | None
      load(name) -> Dict | None
      apply(database, name) -> bool
    """

    def __init__(self, seeds_root: Optional[Path] = None):
        self.seeds_root = Path(seeds_root or Path("seeds")).resolve()

    def get_seed_path(self, name: str) -> Optional[Path]:
        """
        Return the seed file for name, falling back to 'default'. An absolute
        or relative file path that exists is used as-is.
        """
        if not name:
            return None
        direct = Path(name)
        candidates = [direct] if direct.suffix == ".json" else []
        candidates.append(self.seeds_root / f"{name}.json")
        candidates.append(self.seeds_root / "default.json")
        for p in candidates:
            if p.is_file():
                return p
        return None

    def load(self, name: str) -> Optional[Dict[str, Any]]:
        p = self.get_seed_path(name)
        if p is None:
            return None
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("could not read seed %s: %s", p, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("seed %s is not a JSON object", p)
            return None
        return data

    def apply(self, database: Database, name: str) -> bool:
        data = self.load(name)
        if data is None:
            return False
        try:
            database.load(data)
        except LiveTreeError as exc:
            logger.warning("seed %s rejected: %s", name, exc)
            return False
        return True
