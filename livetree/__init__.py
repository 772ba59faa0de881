# python
"""livetree package"""
__version__ = "0.1"

from livetree.env import load_env

# Load .env values at import time so LIVETREE_* settings come from python-dotenv.
load_env()

from livetree.database import Database, Reference  # noqa: E402
from livetree.observation import EventKind, Subscription  # noqa: E402
from livetree.snapshot import Snapshot  # noqa: E402

__all__ = ["Database", "Reference", "EventKind", "Subscription", "Snapshot"]
