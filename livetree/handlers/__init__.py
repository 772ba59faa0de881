# python
"""Console command handlers: each module exposes `async run(session, argv) -> str`."""
from . import history, whoami

HANDLERS = {
    "history": history.run,
    "whoami": whoami.run,
}
