# python
"""
livetree/handlers/whoami.py
Handler for the `whoami` command that reports the session uid.
"""


async def run(session, argv):
    return session.uid or "anonymous"
