# python
"""
livetree/handlers/history.py
`history`: the console lines this connection has entered, oldest first.
"""


async def run(session, argv):
    # Session.record_command skips blank lines, so every entry is a command
    return "\n".join(session.history)
