# python
"""
livetree/auth.py
IdentityGate: prompt for a credential and resolve it to an opaque uid through
the configured identity provider. No password protocol lives here.
"""
import asyncio
from typing import Optional

from .identity import IdentityProvider, OpaqueIdentityProvider
from .session import Session

READ_TIMEOUT = 60.0
UID_PROMPT = "uid: "


class IdentityGate:
    def __init__(
        self,
        session: Session,
        provider: Optional[IdentityProvider] = None,
        max_attempts: int = 3,
        fail_delay: float = 1.0,
    ):
        self.session = session
        self.provider = provider or OpaqueIdentityProvider()
        self.max_attempts = max_attempts
        self.fail_delay = fail_delay

    async def run(self, reader, writer) -> bool:
        """
        Prompt until the provider yields a uid or attempts run out.

        Both None and empty string from the reader mean the client went away.
        """
        await self.session.log("identity.start", "identity")
        attempts = 0

        while attempts < self.max_attempts:
            writer.write("\r\n" + UID_PROMPT)
            await writer.drain()

            try:
                raw = await asyncio.wait_for(reader.readline(), timeout=READ_TIMEOUT)
            except asyncio.TimeoutError:
                await self.session.log(
                    "identity.timeout", "identity", message="uid read timed out"
                )
                return False

            if raw is None or raw == "":
                await self.session.log("identity.eof", "identity")
                return False

            credential = raw.rstrip("\r\n")
            writer.write("\r\n")
            await writer.drain()

            uid = self.provider.sign_in(credential)
            await self.session.log(
                "identity.attempt", "identity", credential=credential, success=bool(uid)
            )
            if uid:
                self.session.uid = uid
                await self.session.log("identity.success", "identity", uid=uid)
                return True

            attempts += 1
            writer.write("invalid uid\r\n")
            await writer.drain()
            await asyncio.sleep(self.fail_delay)

        await self.session.log("identity.exhausted", "identity", attempts=attempts)
        return False
