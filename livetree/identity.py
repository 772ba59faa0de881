"""
Contracts for the collaborators the store does not implement: the identity
provider that hands out opaque uids and the blob store that turns image bytes
into a URL.
"""
from dataclasses import dataclass
from typing import Optional, Protocol

from .errors import InvalidPathError
from .paths import TreePath


@dataclass(frozen=True)
class IdentityContext:
    """The signed-in caller, passed explicitly instead of a global current user."""

    uid: str

    def __post_init__(self):
        if not self.uid:
            raise ValueError("uid is required")


class IdentityProvider(Protocol):
    def sign_in(self, credential: str) -> Optional[str]: ...


class BlobStore(Protocol):
    async def upload(self, path: str, data: bytes) -> Optional[str]: ...


class OpaqueIdentityProvider:
    """
    Accepts any credential that is a valid path segment and returns it as the
    uid. Stands in for a real provider on the console, where the uid is all
    we need.
    """

    def sign_in(self, credential: str) -> Optional[str]:
        uid = (credential or "").strip()
        if not uid:
            return None
        # the uid becomes the key under users/ and posts/
        try:
            TreePath((uid,))
        except InvalidPathError:
            return None
        return uid
