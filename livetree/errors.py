# python
"""
livetree/errors.py
Exception hierarchy for the store. Absent data and decode failures are not
exceptions; they surface as None results.
"""


class LiveTreeError(Exception):
    pass


class InvalidPathError(LiveTreeError, ValueError):
    pass


class InvalidValueError(LiveTreeError, TypeError):
    pass


class SubscriptionCancelledError(LiveTreeError):
    pass


class UploadFailedError(LiveTreeError):
    """Raised when the blob store returned no URL for an image upload."""
