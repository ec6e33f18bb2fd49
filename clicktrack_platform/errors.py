"""
Error types shared across Clicktrack Platform.

NotFound / Gone on the redirect path are resolution outcomes, not exceptions
(see `resolver.Outcome`). Cloak decode failures are reported as a `None`
return from `CloakCodec.decode`. What remains here are the failures that
cross layer boundaries.
"""


class ClicktrackError(Exception):
    """Base class for platform errors."""


class StorageError(ClicktrackError):
    """A record collection could not be read or written."""

    def __init__(self, collection: str, message: str):
        super().__init__(f"{collection}: {message}")
        self.collection = collection


class NotFoundError(ClicktrackError, LookupError):
    """A management lookup (campaign, link, domain) found nothing."""
