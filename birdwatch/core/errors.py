"""Error types shared by the Birdwatch pipeline and its HTTP surface."""

from typing import Optional


class BirdwatchError(Exception):
    """Base class for all Birdwatch errors."""


class UnknownIdentity(BirdwatchError):
    """Raised when no credential is stored for an email address.

    Callers redirect the user into a fresh authorization flow.
    """

    def __init__(self, identity: Optional[str]):
        self.identity = identity
        super().__init__(f"Uninitialized email address: {identity}")


class InvalidInput(BirdwatchError):
    """Raised when an email address or event payload is missing or malformed."""


class ProviderError(BirdwatchError):
    """Raised when a Gmail, Vision, Firestore or token endpoint call fails."""
