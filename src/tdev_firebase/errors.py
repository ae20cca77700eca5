"""
Exception classes shared by the Firebase adapters.

Every adapter raises exactly one family of exceptions. Each family derives
from AdapterError and carries a human-readable message plus the original
exception raised by the Firebase SDK (if any).

Hierarchy:
    AdapterError
        RealtimeError
            RealtimeNotInitializedError
            RealtimeStructureError
        FirestoreError
            FirestoreNotInitializedError
        NotificationError
            NotificationNotInitializedError

The *NotInitializedError subclasses signal a programming error (an
operation was called before initialize()). Callers that only care about
which backend failed can catch the family base class.
"""

from typing import Optional


class AdapterError(Exception):
    """
    Base error for all Firebase adapters.

    Attributes:
        message: Human-readable description of the failed operation
        cause: The wrapped SDK exception, or None
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message}: {self.cause}"


class RealtimeError(AdapterError):
    """Raised by RealtimeService when a Realtime Database call fails."""


class RealtimeNotInitializedError(RealtimeError):
    """Raised when RealtimeService is used before initialize()."""


class RealtimeStructureError(RealtimeError):
    """Raised when the stored value does not have the shape an operation needs."""


class FirestoreError(AdapterError):
    """Raised by FirestoreService when a Firestore call fails."""


class FirestoreNotInitializedError(FirestoreError):
    """Raised when FirestoreService is used before initialize()."""


class NotificationError(AdapterError):
    """Raised by NotificationService when a Cloud Messaging call fails."""


class NotificationNotInitializedError(NotificationError):
    """Raised when NotificationService is used before initialize()."""
