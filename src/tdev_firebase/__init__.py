"""
tdev_firebase: async adapters over the Firebase Admin SDK.

Three independent adapters share one shape: construct, await initialize(),
then call operations that each perform a single SDK call and raise the
adapter's own error type on failure.

    - RealtimeService: Realtime Database (paths, Node results)
    - FirestoreService: Cloud Firestore (collection/document pairs)
    - NotificationService: Cloud Messaging (topics, push dispatch)

Example:
    >>> import asyncio
    >>> from tdev_firebase import FirestoreService, FirebaseSettings
    >>>
    >>> async def main():
    ...     service = FirestoreService(FirebaseSettings(project_id="demo"))
    ...     await service.initialize()
    ...     await service.set("users", "u1", {"name": "An", "age": 30})
    ...     return await service.get_document("users", "u1")
    >>>
    >>> asyncio.run(main())
"""

from .adapter import AdapterState, FirebaseAdapter
from .app import get_firebase_app
from .errors import (
    AdapterError,
    FirestoreError,
    FirestoreNotInitializedError,
    NotificationError,
    NotificationNotInitializedError,
    RealtimeError,
    RealtimeNotInitializedError,
    RealtimeStructureError,
)
from .firestore import FirestoreCollection, FirestoreDocument, FirestoreService
from .notification import NotificationService, PushMessage
from .realtime import ChildEventHandles, Node, RealtimeService
from .settings import FirebaseSettings, load_settings_file, parse_firebase_settings
from .streams import ListenerHandle, Subscription

__all__ = [
    # Adapters
    "RealtimeService",
    "FirestoreService",
    "NotificationService",
    "FirebaseAdapter",
    "AdapterState",
    # Data carriers
    "Node",
    "ChildEventHandles",
    "FirestoreDocument",
    "FirestoreCollection",
    "PushMessage",
    # Streams
    "Subscription",
    "ListenerHandle",
    # Settings
    "FirebaseSettings",
    "parse_firebase_settings",
    "load_settings_file",
    "get_firebase_app",
    # Errors
    "AdapterError",
    "RealtimeError",
    "RealtimeNotInitializedError",
    "RealtimeStructureError",
    "FirestoreError",
    "FirestoreNotInitializedError",
    "NotificationError",
    "NotificationNotInitializedError",
    "__version__",
]

__version__ = "0.1.0"
