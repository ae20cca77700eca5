"""
Firebase Realtime Database adapter.

Example:
    >>> from tdev_firebase.realtime import RealtimeService
    >>> service = RealtimeService()
    >>> await service.initialize()
    >>> await service.replace("counters/c1", 1)
    >>> (await service.read_once("counters/c1")).value
    1
"""

from ..errors import RealtimeError, RealtimeNotInitializedError, RealtimeStructureError
from .node import (
    CHILD_ADDED,
    CHILD_CHANGED,
    CHILD_REMOVED,
    Node,
    TreeMirror,
)
from .service import ChildEventHandles, RealtimeService

__all__ = [
    "RealtimeService",
    "ChildEventHandles",
    "Node",
    "TreeMirror",
    "CHILD_ADDED",
    "CHILD_CHANGED",
    "CHILD_REMOVED",
    "RealtimeError",
    "RealtimeNotInitializedError",
    "RealtimeStructureError",
]
