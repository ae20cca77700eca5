"""
Cloud Firestore adapter.

Example:
    >>> from tdev_firebase.firestore import FirestoreService
    >>> service = FirestoreService()
    >>> await service.initialize()
    >>> doc_id = await service.add("users", {"name": "Binh", "city": "Ha Noi"})
"""

from ..errors import FirestoreError, FirestoreNotInitializedError
from .dto import FirestoreCollection, FirestoreDocument
from .service import FirestoreService, QueryBuilder

__all__ = [
    "FirestoreService",
    "FirestoreDocument",
    "FirestoreCollection",
    "QueryBuilder",
    "FirestoreError",
    "FirestoreNotInitializedError",
]
