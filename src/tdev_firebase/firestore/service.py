"""
Firestore Service.

Async facade over the Firestore client from firebase_admin. Documents are
addressed by (collection_path, document_id); collection_path may name a
subcollection ("users/u1/posts"). Every operation performs one SDK call and
re-raises failures as FirestoreError.

Usage:
    >>> service = FirestoreService()
    >>> await service.initialize()
    >>> await service.set("users", "user_123", {"name": "An", "age": 30})
    >>> doc = await service.get_document("users", "user_123")
    >>> doc.data
    {'name': 'An', 'age': 30}

Queries:
    get_collection() and stream_collection() accept a query_builder, a
    function that receives the native query and returns a refined one:

    >>> from google.cloud.firestore_v1.base_query import FieldFilter
    >>> adults = await service.get_collection(
    ...     "users",
    ...     query_builder=lambda q: q.where(filter=FieldFilter("age", ">=", 18)).limit(10),
    ... )
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from firebase_admin import firestore

from ..adapter import FirebaseAdapter
from ..errors import FirestoreError, FirestoreNotInitializedError
from ..settings import FirebaseSettings
from ..streams import Subscription
from ..values import last_segment
from .dto import FirestoreCollection, FirestoreDocument

logger = logging.getLogger(__name__)

QueryBuilder = Callable[[Any], Any]


class FirestoreService(FirebaseAdapter):
    """Cloud Firestore adapter."""

    error_class = FirestoreError
    not_initialized_error = FirestoreNotInitializedError
    service_name = "FirestoreService"

    def _connect(self, app: Any, settings: FirebaseSettings) -> Any:
        return firestore.client(app=app)

    def _query(self, client: Any, collection_path: str, query_builder: Optional[QueryBuilder]) -> Any:
        query = client.collection(collection_path)
        if query_builder is not None:
            query = query_builder(query)
        return query

    # Set Data ==================================================================

    async def set(self, collection_path: str, document_id: str, data: Dict[str, Any]) -> None:
        """
        Create or overwrite the document at collection_path/document_id.

        Note: set **replaces** an existing document entirely.
        """
        client = self._require_ready()
        logger.debug(f"set {collection_path}/{document_id}")
        await self._call(
            f"Cannot set Document at: {collection_path}/{document_id}",
            lambda: client.collection(collection_path).document(document_id).set(data),
        )

    # Add Data ==================================================================

    async def add(self, collection_path: str, data: Dict[str, Any]) -> str:
        """
        Create a document with a generated ID in collection_path.

        Returns:
            The new document ID
        """
        client = self._require_ready()

        def create() -> str:
            _, doc_ref = client.collection(collection_path).add(data)
            return doc_ref.id

        doc_id = await self._call(
            f"Cannot add Document to Collection: {collection_path}", create
        )
        if not doc_id:
            raise FirestoreError(f"No ID was generated for new Document in: {collection_path}")
        logger.debug(f"add {collection_path} -> {doc_id}")
        return doc_id

    # Update Data ===============================================================

    async def update(self, collection_path: str, document_id: str, data: Dict[str, Any]) -> None:
        """
        Update some fields of an existing document.

        Fields not in data are preserved. Fails if the document does not exist.
        """
        client = self._require_ready()
        logger.debug(f"update {collection_path}/{document_id}")
        await self._call(
            f"Cannot update Document at: {collection_path}/{document_id}",
            lambda: client.collection(collection_path).document(document_id).update(data),
        )

    merge = update

    # Delete Data ===============================================================

    async def delete(self, collection_path: str, document_id: str) -> None:
        """
        Delete the document at collection_path/document_id.

        Note: its subcollections are not deleted.
        """
        client = self._require_ready()
        logger.debug(f"delete {collection_path}/{document_id}")
        await self._call(
            f"Cannot delete Document at: {collection_path}/{document_id}",
            lambda: client.collection(collection_path).document(document_id).delete(),
        )

    remove = delete

    # Get Document ==============================================================

    async def get_document(self, collection_path: str, document_id: str) -> Optional[FirestoreDocument]:
        """
        Read one document.

        Returns:
            FirestoreDocument, or None if it does not exist.
        """
        client = self._require_ready()
        snapshot = await self._call(
            f"Cannot get Document at: {collection_path}/{document_id}",
            lambda: client.collection(collection_path).document(document_id).get(),
        )
        return FirestoreDocument.from_snapshot(snapshot)

    get_one = get_document

    async def get_document_tree(
        self, collection_path: str, document_id: str, depth: int = 1
    ) -> Optional[FirestoreDocument]:
        """
        Read a document together with its subcollections.

        Args:
            collection_path: Collection containing the document
            document_id: Document ID
            depth: How many levels of subcollections to load (0 = none)

        Returns:
            FirestoreDocument with subcollections populated, or None.
        """
        if depth < 0:
            raise ValueError(f"depth must be >= 0, got {depth}")
        client = self._require_ready()

        def load(snapshot: Any, remaining: int) -> Optional[FirestoreDocument]:
            if not snapshot.exists:
                return None
            subcollections = None
            if remaining > 0:
                subcollections = []
                for collection_ref in snapshot.reference.collections():
                    documents = [load(child, remaining - 1) for child in collection_ref.stream()]
                    subcollections.append(
                        FirestoreCollection(
                            name=collection_ref.id,
                            documents=[d for d in documents if d is not None],
                        )
                    )
            return FirestoreDocument(
                id=snapshot.id,
                data=snapshot.to_dict(),
                subcollections=subcollections,
            )

        return await self._call(
            f"Cannot get Document tree at: {collection_path}/{document_id}",
            lambda: load(client.collection(collection_path).document(document_id).get(), depth),
        )

    # Get Collection/List =======================================================

    async def get_collection(
        self,
        collection_path: str,
        query_builder: Optional[QueryBuilder] = None,
    ) -> List[FirestoreDocument]:
        """
        Read every document of collection_path (or of the built query).

        Returns:
            Documents in the order the backend returned them.
        """
        client = self._require_ready()

        def read() -> List[FirestoreDocument]:
            query = self._query(client, collection_path, query_builder)
            return [FirestoreDocument(id=doc.id, data=doc.to_dict()) for doc in query.stream()]

        return await self._call(f"Cannot get Collection at path: {collection_path}", read)

    get_many = get_collection

    async def get_named_collection(
        self,
        collection_path: str,
        query_builder: Optional[QueryBuilder] = None,
    ) -> FirestoreCollection:
        """Like get_collection(), wrapped with the collection's name."""
        documents = await self.get_collection(collection_path, query_builder=query_builder)
        return FirestoreCollection(
            name=last_segment(collection_path) or collection_path,
            documents=documents,
        )

    # Stream Document - Listen ==================================================

    def stream_document(
        self, collection_path: str, document_id: str
    ) -> Subscription[Optional[FirestoreDocument]]:
        """
        Stream a document after every change.

        Yields None while the document does not exist.
        """
        client = self._require_ready()

        def start(sink: Subscription[Optional[FirestoreDocument]]) -> Callable[[], None]:
            def on_snapshot(snapshots: List[Any], changes: Any, read_time: Any) -> None:
                if not snapshots:
                    sink.push(None)
                    return
                sink.push(FirestoreDocument.from_snapshot(snapshots[0]))

            doc_ref = client.collection(collection_path).document(document_id)
            return doc_ref.on_snapshot(on_snapshot).unsubscribe

        return Subscription(start, self.error_class, f"Document {collection_path}/{document_id}")

    watch_one = stream_document

    # Stream Collection - Listen List ===========================================

    def stream_collection(
        self,
        collection_path: str,
        query_builder: Optional[QueryBuilder] = None,
    ) -> Subscription[List[FirestoreDocument]]:
        """
        Stream the full result set of a collection or query after every change.

        Each item is the complete current result set, not a diff.
        """
        client = self._require_ready()

        def start(sink: Subscription[List[FirestoreDocument]]) -> Callable[[], None]:
            def on_snapshot(snapshots: List[Any], changes: Any, read_time: Any) -> None:
                sink.push([FirestoreDocument(id=doc.id, data=doc.to_dict()) for doc in snapshots])

            query = self._query(client, collection_path, query_builder)
            return query.on_snapshot(on_snapshot).unsubscribe

        return Subscription(start, self.error_class, f"Collection {collection_path}")

    watch_many = stream_collection
