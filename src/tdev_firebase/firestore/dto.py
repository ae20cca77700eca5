"""Firestore data carriers."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class FirestoreDocument(BaseModel):
    """
    One Firestore document.

    Only built for documents that exist; a missing document is represented
    by None at the call site.

    Attributes:
        id: Document ID, unique within its collection
        data: Field name -> value mapping
        subcollections: Nested collections, only populated by
            FirestoreService.get_document_tree()
    """

    id: str = Field(..., description="Document ID")
    data: Optional[Dict[str, Any]] = Field(default=None, description="Document fields")
    subcollections: Optional[List["FirestoreCollection"]] = Field(
        default=None,
        description="Nested collections",
    )

    model_config = {"frozen": True}

    @classmethod
    def from_snapshot(cls, snapshot: Any) -> Optional["FirestoreDocument"]:
        """Convert a DocumentSnapshot; returns None if it does not exist."""
        if not snapshot.exists:
            return None
        return cls(id=snapshot.id, data=snapshot.to_dict())


class FirestoreCollection(BaseModel):
    """
    A named group of documents, in the order the backend returned them.

    Attributes:
        name: Collection ID (last segment of the collection path)
        documents: Documents in the collection (or matching a query)
    """

    name: str = Field(..., description="Collection name")
    documents: List[FirestoreDocument] = Field(default_factory=list)

    model_config = {"frozen": True}


FirestoreDocument.model_rebuild()
