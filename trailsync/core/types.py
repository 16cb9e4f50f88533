"""Core data types for the trailsync application."""

from typing import Any, List, TypedDict  # noqa: UP035


class _FirestoreDocumentBase(TypedDict):
    id: str


class GroupDocument(_FirestoreDocumentBase, total=False):
    """A group document as stored in Firestore."""

    name: str
    members: List[str]  # noqa: UP006
    leaderId: str
    createdAt: Any
    updatedAt: Any


class MemberLocationDocument(_FirestoreDocumentBase, total=False):
    """A member location document; ``id`` is the member's user id."""

    userId: str
    latitude: float
    longitude: float
    timestamp: Any
