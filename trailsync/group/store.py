"""Remote group store: the contract the sync engine relies on, and Firestore."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator, Sequence

from firebase_admin import firestore
from google.api_core.exceptions import GoogleAPICallError, NotFound, RetryError

from trailsync.constants import (
    DEFAULT_STORE_TIMEOUT_SECONDS,
    GROUP_CREATED_AT,
    GROUP_ID,
    GROUP_LEADER_ID,
    GROUP_MEMBERS,
    GROUP_NAME,
    GROUP_UPDATED_AT,
    GROUPS_COLLECTION,
    LOCATION_LATITUDE,
    LOCATION_LONGITUDE,
    LOCATION_TIMESTAMP,
    LOCATION_USER_ID,
    MEMBER_LOCATIONS_COLLECTION,
)
from trailsync.core.types import GroupDocument, MemberLocationDocument
from trailsync.errors import NotFoundError, StoreUnavailableError, ValidationError
from trailsync.location.geo import is_valid_coordinate

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client

LocationsCallback = Callable[[list[MemberLocationDocument]], None]
ErrorCallback = Callable[[Exception], None]


class Subscription(ABC):
    """Handle for a live listener; ``unsubscribe`` releases it."""

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop delivering emissions. Safe to call more than once."""


class GroupStore(ABC):
    """A shared, multi-writer document store for groups and member locations.

    Every method raises an ``AppError`` subclass on failure: ``NotFoundError``
    when the document is absent, ``StoreUnavailableError`` for network,
    timeout or permission failures.
    """

    @abstractmethod
    def create_group_document(
        self,
        group_id: str,
        name: str,
        members: Sequence[str],
        leader_id: str | None,
    ) -> None: ...

    @abstractmethod
    def fetch_group_document(self, group_id: str) -> GroupDocument:
        """Return the raw group document, including its ``id``."""

    @abstractmethod
    def add_member(self, group_id: str, member_id: str) -> None:
        """Add ``member_id`` to the member set (set-union)."""

    @abstractmethod
    def remove_member(self, group_id: str, member_id: str) -> None:
        """Remove ``member_id`` from the member set (set-removal)."""

    @abstractmethod
    def delete_group_document(self, group_id: str) -> None: ...

    @abstractmethod
    def put_member_location(
        self, group_id: str, member_id: str, latitude: float, longitude: float
    ) -> None:
        """Overwrite the member's location record; the store assigns the time."""

    @abstractmethod
    def fetch_member_locations(self, group_id: str) -> list[MemberLocationDocument]:
        """One-shot read of every location record in the group."""

    @abstractmethod
    def subscribe_member_locations(
        self,
        group_id: str,
        on_change: LocationsCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Listen to the group's location records.

        ``on_change`` receives the full current set of raw records after every
        change, possibly on another thread. Subscribing again restarts the
        stream.
        """


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    """Translate Google API failures into application errors."""
    try:
        yield
    except NotFound as e:
        raise NotFoundError(f"Could not {action}: not found.") from e
    except (GoogleAPICallError, RetryError) as e:
        raise StoreUnavailableError(f"Could not {action}: {e}") from e


class FirestoreSubscription(Subscription):
    """Wraps a Firestore ``Watch``."""

    def __init__(self, watch: Any) -> None:
        self._watch = watch

    def unsubscribe(self) -> None:
        if self._watch is not None:
            self._watch.unsubscribe()
            self._watch = None


class FirestoreGroupStore(GroupStore):
    """GroupStore backed by Cloud Firestore.

    Layout::

        groups/{groupId}                              id, name, members, leaderId
        groups/{groupId}/memberLocations/{memberId}   userId, latitude, longitude,
                                                      timestamp
    """

    def __init__(
        self,
        db: Client | None = None,
        timeout: float | None = DEFAULT_STORE_TIMEOUT_SECONDS,
    ) -> None:
        self.db = db if db is not None else firestore.client()
        self.timeout = timeout

    def _group_ref(self, group_id: str) -> Any:
        return self.db.collection(GROUPS_COLLECTION).document(group_id)

    def _locations_ref(self, group_id: str) -> Any:
        return self._group_ref(group_id).collection(MEMBER_LOCATIONS_COLLECTION)

    def create_group_document(
        self,
        group_id: str,
        name: str,
        members: Sequence[str],
        leader_id: str | None,
    ) -> None:
        group_data = {
            GROUP_ID: group_id,
            GROUP_NAME: name,
            GROUP_MEMBERS: list(dict.fromkeys(members)),
            GROUP_LEADER_ID: leader_id or "",
            GROUP_CREATED_AT: firestore.SERVER_TIMESTAMP,
            GROUP_UPDATED_AT: firestore.SERVER_TIMESTAMP,
        }
        with _store_errors(f"create group {group_id}"):
            self._group_ref(group_id).set(group_data, timeout=self.timeout)

    def fetch_group_document(self, group_id: str) -> GroupDocument:
        with _store_errors(f"fetch group {group_id}"):
            group = self._group_ref(group_id).get(timeout=self.timeout)
        if not group.exists:
            raise NotFoundError(f"Group {group_id} not found.")
        group_data = group.to_dict() or {}
        group_data[GROUP_ID] = group.id
        return group_data

    def add_member(self, group_id: str, member_id: str) -> None:
        with _store_errors(f"add {member_id} to group {group_id}"):
            self._group_ref(group_id).update(
                {
                    GROUP_MEMBERS: firestore.ArrayUnion([member_id]),
                    GROUP_UPDATED_AT: firestore.SERVER_TIMESTAMP,
                },
                timeout=self.timeout,
            )

    def remove_member(self, group_id: str, member_id: str) -> None:
        with _store_errors(f"remove {member_id} from group {group_id}"):
            self._group_ref(group_id).update(
                {
                    GROUP_MEMBERS: firestore.ArrayRemove([member_id]),
                    GROUP_UPDATED_AT: firestore.SERVER_TIMESTAMP,
                },
                timeout=self.timeout,
            )

    def delete_group_document(self, group_id: str) -> None:
        with _store_errors(f"delete group {group_id}"):
            self._group_ref(group_id).delete(timeout=self.timeout)

    def put_member_location(
        self, group_id: str, member_id: str, latitude: float, longitude: float
    ) -> None:
        if not is_valid_coordinate(latitude, longitude):
            raise ValidationError(f"Coordinate out of range: {latitude}, {longitude}")
        location_data = {
            LOCATION_USER_ID: member_id,
            LOCATION_LATITUDE: float(latitude),
            LOCATION_LONGITUDE: float(longitude),
            LOCATION_TIMESTAMP: firestore.SERVER_TIMESTAMP,
        }
        with _store_errors(f"update location of {member_id} in group {group_id}"):
            self._locations_ref(group_id).document(member_id).set(
                location_data, timeout=self.timeout
            )

    def fetch_member_locations(self, group_id: str) -> list[MemberLocationDocument]:
        with _store_errors(f"fetch locations of group {group_id}"):
            docs = list(self._locations_ref(group_id).stream(timeout=self.timeout))
        return [{**(doc.to_dict() or {}), "id": doc.id} for doc in docs]

    def subscribe_member_locations(
        self,
        group_id: str,
        on_change: LocationsCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        def on_snapshot(docs: list[Any], changes: Any, read_time: Any) -> None:
            """Forward the full collection snapshot as raw records."""
            try:
                records = [{**(doc.to_dict() or {}), "id": doc.id} for doc in docs]
            except Exception as e:
                if on_error is None:
                    raise
                on_error(e)
                return
            on_change(records)

        with _store_errors(f"listen to locations of group {group_id}"):
            watch = self._locations_ref(group_id).on_snapshot(on_snapshot)
        return FirestoreSubscription(watch)
