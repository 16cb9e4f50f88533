"""Group synchronization engine: group lifecycle and live location sharing."""

from __future__ import annotations

import functools
import logging
import threading
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Iterator

from trailsync.constants import DEFAULT_DEBOUNCE_SECONDS
from trailsync.errors import (
    AppError,
    DataFormatError,
    GroupRefreshError,
    PermissionDeniedError,
    SyncError,
    ValidationError,
)
from trailsync.group.models import Group, MemberLocation
from trailsync.group.store import GroupStore, Subscription
from trailsync.location.debounce import Debouncer
from trailsync.location.geo import Coordinate, is_valid_coordinate
from trailsync.location.source import LocationSource, PermissionState

OP_CREATE = "create"
OP_JOIN = "join"
OP_LEAVE = "leave"
OP_FETCH = "fetch"
OP_DELETE = "delete"
OP_PUBLISH = "publish"
OP_SUBSCRIBE = "subscribe"
OP_TRACKING = "tracking"


class EngineState(str, Enum):
    """IDLE: no group and no listener. ACTIVE: group set, both paths live."""

    IDLE = "idle"
    ACTIVE = "active"


class GroupSyncEngine:
    """Keeps one member's view of their active hiking group in sync.

    The engine owns the active group, republishes the member's coordinate to
    the store through a trailing debounce, and mirrors the store's live
    location stream into ``member_snapshot``. Lifecycle methods record store
    failures in ``last_error`` and leave state unchanged instead of raising.

    All state changes happen under one re-entrant lock; listener callbacks,
    debounce timers and the location pump thread all go through it.
    """

    def __init__(
        self,
        member_id: str,
        store: GroupStore,
        location_source: LocationSource | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: Callable[..., Any] = threading.Timer,
        id_factory: Callable[[], str] | None = None,
        logger: logging.Logger | None = None,
        on_idle: Callable[[], None] | None = None,
    ) -> None:
        if not member_id:
            raise ValidationError("Member ID cannot be empty.")
        self.member_id = member_id
        self.store = store
        self.location_source = location_source
        self.logger = logger or logging.getLogger(__name__)
        self._on_idle = on_idle
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._lock = threading.RLock()

        self._group: Group | None = None
        self._snapshot: dict[str, MemberLocation] = {}
        self._last_error: SyncError | None = None
        self._subscription: Subscription | None = None
        self._subscription_tag: tuple[str, int] | None = None
        self._generation = 0
        self._pump_thread: threading.Thread | None = None
        self._closed = False

        self.is_creating_group = False
        self.is_joining_group = False
        self.is_updating_location = False
        self.is_loading = False

        self._debouncer: Debouncer[Coordinate] = Debouncer(
            debounce_seconds, self._publish_sample, timer_factory=timer_factory
        )
        if location_source is not None:
            location_source.add_permission_listener(self._on_permission_change)

    # --- Readers ---

    @property
    def active_group(self) -> Group | None:
        with self._lock:
            return self._group

    @property
    def state(self) -> EngineState:
        with self._lock:
            return EngineState.ACTIVE if self._group else EngineState.IDLE

    @property
    def member_snapshot(self) -> dict[str, MemberLocation]:
        with self._lock:
            return dict(self._snapshot)

    @property
    def last_error(self) -> SyncError | None:
        with self._lock:
            return self._last_error

    @property
    def error_message(self) -> str | None:
        error = self.last_error
        return error.message if error else None

    @property
    def is_tracking(self) -> bool:
        thread = self._pump_thread
        return thread is not None and thread.is_alive()

    @property
    def is_busy(self) -> bool:
        with self._lock:
            return (
                self.is_creating_group
                or self.is_joining_group
                or self.is_updating_location
                or self.is_loading
            )

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_disposable(self) -> bool:
        """Idle, quiet and error-free: nothing is lost by closing this engine."""
        return (
            not self._closed
            and self.state is EngineState.IDLE
            and not self.is_tracking
            and not self.is_busy
            and self.last_error is None
        )

    def member_positions(
        self, max_age: timedelta | None = None, now: datetime | None = None
    ) -> list[MemberLocation]:
        """Snapshot records, oldest-first, dropping any older than ``max_age``."""
        locations = self.member_snapshot.values()
        if max_age is not None:
            locations = [loc for loc in locations if not loc.is_stale(max_age, now)]
        return sorted(locations, key=lambda loc: loc.timestamp)

    def clear_error(self) -> None:
        with self._lock:
            self._last_error = None

    # --- Error bookkeeping ---

    def _begin(self, operation: str) -> None:
        """Starting an operation clears an error left by the same kind of operation."""
        with self._lock:
            if self._last_error and self._last_error.operation == operation:
                self._last_error = None

    def _record(self, operation: str, error: BaseException) -> SyncError:
        sync_error = SyncError.from_exception(operation, error)
        with self._lock:
            self._last_error = sync_error
        if isinstance(error, AppError):
            self.logger.warning(f"{operation} failed for {self.member_id}: {error}")
        else:
            self.logger.error(
                f"{operation} failed for {self.member_id} with unexpected error: {error!r}"
            )
        return sync_error

    def _ensure_open(self) -> None:
        if self._closed:
            raise AppError("The sync engine is closed.", 503)

    def _notify_idle(self) -> None:
        if self._on_idle is not None and self.is_disposable:
            self._on_idle()

    @staticmethod
    def _require_id(value: str | None, label: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValidationError(f"{label} cannot be empty.")
        return value

    # --- Group lifecycle ---

    def create_group(self, name: str) -> Group | None:
        """Create a group led by this member and make it active."""
        self._begin(OP_CREATE)
        try:
            self._ensure_open()
            name = self._require_id(name, "Group name")
        except AppError as e:
            self._record(OP_CREATE, e)
            return None

        group = Group.create(self._id_factory(), name, self.member_id)
        with self._lock:
            self.is_creating_group = self.is_loading = True
        try:
            self.store.create_group_document(
                group.id, group.name, list(group.member_ids), group.leader_id
            )
        except Exception as e:
            self._record(OP_CREATE, e)
            return None
        finally:
            with self._lock:
                self.is_creating_group = self.is_loading = False

        if not self._activate(OP_CREATE, group):
            return None
        self.logger.info(f"Group {group.id} ({group.name}) created by {self.member_id}")
        return group

    def join_group(self, group_id: str) -> Group | None:
        """Add this member to ``group_id``, then load the group as active.

        The group is re-read after the edit, so concurrent joins are visible.
        If that read fails the membership change has already happened
        remotely; this is reported as a ``GroupRefreshError``.
        """
        self._begin(OP_JOIN)
        try:
            self._ensure_open()
            group_id = self._require_id(group_id, "Group ID")
        except AppError as e:
            self._record(OP_JOIN, e)
            return None

        with self._lock:
            self.is_joining_group = self.is_loading = True
        try:
            try:
                self.store.add_member(group_id, self.member_id)
            except Exception as e:
                self._record(OP_JOIN, e)
                return None
            try:
                group = Group.from_document(self.store.fetch_group_document(group_id))
            except Exception as e:
                refresh_error = GroupRefreshError(
                    f"Joined group {group_id} but could not load it: {e}"
                )
                refresh_error.__cause__ = e
                self._record(OP_JOIN, refresh_error)
                return None
        finally:
            with self._lock:
                self.is_joining_group = self.is_loading = False

        if not self._activate(OP_JOIN, group):
            return None
        self.logger.info(f"{self.member_id} joined group {group_id}")
        return group

    def leave_group(self) -> bool:
        """Remove this member from the active group and return to idle.

        The remote group document stays; other members keep using it.
        """
        self._begin(OP_LEAVE)
        group = self.active_group
        if group is None:
            self._record(OP_LEAVE, ValidationError("There is no active group."))
            return False

        with self._lock:
            self.is_loading = True
        try:
            self.store.remove_member(group.id, self.member_id)
        except Exception as e:
            self._record(OP_LEAVE, e)
            return False
        finally:
            with self._lock:
                self.is_loading = False

        self._release_group(group.id)
        self.logger.info(f"{self.member_id} left group {group.id}")
        self._notify_idle()
        return True

    def get_group(self, group_id: str) -> Group:
        """Fetch and parse a group without touching engine state.

        Raises:
            ValidationError: If ``group_id`` is empty.
            NotFoundError: If the group does not exist.
            DataFormatError: If the stored document is malformed.
            StoreUnavailableError: If the store cannot be reached.
        """
        self._begin(OP_FETCH)
        try:
            group_id = self._require_id(group_id, "Group ID")
            with self._lock:
                self.is_loading = True
            return Group.from_document(self.store.fetch_group_document(group_id))
        except Exception as e:
            self._record(OP_FETCH, e)
            raise
        finally:
            with self._lock:
                self.is_loading = False

    def load_group(self, group_id: str) -> Group | None:
        """Fetch ``group_id`` and make it the active group."""
        try:
            self._ensure_open()
        except AppError as e:
            self._record(OP_FETCH, e)
            return None
        try:
            group = self.get_group(group_id)
        except Exception:
            return None
        if not self._activate(OP_FETCH, group):
            return None
        return group

    def delete_group(self) -> bool:
        """Delete the active group remotely. Only its leader may do this."""
        self._begin(OP_DELETE)
        group = self.active_group
        if group is None:
            self._record(OP_DELETE, ValidationError("There is no active group."))
            return False
        if not group.is_leader(self.member_id):
            self._record(
                OP_DELETE, ValidationError("Only the group leader can delete the group.")
            )
            return False

        try:
            self.store.delete_group_document(group.id)
        except Exception as e:
            self._record(OP_DELETE, e)
            return False

        self._release_group(group.id)
        self.logger.info(f"Group {group.id} deleted by {self.member_id}")
        self._notify_idle()
        return True

    def clear_group(self) -> None:
        """Forget the active group locally and release its listener."""
        self._set_active_group(None)
        self._notify_idle()

    def _activate(self, operation: str, group: Group) -> bool:
        try:
            self._set_active_group(group)
        except AppError as e:
            self._record(operation, e)
            return False
        return True

    # --- Subscribe path ---

    # Listener calls never run under self._lock: a Firestore unsubscribe joins
    # the listener thread, which may be waiting on the lock to deliver.

    def _set_active_group(self, group: Group | None) -> None:
        with self._lock:
            stale, tag = self._swap_group(group)
        self._finish_swap(stale, tag)

    def _release_group(self, group_id: str) -> None:
        """Return to idle, unless another group became active meanwhile."""
        with self._lock:
            if self._group is None or self._group.id != group_id:
                return
            stale, tag = self._swap_group(None)
        self._finish_swap(stale, tag)

    def _swap_group(
        self, group: Group | None
    ) -> tuple[Subscription | None, tuple[str, int] | None]:
        """Install ``group`` under the lock.

        Returns the listener to release and the tag of the listener to open.
        """
        if group is not None:
            self._ensure_open()
        previous_id = self._group.id if self._group else None
        self._group = group
        new_id = group.id if group else None
        if new_id == previous_id:
            return None, None

        stale = self._detach_subscription()
        self._snapshot = {}
        if new_id is None:
            self._debouncer.cancel()
            return stale, None

        self._generation += 1
        tag = (new_id, self._generation)
        self._subscription_tag = tag
        return stale, tag

    def _finish_swap(
        self, stale: Subscription | None, tag: tuple[str, int] | None
    ) -> None:
        self._unsubscribe(stale)
        if tag is None:
            return
        try:
            subscription = self.store.subscribe_member_locations(
                tag[0],
                functools.partial(self._on_member_locations, tag),
                functools.partial(self._on_subscription_error, tag),
            )
        except Exception as e:
            with self._lock:
                if tag == self._subscription_tag:
                    self._record(OP_SUBSCRIBE, e)
            return
        with self._lock:
            if tag == self._subscription_tag:
                self._subscription, subscription = subscription, None
        # Superseded while subscribing.
        self._unsubscribe(subscription)

    def _detach_subscription(self) -> Subscription | None:
        subscription, self._subscription = self._subscription, None
        self._subscription_tag = None
        return subscription

    def _unsubscribe(self, subscription: Subscription | None) -> None:
        if subscription is None:
            return
        try:
            subscription.unsubscribe()
        except Exception as e:
            self.logger.warning(f"Could not release location listener: {e}")

    def _parse_locations(self, records: list[Any]) -> dict[str, MemberLocation]:
        snapshot: dict[str, MemberLocation] = {}
        for record in records:
            try:
                location = MemberLocation.from_document(record)
            except DataFormatError as e:
                self.logger.warning(f"Dropping location record: {e}")
                continue
            snapshot[location.member_id] = location
        return snapshot

    def _on_member_locations(self, tag: tuple[str, int], records: list[Any]) -> None:
        snapshot = self._parse_locations(records)
        with self._lock:
            if tag != self._subscription_tag:
                self.logger.debug(f"Ignoring emission from superseded listener {tag}")
                return
            self._snapshot = snapshot

    def _on_subscription_error(self, tag: tuple[str, int], error: Exception) -> None:
        with self._lock:
            if tag != self._subscription_tag:
                return
            self._snapshot = {}
            self._record(OP_SUBSCRIBE, error)

    def refresh_member_locations(self) -> bool:
        """Replace the snapshot with a one-shot read of the active group."""
        self._begin(OP_SUBSCRIBE)
        with self._lock:
            tag = self._subscription_tag
        if tag is None:
            self._record(OP_SUBSCRIBE, ValidationError("There is no active group."))
            return False
        try:
            records = self.store.fetch_member_locations(tag[0])
        except Exception as e:
            self._on_subscription_error(tag, e)
            return False
        self._on_member_locations(tag, records)
        return True

    # --- Publish path ---

    def submit_location(self, coordinate: Coordinate) -> bool:
        """Offer a sample to the debounced publish path.

        Samples taken while no group is active are dropped, never replayed.
        """
        with self._lock:
            if self._group is None:
                self.logger.debug("No active group, location sample dropped")
                return False
            self._debouncer.submit(coordinate)
            return True

    def _publish_sample(self, coordinate: Coordinate) -> None:
        self._write_location(coordinate.latitude, coordinate.longitude)

    def update_location(self, latitude: float, longitude: float) -> bool:
        """Write a coordinate for this member right away, bypassing the debounce."""
        if self.active_group is None:
            self._record(OP_PUBLISH, ValidationError("There is no active group."))
            return False
        if not is_valid_coordinate(latitude, longitude):
            self._record(
                OP_PUBLISH,
                ValidationError(f"Coordinate out of range: {latitude}, {longitude}"),
            )
            return False
        return self._write_location(latitude, longitude)

    def _write_location(self, latitude: float, longitude: float) -> bool:
        self._begin(OP_PUBLISH)
        with self._lock:
            group = self._group
            if group is None:
                self.logger.debug("No active group, location update skipped")
                return False
            self.is_updating_location = True
        try:
            self.store.put_member_location(group.id, self.member_id, latitude, longitude)
        except Exception as e:
            self._record(OP_PUBLISH, e)
            return False
        finally:
            with self._lock:
                self.is_updating_location = False
        self.logger.info(
            f"Location of {self.member_id} in group {group.id} updated: "
            f"{latitude}, {longitude}"
        )
        return True

    # --- Location tracking ---

    def start_location_tracking(self) -> bool:
        """Ask for permission, then pump the location source into the publish path."""
        self._begin(OP_TRACKING)
        source = self.location_source
        if source is None:
            self._record(OP_TRACKING, ValidationError("No location source configured."))
            return False
        with self._lock:
            if self._closed:
                return False
            if self.is_tracking:
                return True
            if source.request_permission() is not PermissionState.GRANTED:
                self._record(OP_TRACKING, PermissionDeniedError())
                return False
            try:
                samples = source.start()
            except PermissionDeniedError as e:
                self._record(OP_TRACKING, e)
                return False
            self._pump_thread = threading.Thread(
                target=self._pump,
                args=(samples,),
                name=f"trailsync-location-{self.member_id}",
                daemon=True,
            )
            self._pump_thread.start()
        return True

    def _pump(self, samples: Iterator[Coordinate]) -> None:
        for coordinate in samples:
            if self._closed:
                break
            self.submit_location(coordinate)

    def stop_location_tracking(self) -> None:
        if self.location_source is not None:
            self.location_source.stop()
        self._debouncer.cancel()
        thread = self._pump_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._pump_thread = None
        self._notify_idle()

    def _on_permission_change(self, state: PermissionState) -> None:
        if state is PermissionState.DENIED:
            self._debouncer.cancel()
            self._record(OP_TRACKING, PermissionDeniedError())

    def close(self) -> None:
        """Stop tracking and release the live listener."""
        with self._lock:
            self._closed = True
        self.stop_location_tracking()
        if self.location_source is not None:
            self.location_source.remove_permission_listener(self._on_permission_change)
        with self._lock:
            self._group = None
            self._snapshot = {}
            stale = self._detach_subscription()
        self._unsubscribe(stale)
