"""Flask extension holding one sync engine per signed-in member."""

from __future__ import annotations

import functools
import threading
from typing import TYPE_CHECKING

from flask import current_app

from trailsync.group.engine import GroupSyncEngine
from trailsync.group.store import FirestoreGroupStore, GroupStore
from trailsync.location.source import QueueLocationSource

if TYPE_CHECKING:
    from flask import Flask

EXTENSION_KEY = "trailsync_engines"


class _EngineState:
    """Per-app engines and the store they share."""

    def __init__(self, app: Flask) -> None:
        self.app = app
        self._engines: dict[str, GroupSyncEngine] = {}
        self._lock = threading.Lock()
        self._store: GroupStore | None = app.config.get("GROUP_STORE")

    @property
    def store(self) -> GroupStore:
        if self._store is None:
            self._store = FirestoreGroupStore(
                timeout=self.app.config["STORE_TIMEOUT_SECONDS"]
            )
        return self._store

    def get(self, member_id: str) -> GroupSyncEngine:
        with self._lock:
            engine = self._engines.get(member_id)
            if engine is None:
                config = self.app.config
                engine = GroupSyncEngine(
                    member_id,
                    self.store,
                    location_source=QueueLocationSource(
                        distance_filter_m=config["LOCATION_DISTANCE_FILTER_METERS"]
                    ),
                    debounce_seconds=config["LOCATION_DEBOUNCE_SECONDS"],
                    logger=self.app.logger,
                    on_idle=functools.partial(self.release_if_idle, member_id),
                )
                self._engines[member_id] = engine
            return engine

    def release_if_idle(self, member_id: str) -> bool:
        """Drop and close the member's engine once it holds nothing worth keeping."""
        with self._lock:
            engine = self._engines.get(member_id)
            if engine is None or not engine.is_disposable:
                return False
            del self._engines[member_id]
        engine.close()
        self.app.logger.debug(f"Released idle sync engine for {member_id}")
        return True

    def close_all(self) -> None:
        with self._lock:
            engines, self._engines = list(self._engines.values()), {}
        for engine in engines:
            engine.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._engines)


class EngineRegistry:
    """Lazily creates a ``GroupSyncEngine`` for each member id.

    Usage::

        engines = EngineRegistry()
        engines.init_app(app)
        engine = engines.get(member_id)  # inside an app context
    """

    def __init__(self, app: Flask | None = None) -> None:
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        app.extensions[EXTENSION_KEY] = _EngineState(app)

    @staticmethod
    def _state() -> _EngineState:
        return current_app.extensions[EXTENSION_KEY]

    def get(self, member_id: str) -> GroupSyncEngine:
        return self._state().get(member_id)

    def release_if_idle(self, member_id: str) -> bool:
        return self._state().release_if_idle(member_id)

    def close_all(self) -> None:
        self._state().close_all()


engines = EngineRegistry()
