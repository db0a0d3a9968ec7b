from __future__ import annotations

import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import MarkboardError
from .log import get_logger
from .model import CacheSnapshot
from .snapshot import build_snapshot
from .state_sqlite import init_state, load_snapshot, save_snapshot

log = get_logger(__name__)

RefreshListener = Callable[[str, Dict[str, Any]], None]

# store event kind -> (action announced downstream, payload key for the event info)
_EVENT_ACTIONS: Dict[str, Tuple[str, str]] = {
    "created": ("bookmark-created", "bookmark"),
    "removed": ("bookmark-removed", "removeInfo"),
    "changed": ("bookmark-changed", "changeInfo"),
    "moved": ("bookmark-moved", "moveInfo"),
}


class CacheService:
    """Keeps a :class:`CacheSnapshot` in step with a bookmark store.

    ``start()`` builds the first snapshot and subscribes to the store's four
    change notifications. Every notification triggers a full rebuild from a
    fresh ``get_tree()`` read, then the ``(action, payload)`` pair is passed
    to each refresh listener. There is no batching: N writes mean N rebuilds.
    """

    def __init__(
        self,
        store,
        *,
        state_path: Optional[Path] = None,
        with_tags: bool = True,
        clock: Callable[[], int] = lambda: int(time.time() * 1000),
    ):
        self.store = store
        self.state_path = state_path
        self.with_tags = with_tags
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: Optional[CacheSnapshot] = None
        self._last_sync: Optional[int] = None
        self._handles: List[Any] = []
        self._listeners: List[RefreshListener] = []
        if state_path is not None:
            init_state(state_path)

    @property
    def running(self) -> bool:
        return bool(self._handles)

    @property
    def snapshot(self) -> Optional[CacheSnapshot]:
        return self._snapshot

    @property
    def last_sync(self) -> Optional[int]:
        return self._last_sync

    def start(self) -> None:
        if self.running:
            return
        self.refresh()
        for kind in _EVENT_ACTIONS:
            self._handles.append(self.store.subscribe(kind, self._make_handler(kind)))
        log.debug("Cache service subscribed to %d store events", len(self._handles))

    def stop(self) -> None:
        for handle in self._handles:
            self.store.unsubscribe(handle)
        self._handles = []

    def add_listener(self, listener: RefreshListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def refresh(self) -> CacheSnapshot:
        snapshot = build_snapshot(self.store.get_tree(), with_tags=self.with_tags)
        now = self._clock()
        with self._lock:
            self._snapshot = snapshot
            self._last_sync = now
        self._persist(snapshot, now)
        log.info("Cached %d bookmarks in %d folders", snapshot.total_bookmarks, snapshot.total_folders)
        return snapshot

    def current(self) -> Tuple[CacheSnapshot, Optional[int]]:
        """Snapshot for readers: in memory, else persisted, else freshly built."""
        with self._lock:
            snapshot, last_sync = self._snapshot, self._last_sync
        if snapshot is not None:
            return snapshot, last_sync
        if self.state_path is not None:
            state = load_snapshot(self.state_path)
            if state.snapshot is not None:
                return state.snapshot, state.last_sync
        snapshot = self.refresh()
        return snapshot, self._last_sync

    def _make_handler(self, kind: str) -> Callable[[str, Any], None]:
        action, info_key = _EVENT_ACTIONS[kind]

        def handler(node_id: str, info: Any) -> None:
            log.debug("Store event %s for %s", kind, node_id)
            try:
                self.refresh()
            except MarkboardError as e:
                log.error("Failed to refresh bookmarks cache after %s: %s", action, e)
                return
            self._announce(action, {"id": node_id, info_key: info})

        return handler

    def _announce(self, action: str, payload: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(action, payload)
            except Exception:
                log.exception("Refresh listener failed for %s", action)

    def _persist(self, snapshot: CacheSnapshot, last_sync: int) -> None:
        if self.state_path is None:
            return
        try:
            save_snapshot(self.state_path, snapshot, last_sync)
        except (OSError, sqlite3.Error) as e:
            log.warning("Failed to persist bookmarks cache to %s: %s", self.state_path, e)
