from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional

from .errors import MarkboardError, ProtectedResourceError, TypeMismatchError, ValidationError
from .listener import CacheService
from .log import get_logger
from .model import StoreNode
from .reconcile import reconcile_bundle

log = get_logger(__name__)

Response = Dict[str, Any]


class Dispatcher:
    """Request/response surface: ``handle({"action": ..., ...}) -> {"success": ...}``.

    Single-item actions validate first and then map onto one store call. The
    cached snapshot is never touched here; it follows the store's own change
    notifications.
    """

    def __init__(
        self,
        store,
        service: CacheService,
        *,
        root_map: Mapping[str, str],
        fallback_root_id: Optional[str] = None,
    ):
        self.store = store
        self.service = service
        self.root_map = dict(root_map)
        self.fallback_root_id = fallback_root_id or self.root_map.get("2")
        self._actions: Dict[str, Callable[[Dict[str, Any]], Response]] = {
            "getBookmarksCache": self._get_bookmarks_cache,
            "refreshCache": self._refresh_cache,
            "importBookmarks": self._import_bookmarks,
            "deleteBookmark": self._delete_bookmark,
            "moveBookmark": self._move_bookmark,
            "createFolder": self._create_folder,
            "renameFolder": self._rename_folder,
            "deleteFolder": self._delete_folder,
        }

    @property
    def actions(self):
        return sorted(self._actions)

    def handle(self, message: Dict[str, Any]) -> Response:
        action = (message or {}).get("action")
        log.debug("Received message: %s", action)
        fn = self._actions.get(action or "")
        if fn is None:
            log.warning("Unknown message action: %s", action)
            return _failure(ValidationError(f"unknown action: {action} (expected one of: {', '.join(self.actions)})"))
        try:
            out = fn(message)
        except MarkboardError as e:
            log.warning("%s failed: %s", action, e)
            return _failure(e)
        except Exception as e:
            log.exception("%s failed unexpectedly", action)
            return {"success": False, "error": str(e), "errorType": "internal"}
        return {"success": True, **out}

    # -- cache ---------------------------------------------------------

    def _get_bookmarks_cache(self, message: Dict[str, Any]) -> Response:
        snapshot, last_sync = self.service.current()
        return {"data": snapshot.to_dict(), "lastSync": last_sync}

    def _refresh_cache(self, message: Dict[str, Any]) -> Response:
        self.service.refresh()
        return {"lastSync": self.service.last_sync}

    def _import_bookmarks(self, message: Dict[str, Any]) -> Response:
        bundle = {k: message.get(k) for k in ("folderTree", "allLinks") if k in message}
        result = reconcile_bundle(
            self.store,
            bundle,
            root_map=self.root_map,
            fallback_root_id=self.fallback_root_id,
            refresh=self.service.refresh,
        )
        return result.to_dict()

    # -- single items --------------------------------------------------

    def _delete_bookmark(self, message: Dict[str, Any]) -> Response:
        bookmark_id = _required(message, "bookmarkId")
        node = self.store.get(bookmark_id)
        _require_link(node)
        self.store.remove(node.id)
        log.info("Deleted bookmark %s", node.id)
        return {"bookmarkId": node.id}

    def _move_bookmark(self, message: Dict[str, Any]) -> Response:
        bookmark_id = _required(message, "bookmarkId")
        target_id = _required(message, "targetFolderId")
        node = self.store.get(bookmark_id)
        _require_link(node)
        target = self.store.get(target_id)
        _require_folder(target)
        if node.parent_id == target.id:
            return {"bookmarkId": node.id, "noChange": True}
        self.store.move(node.id, target.id)
        return {"bookmarkId": node.id, "oldFolderId": node.parent_id, "newFolderId": target.id}

    def _create_folder(self, message: Dict[str, Any]) -> Response:
        parent_id = _required(message, "parentId")
        title = _required(message, "title").strip()
        parent = self.store.get(parent_id)
        _require_folder(parent)
        _check_duplicate_name(parent, title)
        created = self.store.create(parent.id, title)
        return {"folder": created.to_dict()}

    def _rename_folder(self, message: Dict[str, Any]) -> Response:
        folder_id = _required(message, "folderId")
        title = _required(message, "title").strip()
        folder = self.store.get(folder_id)
        _require_folder(folder)
        self._require_not_root(folder, "renamed")
        if folder.title == title:
            return {"folderId": folder.id, "noChange": True}
        if folder.parent_id is not None:
            _check_duplicate_name(self.store.get(folder.parent_id), title, exclude_id=folder.id)
        self.store.update(folder.id, title)
        return {"folderId": folder.id, "title": title}

    def _delete_folder(self, message: Dict[str, Any]) -> Response:
        folder_id = _required(message, "folderId")
        folder = self.store.get(folder_id)
        _require_folder(folder)
        self._require_not_root(folder, "deleted")
        self.store.remove_tree(folder.id)
        log.info("Deleted folder %s (%r)", folder.id, folder.title)
        return {"folderId": folder.id}

    def _require_not_root(self, node: StoreNode, verb: str) -> None:
        protected = set(self.store.root_ids) | set(self.root_map.values())
        if node.id in protected or node.parent_id is None:
            raise ProtectedResourceError(f"root folder cannot be {verb}: {node.id}")


def _failure(e: MarkboardError) -> Response:
    return {"success": False, "error": str(e), "errorType": e.kind}


def _required(message: Dict[str, Any], key: str) -> str:
    value = message.get(key)
    if value is None or not str(value).strip():
        raise ValidationError(f"{key} is required")
    return str(value)


def _require_link(node: StoreNode) -> None:
    if not node.is_link:
        raise TypeMismatchError(f"id is not a bookmark: {node.id}")


def _require_folder(node: StoreNode) -> None:
    if not node.is_folder:
        raise TypeMismatchError(f"id is not a folder: {node.id}")


def _check_duplicate_name(parent: StoreNode, title: str, *, exclude_id: Optional[str] = None) -> None:
    for child in parent.children or []:
        if child.is_folder and child.title == title and child.id != exclude_id:
            raise ValidationError(f"a folder named {title!r} already exists here")
