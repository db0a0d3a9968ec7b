import pytest

from markboard.dispatch import Dispatcher
from markboard.listener import CacheService

ROOTS = {"1": "1", "2": "2"}


@pytest.fixture
def service(store):
    svc = CacheService(store, clock=lambda: 1234)
    svc.start()
    yield svc
    svc.stop()


@pytest.fixture
def dispatcher(store, service):
    return Dispatcher(store, service, root_map=ROOTS)


def _ok(response):
    assert response["success"] is True, response
    return response


def _fail(response, kind):
    assert response["success"] is False, response
    assert response["errorType"] == kind, response
    assert response["error"]
    return response


def test_get_bookmarks_cache_returns_snapshot_and_last_sync(store, dispatcher):
    store.create("1", "x", "https://x.example/")
    r = _ok(dispatcher.handle({"action": "getBookmarksCache"}))
    assert r["data"]["totalBookmarks"] == 1
    assert r["data"]["totalFolders"] == 2
    assert r["data"]["flatBookmarks"][0]["domain"] == "x.example"
    assert r["lastSync"] == 1234


def test_refresh_cache(dispatcher):
    r = _ok(dispatcher.handle({"action": "refreshCache"}))
    assert r["lastSync"] == 1234


def test_import_bookmarks_returns_result_counts(store, dispatcher, service):
    store.create("2", "old", "https://old.example/")
    r = _ok(
        dispatcher.handle(
            {
                "action": "importBookmarks",
                "folderTree": [{"title": "Work", "path": "1/Work", "children": []}],
                "allLinks": [{"title": "Ex", "url": "https://example.com", "path": "1/Work"}],
            }
        )
    )
    assert (r["createdCount"], r["deletedCount"], r["errors"]) == (1, 1, [])
    assert service.snapshot.total_bookmarks == 1


def test_import_bookmarks_rejects_missing_fields(dispatcher):
    _fail(dispatcher.handle({"action": "importBookmarks", "folderTree": []}), "validation")


def test_delete_bookmark(store, dispatcher, service):
    link = store.create("1", "x", "https://x.example/")
    r = _ok(dispatcher.handle({"action": "deleteBookmark", "bookmarkId": link.id}))
    assert r["bookmarkId"] == link.id
    assert store.get_children("1") == []
    assert service.snapshot.total_bookmarks == 0


def test_delete_bookmark_errors(store, dispatcher):
    folder = store.create("1", "F")
    _fail(dispatcher.handle({"action": "deleteBookmark"}), "validation")
    _fail(dispatcher.handle({"action": "deleteBookmark", "bookmarkId": "999"}), "not_found")
    _fail(dispatcher.handle({"action": "deleteBookmark", "bookmarkId": folder.id}), "type_mismatch")


def test_move_bookmark(store, dispatcher):
    link = store.create("1", "x", "https://x.example/")
    same = _ok(dispatcher.handle({"action": "moveBookmark", "bookmarkId": link.id, "targetFolderId": "1"}))
    assert same["noChange"] is True

    moved = _ok(dispatcher.handle({"action": "moveBookmark", "bookmarkId": link.id, "targetFolderId": "2"}))
    assert (moved["oldFolderId"], moved["newFolderId"]) == ("1", "2")
    assert [c.id for c in store.get_children("2")] == [link.id]


def test_move_bookmark_into_a_link_is_rejected(store, dispatcher):
    a = store.create("1", "a", "https://a.example/")
    b = store.create("1", "b", "https://b.example/")
    _fail(dispatcher.handle({"action": "moveBookmark", "bookmarkId": a.id, "targetFolderId": b.id}), "type_mismatch")


def test_create_folder(store, dispatcher, service):
    r = _ok(dispatcher.handle({"action": "createFolder", "parentId": "1", "title": "  Work "}))
    assert r["folder"]["title"] == "Work"
    assert r["folder"]["parentId"] == "1"
    assert service.snapshot.total_folders == 3


def test_create_folder_errors(store, dispatcher):
    store.create("1", "Work")
    _fail(dispatcher.handle({"action": "createFolder", "parentId": "1", "title": "Work"}), "validation")
    _fail(dispatcher.handle({"action": "createFolder", "parentId": "1", "title": "   "}), "validation")
    _fail(dispatcher.handle({"action": "createFolder", "parentId": "0", "title": "Third root"}), "protected")


def test_rename_folder(store, dispatcher):
    work = store.create("1", "Work")
    store.create("1", "Home")

    same = _ok(dispatcher.handle({"action": "renameFolder", "folderId": work.id, "title": "Work"}))
    assert same["noChange"] is True
    _fail(dispatcher.handle({"action": "renameFolder", "folderId": work.id, "title": "Home"}), "validation")

    r = _ok(dispatcher.handle({"action": "renameFolder", "folderId": work.id, "title": "Job"}))
    assert r["title"] == "Job"
    assert store.get(work.id).title == "Job"


@pytest.mark.parametrize("action", ["renameFolder", "deleteFolder"])
@pytest.mark.parametrize("folder_id", ["0", "1", "2"])
def test_roots_are_protected(dispatcher, action, folder_id):
    _fail(dispatcher.handle({"action": action, "folderId": folder_id, "title": "New"}), "protected")


def test_delete_folder_removes_contents(store, dispatcher, service):
    work = store.create("1", "Work")
    sub = store.create(work.id, "Sub")
    store.create(sub.id, "x", "https://x.example/")
    _ok(dispatcher.handle({"action": "deleteFolder", "folderId": work.id}))
    assert store.get_children("1") == []
    assert (service.snapshot.total_folders, service.snapshot.total_bookmarks) == (2, 0)


def test_unknown_or_missing_action(dispatcher):
    _fail(dispatcher.handle({"action": "launchRockets"}), "validation")
    _fail(dispatcher.handle({}), "validation")


def test_unexpected_failure_is_reported_as_internal(dispatcher, service, monkeypatch):
    def boom():
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(service, "refresh", boom)
    r = _fail(dispatcher.handle({"action": "refreshCache"}), "internal")
    assert "disk on fire" in r["error"]


def test_unknown_action_error_lists_known_actions(dispatcher):
    r = _fail(dispatcher.handle({"action": "launchRockets"}), "validation")
    assert "launchRockets" in r["error"]
    assert "getBookmarksCache" in r["error"]
    assert "deleteFolder" in r["error"]
