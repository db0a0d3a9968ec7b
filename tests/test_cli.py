import json
import logging
from pathlib import Path

import pytest

from markboard.cli import main
from markboard.store_sqlite import SqliteBookmarkStore

BUNDLE = {
    "folderTree": [{"title": "Work", "path": "1/Work", "children": []}],
    "allLinks": [
        {"title": "Example", "url": "https://example.com/", "path": "1/Work"},
        {"title": "Loose", "url": "https://loose.example/", "path": "2"},
    ],
}


@pytest.fixture
def paths(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("MARKBOARD_STATE_PATH", str(tmp_path / "state.sqlite"))
    monkeypatch.delenv("MARKBOARD_IMPORT_ROOT_MAP", raising=False)
    store = tmp_path / "bookmarks.sqlite"
    bundle = tmp_path / "bundle.json"
    bundle.write_text(json.dumps(BUNDLE), encoding="utf-8")
    return store, bundle


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)


def _cli(store: Path, *args: str) -> int:
    return main(["--store", str(store), "--no-color", *args])


def test_init_then_import_requires_confirmation(paths):
    store, bundle = paths
    assert _cli(store, "init") == 0
    assert store.exists()

    assert _cli(store, "import", "--bundle", str(bundle)) == 2
    with SqliteBookmarkStore(store, readonly=True) as s:
        assert s.get_children("1") == []


def test_import_export_and_snapshot(paths, tmp_path: Path, capsys):
    store, bundle = paths
    assert _cli(store, "init") == 0
    assert _cli(store, "import", "--bundle", str(bundle), "--yes") == 0
    assert "Created" in capsys.readouterr().out

    out = tmp_path / "out" / "export.json"
    assert _cli(store, "export", "--out", str(out)) == 0
    exported = json.loads(out.read_text(encoding="utf-8"))
    assert sorted(l["url"] for l in exported["allLinks"]) == ["https://example.com/", "https://loose.example/"]

    assert _cli(store, "snapshot", "--json") == 0
    snap = json.loads(capsys.readouterr().out)
    assert (snap["totalBookmarks"], snap["totalFolders"]) == (2, 3)


def test_call_dispatches_one_request(paths, capsys):
    store, bundle = paths
    _cli(store, "init")
    _cli(store, "import", "--bundle", str(bundle), "--yes")
    capsys.readouterr()

    assert _cli(store, "call", "getBookmarksCache") == 0
    response = json.loads(capsys.readouterr().out)
    assert response["success"] is True
    assert response["data"]["totalBookmarks"] == 2

    assert _cli(store, "call", "deleteBookmark", "--payload", '{"bookmarkId": "999"}') == 1
    response = json.loads(capsys.readouterr().out)
    assert response["errorType"] == "not_found"


def test_bad_inputs_exit_with_usage_code(paths, tmp_path: Path):
    store, _ = paths
    # Store not initialized yet.
    assert _cli(store, "snapshot") == 2
    _cli(store, "init")
    assert _cli(store, "call", "refreshCache", "--payload", "[1, 2]") == 2
    assert _cli(store, "import", "--bundle", str(tmp_path / "missing.json"), "--yes") == 2
