from markboard.export import export_bundle
from markboard.reconcile import reconcile_bundle
from markboard.snapshot import build_snapshot

ROOTS = {"1": "1", "2": "2"}


def _fill(store):
    work = store.create("1", "Work")
    sub = store.create(work.id, "Sub")
    store.create(work.id, "a", "https://a.example/")
    store.create(sub.id, "d", "https://d.example/docs")
    store.create("1", "b", "https://b.example/")
    store.create("2", "c", "https://c.example/")


def _shape(store):
    snap = build_snapshot(store.get_tree(), with_tags=False)
    folders = sorted((f.path, f.bookmark_count) for f in snap.folder_index.values())
    links = sorted((b.path, b.title, b.url) for b in snap.flat_bookmarks)
    return folders, links


def test_export_describes_roots_folders_and_links(store):
    _fill(store)
    wire = export_bundle(store, ROOTS).to_wire()

    bar, other = wire["folderTree"]
    assert bar["path"] == "1"
    assert [(c["title"], c["path"]) for c in bar["children"]] == [("Work", "1/Work")]
    assert bar["children"][0]["children"][0]["path"] == "1/Work/Sub"
    assert other == {"title": "Other bookmarks", "path": "2", "children": []}
    assert sorted((l["path"], l["url"]) for l in wire["allLinks"]) == [
        ("1", "https://b.example/"),
        ("1/Work", "https://a.example/"),
        ("1/Work/Sub", "https://d.example/docs"),
        ("2", "https://c.example/"),
    ]


def test_export_then_import_preserves_structure(store):
    _fill(store)
    before = _shape(store)

    result = reconcile_bundle(store, export_bundle(store, ROOTS), root_map=ROOTS)

    assert result.errors == []
    assert (result.created_count, result.deleted_count) == (4, 4)
    assert _shape(store) == before


def test_shared_root_is_exported_once(store):
    store.create("1", "x", "https://x.example/")
    bundle = export_bundle(store, {"1": "1", "bar": "1", "2": "2"})
    assert [f.path for f in bundle.folder_tree] == ["1", "2"]
    assert len(bundle.all_links) == 1
