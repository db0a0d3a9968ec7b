from markboard.model import StoreNode
from markboard.snapshot import build_snapshot, count_links


def _link(id, title, url, parent):
    return StoreNode(id=id, title=title, url=url, parent_id=parent, date_added=1)


def _folder(id, title, parent, children):
    return StoreNode(id=id, title=title, parent_id=parent, date_added=1, children=children)


def _tree():
    deep = _folder("12", "Deep", "11", [_link("20", "Py", "https://www.python.org/", "12")])
    work = _folder(
        "11",
        "Work",
        "1",
        [
            _link("21", "Repo", "https://github.com/a/b", "11"),
            deep,
            _link("22", "Bad", "not a url", "11"),
        ],
    )
    bar = _folder("1", "Bookmarks bar", "0", [work, _link("23", "Top", "https://example.com/", "1")])
    other = _folder("2", "Other bookmarks", "0", [])
    return [_folder("0", "", None, [bar, other])]


def _links_below(node):
    if node.children is None:
        return 1 if node.url is not None else 0
    return sum(_links_below(c) for c in node.children)


def test_counts_and_flat_list_agree():
    snap = build_snapshot(_tree())
    assert snap.total_bookmarks == 4
    assert snap.total_bookmarks == len(snap.flat_bookmarks)
    assert snap.total_folders == len(snap.folder_index) == 4
    assert "0" not in snap.folder_index


def test_folder_bookmark_count_covers_whole_subtree():
    tree = _tree()
    snap = build_snapshot(tree)
    assert snap.folder_index["1"].bookmark_count == 4
    assert snap.folder_index["11"].bookmark_count == 3
    assert snap.folder_index["12"].bookmark_count == 1
    assert snap.folder_index["2"].bookmark_count == 0

    def walk(node):
        if node.children is None:
            return
        if node.id in snap.folder_index:
            assert snap.folder_index[node.id].bookmark_count == _links_below(node)
        for c in node.children:
            walk(c)

    for top in tree:
        walk(top)


def test_paths_are_title_chains_from_the_roots():
    snap = build_snapshot(_tree())
    assert snap.folder_index["1"].path == "Bookmarks bar"
    assert snap.folder_index["12"].path == "Bookmarks bar/Work/Deep"
    by_id = {b.id: b for b in snap.flat_bookmarks}
    assert by_id["20"].path == "Bookmarks bar/Work/Deep/Py"
    assert by_id["23"].path == "Bookmarks bar/Top"
    assert by_id["20"].domain == "python.org"
    assert by_id["20"].parent_id == "12"


def test_malformed_url_degrades_to_unknown_domain():
    snap = build_snapshot(_tree())
    bad = [b for b in snap.flat_bookmarks if b.id == "22"][0]
    assert bad.domain == "unknown"


def test_tags_can_be_disabled():
    snap = build_snapshot(_tree(), with_tags=False)
    assert all(b.tags == [] for b in snap.flat_bookmarks)
    tagged = build_snapshot(_tree())
    repo = [b for b in tagged.flat_bookmarks if b.id == "21"][0]
    assert repo.tags[:2] == ["github.com", "dev"]


def test_childless_top_level_containers_are_skipped():
    empty_top = StoreNode(id="0", title="", children=None)
    snap = build_snapshot([empty_top, _folder("9", "", None, [])])
    assert snap.total_folders == 0
    assert snap.total_bookmarks == 0


def test_snapshot_dict_round_trip_keeps_counts():
    snap = build_snapshot(_tree())
    data = snap.to_dict()
    assert set(data) == {"tree", "totalBookmarks", "totalFolders", "flatBookmarks", "folderMap"}
    again = type(snap).from_dict(data)
    assert again.total_bookmarks == snap.total_bookmarks
    assert again.folder_index["11"].bookmark_count == 3
    assert again.tree[0].children[0].children[0].title == "Work"


def test_count_links_on_a_link_and_an_empty_folder():
    assert count_links(_link("1", "x", "https://x.example/", "0")) == 1
    assert count_links(_folder("2", "f", "0", [])) == 0
