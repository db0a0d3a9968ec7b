from __future__ import annotations

import itertools
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .domain import is_acceptable_url
from .errors import NotFoundError, ProtectedResourceError, StoreError, TypeMismatchError
from .log import get_logger
from .model import StoreNode

log = get_logger(__name__)

TYPE_LINK = 1
TYPE_FOLDER = 2
TOP_NODE_ID = 0

EVENT_KINDS = ("created", "removed", "changed", "moved")

DEFAULT_ROOTS: Tuple[Tuple[str, str], ...] = (("1", "Bookmarks bar"), ("2", "Other bookmarks"))

_SUBTREE_SQL = """
    WITH RECURSIVE sub(id) AS (
        SELECT id FROM nodes WHERE id = ?
        UNION ALL
        SELECT n.id FROM nodes n JOIN sub ON n.parent_id = sub.id
    )
    SELECT id, parent_id, position, title, url, type, date_added
    FROM nodes WHERE id IN (SELECT id FROM sub)
    ORDER BY parent_id, position, id
"""

Callback = Callable[..., Any]
SubscriptionHandle = Tuple[str, int]


def init_store(
    db_path: Path | str,
    *,
    roots: Sequence[Tuple[str, str]] = DEFAULT_ROOTS,
) -> None:
    """Create the schema, the hidden top node and the permanent roots.

    Safe to call on an existing store: present rows are left alone.
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    now = _now_ms()
    with sqlite3.connect(path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS nodes (
                id INTEGER PRIMARY KEY,
                parent_id INTEGER,
                position INTEGER NOT NULL DEFAULT 0,
                title TEXT NOT NULL DEFAULT '',
                url TEXT,
                type INTEGER NOT NULL,
                date_added INTEGER
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_nodes_parent ON nodes(parent_id, position)")
        conn.execute(
            "INSERT OR IGNORE INTO nodes(id, parent_id, position, title, type, date_added) VALUES(?, NULL, 0, '', ?, ?)",
            (TOP_NODE_ID, TYPE_FOLDER, now),
        )
        for pos, (root_id, title) in enumerate(roots):
            conn.execute(
                "INSERT OR IGNORE INTO nodes(id, parent_id, position, title, type, date_added) VALUES(?, ?, ?, ?, ?, ?)",
                (int(root_id), TOP_NODE_ID, pos, title, TYPE_FOLDER, now),
            )


class SqliteBookmarkStore:
    """A two-root bookmark tree kept in sqlite.

    Node ids are exposed as strings. Every write commits immediately and then
    notifies subscribers of the matching event kind, in subscription order.
    """

    def __init__(self, db_path: Path | str, *, readonly: bool = False, busy_timeout_ms: int = 5000):
        self.db_path = Path(db_path)
        self.readonly = readonly
        self.busy_timeout_ms = max(0, int(busy_timeout_ms))
        self.conn: sqlite3.Connection | None = None
        self.root_ids: List[str] = []
        self._subscribers: Dict[str, Dict[int, Callback]] = {k: {} for k in EVENT_KINDS}
        self._tokens = itertools.count(1)

    def __enter__(self) -> "SqliteBookmarkStore":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        if not self.db_path.exists():
            raise StoreError(f"bookmark store not found: {self.db_path} (run `markboard init`)")
        mode = "ro" if self.readonly else "rw"
        uri = f"file:{self.db_path.as_posix()}?mode={mode}"
        timeout_s = max(0.1, self.busy_timeout_ms / 1000.0)
        try:
            self.conn = sqlite3.connect(uri, uri=True, timeout=timeout_s)
        except sqlite3.Error as e:
            raise StoreError(f"cannot open bookmark store {self.db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        rows = self._cursor().execute(
            "SELECT id FROM nodes WHERE parent_id = ? AND type = ? ORDER BY position, id",
            (TOP_NODE_ID, TYPE_FOLDER),
        ).fetchall()
        self.root_ids = [str(r["id"]) for r in rows]

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    # -- notifications -------------------------------------------------

    def subscribe(self, kind: str, callback: Callback) -> SubscriptionHandle:
        if kind not in self._subscribers:
            raise ValueError(f"unknown event kind: {kind}")
        token = next(self._tokens)
        self._subscribers[kind][token] = callback
        return kind, token

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        kind, token = handle
        self._subscribers.get(kind, {}).pop(token, None)

    def _notify(self, kind: str, node_id: str, info: Any) -> None:
        for cb in list(self._subscribers[kind].values()):
            try:
                cb(node_id, info)
            except Exception:
                log.exception("Subscriber for %s(%s) failed", kind, node_id)

    # -- reads ---------------------------------------------------------

    def get_tree(self) -> List[StoreNode]:
        return [self._load_subtree(TOP_NODE_ID)]

    def get(self, node_id: str) -> StoreNode:
        return self._load_subtree(self._parse_id(node_id))

    def get_children(self, node_id: str) -> List[StoreNode]:
        node = self.get(node_id)
        if not node.is_folder:
            raise TypeMismatchError(f"id is not a folder: {node_id}")
        return list(node.children or [])

    # -- writes --------------------------------------------------------

    def create(self, parent_id: str, title: str, url: Optional[str] = None) -> StoreNode:
        self._assert_writable()
        pid = self._parse_id(parent_id)
        self._require_folder(pid)
        if pid == TOP_NODE_ID:
            raise ProtectedResourceError("cannot create nodes next to the root containers")
        title = title or ""
        if url is None:
            if not title.strip():
                raise StoreError("folder title cannot be empty")
            btype = TYPE_FOLDER
        else:
            if not is_acceptable_url(url):
                raise StoreError(f"invalid URL: {url!r}")
            btype = TYPE_LINK

        c = self._cursor()
        try:
            c.execute(
                "INSERT INTO nodes(parent_id, position, title, url, type, date_added) VALUES(?, ?, ?, ?, ?, ?)",
                (pid, self._next_position(pid), title, url, btype, _now_ms()),
            )
            new_id = int(c.lastrowid)
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(f"create under {parent_id} failed: {e}") from e

        node = self._load_subtree(new_id)
        self._notify("created", node.id, node)
        return node

    def remove(self, node_id: str) -> None:
        self._assert_writable()
        nid = self._parse_id(node_id)
        self._require_not_root(nid)
        node = self._load_subtree(nid)
        if node.children:
            raise StoreError(f"folder is not empty: {node_id}")
        self._delete_ids([nid])
        self._notify("removed", node.id, {"parentId": node.parent_id, "node": node})

    def remove_tree(self, node_id: str) -> None:
        self._assert_writable()
        nid = self._parse_id(node_id)
        self._require_not_root(nid)
        node = self._load_subtree(nid)
        self._delete_ids(_subtree_ids(node))
        self._notify("removed", node.id, {"parentId": node.parent_id, "node": node})

    def move(self, node_id: str, parent_id: str) -> StoreNode:
        self._assert_writable()
        nid = self._parse_id(node_id)
        pid = self._parse_id(parent_id)
        self._require_not_root(nid)
        self._require_folder(pid)
        if pid == TOP_NODE_ID:
            raise ProtectedResourceError("cannot move nodes next to the root containers")
        node = self._load_subtree(nid)
        if pid in {int(x) for x in _subtree_ids(node)}:
            raise StoreError("cannot move folder into itself/descendant")
        old_parent = node.parent_id
        c = self._cursor()
        try:
            c.execute(
                "UPDATE nodes SET parent_id = ?, position = ? WHERE id = ?",
                (pid, self._next_position(pid), nid),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(f"move {node_id} -> {parent_id} failed: {e}") from e
        moved = self._load_subtree(nid)
        self._notify("moved", moved.id, {"parentId": moved.parent_id, "oldParentId": old_parent})
        return moved

    def update(self, node_id: str, title: str) -> StoreNode:
        self._assert_writable()
        nid = self._parse_id(node_id)
        self._require_not_root(nid)
        node = self._load_subtree(nid)
        if node.is_folder and not (title or "").strip():
            raise StoreError("folder title cannot be empty")
        c = self._cursor()
        try:
            c.execute("UPDATE nodes SET title = ? WHERE id = ?", (title or "", nid))
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(f"update {node_id} failed: {e}") from e
        self._notify("changed", node.id, {"title": title or ""})
        return self._load_subtree(nid)

    # -- internals -----------------------------------------------------

    def _load_subtree(self, nid: int) -> StoreNode:
        try:
            rows = self._cursor().execute(_SUBTREE_SQL, (nid,)).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"read of node {nid} failed: {e}") from e
        if not rows:
            raise NotFoundError(f"node not found: {nid}")

        nodes: Dict[int, StoreNode] = {}
        parents: List[Tuple[int, Optional[int]]] = []
        for r in rows:
            rid = int(r["id"])
            parent = r["parent_id"]
            nodes[rid] = StoreNode(
                id=str(rid),
                title=r["title"] or "",
                parent_id=str(parent) if parent is not None else None,
                date_added=r["date_added"],
                url=r["url"] if int(r["type"]) == TYPE_LINK else None,
                children=[] if int(r["type"]) == TYPE_FOLDER else None,
            )
            parents.append((rid, int(parent) if parent is not None else None))
        # Rows are ordered by (parent, position) so children append in order.
        for rid, parent in parents:
            if rid == nid or parent not in nodes:
                continue
            siblings = nodes[parent].children
            if siblings is not None:
                siblings.append(nodes[rid])
        return nodes[nid]

    def _delete_ids(self, ids: Iterable[str]) -> None:
        c = self._cursor()
        try:
            c.executemany("DELETE FROM nodes WHERE id = ?", [(int(x),) for x in ids])
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(f"delete failed: {e}") from e

    def _next_position(self, parent_id: int) -> int:
        row = self._cursor().execute(
            "SELECT COALESCE(MAX(position), -1) AS p FROM nodes WHERE parent_id = ?",
            (parent_id,),
        ).fetchone()
        return int(row["p"]) + 1

    def _require_folder(self, nid: int) -> None:
        row = self._cursor().execute("SELECT type FROM nodes WHERE id = ?", (nid,)).fetchone()
        if not row:
            raise NotFoundError(f"folder id not found: {nid}")
        if int(row["type"]) != TYPE_FOLDER:
            raise TypeMismatchError(f"id is not a folder: {nid}")

    def _require_not_root(self, nid: int) -> None:
        if nid == TOP_NODE_ID or str(nid) in self.root_ids:
            raise ProtectedResourceError(f"root container cannot be modified: {nid}")

    def _parse_id(self, node_id: str) -> int:
        try:
            return int(str(node_id).strip())
        except ValueError:
            raise NotFoundError(f"node not found: {node_id}") from None

    def _assert_writable(self) -> None:
        if self.readonly:
            raise StoreError("bookmark store opened in readonly mode")

    def _cursor(self) -> sqlite3.Cursor:
        if self.conn is None:
            raise StoreError("bookmark store is not open")
        return self.conn.cursor()


def _subtree_ids(node: StoreNode) -> List[str]:
    out = [node.id]
    for child in node.children or []:
        out.extend(_subtree_ids(child))
    return out


def _now_ms() -> int:
    return int(time.time() * 1000)
