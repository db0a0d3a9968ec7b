"""Derive a :class:`CacheSnapshot` from a raw store tree.

The builder walks the direct children of every top-level container, giving
each node a ``/``-joined path of ancestor titles. Folders get an index entry
whose ``bookmark_count`` comes from a separate walk of that folder's subtree
once its children are done. That second walk makes the build
O(depth * n) rather than O(n); it is kept because every count is then
obviously correct for the tree as read.
"""

from __future__ import annotations

from typing import List

from .domain import auto_tags, extract_domain
from .log import get_logger
from .model import CacheSnapshot, FlatLink, FolderInfo, StoreNode

log = get_logger(__name__)


def build_snapshot(tree: List[StoreNode], *, with_tags: bool = True) -> CacheSnapshot:
    result = CacheSnapshot(tree=tree)

    def visit(node: StoreNode, parent_path: str) -> None:
        current_path = f"{parent_path}/{node.title}" if parent_path else node.title

        if node.is_folder:
            result.total_folders += 1
            result.folder_index[node.id] = FolderInfo(
                id=node.id,
                title=node.title,
                path=current_path,
                parent_id=node.parent_id,
                date_added=node.date_added,
            )
            for child in node.children or []:
                visit(child, current_path)
            result.folder_index[node.id].bookmark_count = count_links(node)
        elif node.is_link:
            result.total_bookmarks += 1
            url = node.url or ""
            result.flat_bookmarks.append(
                FlatLink(
                    id=node.id,
                    title=node.title,
                    url=url,
                    parent_id=node.parent_id,
                    date_added=node.date_added,
                    domain=extract_domain(url),
                    path=current_path,
                    tags=auto_tags(url) if with_tags else [],
                )
            )

    for top in tree:
        # Empty or childless containers are not counted.
        for child in top.children or []:
            visit(child, "")

    log.debug("Built snapshot: %d bookmarks in %d folders", result.total_bookmarks, result.total_folders)
    return result


def count_links(node: StoreNode) -> int:
    """Number of links anywhere below ``node``."""
    if node.is_folder:
        return sum(count_links(child) for child in node.children or [])
    return 1 if node.is_link else 0
