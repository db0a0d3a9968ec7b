from __future__ import annotations

from typing import Dict, List, Mapping

from .log import get_logger
from .model import BundlePath, ImportBundle, ImportFolder, ImportLink, StoreNode

log = get_logger(__name__)


def export_bundle(store, root_map: Mapping[str, str]) -> ImportBundle:
    """Describe the current contents of the mapped roots as an import bundle.

    Each root becomes a root-only folder entry (path ``"<sentinel>"``) so that
    links stored directly in a root resolve back to it on re-import.
    """
    sentinel_by_root: Dict[str, str] = {}
    for sentinel, root_id in root_map.items():
        sentinel_by_root.setdefault(str(root_id), str(sentinel))

    folders: List[ImportFolder] = []
    links: List[ImportLink] = []
    for root_id, sentinel in sentinel_by_root.items():
        root = store.get(root_id)
        folders.append(_export_folder(root, BundlePath(sentinel), links))

    log.info("Exported %d bookmark(s) from %d root(s)", len(links), len(folders))
    return ImportBundle(folder_tree=folders, all_links=links)


def _export_folder(node: StoreNode, path: BundlePath, links: List[ImportLink]) -> ImportFolder:
    children: List[ImportFolder] = []
    for child in node.children or []:
        if child.is_folder:
            if "/" in child.title:
                log.warning("Folder title %r contains '/'; its path will not round-trip", child.title)
            children.append(_export_folder(child, path.child(child.title), links))
        elif child.is_link:
            links.append(ImportLink(title=child.title, url=child.url, path=str(path)))
    return ImportFolder(title=node.title, path=str(path), children=children)
