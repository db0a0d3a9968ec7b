"""Replace the contents of the two root containers with an import bundle.

The run is strictly sequential: read the roots, count the links about to go,
wipe both roots, rebuild folders parent-before-child, then create links, then
rebuild the cache. Nothing is staged, so a failure between the wipe and the
rebuild leaves the roots partially empty.

Folder identity within one run is a :class:`BundlePath` -> live id map.
Folder entries are validated one node at a time. A malformed or failed folder
is skipped with its descendants, which are never attached; links pointing at
them land in the fallback root. Link failures are collected per link in
``ImportResult.errors``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from .errors import MarkboardError, StoreError, ValidationError
from .log import get_logger
from .model import BundlePath, ImportBundle, ImportFolder, ImportLink, ImportResult, StoreNode
from .snapshot import count_links

log = get_logger(__name__)

UNTITLED = "untitled"


def parse_bundle(raw: Any) -> ImportBundle:
    if isinstance(raw, ImportBundle):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError("import bundle must be an object with folderTree and allLinks arrays")
    try:
        return ImportBundle.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"import bundle needs folderTree and allLinks arrays ({e.error_count()} problem(s))") from e


def reconcile_bundle(
    store,
    bundle: Any,
    *,
    root_map: Mapping[str, str],
    fallback_root_id: Optional[str] = None,
    refresh: Optional[Callable[[], Any]] = None,
) -> ImportResult:
    """Wipe both roots and rebuild them from ``bundle``.

    ``root_map`` maps a bundle root sentinel (the first path segment) to a live
    root id. Folders with an unmapped sentinel, and links whose path matches no
    imported folder, go to ``fallback_root_id`` (default: the root mapped from
    ``"2"``).
    """
    parsed = parse_bundle(bundle)
    fallback = fallback_root_id or root_map.get("2")
    if not fallback:
        raise ValidationError("no fallback root: pass fallback_root_id or map sentinel '2'")

    run = _ImportRun(store=store, root_map=dict(root_map), fallback_root_id=fallback)
    run.check_roots()
    run.count_existing()
    run.wipe()
    run.create_folders(parsed.folder_tree)
    run.create_links(parsed.all_links)

    if refresh is not None:
        try:
            refresh()
        except MarkboardError as e:
            log.error("Cache rebuild after import failed: %s", e)

    log.info(
        "Import finished: created=%d deleted=%d folders=%d skipped=%d errors=%d",
        run.result.created_count,
        run.result.deleted_count,
        run.folders_created,
        run.links_skipped,
        len(run.result.errors),
    )
    return run.result


@dataclass
class _ImportRun:
    store: Any
    root_map: Dict[str, str]
    fallback_root_id: str
    result: ImportResult = field(default_factory=ImportResult)
    path_keys: Dict[BundlePath, str] = field(default_factory=dict)
    folders_created: int = 0
    links_skipped: int = 0

    def root_ids(self) -> List[str]:
        return list(dict.fromkeys(list(self.root_map.values()) + [self.fallback_root_id]))

    def check_roots(self) -> None:
        for rid in self.root_ids():
            try:
                node = self.store.get(rid)
            except MarkboardError as e:
                raise StoreError(f"cannot read root container {rid}: {e}") from e
            if not node.is_folder:
                raise StoreError(f"root container {rid} is not a folder")

    def count_existing(self) -> None:
        try:
            tree = self.store.get_tree()
        except MarkboardError as e:
            raise StoreError(f"cannot read bookmark tree: {e}") from e
        self.result.deleted_count = sum(count_links(n) for n in tree)
        log.info("Import phase pre-count: %d existing bookmarks", self.result.deleted_count)

    def wipe(self) -> None:
        for rid in self.root_ids():
            children = self.store.get_children(rid)
            for child in children:
                try:
                    if child.is_folder:
                        self.store.remove_tree(child.id)
                    else:
                        self.store.remove(child.id)
                except MarkboardError as e:
                    log.warning("Failed to remove %r from root %s: %s", child.title, rid, e)
                    self.result.errors.append(f"Failed to remove {child.title!r}: {e}")
            log.info("Import phase wipe: cleared %d item(s) from root %s", len(children), rid)

    def create_folders(self, folders: List[Any]) -> None:
        for raw in folders:
            self.materialize(raw, None)
        log.info("Import phase folders: %d created, %d path(s) resolved", self.folders_created, len(self.path_keys))

    def target_root(self, path: BundlePath) -> str:
        return self.root_map.get(path.root, self.fallback_root_id)

    def materialize(self, raw: Any, root_id: Optional[str]) -> None:
        """Resolve one folder entry, then its children.

        A node that is malformed or fails to resolve is skipped together with
        its descendants; its earlier siblings and its parent stay in place.
        """
        try:
            folder = ImportFolder.model_validate(raw)
        except PydanticValidationError as e:
            log.warning("Skipping malformed folder entry: %d problem(s)", e.error_count())
            return
        path = BundlePath.parse(folder.path)
        if root_id is None:
            root_id = self.target_root(path)
        try:
            self.resolve(path, root_id, folder.title or "")
        except MarkboardError as e:
            log.warning("Failed to create folder %r (%s): %s", folder.title, folder.path, e)
            return
        # Children only after the parent id is known.
        for child in folder.children:
            self.materialize(child, root_id)

    def resolve(self, path: BundlePath, root_id: str, title: str) -> str:
        if path.is_root:
            self.path_keys.setdefault(path, root_id)
            return root_id

        parent = root_id
        prefixes = path.prefixes()
        for i, key in enumerate(prefixes):
            known = self.path_keys.get(key)
            if known is not None:
                parent = known
                continue
            name = key.titles[-1]
            if i == len(prefixes) - 1 and title:
                name = title
            existing = self.find_child_folder(parent, name)
            if existing is not None:
                parent = existing.id
            else:
                parent = self.store.create(parent, name).id
                self.folders_created += 1
            self.path_keys[key] = parent
        return parent

    def find_child_folder(self, parent_id: str, title: str) -> Optional[StoreNode]:
        for child in self.store.get_children(parent_id):
            if child.is_folder and child.title == title:
                return child
        return None

    def create_links(self, links: List[Any]) -> None:
        total = len(links)
        for idx, raw in enumerate(links, start=1):
            try:
                link = ImportLink.model_validate(raw)
            except PydanticValidationError as e:
                self.fail_link(f"Link #{idx}: malformed entry ({e.error_count()} problem(s))")
                continue
            if not link.url:
                self.fail_link(f"Link #{idx} {link.title!r}: missing URL")
                continue

            target = self.fallback_root_id
            if link.path is not None:
                target = self.path_keys.get(BundlePath.parse(link.path), self.fallback_root_id)
            try:
                if any(c.url == link.url for c in self.store.get_children(target)):
                    self.links_skipped += 1
                    continue
                self.store.create(target, link.title or UNTITLED, link.url)
                self.result.created_count += 1
            except MarkboardError as e:
                self.fail_link(f"Failed to create bookmark {link.title!r} ({link.url}): {e}")
            if idx % 500 == 0:
                log.info("Import phase links: %d/%d processed", idx, total)

    def fail_link(self, message: str) -> None:
        log.warning(message)
        self.result.errors.append(message)
