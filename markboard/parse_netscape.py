from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional

from bs4 import BeautifulSoup  # type: ignore

from .errors import ValidationError
from .log import get_logger
from .model import BundlePath, ImportBundle, ImportFolder, ImportLink

log = get_logger(__name__)
_WS_RE = re.compile(r"\s+")


def bundle_from_netscape_html(path: Path, *, default_root: str = "2", toolbar_root: str = "1") -> ImportBundle:
    """Turn a browser bookmark export into an import bundle.

    The folder flagged ``PERSONAL_TOOLBAR_FOLDER`` is poured into
    ``toolbar_root``; every other top-level entry goes under ``default_root``.
    """
    text = path.read_text(encoding="utf-8", errors="replace")
    soup = BeautifulSoup(text, "lxml")

    dl = soup.find("dl")
    if dl is None:
        raise ValidationError("Could not find <DL> root in bookmarks file")

    links: List[ImportLink] = []
    toolbar_entries: List[ImportFolder] = []
    default_path = BundlePath(default_root)
    default_children: List[ImportFolder] = []

    for dt in dl.find_all("dt", recursive=False):
        h3 = dt.find("h3", recursive=False)
        if h3 is not None and (h3.get("personal_toolbar_folder") or "").lower() == "true":
            sub_dl = _folder_dl(dt)
            if sub_dl is None:
                continue
            toolbar_path = BundlePath(toolbar_root)
            toolbar_entries.append(
                ImportFolder(
                    title=_clean(h3.get_text(strip=True)),
                    path=str(toolbar_path),
                    children=_walk_dl(sub_dl, toolbar_path, links),
                )
            )
            continue
        folder = _entry(dt, default_path, links)
        if folder is not None:
            default_children.append(folder)

    folders = toolbar_entries + [ImportFolder(title="", path=str(default_path), children=default_children)]
    log.info("Parsed %d bookmark(s) in %d top-level folder(s) from %s", len(links), len(folders), path)
    return ImportBundle(folder_tree=folders, all_links=links)


def _walk_dl(dl, path: BundlePath, links: List[ImportLink]) -> List[ImportFolder]:
    out: List[ImportFolder] = []
    for dt in dl.find_all("dt", recursive=False):
        folder = _entry(dt, path, links)
        if folder is not None:
            out.append(folder)
    return out


def _entry(dt, path: BundlePath, links: List[ImportLink]) -> Optional[ImportFolder]:
    """Record a link entry, or return the folder entry for a sub-folder."""
    h3 = dt.find("h3", recursive=False)
    if h3 is not None:
        name = _clean(h3.get_text(strip=True))
        sub_dl = _folder_dl(dt)
        if sub_dl is None:
            return None
        folder_path = path.child(name)
        return ImportFolder(title=name, path=str(folder_path), children=_walk_dl(sub_dl, folder_path, links))

    a = dt.find("a", recursive=False)
    if a is not None and a.get("href"):
        links.append(ImportLink(title=_clean(a.get_text(strip=True)), url=a.get("href"), path=str(path)))
    return None


def _folder_dl(dt):
    # Only the element right after the <DT>; a later <DL> belongs to another folder.
    sub_dl = dt.find_next_sibling()
    if sub_dl is None or sub_dl.name != "dl":
        sub_dl = dt.find("dl", recursive=False)
    if sub_dl is None:
        h3 = dt.find("h3", recursive=False)
        log.warning("Folder without DL: %s", h3.get_text(strip=True) if h3 is not None else "?")
    return sub_dl


def _clean(text: str) -> str:
    return _WS_RE.sub(" ", text or "")
