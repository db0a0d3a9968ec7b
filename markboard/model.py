from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


@dataclass
class StoreNode:
    """A folder or link as handed out by the bookmark store.

    A node is a folder when ``children`` is a list (possibly empty) and a link
    when ``url`` is set.
    """

    id: str
    title: str
    parent_id: Optional[str] = None
    date_added: Optional[int] = None
    url: Optional[str] = None
    children: Optional[List["StoreNode"]] = None

    @property
    def is_folder(self) -> bool:
        return self.children is not None

    @property
    def is_link(self) -> bool:
        return self.url is not None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "parentId": self.parent_id,
            "dateAdded": self.date_added,
        }
        if self.url is not None:
            out["url"] = self.url
        if self.children is not None:
            out["children"] = [c.to_dict() for c in self.children]
        return out

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "StoreNode":
        children = data.get("children")
        return StoreNode(
            id=str(data.get("id", "")),
            title=data.get("title") or "",
            parent_id=data.get("parentId"),
            date_added=data.get("dateAdded"),
            url=data.get("url"),
            children=[StoreNode.from_dict(c) for c in children] if children is not None else None,
        )


@dataclass
class FolderInfo:
    id: str
    title: str
    path: str
    parent_id: Optional[str]
    date_added: Optional[int]
    bookmark_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "path": self.path,
            "parentId": self.parent_id,
            "dateAdded": self.date_added,
            "bookmarkCount": self.bookmark_count,
        }


@dataclass
class FlatLink:
    id: str
    title: str
    url: str
    parent_id: Optional[str]
    date_added: Optional[int]
    domain: str
    path: str
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "parentId": self.parent_id,
            "dateAdded": self.date_added,
            "domain": self.domain,
            "path": self.path,
            "tags": list(self.tags),
        }


@dataclass
class CacheSnapshot:
    tree: List[StoreNode] = field(default_factory=list)
    total_bookmarks: int = 0
    total_folders: int = 0
    flat_bookmarks: List[FlatLink] = field(default_factory=list)
    folder_index: Dict[str, FolderInfo] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tree": [n.to_dict() for n in self.tree],
            "totalBookmarks": self.total_bookmarks,
            "totalFolders": self.total_folders,
            "flatBookmarks": [b.to_dict() for b in self.flat_bookmarks],
            "folderMap": {k: v.to_dict() for k, v in self.folder_index.items()},
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "CacheSnapshot":
        folders = {}
        for key, f in (data.get("folderMap") or {}).items():
            folders[str(key)] = FolderInfo(
                id=str(f.get("id", key)),
                title=f.get("title") or "",
                path=f.get("path") or "",
                parent_id=f.get("parentId"),
                date_added=f.get("dateAdded"),
                bookmark_count=int(f.get("bookmarkCount") or 0),
            )
        links = [
            FlatLink(
                id=str(b.get("id", "")),
                title=b.get("title") or "",
                url=b.get("url") or "",
                parent_id=b.get("parentId"),
                date_added=b.get("dateAdded"),
                domain=b.get("domain") or "unknown",
                path=b.get("path") or "",
                tags=[str(t) for t in (b.get("tags") or [])],
            )
            for b in (data.get("flatBookmarks") or [])
        ]
        return CacheSnapshot(
            tree=[StoreNode.from_dict(n) for n in (data.get("tree") or [])],
            total_bookmarks=int(data.get("totalBookmarks") or 0),
            total_folders=int(data.get("totalFolders") or 0),
            flat_bookmarks=links,
            folder_index=folders,
        )


@dataclass(frozen=True)
class BundlePath:
    """Structured form of a bundle path like ``"1/Work/Reports"``.

    ``root`` is the root sentinel, ``titles`` the nested folder titles. Parsing
    splits on ``/`` without trimming, so two paths compare equal exactly when
    their source strings do.
    """

    root: str
    titles: Tuple[str, ...] = ()

    @staticmethod
    def parse(text: str) -> "BundlePath":
        parts = (text or "").split("/")
        return BundlePath(root=parts[0], titles=tuple(parts[1:]))

    @property
    def is_root(self) -> bool:
        return not self.titles

    def prefixes(self) -> List["BundlePath"]:
        """Cumulative paths below the root: ``1/a``, ``1/a/b``, ..."""
        return [BundlePath(self.root, self.titles[: i + 1]) for i in range(len(self.titles))]

    def child(self, title: str) -> "BundlePath":
        return BundlePath(self.root, self.titles + (title,))

    def __str__(self) -> str:
        return "/".join((self.root,) + self.titles)


class ImportFolder(BaseModel):
    """One folder entry. ``children`` stay raw so each node is checked on its own."""

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = ""
    path: str = ""
    children: List[Any] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def _text_title(cls, v: Any) -> Any:
        return _scalar_text(v)

    @field_validator("children", mode="before")
    @classmethod
    def _no_children(cls, v: Any) -> Any:
        return [] if v is None else v


class ImportLink(BaseModel):
    """One link entry. A missing or non-text ``path`` matches no folder."""

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = ""
    url: Optional[str] = None
    path: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def _text_title(cls, v: Any) -> Any:
        return _scalar_text(v)

    @field_validator("path", mode="before")
    @classmethod
    def _text_path(cls, v: Any) -> Any:
        return v if isinstance(v, str) else None


class ImportBundle(BaseModel):
    """An externally supplied bundle.

    Only the two top-level fields are checked here; elements stay raw until the
    reconciler validates them one by one.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    folder_tree: List[Any] = Field(..., alias="folderTree")
    all_links: List[Any] = Field(..., alias="allLinks")

    def to_wire(self) -> Dict[str, Any]:
        return {
            "folderTree": [_dump(f) for f in self.folder_tree],
            "allLinks": [_dump(x) for x in self.all_links],
        }


@dataclass
class ImportResult:
    created_count: int = 0
    deleted_count: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "createdCount": self.created_count,
            "deletedCount": self.deleted_count,
            "errors": list(self.errors),
        }


def _scalar_text(value: Any) -> Any:
    """Empty-ish titles become "", other numbers become text."""
    if value is None or value is False or value == 0:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _dump(item: Any) -> Any:
    if isinstance(item, ImportFolder):
        return {"title": item.title, "path": item.path, "children": [_dump(c) for c in item.children]}
    if isinstance(item, BaseModel):
        return item.model_dump()
    return item
