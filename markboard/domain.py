from __future__ import annotations

from typing import Dict, List
from urllib.parse import urlparse

import tldextract  # type: ignore

from .log import get_logger

log = get_logger(__name__)

UNKNOWN_DOMAIN = "unknown"

# Bundled public-suffix snapshot only; never reach out to the network.
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())

CATEGORY_TAGS: Dict[str, List[str]] = {
    "github.com": ["dev", "code", "git"],
    "stackoverflow.com": ["dev", "q&a", "programming"],
    "youtube.com": ["video", "entertainment"],
    "bilibili.com": ["video", "entertainment", "learning"],
    "zhihu.com": ["knowledge", "q&a", "social"],
    "baidu.com": ["search", "tools"],
    "google.com": ["search", "tools"],
    "figma.com": ["design", "tools"],
    "notion.so": ["notes", "tools", "collaboration"],
}

PATH_TAGS = (
    ("/docs", "docs"),
    ("/blog", "blog"),
    ("/tutorial", "tutorial"),
    ("/api", "api"),
)


# Schemes whose URLs carry no network location.
_OPAQUE_SCHEMES = {"about", "chrome", "data", "file", "javascript", "mailto", "place"}


def is_acceptable_url(url: str) -> bool:
    """Absolute URL with a scheme and either a host or an opaque-scheme body."""
    if not url or url != url.strip() or any(ch.isspace() for ch in url):
        return False
    try:
        p = urlparse(url)
    except ValueError:
        return False
    scheme = (p.scheme or "").lower()
    if not scheme or not scheme[0].isalpha():
        return False
    if scheme in _OPAQUE_SCHEMES:
        return bool(p.path or p.netloc)
    try:
        return bool(p.hostname)
    except ValueError:
        return False


def extract_domain(url: str) -> str:
    """Hostname without a leading ``www.``; ``"unknown"`` when there is none."""
    if not isinstance(url, str) or not is_acceptable_url(url):
        return UNKNOWN_DOMAIN
    try:
        host = urlparse(url).hostname
    except (TypeError, ValueError):
        return UNKNOWN_DOMAIN
    if not host:
        return UNKNOWN_DOMAIN
    if host.startswith("www."):
        host = host[4:]
    return host or UNKNOWN_DOMAIN


def registered_domain(url: str) -> str:
    ext = _EXTRACT(url)
    if ext.domain and ext.suffix:
        return f"{ext.domain}.{ext.suffix}"
    return ""


def auto_tags(url: str) -> List[str]:
    try:
        domain = extract_domain(url)
        tags = [domain]
        tags.extend(CATEGORY_TAGS.get(domain) or CATEGORY_TAGS.get(registered_domain(url), []))
        for needle, tag in PATH_TAGS:
            if needle in url:
                tags.append(tag)
    except Exception as e:
        log.warning("Failed to generate tags for %s: %s", url, e)
        return []
    return list(dict.fromkeys(tags))
