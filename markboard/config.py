from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml

_ENV_PREFIX = "MARKBOARD_"


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_map(name: str, default: Dict[str, str]) -> Dict[str, str]:
    """Parse ``"1=1,2=2"`` style mappings; malformed pairs are ignored."""
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return dict(default)
    out: Dict[str, str] = {}
    for pair in v.split(","):
        key, sep, value = pair.partition("=")
        if not sep or not key.strip() or not value.strip():
            continue
        out[key.strip()] = value.strip()
    return out or dict(default)


@dataclass
class Settings:
    # Storage
    store_path: str = "bookmarks.sqlite"
    state_path: str = "markboard-state.sqlite"
    persist_snapshot: bool = True

    # Root containers
    primary_root_id: str = "1"
    secondary_root_id: str = "2"
    primary_root_title: str = "Bookmarks bar"
    secondary_root_title: str = "Other bookmarks"

    # Import: bundle root sentinel -> live root id. Empty means "1"/"2" -> primary/secondary.
    import_root_map: Dict[str, str] = field(default_factory=dict)

    # Cache
    auto_tags: bool = True

    # Logging / UX
    log_level: str = "INFO"
    no_color: bool = False
    log_file: Optional[str] = None

    def root_map(self) -> Dict[str, str]:
        if self.import_root_map:
            return {str(k): str(v) for k, v in self.import_root_map.items()}
        return {"1": self.primary_root_id, "2": self.secondary_root_id}

    @staticmethod
    def from_env() -> "Settings":
        s = Settings()
        p = _ENV_PREFIX
        s.store_path = _env_str(p + "STORE_PATH", s.store_path)
        s.state_path = _env_str(p + "STATE_PATH", s.state_path)
        s.persist_snapshot = _env_bool(p + "PERSIST_SNAPSHOT", s.persist_snapshot)

        s.primary_root_id = _env_str(p + "PRIMARY_ROOT_ID", s.primary_root_id)
        s.secondary_root_id = _env_str(p + "SECONDARY_ROOT_ID", s.secondary_root_id)
        s.primary_root_title = _env_str(p + "PRIMARY_ROOT_TITLE", s.primary_root_title)
        s.secondary_root_title = _env_str(p + "SECONDARY_ROOT_TITLE", s.secondary_root_title)
        s.import_root_map = _env_map(p + "IMPORT_ROOT_MAP", s.import_root_map)

        s.auto_tags = _env_bool(p + "AUTO_TAGS", s.auto_tags)

        s.log_level = _env_str(p + "LOG_LEVEL", s.log_level)
        s.no_color = _env_bool(p + "NO_COLOR", s.no_color)
        log_file = _env_str(p + "LOG_FILE", "")
        s.log_file = log_file or None
        return s

    @staticmethod
    def from_file(path: Path) -> "Settings":
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        s = Settings.from_env()
        for k, v in data.items():
            if hasattr(s, k):
                setattr(s, k, v)
        return s


def load_settings(config_path: Optional[str]) -> Settings:
    if config_path:
        return Settings.from_file(Path(config_path))
    return Settings.from_env()
