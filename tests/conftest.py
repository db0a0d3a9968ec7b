import sys
from pathlib import Path

import pytest

# Allow `import markboard` without installing the package.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from markboard.store_sqlite import SqliteBookmarkStore, init_store  # noqa: E402


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    path = tmp_path / "bookmarks.sqlite"
    init_store(path)
    return path


@pytest.fixture
def store(store_path: Path):
    """A store holding only the two empty roots "1" and "2"."""
    with SqliteBookmarkStore(store_path) as s:
        yield s
