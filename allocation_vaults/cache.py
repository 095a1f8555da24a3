"""JSON snapshot store for chain reads, kept between runs."""

import hashlib
import json
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Any

from allocation_vaults.constants import CACHE_DIR_NAME, CACHE_VERSION

logger = logging.getLogger(__name__)


def default_cache_root() -> Path:
    """$XDG_CACHE_HOME/<CACHE_DIR_NAME>, falling back to ~/.cache."""
    base = os.getenv("XDG_CACHE_HOME") or Path.home() / ".cache"
    return Path(base) / CACHE_DIR_NAME


class SnapshotStore:
    """
    One JSON document per entry, named by a digest of what was read and where.

    Entries are pinned to a block, so they never go stale; bumping CACHE_VERSION
    orphans all of them. A missing or unparseable entry reads as a miss.
    """

    def __init__(self, root: Path | None = None) -> None:
        self.root = root or default_cache_root()

    @staticmethod
    def key(kind: str, *parts: Any) -> str:
        raw = ":".join([kind, CACHE_VERSION, *(str(p) for p in parts)])
        return hashlib.sha256(raw.encode()).hexdigest()

    def path(self, key: str) -> Path:
        return self.root / f"{key}.json"

    def entries(self) -> list[Path]:
        if not self.root.is_dir():
            return []
        return sorted(self.root.glob("*.json"))

    def load(self, key: str) -> Any | None:
        path = self.path(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return json.loads(text)
        except ValueError as ex:
            # rewritten by the next store()
            logger.debug("snapshot %s unreadable, treating as a miss: %s", path.name, ex)
            return None

    def store(self, key: str, data: Any) -> None:
        path = self.path(key)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, separators=(",", ":")), encoding="utf-8")
        except OSError as ex:
            logger.warning("snapshot %s not cached: %s", path, ex)

    def clear(self) -> int:
        """Delete the store directory. Returns how many entries it held."""
        count = len(self.entries())
        if self.root.exists():
            shutil.rmtree(self.root)
        return count


def clear_cache() -> None:
    """Empty the default snapshot store and say what happened on stderr."""
    store = SnapshotStore()
    removed = store.clear()
    if removed:
        print(f"✅ Cleared {removed} cached snapshot(s) from {store.root}", file=sys.stderr)
    else:
        print(f"ℹ️  No cached snapshots in {store.root}", file=sys.stderr)
