"""Content-addressed names for combined and minified asset files."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import threading
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

from .config import DEFAULT_MIN_DIR, site_path_url
from .models import AssetKind, HashEntry

logger = logging.getLogger("html_optimizer")

SHORT_HASH_LENGTH = 5
_KEY_PATTERN = re.compile(r"\w+\.(css|js)")


class HashStore(Protocol):
    """Key-value store mapping `<hash>.<ext>` to an ordered source list."""

    def get(self, key: str) -> Optional[List[str]]: ...

    def put(self, key: str, sources: List[str]) -> None: ...

    def put_if_absent(self, key: str, sources: List[str]) -> Optional[List[str]]:
        """Store sources unless the key exists; return the existing value if it does."""
        ...


class MemoryHashStore:
    """Process-local store, guarded by a lock for concurrent requests."""

    def __init__(self) -> None:
        self._data: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[List[str]]:
        with self._lock:
            value = self._data.get(key)
            return list(value) if value is not None else None

    def put(self, key: str, sources: List[str]) -> None:
        with self._lock:
            self._data[key] = list(sources)

    def put_if_absent(self, key: str, sources: List[str]) -> Optional[List[str]]:
        with self._lock:
            existing = self._data.get(key)
            if existing is not None:
                return list(existing)
            self._data[key] = list(sources)
            return None


class FileHashStore:
    """One JSON file per key; exclusive create makes check-then-set atomic."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.fullmatch(key):
            raise ValueError(f"Invalid hash store key: {key!r}")
        return self.root / f"{key}.json"

    def get(self, key: str) -> Optional[List[str]]:
        path = self._path(key)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except json.JSONDecodeError:
            logger.warning("Corrupt hash store entry %s", path)
            return None
        return [str(item) for item in data]

    def put(self, key: str, sources: List[str]) -> None:
        path = self._path(key)
        tmp_path = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        tmp_path.write_text(json.dumps(list(sources)), encoding="utf-8")
        os.replace(tmp_path, path)

    def put_if_absent(self, key: str, sources: List[str]) -> Optional[List[str]]:
        path = self._path(key)
        try:
            with open(path, "x", encoding="utf-8") as handle:
                handle.write(json.dumps(list(sources)))
        except FileExistsError:
            return self.get(key)
        return None


def hash_entry(sources: Sequence[str]) -> HashEntry:
    """Hash the canonical JSON form of an ordered source list."""
    ordered = [str(src) for src in sources]
    canonical = json.dumps(ordered, separators=(",", ":"), ensure_ascii=False)
    full_hash = hashlib.md5(canonical.encode("utf-8")).hexdigest()
    return HashEntry(
        short_hash=full_hash[-SHORT_HASH_LENGTH:],
        full_hash=full_hash,
        sources=ordered,
    )


class HashRegistry:
    """Resolve ordered source lists to stable `/min/<hash>.<ext>` URLs."""

    def __init__(self, store: HashStore, site_url: str, min_dir: str = DEFAULT_MIN_DIR) -> None:
        self.store = store
        self.site_url = site_url
        self.min_dir = min_dir.rstrip("/")

    def resolve_name(self, sources: Sequence[str], kind: AssetKind) -> str:
        """Return the file name (without extension) serving these sources."""
        if not sources:
            raise ValueError("Cannot build a hash for an empty source list")
        entry = hash_entry(sources)
        ext = kind.value

        existing = self.store.put_if_absent(f"{entry.short_hash}.{ext}", entry.sources)
        if existing is None or existing == entry.sources:
            return entry.short_hash

        logger.info(
            "Short hash %s.%s already maps to other sources; using %s",
            entry.short_hash,
            ext,
            entry.full_hash,
        )
        self.store.put(f"{entry.full_hash}.{ext}", entry.sources)
        return entry.full_hash

    def url_for(self, name: str, kind: AssetKind) -> str:
        return site_path_url(self.site_url, f"{self.min_dir}/{name}.{kind.value}")

    def resolve(self, sources: Sequence[str], kind: AssetKind) -> str:
        return self.url_for(self.resolve_name(sources, kind), kind)

    def sources_for(self, filename: str) -> Optional[List[str]]:
        """Look up the sources behind a served file name such as `ab12c.css`."""
        if not _KEY_PATTERN.fullmatch(filename):
            return None
        return self.store.get(filename)
