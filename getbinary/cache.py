"""Fingerprint cache of downloaded binaries.

The cache is one JSON document mapping a source URL to where its archive was
extracted and a fingerprint of the extracted tree::

    {
        "https://example.test/tool-1.0-linux.zip": {
            "binary_path": "/home/u/.getbinary/binaries/tool-1.0-linux",
            "content_hash": "5f0c...",
            "total_size": 1048576
        }
    }

The fingerprint only looks at entry paths and timestamps, never file contents,
so it is cheap to recompute on every run.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterator

from filelock import FileLock, Timeout

from .errors import CacheDocumentError

logger = logging.getLogger(__name__)

FINGERPRINT_DEPTH = 2
_SEPARATOR = "\n"
_O_NOATIME = getattr(os, "O_NOATIME", 0)


@dataclass(frozen=True)
class Fingerprint:
    """Structural hash of an extracted directory tree."""

    content_hash: str
    total_size: int


@dataclass(frozen=True)
class CacheEntry:
    """A previously downloaded binary."""

    url: str
    binary_path: str
    content_hash: str
    total_size: int

    @property
    def fingerprint(self) -> Fingerprint:
        """The recorded fingerprint of the installed tree."""
        return Fingerprint(self.content_hash, self.total_size)

    def to_dict(self) -> dict:
        """Row stored in the cache document, keyed by url."""
        data = asdict(self)
        del data["url"]
        return data


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8", "surrogateescape")).hexdigest()


def _read_dir(directory: str) -> list[tuple[str, bool]]:
    """Return ``(path, is_dir)`` for each child of ``directory``.

    Where the OS allows it the directory is opened with O_NOATIME, so reading
    it leaves its access time alone.
    """
    fd = None
    if _O_NOATIME:
        try:
            fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY | _O_NOATIME)
        except PermissionError:
            # Only the owner may ask for O_NOATIME.
            fd = None
    if fd is None:
        with os.scandir(directory) as it:
            return [(entry.path, entry.is_dir(follow_symlinks=False)) for entry in it]
    try:
        with os.scandir(fd) as it:
            return [
                (os.path.join(directory, entry.name), entry.is_dir(follow_symlinks=False))
                for entry in it
            ]
    finally:
        os.close(fd)


def _list_entries(root: Path, depth: int = FINGERPRINT_DEPTH) -> list[str]:
    """List paths under ``root`` down to ``depth`` levels, dotfiles included."""
    entries: list[str] = []
    pending = [(str(root), 1)]
    while pending:
        directory, level = pending.pop()
        for path, is_dir in _read_dir(directory):
            entries.append(path)
            if level < depth and is_dir:
                pending.append((path, level + 1))
    return sorted(entries)


def fingerprint(root: Path) -> Fingerprint | None:
    """Compute the fingerprint of the tree at ``root``.

    Returns None when ``root`` does not exist. Listing leaves access times
    alone where O_NOATIME is available; elsewhere every directory is listed
    before any entry is stat'ed, so a bump caused by the listing is already
    in place when it gets hashed.
    """
    root = Path(root)
    if not root.exists():
        return None
    if not root.is_dir():
        paths = [str(root)]
    else:
        paths = _list_entries(root)

    times: list[str] = []
    total_size = 0
    for path in paths:
        st = os.stat(path, follow_symlinks=False)
        times.append(f"{st.st_atime_ns},{st.st_mtime_ns},{st.st_ctime_ns}")
        if os.path.isfile(path) and not os.path.islink(path):
            total_size += st.st_size

    hash_a = _sha256(_SEPARATOR.join(paths))
    hash_b = _sha256(_SEPARATOR.join(times))
    return Fingerprint(_sha256(f"{hash_a} & {hash_b}"), total_size)


class FingerprintCache:
    """Persistent ``url -> CacheEntry`` map backed by one JSON file.

    Every write is a whole-document read-modify-write. Writers are serialized
    within the process by a lock and across processes by a file lock next to
    the document.
    """

    def __init__(self, cache_file: Path, lock_timeout: float = 30) -> None:
        """Use the document at ``cache_file``; the lock file sits next to it."""
        self.cache_file = Path(cache_file)
        self.lock_path = self.cache_file.with_name(self.cache_file.name + ".lock")
        self.lock_timeout = lock_timeout
        self._write_lock = threading.Lock()

    def _load(self) -> dict[str, dict]:
        if not self.cache_file.exists():
            return {}
        try:
            with open(self.cache_file, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            msg = f"Cannot read cache document {self.cache_file}: {e}"
            raise CacheDocumentError(msg) from e
        if not isinstance(data, dict):
            msg = f"Cache document {self.cache_file} is not a JSON object"
            raise CacheDocumentError(msg)
        return data

    def _save(self, data: dict[str, dict]) -> None:
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.cache_file.parent,
            prefix=f".{self.cache_file.name}.",
            suffix=".tmp",
        )
        try:
            with open(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_name, self.cache_file)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            msg = f"Cannot write cache document {self.cache_file}: {e}"
            raise CacheDocumentError(msg) from e

    @contextmanager
    def _locked(self) -> Iterator[None]:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with self._write_lock:
            try:
                with FileLock(self.lock_path, timeout=self.lock_timeout):
                    yield
            except Timeout as e:
                msg = f"Could not lock {self.cache_file} within {self.lock_timeout}s"
                raise CacheDocumentError(msg) from e

    def entries(self) -> dict[str, CacheEntry]:
        """Load the whole document."""
        return {
            url: _entry_from_dict(url, row)
            for url, row in self._load().items()
            if isinstance(row, dict)
        }

    def get(self, url: str) -> CacheEntry | None:
        """Return the entry recorded for ``url``, if any."""
        row = self._load().get(url)
        if not isinstance(row, dict):
            return None
        return _entry_from_dict(url, row)

    def put(self, url: str, entry: CacheEntry) -> None:
        """Record ``entry`` for ``url``, replacing any previous one."""
        with self._locked():
            data = self._load()
            data[url] = entry.to_dict()
            self._save(data)
        logger.debug("Cached %s -> %s", url, entry.binary_path)

    def remove(self, url: str) -> bool:
        """Forget ``url``. Returns False when it was not cached."""
        with self._locked():
            data = self._load()
            if url not in data:
                return False
            del data[url]
            self._save(data)
            return True

    def prune(self) -> list[str]:
        """Drop entries whose recorded path no longer exists."""
        with self._locked():
            data = self._load()
            stale = [
                url
                for url, row in data.items()
                if not isinstance(row, dict)
                or not row.get("binary_path")
                or not Path(row["binary_path"]).exists()
            ]
            for url in stale:
                del data[url]
            if stale:
                self._save(data)
        return stale

    def clear(self) -> None:
        """Forget every entry."""
        with self._locked():
            self._save({})


def _entry_from_dict(url: str, row: dict) -> CacheEntry:
    return CacheEntry(
        url=url,
        binary_path=str(row.get("binary_path", "")),
        content_hash=str(row.get("content_hash", "")),
        total_size=int(row.get("total_size", 0)),
    )
