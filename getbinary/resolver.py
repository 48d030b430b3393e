"""Find binaries that are already available without downloading them."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from .cache import Fingerprint, FingerprintCache, fingerprint
from .config import BinaryRequest
from .errors import CacheCorruptionError
from .utils import log

logger = logging.getLogger(__name__)


class ResolutionSource(str, Enum):
    """How a binary was obtained."""

    PATH_LOOKUP = "path-lookup"
    CACHE_HIT = "cache-hit"
    FRESH_DOWNLOAD = "fresh-download"


@dataclass(frozen=True)
class ResolvedBinary:
    """Where a requested binary ended up."""

    name: str
    path: str
    source: ResolutionSource


@dataclass(frozen=True)
class LocalResolution:
    """Outcome of looking for a binary locally."""

    satisfied: bool
    path: str | None = None
    used_cache: bool = False
    source: ResolutionSource | None = None


NOT_FOUND = LocalResolution(satisfied=False)


class LocalResolver:
    """Checks PATH, then the fingerprint cache, then the target path.

    The first check that succeeds wins. Requests are expected to be
    validated already.
    """

    def __init__(
        self,
        cache: FingerprintCache,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        """Initialize the resolver; ``which`` is injectable for tests."""
        self.cache = cache
        self.which = which

    def resolve(self, request: BinaryRequest, use_cache: bool = True) -> LocalResolution:  # noqa: FBT001, FBT002
        """Look for ``request`` locally without downloading anything.

        With ``use_cache`` false the cache entry is ignored, as for a forced
        refetch.
        """
        found = self.lookup_path(request)
        if found:
            return LocalResolution(True, found, source=ResolutionSource.PATH_LOOKUP)

        entry = self.cache.get(request.url) if use_cache else None
        if entry is not None:
            if not request.verify:
                return LocalResolution(
                    True,
                    entry.binary_path,
                    used_cache=True,
                    source=ResolutionSource.CACHE_HIT,
                )
            try:
                self._verify(entry.binary_path, entry.fingerprint)
            except CacheCorruptionError as e:
                log(f"{request.name}: {e.message}, downloading again", "warning")
                return NOT_FOUND
            return LocalResolution(
                True,
                entry.binary_path,
                used_cache=True,
                source=ResolutionSource.CACHE_HIT,
            )

        hints = request.local_hints
        if hints.dir and hints.name:
            candidate = Path(hints.dir) / hints.name
            if candidate.exists() and not _is_empty_dir(candidate):
                logger.debug("%s already present at %s", request.name, candidate)
                return LocalResolution(True, str(candidate), source=ResolutionSource.CACHE_HIT)

        return NOT_FOUND

    def lookup_path(self, request: BinaryRequest) -> str | None:
        """Return the first of ``local.commands`` found on PATH."""
        for command in request.local_hints.commands:
            try:
                found = self.which(command)
            except OSError as e:
                logger.debug("Lookup of %s failed: %s", command, e)
                continue
            if found:
                logger.debug("%s found on PATH at %s", request.name, found)
                return found
        return None

    @staticmethod
    def _verify(binary_path: str, expected: Fingerprint) -> None:
        actual = fingerprint(Path(binary_path))
        if actual is None:
            msg = f"cached path {binary_path} is missing"
            raise CacheCorruptionError(msg)
        if actual != expected:
            msg = f"cached path {binary_path} changed since it was downloaded"
            raise CacheCorruptionError(msg)


def _is_empty_dir(path: Path) -> bool:
    return path.is_dir() and not any(path.iterdir())
