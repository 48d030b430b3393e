"""Download, extract and cache a binary that is not available locally."""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from .cache import CacheEntry, FingerprintCache, fingerprint
from .config import BinaryRequest
from .download import ProgressFactory, download_to_temp, url_filename
from .errors import ExtractionError, GetBinaryError
from .extract import extract_archive, flatten_single_directory
from .resolver import ResolutionSource, ResolvedBinary
from .utils import log, remove_path

logger = logging.getLogger(__name__)


@dataclass
class FetchContext:
    """State of one request moving through the pipeline."""

    request: BinaryRequest
    target_dir: Path
    archive_path: Path | None = None


class FetchPipeline:
    """Runs download -> prepare -> extract -> normalize -> cache for a request.

    One pipeline is shared by every request of a batch. Stages of a single
    request run in order; blocking work happens in worker threads so other
    requests keep progressing. Cache writes go through one asyncio lock.
    """

    def __init__(
        self,
        cache: FingerprintCache,
        binaries_dir: Path,
        progress: ProgressFactory | None = None,
        timeout: float = 30,
    ) -> None:
        """Initialize the pipeline installing under ``binaries_dir``."""
        self.cache = cache
        self.binaries_dir = Path(binaries_dir)
        self.progress = progress
        self.timeout = timeout
        self._cache_lock = asyncio.Lock()

    async def run(self, request: BinaryRequest) -> ResolvedBinary:
        """Fetch ``request`` and return where it was installed.

        A target directory left half-populated by a failed stage is removed,
        so a later run never mistakes it for an install.
        """
        ctx = FetchContext(request=request, target_dir=request.target_dir(self.binaries_dir))
        log(f"Downloading {request.name} from {request.url}", "info", "📥")
        try:
            ctx.archive_path = await asyncio.to_thread(self.download, ctx)
            await asyncio.to_thread(self.prepare, ctx)
            try:
                await asyncio.to_thread(self.extract, ctx)
                await asyncio.to_thread(self.normalize, ctx)
                await self.persist(ctx)
            except Exception:
                logger.debug("Removing incomplete install at %s", ctx.target_dir)
                await asyncio.to_thread(remove_path, ctx.target_dir)
                raise
        except GetBinaryError as e:
            if e.name is None:
                e.name = request.name
            raise
        finally:
            if ctx.archive_path is not None:
                ctx.archive_path.unlink(missing_ok=True)

        log(f"{request.name} installed to {ctx.target_dir}", "success")
        return ResolvedBinary(
            name=request.name,
            path=str(ctx.target_dir),
            source=ResolutionSource.FRESH_DOWNLOAD,
        )

    def download(self, ctx: FetchContext) -> Path:
        """Stream the archive into a temp file."""
        callback = self.progress(ctx.request.name) if self.progress else None
        return download_to_temp(ctx.request.url, callback, self.timeout)

    def prepare(self, ctx: FetchContext) -> None:
        """Make sure the target is a fresh, empty directory."""
        target = ctx.target_dir
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.is_symlink() or target.is_file():
            target.unlink()
        elif target.exists():
            logger.debug("Removing previous install at %s", target)
            shutil.rmtree(target)
        target.mkdir()

    def extract(self, ctx: FetchContext) -> None:
        """Unpack the downloaded archive into the target directory."""
        if ctx.archive_path is None:
            msg = "nothing was downloaded"
            raise ExtractionError(msg, ctx.request.name)
        extract_archive(ctx.archive_path, ctx.target_dir, url_filename(ctx.request.url))

    def normalize(self, ctx: FetchContext) -> None:
        """Collapse a single wrapper directory."""
        if flatten_single_directory(ctx.target_dir):
            logger.debug("Collapsed single top-level directory in %s", ctx.target_dir)

    async def persist(self, ctx: FetchContext) -> None:
        """Fingerprint the installed tree and record it in the cache."""
        fp = await asyncio.to_thread(fingerprint, ctx.target_dir)
        if fp is None:
            msg = f"{ctx.target_dir} disappeared after extraction"
            raise ExtractionError(msg, ctx.request.name)
        entry = CacheEntry(
            url=ctx.request.url,
            binary_path=str(ctx.target_dir),
            content_hash=fp.content_hash,
            total_size=fp.total_size,
        )
        async with self._cache_lock:
            await asyncio.to_thread(self.cache.put, ctx.request.url, entry)
