"""Resolve a batch of binary requests concurrently."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Union

from .cache import FingerprintCache
from .config import BinaryRequest, GetBinaryConfig
from .download import DownloadProgress, ProgressFactory
from .errors import CacheDocumentError, GetBinaryError, ValidationError
from .pipeline import FetchPipeline
from .resolver import LocalResolver, ResolutionSource, ResolvedBinary
from .utils import current_platform, log, platform_matches, remove_path

logger = logging.getLogger(__name__)

RequestLike = Union[BinaryRequest, dict[str, Any]]


@dataclass
class BatchResult:
    """Binaries that were resolved and messages for those that were not."""

    resolved: dict[str, ResolvedBinary] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def paths(self) -> dict[str, str]:
        """Map each resolved name to its path."""
        return {name: binary.path for name, binary in self.resolved.items()}

    @property
    def ok(self) -> bool:
        """True when no request failed."""
        return not self.errors


class BinaryFetcher:
    """Resolves requests against PATH and the cache, downloading what is missing.

    Example:
        >>> fetcher = BinaryFetcher(GetBinaryConfig())
        >>> result = fetcher.get([{"name": "tool", "url": "https://example.test/tool.zip"}])
        >>> result.paths()
        {'tool': '/home/u/.getbinary/binaries/tool'}
    """

    def __init__(
        self,
        config: GetBinaryConfig | None = None,
        *,
        cache: FingerprintCache | None = None,
        resolver: LocalResolver | None = None,
        progress: ProgressFactory | None = None,
        platform: tuple[str, str] | None = None,
        timeout: float = 30,
    ) -> None:
        """Initialize the fetcher; every collaborator defaults from ``config``."""
        self.config = config or GetBinaryConfig()
        self.cache = cache or FingerprintCache(self.config.cache_file)
        self.resolver = resolver or LocalResolver(self.cache)
        self.progress = progress
        self.platform = platform or current_platform()
        self.timeout = timeout

    def get(self, requests: Iterable[RequestLike] | RequestLike, force_fetch: bool = False) -> BatchResult:  # noqa: FBT001, FBT002
        """Blocking wrapper around :meth:`get_all`."""
        return asyncio.run(self.get_all(requests, force_fetch))

    async def get_all(
        self,
        requests: Iterable[RequestLike] | RequestLike,
        force_fetch: bool = False,  # noqa: FBT001, FBT002
    ) -> BatchResult:
        """Resolve every request; one failing request never affects the others.

        Requests whose OS constraint does not match this machine are dropped
        without being reported. Only an unreadable cache document aborts the
        whole batch.
        """
        result = BatchResult()
        if isinstance(requests, (BinaryRequest, dict)):
            requests = [requests]
        accepted = self._accept(list(requests), result)

        # Fails the batch early if the shared cache document is corrupt.
        await asyncio.to_thread(self.cache.entries)

        pipeline = FetchPipeline(self.cache, self.config.binaries_dir, self.progress, self.timeout)
        outcomes = await asyncio.gather(
            *(self._resolve_one(request, pipeline, force_fetch) for request in accepted),
            return_exceptions=True,
        )

        for request, outcome in zip(accepted, outcomes):
            if isinstance(outcome, CacheDocumentError) or not isinstance(outcome, (Exception, ResolvedBinary)):
                raise outcome
            if isinstance(outcome, Exception):
                message = _describe(request, outcome)
                log(f"Failed to get {message} ({request.url})", "error")
                result.errors.append(message)
            else:
                result.resolved[request.name] = outcome
        return result

    def _accept(self, raw_requests: list[RequestLike], result: BatchResult) -> list[BinaryRequest]:
        platform, arch = self.platform
        accepted: list[BinaryRequest] = []
        seen: set[str] = set()
        for raw in raw_requests:
            try:
                request = raw if isinstance(raw, BinaryRequest) else BinaryRequest.from_dict(raw)
                request.validate()
                if request.name in seen:
                    msg = "duplicate binary name"
                    raise ValidationError(msg, request.name)
            except ValidationError as e:
                log(str(e), "error")
                result.errors.append(str(e))
                continue
            seen.add(request.name)

            if not platform_matches(request.os_constraint, platform, arch):
                logger.debug("Skipping %s: not built for %s/%s", request.name, platform, arch)
                continue
            accepted.append(request)
        return accepted

    async def _resolve_one(
        self,
        request: BinaryRequest,
        pipeline: FetchPipeline,
        force_fetch: bool,  # noqa: FBT001
    ) -> ResolvedBinary:
        if force_fetch:
            # PATH still wins; otherwise clear the target so nothing local satisfies it.
            found = await asyncio.to_thread(self.resolver.lookup_path, request)
            if found:
                log(f"{request.name} already available at {found}", "success")
                return ResolvedBinary(request.name, found, ResolutionSource.PATH_LOOKUP)
            target = request.target_dir(self.config.binaries_dir)
            logger.debug("Force fetch: clearing %s", target)
            await asyncio.to_thread(remove_path, target)

        resolution = await asyncio.to_thread(self.resolver.resolve, request, not force_fetch)
        if resolution.satisfied and resolution.path and resolution.source:
            log(f"{request.name} already available at {resolution.path}", "success")
            return ResolvedBinary(request.name, resolution.path, resolution.source)
        return await pipeline.run(request)


def _describe(request: BinaryRequest, error: Exception) -> str:
    if isinstance(error, GetBinaryError) and error.name:
        return str(error)
    return f"{request.name}: {error}"


def get_binaries(
    requests: Iterable[RequestLike] | RequestLike,
    force_fetch: bool = False,  # noqa: FBT001, FBT002
    config: GetBinaryConfig | None = None,
    show_progress: bool = True,  # noqa: FBT001, FBT002
) -> BatchResult:
    """Resolve ``requests``, rendering download progress unless disabled."""
    if not show_progress:
        return BinaryFetcher(config).get(requests, force_fetch)
    with DownloadProgress() as progress:
        return BinaryFetcher(config, progress=progress.track).get(requests, force_fetch)
