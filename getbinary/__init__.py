"""getbinary - Fetch prebuilt binaries on demand.

Checks whether a native tool (a database, a media codec, ...) is already on
the PATH or in a previous download, and otherwise downloads the archive built
for this platform, unpacks it into a single-level directory and remembers a
fingerprint of the result so later runs skip the download.
"""

from __future__ import annotations

__version__ = "0.1.0"

from . import batch, cache, config, download, errors, extract, pipeline, resolver, utils
from .batch import BatchResult, BinaryFetcher, get_binaries
from .cache import CacheEntry, Fingerprint, FingerprintCache, fingerprint
from .config import BinaryRequest, GetBinaryConfig, LocalHints, OsConstraint
from .errors import (
    CacheCorruptionError,
    CacheDocumentError,
    ExtractionConflictError,
    ExtractionError,
    GetBinaryError,
    TransferError,
    ValidationError,
)
from .resolver import LocalResolution, LocalResolver, ResolutionSource, ResolvedBinary
from .utils import current_platform, platform_matches, setup_logging

__all__ = [
    "BatchResult",
    "BinaryFetcher",
    "BinaryRequest",
    "CacheCorruptionError",
    "CacheDocumentError",
    "CacheEntry",
    "ExtractionConflictError",
    "ExtractionError",
    "Fingerprint",
    "FingerprintCache",
    "GetBinaryConfig",
    "GetBinaryError",
    "LocalHints",
    "LocalResolution",
    "LocalResolver",
    "OsConstraint",
    "ResolutionSource",
    "ResolvedBinary",
    "TransferError",
    "ValidationError",
    "batch",
    "cache",
    "config",
    "current_platform",
    "download",
    "errors",
    "extract",
    "fingerprint",
    "get_binaries",
    "pipeline",
    "platform_matches",
    "resolver",
    "setup_logging",
    "utils",
]
