"""Extract downloaded archives into a binary's target directory."""

from __future__ import annotations

import bz2
import gzip
import logging
import lzma
import shutil
import sys
import tarfile
import uuid
import zipfile
from pathlib import Path
from typing import Callable

import py7zr
import rarfile

from .errors import ExtractionConflictError, ExtractionError
from .utils import log, remove_path

logger = logging.getLogger(__name__)

# Longest first so compound extensions win over their last component.
ARCHIVE_EXTENSIONS = (
    ".tar.gz",
    ".tar.bz2",
    ".tar.xz",
    ".tgz",
    ".tbz2",
    ".tbz",
    ".txz",
    ".gzip",
    ".7z",
    ".bz2",
    ".gz",
    ".rar",
    ".tar",
    ".zip",
    ".xz",
)

_FORMAT_BY_EXTENSION = {
    ".tar.gz": "tar",
    ".tar.bz2": "tar",
    ".tar.xz": "tar",
    ".tgz": "tar",
    ".tbz2": "tar",
    ".tbz": "tar",
    ".txz": "tar",
    ".tar": "tar",
    ".zip": "zip",
    ".7z": "7z",
    ".rar": "rar",
    ".gzip": "gzip",
    ".gz": "gzip",
    ".bz2": "bzip2",
    ".xz": "xz",
}

_MAGIC = (
    (b"PK\x03\x04", "zip"),
    (b"7z\xbc\xaf\x27\x1c", "7z"),
    (b"Rar!\x1a\x07", "rar"),
    (b"\x1f\x8b", "gzip"),
    (b"BZh", "bzip2"),
    (b"\xfd7zXZ\x00", "xz"),
)

_STREAMS: dict[str, Callable] = {
    "gzip": gzip.open,
    "bzip2": bz2.open,
    "xz": lzma.open,
}


def archive_extension(filename: str) -> str:
    """Return the recognized archive extension of ``filename`` or ``""``."""
    lowered = filename.lower()
    for ext in ARCHIVE_EXTENSIONS:
        if lowered.endswith(ext):
            return filename[-len(ext) :]
    return ""


def strip_archive_extension(filename: str) -> str:
    """Drop a recognized archive extension from ``filename``."""
    ext = archive_extension(filename)
    return filename[: -len(ext)] if ext else filename


def detect_format(archive_path: Path, filename: str = "") -> str | None:
    """Guess the archive format from the file name, then from magic bytes."""
    ext = archive_extension(filename or archive_path.name).lower()
    if ext:
        return _FORMAT_BY_EXTENSION[ext]

    with open(archive_path, "rb") as f:
        header = f.read(8)
    for magic, fmt in _MAGIC:
        if header.startswith(magic):
            return fmt
    if tarfile.is_tarfile(archive_path):
        return "tar"
    return None


def extract_archive(archive_path: Path, dest_dir: Path, filename: str = "") -> None:
    """Extract ``archive_path`` into ``dest_dir``.

    ``filename`` is the name the archive had remotely; it picks the format and
    names the output of single-file streams. If extraction collides with a
    path that already exists, that path is deleted and extraction retried once.
    """
    filename = filename or archive_path.name
    dest_dir.mkdir(parents=True, exist_ok=True)

    try:
        _extract(archive_path, dest_dir, filename)
        return
    except FileExistsError as e:
        conflict = _conflicting_path(e, dest_dir)
        log(f"Extraction conflict at {conflict}, removing it and retrying", "warning")
        remove_path(conflict)

    try:
        _extract(archive_path, dest_dir, filename)
    except FileExistsError as e:
        msg = f"Extraction of {filename} still conflicts with {e.filename}"
        raise ExtractionConflictError(msg, path=e.filename) from e


def _conflicting_path(error: FileExistsError, dest_dir: Path) -> Path:
    if not error.filename:
        msg = f"Extraction conflict without a path: {error}"
        raise ExtractionConflictError(msg) from error
    conflict = Path(error.filename)
    if not conflict.is_absolute():
        conflict = dest_dir / conflict
    if conflict.resolve() == dest_dir.resolve() or dest_dir.resolve() not in conflict.resolve().parents:
        msg = f"Refusing to remove {conflict}: outside of {dest_dir}"
        raise ExtractionConflictError(msg, path=str(conflict)) from error
    return conflict


def _extract(archive_path: Path, dest_dir: Path, filename: str) -> None:
    fmt = detect_format(archive_path, filename)
    logger.debug("Extracting %s (%s) into %s", filename, fmt, dest_dir)
    try:
        if fmt == "tar" or (fmt in _STREAMS and tarfile.is_tarfile(archive_path)):
            _extract_tar(archive_path, dest_dir)
        elif fmt == "zip":
            _extract_zip(archive_path, dest_dir)
        elif fmt == "7z":
            with py7zr.SevenZipFile(archive_path, mode="r") as archive:
                archive.extractall(path=dest_dir)
        elif fmt == "rar":
            with rarfile.RarFile(archive_path) as archive:
                archive.extractall(path=dest_dir)
        elif fmt in _STREAMS:
            target = dest_dir / strip_archive_extension(Path(filename).name)
            _decompress_stream(archive_path, target, _STREAMS[fmt])
        else:
            # Not an archive: the download is the binary itself.
            install_file(archive_path, dest_dir / Path(filename).name)
    except (ExtractionError, FileExistsError):
        raise
    except Exception as e:
        msg = f"Failed to extract {filename}: {e}"
        raise ExtractionError(msg) from e


def _extract_tar(archive_path: Path, dest_dir: Path) -> None:
    with tarfile.open(archive_path, mode="r:*") as tar:
        if sys.version_info >= (3, 12):
            tar.extractall(dest_dir, filter="data")
        else:
            for member in tar.getmembers():
                _validate_member(member.name, dest_dir)
            tar.extractall(dest_dir)


def _extract_zip(archive_path: Path, dest_dir: Path) -> None:
    with zipfile.ZipFile(archive_path) as zip_file:
        for info in zip_file.infolist():
            _validate_member(info.filename, dest_dir)
            extracted = Path(zip_file.extract(info, dest_dir))
            # zipfile drops permission bits; restore them from the unix attrs
            mode = (info.external_attr >> 16) & 0o777
            if mode and not info.is_dir():
                extracted.chmod(mode)


def _validate_member(name: str, dest_dir: Path) -> None:
    target = (dest_dir / name).resolve()
    root = dest_dir.resolve()
    if target != root and root not in target.parents:
        msg = f"Archive member {name!r} would be extracted outside {dest_dir}"
        raise ExtractionError(msg)


def _decompress_stream(
    archive_path: Path,
    target: Path,
    opener: Callable,
) -> None:
    if target.exists():
        raise FileExistsError(17, "File exists", str(target))
    with opener(archive_path, "rb") as src, open(target, "wb") as dst:
        shutil.copyfileobj(src, dst)
    target.chmod(target.stat().st_mode | 0o755)


def install_file(source: Path, dest_path: Path) -> None:
    """Copy a plain binary into place and make it executable."""
    if dest_path.exists():
        raise FileExistsError(17, "File exists", str(dest_path))
    shutil.copy2(source, dest_path)
    dest_path.chmod(dest_path.stat().st_mode | 0o755)


def flatten_single_directory(target: Path) -> bool:
    """Hoist the children of a lone wrapper directory into ``target``.

    Only one level is collapsed. Returns True when a wrapper was removed.
    """
    entries = list(target.iterdir())
    if len(entries) != 1 or entries[0].is_symlink() or not entries[0].is_dir():
        return False

    wrapper = entries[0]
    # Move the wrapper aside first so a child sharing its name can take its place.
    staging = target / f".{wrapper.name}.{uuid.uuid4().hex[:8]}"
    wrapper.rename(staging)
    for child in list(staging.iterdir()):
        shutil.move(str(child), str(target / child.name))
    staging.rmdir()
    logger.debug("Flattened wrapper directory %s into %s", wrapper.name, target)
    return True
