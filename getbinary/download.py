"""Download functions for getbinary."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

import requests
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TransferSpeedColumn,
)

from .errors import TransferError
from .extract import archive_extension
from .utils import console

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536

# Called with (bytes received in this chunk, total bytes or None).
ProgressCallback = Callable[[int, Optional[int]], None]
# Creates one ProgressCallback per download, given a label.
ProgressFactory = Callable[[str], ProgressCallback]


def url_filename(url: str) -> str:
    """Last path segment of ``url``, URL-decoded."""
    return unquote(urlparse(url).path.rstrip("/").rsplit("/", 1)[-1])


def download_file(
    url: str,
    destination: Path,
    progress: ProgressCallback | None = None,
    timeout: float = 30,
) -> Path:
    """Download a file from a URL to a destination path."""
    logger.debug("Downloading %s to %s", url, destination)
    try:
        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            total = response.headers.get("content-length")
            total_bytes = int(total) if total and total.isdigit() else None

            with open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    f.write(chunk)
                    if progress is not None:
                        progress(len(chunk), total_bytes)
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        msg = f"Failed to download {url}: HTTP {status}"
        raise TransferError(msg, url=url, status_code=status) from e
    except requests.RequestException as e:
        msg = f"Failed to download {url}: {e}"
        raise TransferError(msg, url=url) from e

    return destination


def download_to_temp(
    url: str,
    progress: ProgressCallback | None = None,
    timeout: float = 30,
) -> Path:
    """Download ``url`` into a temp file that keeps the archive extension."""
    fd, tmp_name = tempfile.mkstemp(
        prefix="getbinary-",
        suffix=archive_extension(url_filename(url)),
    )
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        return download_file(url, tmp_path, progress, timeout)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class DownloadProgress:
    """Rich progress bars for concurrent downloads.

    Use as a context manager and pass :meth:`track` as the progress factory.
    """

    def __init__(self) -> None:
        """Initialize the progress display on the shared console."""
        self._progress = Progress(
            TextColumn("📥 [blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=console,
            transient=False,
        )

    def __enter__(self) -> DownloadProgress:
        self._progress.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._progress.stop()

    def track(self, label: str) -> ProgressCallback:
        """Add a task for ``label`` and return a callback that advances it."""
        task_id = self._progress.add_task(label, total=None)

        def advance(received: int, total: int | None) -> None:
            if total is not None:
                self._progress.update(task_id, total=total)
            self._progress.advance(task_id, received)

        return advance
