"""Configuration for pytest fixtures used in getbinary tests."""

from __future__ import annotations

import tarfile
import tempfile
import uuid
import zipfile
from collections.abc import Generator
from pathlib import Path
from typing import Callable
from unittest.mock import patch

import pytest

from getbinary.config import GetBinaryConfig
from getbinary.errors import TransferError

_TAR_MODES = {
    "tar": "w",
    "tar.gz": "w:gz",
    "tar.bz2": "w:bz2",
    "tar.xz": "w:xz",
}


@pytest.fixture
def create_dummy_archive() -> Callable:
    r"""Create an archive file with binary files for testing.

    Returns a function that creates archive files with specified binaries.

    Usage:
        archive_path = create_dummy_archive(
            dest_path=tmp_path / "test.tar.gz",
            binary_names=["mybinary", "otherbinary"],
            archive_type="tar.gz",
            binary_content="#!/bin/sh\necho test"
        )
    """

    def _create_archive(
        dest_path: Path,
        binary_names: str | list[str],
        archive_type: str = "tar.gz",
        binary_content: str = "#!/usr/bin/env echo\n",
        nested_dir: str | None = None,
    ) -> Path:
        if isinstance(binary_names, str):
            binary_names = [binary_names]

        with tempfile.TemporaryDirectory() as tmp_dir:
            tmp_path = Path(tmp_dir)

            # Create nested directory if requested
            if nested_dir:
                bin_dir = tmp_path / nested_dir
                bin_dir.mkdir(exist_ok=True, parents=True)
            else:
                bin_dir = tmp_path

            created_files = []
            for binary in binary_names:
                bin_file = bin_dir / binary
                bin_file.parent.mkdir(parents=True, exist_ok=True)
                bin_file.write_text(binary_content)
                bin_file.chmod(0o755)
                created_files.append(bin_file)

            if archive_type in _TAR_MODES:
                with tarfile.open(dest_path, _TAR_MODES[archive_type]) as tar:
                    for file_path in created_files:
                        archive_path = file_path.relative_to(tmp_path)
                        tar.add(file_path, arcname=str(archive_path))
            elif archive_type == "zip":
                with zipfile.ZipFile(dest_path, "w") as zipf:
                    for file_path in created_files:
                        archive_path = file_path.relative_to(tmp_path)
                        zipf.write(file_path, arcname=str(archive_path))
            else:  # pragma: no cover
                msg = f"Unsupported archive type: {archive_type}"
                raise ValueError(msg)

            return dest_path

    return _create_archive


class FakeServer:
    """Serves dummy archives by URL in place of real downloads."""

    def __init__(self, root: Path, create_archive: Callable) -> None:
        self.root = root
        self.create_archive = create_archive
        self.routes: dict[str, dict] = {}
        self.calls: list[str] = []
        self.served: list[Path] = []

    def serve(
        self,
        url: str,
        binary_names: str | list[str],
        archive_type: str = "tar.gz",
        nested_dir: str | None = None,
    ) -> None:
        self.routes[url] = {
            "binary_names": binary_names,
            "archive_type": archive_type,
            "nested_dir": nested_dir,
        }

    def download(self, url: str, progress: Callable | None = None, timeout: float = 30) -> Path:  # noqa: ARG002
        self.calls.append(url)
        if url not in self.routes:
            msg = f"Failed to download {url}: HTTP 404"
            raise TransferError(msg, url=url, status_code=404)
        route = self.routes[url]
        dest = self.root / f"{uuid.uuid4().hex}.{route['archive_type']}"
        self.create_archive(dest_path=dest, **route)
        self.served.append(dest)
        return dest


@pytest.fixture
def fake_server(tmp_path: Path, create_dummy_archive: Callable) -> Generator[FakeServer, None, None]:
    """Patch the pipeline's downloader so no test touches the network."""
    root = tmp_path / "server"
    root.mkdir()
    server = FakeServer(root, create_dummy_archive)
    with patch("getbinary.pipeline.download_to_temp", side_effect=server.download):
        yield server


@pytest.fixture
def config(tmp_path: Path) -> GetBinaryConfig:
    """A config whose home, binaries dir and cache live under tmp_path."""
    return GetBinaryConfig(home=tmp_path / "home")
