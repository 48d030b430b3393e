"""Tests for the getbinary command-line interface."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from getbinary import __version__
from getbinary.cache import CacheEntry, FingerprintCache
from getbinary.cli import main
from getbinary.utils import console

URL = "https://example.test/tool-linux.tar.gz"


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep long temp paths from wrapping the output."""
    monkeypatch.setattr(console, "width", 400)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "binaries.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "home": str(tmp_path / "home"),
                "binaries": [
                    {"name": "tool", "url": URL},
                    {"name": "other", "remote": {"url": "https://example.test/other.zip"}},
                ],
            },
        ),
    )
    return path


def run_cli(*argv: str) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(list(argv))
    return exc_info.value.code


def test_fetch_selected_binary(fake_server, config_file: Path, tmp_path: Path) -> None:
    """Only the named binary is fetched."""
    fake_server.serve(URL, "tool")

    code = run_cli("--config-file", str(config_file), "fetch", "tool", "--no-progress")

    assert code == 0
    assert fake_server.calls == [URL]
    assert (tmp_path / "home" / "binaries" / "tool-linux" / "tool").is_file()


def test_fetch_reports_failures(fake_server, config_file: Path) -> None:
    """A failed binary makes the command exit non-zero."""
    fake_server.serve(URL, "tool")

    code = run_cli("--config-file", str(config_file), "fetch", "--no-progress")

    assert code == 1
    assert sorted(fake_server.calls) == sorted([URL, "https://example.test/other.zip"])


def test_fetch_binaries_dir_override(fake_server, config_file: Path, tmp_path: Path) -> None:
    """--binaries-dir moves where archives are extracted."""
    fake_server.serve(URL, "tool")

    code = run_cli(
        "--config-file",
        str(config_file),
        "--binaries-dir",
        str(tmp_path / "elsewhere"),
        "fetch",
        "tool",
        "--no-progress",
    )

    assert code == 0
    assert (tmp_path / "elsewhere" / "tool-linux" / "tool").is_file()


def test_fetch_unknown_binary(fake_server, config_file: Path, capsys: pytest.CaptureFixture) -> None:
    """Naming a binary that is not in the config is an error."""
    code = run_cli("--config-file", str(config_file), "fetch", "nope")

    assert code == 1
    assert "Unknown binaries: nope" in capsys.readouterr().out
    assert fake_server.calls == []


def test_list(config_file: Path, capsys: pytest.CaptureFixture) -> None:
    """Declared binaries are listed by name."""
    assert run_cli("--config-file", str(config_file), "list") == 0

    out = capsys.readouterr().out
    assert "tool" in out
    assert "other" in out


def test_cache_commands(config_file: Path, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    """cache show, prune and clear operate on the configured document."""
    cache = FingerprintCache(tmp_path / "home" / "downloaded-binary.json")
    live = tmp_path / "home" / "binaries" / "tool-linux"
    live.mkdir(parents=True)
    cache.put(URL, CacheEntry(URL, str(live), "a" * 64, 0))
    cache.put("https://example.test/gone.zip", CacheEntry("u", str(tmp_path / "gone"), "b" * 64, 0))

    assert run_cli("--config-file", str(config_file), "cache", "show") == 0
    assert "aaaaaaaaaaaa" in capsys.readouterr().out

    assert run_cli("--config-file", str(config_file), "cache", "prune") == 0
    assert "Pruned 1 cache entries" in capsys.readouterr().out
    assert list(cache.entries()) == [URL]

    assert run_cli("--config-file", str(config_file), "cache", "clear") == 0
    assert cache.entries() == {}

    assert run_cli("--config-file", str(config_file), "cache", "show") == 0
    assert "is empty" in capsys.readouterr().out


def test_corrupt_cache_document(config_file: Path, tmp_path: Path) -> None:
    """Errors surface as exit code 1 instead of a traceback."""
    (tmp_path / "home").mkdir()
    (tmp_path / "home" / "downloaded-binary.json").write_text("[]")

    assert run_cli("--config-file", str(config_file), "cache", "show") == 1


def test_version(config_file: Path, capsys: pytest.CaptureFixture) -> None:
    """The version command prints the package version."""
    assert run_cli("--config-file", str(config_file), "version") == 0
    assert __version__ in capsys.readouterr().out
