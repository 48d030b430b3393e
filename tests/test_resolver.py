"""Tests for getbinary.resolver."""

from __future__ import annotations

from pathlib import Path

import pytest

from getbinary.cache import CacheEntry, FingerprintCache, fingerprint
from getbinary.config import BinaryRequest, LocalHints
from getbinary.resolver import LocalResolver, ResolutionSource

URL = "https://example.test/tool-1.0-linux.zip"


def fake_which(installed: dict[str, str]):
    calls: list[str] = []

    def which(command: str) -> str | None:
        calls.append(command)
        return installed.get(command)

    which.calls = calls  # type: ignore[attr-defined]
    return which


@pytest.fixture
def cache(tmp_path: Path) -> FingerprintCache:
    return FingerprintCache(tmp_path / "downloaded-binary.json")


@pytest.fixture
def installed(tmp_path: Path, cache: FingerprintCache) -> Path:
    """A previous download of URL, recorded in the cache."""
    target = tmp_path / "binaries" / "tool"
    target.mkdir(parents=True)
    (target / "tool").write_text("binary")
    fp = fingerprint(target)
    assert fp is not None
    cache.put(URL, CacheEntry(URL, str(target), fp.content_hash, fp.total_size))
    return target


def request(**kwargs) -> BinaryRequest:
    kwargs.setdefault("name", "tool")
    kwargs.setdefault("url", URL)
    return BinaryRequest(**kwargs)


def test_path_lookup_tries_commands_in_order(cache: FingerprintCache, installed: Path) -> None:
    """The first command found on PATH wins, even over the cache."""
    which = fake_which({"tool2": "/usr/bin/tool2", "tool3": "/usr/bin/tool3"})
    resolver = LocalResolver(cache, which=which)

    resolution = resolver.resolve(
        request(local_hints=LocalHints(commands=("tool", "tool2", "tool3"))),
    )

    assert resolution.satisfied
    assert resolution.path == "/usr/bin/tool2"
    assert resolution.source is ResolutionSource.PATH_LOOKUP
    assert resolution.used_cache is False
    assert which.calls == ["tool", "tool2"]


def test_path_lookup_errors_are_not_fatal(cache: FingerprintCache) -> None:
    """A command whose lookup blows up is skipped."""

    def which(command: str) -> str | None:
        if command == "broken":
            raise PermissionError(13, "Permission denied", command)
        return "/usr/bin/tool" if command == "tool" else None

    resolver = LocalResolver(cache, which=which)
    resolution = resolver.resolve(request(local_hints=LocalHints(commands=("broken", "tool"))))

    assert resolution.path == "/usr/bin/tool"


def test_cache_hit_verified(cache: FingerprintCache, installed: Path) -> None:
    """An unchanged tree is trusted."""
    resolver = LocalResolver(cache, which=fake_which({}))

    resolution = resolver.resolve(request(local_hints=LocalHints(commands=("tool",))))

    assert resolution.satisfied
    assert resolution.path == str(installed)
    assert resolution.used_cache is True
    assert resolution.source is ResolutionSource.CACHE_HIT


def test_cache_mismatch_is_a_miss(cache: FingerprintCache, installed: Path) -> None:
    """A tree that changed since download is not trusted when verify is on."""
    (installed / "extra").write_text("tampered")
    resolver = LocalResolver(cache, which=fake_which({}))

    resolution = resolver.resolve(
        request(local_hints=LocalHints(dir=installed.parent, name="tool")),
    )

    assert not resolution.satisfied
    assert resolution.path is None


def test_cache_missing_path_is_a_miss(cache: FingerprintCache, tmp_path: Path) -> None:
    """A cache entry pointing nowhere is not trusted when verify is on."""
    cache.put(URL, CacheEntry(URL, str(tmp_path / "gone"), "hash", 1))
    resolver = LocalResolver(cache, which=fake_which({}))

    assert not resolver.resolve(request()).satisfied


def test_unverified_cache_is_trusted_blindly(cache: FingerprintCache, installed: Path) -> None:
    """With verify off the recorded path is returned without fingerprinting."""
    (installed / "extra").write_text("tampered")
    resolver = LocalResolver(cache, which=fake_which({}))

    resolution = resolver.resolve(request(verify=False))

    assert resolution.satisfied
    assert resolution.path == str(installed)
    assert resolution.used_cache is True


def test_cache_can_be_skipped(cache: FingerprintCache, installed: Path) -> None:
    """use_cache=False ignores the cache entry entirely."""
    resolver = LocalResolver(cache, which=fake_which({}))

    assert not resolver.resolve(request(verify=False), use_cache=False).satisfied


def test_existing_target_without_cache_entry(cache: FingerprintCache, tmp_path: Path) -> None:
    """A manual install at local.dir/local.name counts when nothing is cached."""
    (tmp_path / "bin" / "tool").mkdir(parents=True)
    (tmp_path / "bin" / "tool" / "tool").write_text("binary")
    resolver = LocalResolver(cache, which=fake_which({}))

    resolution = resolver.resolve(
        request(local_hints=LocalHints(dir=tmp_path / "bin", name="tool")),
    )

    assert resolution.satisfied
    assert resolution.path == str(tmp_path / "bin" / "tool")
    assert resolution.used_cache is False


def test_empty_target_directory_is_not_an_install(cache: FingerprintCache, tmp_path: Path) -> None:
    """An empty directory at local.dir/local.name does not count."""
    (tmp_path / "bin" / "tool").mkdir(parents=True)
    resolver = LocalResolver(cache, which=fake_which({}))

    resolution = resolver.resolve(
        request(local_hints=LocalHints(dir=tmp_path / "bin", name="tool")),
    )

    assert not resolution.satisfied


def test_lookup_path_without_commands(cache: FingerprintCache) -> None:
    """A request without commands never consults PATH."""
    which = fake_which({"tool": "/usr/bin/tool"})

    assert LocalResolver(cache, which=which).lookup_path(request()) is None
    assert which.calls == []


def test_nothing_found(cache: FingerprintCache, tmp_path: Path) -> None:
    """No command, no cache entry and no file: unsatisfied."""
    resolver = LocalResolver(cache, which=fake_which({}))

    resolution = resolver.resolve(
        request(local_hints=LocalHints(commands=("tool",), dir=tmp_path, name="tool")),
    )

    assert not resolution.satisfied
    assert resolution.source is None
