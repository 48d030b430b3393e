"""Utility functions for getbinary."""

from __future__ import annotations

import logging
import platform as _platform
import shutil
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from .config import OsConstraint

# Initialize rich console
console = Console()

PLATFORMS = ("linux", "windows", "mac")

_ARCH_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "ia32",
    "i686": "ia32",
    "x86": "ia32",
}

_STYLES = {
    "info": ("🔍", "blue"),
    "success": ("✅", "green"),
    "warning": ("⚠️", "yellow"),
    "error": ("❌", "bold red"),
    "default": ("", ""),
}


def log(
    message: str,
    level: Literal["info", "success", "warning", "error", "default"] = "default",
    emoji: str = "",
) -> None:
    """Print a coloured, emoji-prefixed message to the console."""
    default_emoji, style = _STYLES.get(level, _STYLES["default"])
    prefix = emoji or default_emoji
    text = f"[{style}]{message}[/{style}]" if style else message
    console.print(f"{prefix} {text}" if prefix else text)


def setup_logging(verbose: bool = False) -> None:  # noqa: FBT001, FBT002
    """Route the package logger through rich, DEBUG when verbose."""
    logger = logging.getLogger("getbinary")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(console=console, show_path=False))


def normalize_arch(arch: str) -> str:
    """Fold machine names like ``x86_64`` into the short form used by requests."""
    arch = arch.strip().lower()
    return _ARCH_ALIASES.get(arch, arch)


def current_platform() -> tuple[str, str]:
    """Detect the current platform and architecture."""
    platform = "linux"
    if sys.platform == "darwin":
        platform = "mac"
    elif sys.platform.startswith(("win32", "cygwin")):
        platform = "windows"

    return platform, normalize_arch(_platform.machine())


def platform_matches(
    constraint: OsConstraint | None,
    platform: str,
    arch: str,
) -> bool:
    """Check whether a request's OS constraint admits the given platform.

    A missing constraint, or a missing field inside it, matches anything.
    """
    if constraint is None:
        return True
    if constraint.platform and constraint.platform.lower() != platform.lower():
        return False
    return not (constraint.arch and normalize_arch(constraint.arch) != normalize_arch(arch))


def arrify(value: Any) -> list:
    """Wrap a scalar in a list; ``None`` becomes an empty list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def remove_path(path: Path) -> None:
    """Delete a file, symlink or directory tree if it exists."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)
