"""Configuration and binary request definitions for getbinary."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from .download import url_filename
from .errors import ValidationError
from .extract import strip_archive_extension
from .utils import PLATFORMS, arrify, log

logger = logging.getLogger(__name__)

CACHE_FILE_NAME = "downloaded-binary.json"


def default_home() -> Path:
    """Return the per-user getbinary directory."""
    return Path(os.path.expanduser(os.environ.get("GETBINARY_HOME", "~/.getbinary")))


@dataclass(frozen=True)
class OsConstraint:
    """Platform and architecture a binary was built for."""

    platform: str | None = None
    arch: str | None = None


@dataclass(frozen=True)
class LocalHints:
    """Where to look for an already installed copy of a binary."""

    commands: tuple[str, ...] = ()
    dir: Path | None = None
    name: str | None = None


@dataclass(frozen=True)
class BinaryRequest:
    """A request to obtain one binary."""

    name: str
    url: str
    os_constraint: OsConstraint | None = None
    local_hints: LocalHints = field(default_factory=LocalHints)
    verify: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BinaryRequest:
        """Build a request from its declarative (YAML/JSON) form.

        Accepts ``remote.url`` and ``local.whichCmd`` as aliases of ``url``
        and ``local.commands``.
        """
        if not isinstance(data, dict):
            msg = f"Binary options must be a mapping, got {type(data).__name__}"
            raise ValidationError(msg)

        name = data.get("name")
        if not isinstance(name, str) or not name:
            msg = "Binary options must include a name field"
            raise ValidationError(msg)

        url = data.get("url")
        if url is None and isinstance(data.get("remote"), dict):
            url = data["remote"].get("url")

        os_data = data.get("os")
        if os_data is not None and not isinstance(os_data, dict):
            msg = "'os' must be a mapping"
            raise ValidationError(msg, name)
        constraint = None
        if os_data is not None:
            constraint = OsConstraint(
                platform=_optional_str(os_data, "platform", name),
                arch=_optional_str(os_data, "arch", name),
            )

        local_data = data.get("local") or {}
        if not isinstance(local_data, dict):
            msg = "'local' must be a mapping"
            raise ValidationError(msg, name)
        commands = arrify(local_data.get("commands", local_data.get("whichCmd")))
        if not all(isinstance(c, str) and c for c in commands):
            msg = "'local.commands' must be a list of command names"
            raise ValidationError(msg, name)
        directory = local_data.get("dir")
        if directory is not None and not isinstance(directory, (str, Path)):
            msg = "'local.dir' must be a path string"
            raise ValidationError(msg, name)

        return cls(
            name=name,
            url=url,
            os_constraint=constraint,
            local_hints=LocalHints(
                commands=tuple(commands),
                dir=Path(os.path.expanduser(directory)) if directory is not None else None,
                name=_optional_str(local_data, "name", name),
            ),
            verify=data.get("verify", True),
        )

    def validate(self) -> None:
        """Check the request before any lookup or I/O is attempted.

        Requests built directly rather than through :meth:`from_dict` get the
        same type checks here.
        """
        if not isinstance(self.name, str) or not self.name:
            msg = "Binary options must include a name field"
            raise ValidationError(msg)
        if not isinstance(self.url, str) or not _is_absolute_url(self.url):
            msg = f"does not have a valid absolute url: {self.url!r}"
            raise ValidationError(msg, self.name)
        self._validate_os_constraint()
        self._validate_local_hints()
        if not isinstance(self.verify, bool):
            msg = "'verify' must be true or false"
            raise ValidationError(msg, self.name)

    def _validate_os_constraint(self) -> None:
        constraint = self.os_constraint
        if constraint is None:
            return
        if not isinstance(constraint, OsConstraint):
            msg = f"'os' must be an OsConstraint, got {type(constraint).__name__}"
            raise ValidationError(msg, self.name)
        for key in ("platform", "arch"):
            value = getattr(constraint, key)
            if value is not None and not isinstance(value, str):
                msg = f"'os.{key}' must be a string, got {type(value).__name__}"
                raise ValidationError(msg, self.name)
        if constraint.platform is not None and constraint.platform.lower() not in PLATFORMS:
            msg = f"os.platform must be one of {', '.join(PLATFORMS)}, got {constraint.platform!r}"
            raise ValidationError(msg, self.name)

    def _validate_local_hints(self) -> None:
        hints = self.local_hints
        if not isinstance(hints, LocalHints):
            msg = f"'local' must be a LocalHints, got {type(hints).__name__}"
            raise ValidationError(msg, self.name)
        if not isinstance(hints.commands, (list, tuple)) or not all(
            isinstance(c, str) and c for c in hints.commands
        ):
            msg = "'local.commands' must be a list of command names"
            raise ValidationError(msg, self.name)
        if hints.name is not None and (not isinstance(hints.name, str) or not hints.name):
            msg = "'local.name' must be a non-empty string"
            raise ValidationError(msg, self.name)
        if hints.dir is None:
            return
        if not isinstance(hints.dir, (str, os.PathLike)):
            msg = f"'local.dir' must be a path, got {type(hints.dir).__name__}"
            raise ValidationError(msg, self.name)
        if not Path(hints.dir).is_absolute():
            msg = f'Directory path entered "{hints.dir}" is not an absolute path'
            raise ValidationError(msg, self.name)

    @property
    def target_name(self) -> str:
        """Name of the directory the binary is extracted into."""
        if self.local_hints.name:
            return self.local_hints.name
        return strip_archive_extension(url_filename(self.url)) or self.name

    def target_dir(self, binaries_dir: Path) -> Path:
        """Directory the fetch pipeline extracts into."""
        return Path(self.local_hints.dir or binaries_dir) / self.target_name


def _optional_str(data: dict[str, Any], key: str, name: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        msg = f"'{key}' must be a string"
        raise ValidationError(msg, name)
    return value


def _is_absolute_url(url: str) -> bool:
    parsed = urlparse(url)
    return bool(parsed.scheme and parsed.netloc)


@dataclass
class GetBinaryConfig:
    """Configuration for getbinary."""

    home: Path = field(default_factory=default_home)
    binaries_dir: Path | None = None
    cache_file: Path | None = None
    binaries: list[dict[str, Any]] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Derive paths that default to locations under ``home``."""
        self.home = Path(os.path.expanduser(self.home))
        if self.binaries_dir is None:
            self.binaries_dir = self.home / "binaries"
        if self.cache_file is None:
            self.cache_file = self.home / CACHE_FILE_NAME
        self.binaries_dir = Path(os.path.expanduser(self.binaries_dir))
        self.cache_file = Path(os.path.expanduser(self.cache_file))

    def binary_names(self) -> list[str]:
        """Names of the binaries declared in the config."""
        return [b.get("name", "?") for b in self.binaries if isinstance(b, dict)]

    @classmethod
    def load_from_file(cls, config_path: str | Path | None = None) -> GetBinaryConfig:
        """Load configuration from a YAML file."""
        if not config_path:
            config_path = default_home() / "binaries.yaml"

        try:
            with open(config_path) as file:
                config_data = yaml.safe_load(file) or {}
        except FileNotFoundError:
            log(f"Configuration file not found: {config_path}", "warning")
            return cls()
        except yaml.YAMLError as e:
            msg = f"Invalid YAML in configuration file {config_path}: {e}"
            raise ValidationError(msg) from e

        if not isinstance(config_data, dict):
            msg = f"Configuration file {config_path} must contain a mapping"
            raise ValidationError(msg)

        binaries = config_data.get("binaries") or []
        if not isinstance(binaries, list):
            msg = f"'binaries' in {config_path} must be a list"
            raise ValidationError(msg)

        logger.debug("Loaded %d binary definitions from %s", len(binaries), config_path)
        return cls(
            home=config_data.get("home") or default_home(),
            binaries_dir=config_data.get("binaries_dir"),
            cache_file=config_data.get("cache_file"),
            binaries=binaries,
        )
