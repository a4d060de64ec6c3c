"""Project configuration: ``.explsync/config.yml`` merged with CLI overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

CONFIG_REL_PATH = Path(".explsync") / "config.yml"
DATABASE_ENV = "DATABASE_URL"

LINK_MODES = ("auto", "single", "ordered")

_SQLITE_URL_PREFIXES = ("sqlite:///", "sqlite://")


class ConfigError(ValueError):
    """Raised when configuration is missing or invalid (fatal, before any work)."""


@dataclass(frozen=True)
class SyncConfig:
    """Resolved settings for one sync run."""

    project_root: Path
    manifest: str = "meta.json"
    content_dir: str = "explanations"
    database: str | None = None
    link_mode: str = "auto"
    since: str = "HEAD~1"
    svg_base_url: str = ""

    @property
    def manifest_path(self) -> Path:
        return self.project_root / self.manifest

    @property
    def content_path(self) -> Path:
        return self.project_root / self.content_dir

    @property
    def database_path(self) -> Path:
        """Filesystem path of the SQLite database.

        Raises:
            ConfigError: If no database target is configured.
        """
        if not self.database:
            msg = (
                "no database configured: pass --database, set "
                f"{DATABASE_ENV}, or add 'database' to {CONFIG_REL_PATH}"
            )
            raise ConfigError(msg)
        target = self.database
        for prefix in _SQLITE_URL_PREFIXES:
            if target.startswith(prefix):
                target = target[len(prefix) :]
                break
        path = Path(target)
        return path if path.is_absolute() else self.project_root / path


def _rel_posix(value: str, key: str) -> str:
    pure = PurePosixPath(value.replace("\\", "/"))
    if pure.is_absolute() or ".." in pure.parts:
        msg = f"'{key}' must be a path inside the project, got '{value}'"
        raise ConfigError(msg)
    return str(pure)


def _read_config_file(project_root: Path) -> dict[str, Any]:
    config_path = project_root / CONFIG_REL_PATH
    if not config_path.exists():
        return {}
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        msg = f"{CONFIG_REL_PATH}: invalid YAML: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{CONFIG_REL_PATH}: expected a mapping at top level"
        raise ConfigError(msg)
    return data


def load_config(project_root: Path, **overrides: str | None) -> SyncConfig:
    """Resolve configuration for *project_root*.

    Precedence: explicit *overrides* (CLI options), then the config file,
    then the ``DATABASE_URL`` environment variable (database only), then
    defaults.  ``None`` overrides are ignored.

    Raises:
        ConfigError: On unknown keys, wrong types or invalid values.
    """
    known = {f.name for f in fields(SyncConfig)} - {"project_root"}
    values: dict[str, Any] = {}

    for key, value in _read_config_file(project_root).items():
        if key not in known:
            msg = f"{CONFIG_REL_PATH}: unknown key '{key}'"
            raise ConfigError(msg)
        if value is None:
            continue
        if not isinstance(value, str):
            msg = f"{CONFIG_REL_PATH}: '{key}' must be a string"
            raise ConfigError(msg)
        values[key] = value

    if not values.get("database") and os.environ.get(DATABASE_ENV):
        values["database"] = os.environ[DATABASE_ENV]

    for key, value in overrides.items():
        if key not in known:
            msg = f"unknown setting '{key}'"
            raise ConfigError(msg)
        if value is not None:
            values[key] = value

    config = replace(SyncConfig(project_root=project_root), **values)

    if config.link_mode not in LINK_MODES:
        msg = f"link_mode must be one of {', '.join(LINK_MODES)}, got '{config.link_mode}'"
        raise ConfigError(msg)
    return replace(
        config,
        manifest=_rel_posix(config.manifest, "manifest"),
        content_dir=_rel_posix(config.content_dir, "content_dir"),
    )


def check_sources(config: SyncConfig) -> None:
    """Verify the manifest file and content directory exist.

    Raises:
        ConfigError: If either is missing.
    """
    if not config.manifest_path.is_file():
        msg = f"manifest not found: {config.manifest_path}"
        raise ConfigError(msg)
    if not config.content_path.is_dir():
        msg = f"content directory not found: {config.content_path}"
        raise ConfigError(msg)
