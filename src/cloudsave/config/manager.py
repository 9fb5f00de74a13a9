# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.05.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/config/manager.py

"""
User configuration.

``cloudsave.yml`` is looked up in four places, lowest priority first:
``/etc/cloudsave/``, ``~/.config/cloudsave/``, ``$XDG_CONFIG_HOME/cloudsave/``
and ``$CLOUDSAVE_CONFIG_HOME/``. Top-level keys of later files replace those
of earlier ones. Running with no file at all is normal and gives defaults.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Literal, Final

import yaml
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from cloudsave.system.exceptions import ConfigError

USER_CFG: Final = "cloudsave.yml"
SYSTEM_CFG_DIR: Final = "/etc/cloudsave/"

# never allowed in the system-wide file
PERSONAL_FIELDS: Final[frozenset[str]] = frozenset({"credentials"})


def _user_config_dir() -> Path:
    xdg = os.getenv("XDG_CONFIG_HOME")
    return Path(xdg) if xdg else Path.home() / ".config"


def default_datastore() -> Path:
    return _user_config_dir() / "cloudsave" / "data"


def _get_user_config_search_paths() -> tuple[Path, ...]:
    paths = [
        Path(SYSTEM_CFG_DIR) / USER_CFG,
        Path.home() / ".config" / "cloudsave" / USER_CFG,
    ]
    if xdg := os.getenv("XDG_CONFIG_HOME"):
        paths.append(Path(xdg) / "cloudsave" / USER_CFG)
    if override := os.getenv("CLOUDSAVE_CONFIG_HOME"):
        paths.append(Path(override) / USER_CFG)
    # XDG_CONFIG_HOME usually is ~/.config; read each file once
    return tuple(dict.fromkeys(paths))


def _validate_system_config(config_data: dict, config_path: Path) -> dict:
    """Refuse credentials in the system-wide file."""
    if not str(config_path).startswith(SYSTEM_CFG_DIR):
        return config_data
    personal = sorted(PERSONAL_FIELDS & config_data.keys())
    if personal:
        logger.error(f"{config_path} is shared by every user and must not set: {', '.join(personal)}")
        raise ConfigError(f"System config contains personal fields: {', '.join(personal)}")
    return config_data


def _read_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def _load_merged_config_data(candidates: tuple[Path, ...]) -> dict:
    merged: dict = {}
    for path in (c for c in candidates if c.is_file()):
        merged.update(_validate_system_config(_read_yaml(path), path))
        logger.debug(f"Loaded config from {path}")
    if not merged:
        logger.debug(f"No settings found in {USER_CFG}, using defaults")
    return merged


class RemoteCredentials(BaseModel):
    """HTTP Basic credentials for one remote URL."""
    username: str
    password: str


class UserConfig(BaseModel):
    """User configuration; every field has a usable default."""

    datastore: Path = Field(default_factory=default_datastore)
    repository: Literal["direct", "caching"] = "direct"

    # md5 matches what the remote computes; xxh3_64 is faster for local-only use
    hash_algorithm: Literal["md5", "xxh3_64"] = "md5"

    backup_limit: int = Field(default=6, ge=1)
    backup_before_overwrite: bool = True

    local_log: Optional[Path] = None
    request_timeout: float = Field(default=60.0, gt=0)

    credentials: dict[str, RemoteCredentials] = Field(default_factory=dict)

    @field_validator("datastore", "local_log", mode="after")
    @classmethod
    def expand_user(cls, value: Optional[Path]) -> Optional[Path]:
        return value.expanduser() if value is not None else None

    @field_validator("credentials", mode="after")
    @classmethod
    def normalize_urls(cls, value: dict[str, RemoteCredentials]) -> dict[str, RemoteCredentials]:
        return {url.rstrip("/"): creds for url, creds in value.items()}

    def credentials_for(self, url: str) -> Optional[RemoteCredentials]:
        return self.credentials.get(url.rstrip("/"))

    @classmethod
    def load(cls, config_path: Path) -> "UserConfig":
        return cls.model_validate(_read_yaml(config_path))


def load_merged_user_config() -> UserConfig:
    merged = _load_merged_config_data(_get_user_config_search_paths())
    try:
        return UserConfig.model_validate(merged)
    except ValueError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def _check_directory(label: str, path: Path, must_write: bool = False) -> Optional[str]:
    if not path.is_absolute():
        return f"{label} path must be absolute: {path}"
    if path.exists() and not path.is_dir():
        return f"{label} path exists but is not a directory: {path}"
    if must_write and path.exists() and not os.access(path, os.W_OK):
        return f"{label} directory is not writable: {path}"
    return None


def validate_config() -> list[str]:
    """Problems with the effective configuration; empty when it is usable."""
    try:
        config = load_merged_user_config()
    except ConfigError as e:
        return [str(e)]

    errors = [problem for problem in (
        _check_directory("datastore", config.datastore),
        _check_directory("local_log", config.local_log, must_write=True) if config.local_log else None,
    ) if problem]

    errors += [f"credentials key is not an http(s) URL: {url}"
               for url in config.credentials if not url.startswith(("http://", "https://"))]

    if config.credentials and config.hash_algorithm != "md5":
        errors.append(
            f"hash_algorithm {config.hash_algorithm} cannot be compared with remote hashes; "
            f"use md5 when syncing with a remote"
        )
    return errors
