"""Locate the data directory, the database and the user's preferences."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigError

logger = logging.getLogger(__name__)

DATABASE_NAME = "tt.db"
DEFAULT_EDITOR = "vi"


class UserConfig(BaseModel):
    """Contents of ``config.json``; every key is optional."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    editor: Optional[str] = None
    data_dir: Optional[Path] = Field(default=None, alias="dataDir")


@dataclass(frozen=True)
class TrackerConfig:
    """Resolved settings used by the command line and the HTTP API."""

    data_dir: Path
    config_path: Path
    editor: str

    @property
    def database_path(self) -> Path:
        return self.data_dir / DATABASE_NAME

    def ensure_data_dir(self) -> Path:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        return self.data_dir


def default_config_path(environ: Mapping[str, str] = os.environ) -> Path:
    custom = environ.get("TT_CONFIG")
    if custom:
        return Path(custom).expanduser()
    return Path.home() / ".config" / "tt" / "config.json"


def default_data_dir(environ: Mapping[str, str] = os.environ) -> Path:
    custom = environ.get("TT_DATA_DIR")
    if custom:
        return Path(custom).expanduser()
    return Path.home() / ".local" / "share" / "tt"


def load_user_config(path: Path) -> UserConfig:
    """Read *path*, returning defaults when the file does not exist."""

    if not path.is_file():
        return UserConfig()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc
    try:
        return UserConfig.model_validate(raw)
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc


def resolve_editor(user: UserConfig, environ: Mapping[str, str] = os.environ) -> str:
    return user.editor or environ.get("EDITOR") or environ.get("VISUAL") or DEFAULT_EDITOR


def load_config(environ: Mapping[str, str] = os.environ) -> TrackerConfig:
    """Combine environment variables and ``config.json`` into one object.

    ``TT_DATA_DIR`` takes precedence over ``dataDir`` from the file.
    """

    config_path = default_config_path(environ)
    user = load_user_config(config_path)

    if environ.get("TT_DATA_DIR") or user.data_dir is None:
        data_dir = default_data_dir(environ)
    else:
        data_dir = user.data_dir.expanduser()

    config = TrackerConfig(
        data_dir=data_dir,
        config_path=config_path,
        editor=resolve_editor(user, environ),
    )
    logger.debug("Using data directory %s", config.data_dir)
    return config


__all__ = [
    "TrackerConfig",
    "UserConfig",
    "default_config_path",
    "default_data_dir",
    "load_config",
    "load_user_config",
    "resolve_editor",
]
