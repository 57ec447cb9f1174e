"""Photo Relay application configuration.

Loads settings from a single YAML file:
  * relay.settings.yaml  — server, storage and logging settings

The file location can be overridden with the ``RELAY_SETTINGS`` environment
variable, and ``PORT`` overrides ``server.port``.  Relative storage paths are
resolved against the directory holding the settings file.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("relay.settings.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 3020
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class StorageSettings(BaseModel):
    """Where blobs live and how long they are kept."""
    upload_dir:             str   = "./uploads"
    max_file_size_bytes:    int   = 100 * 1024 * 1024
    ttl_seconds:            float = 60.0
    sweep_interval_seconds: float = 30.0
    clear_on_upload:        bool  = False

    @field_validator("max_file_size_bytes", "ttl_seconds", "sweep_interval_seconds")
    @classmethod
    def _must_be_positive(cls, value):
        if value <= 0:
            raise ValueError("must be positive")
        return value


class LoggingSettings(BaseModel):
    level: str = "info"


class AppConfig(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _resolve_upload_dir(config: AppConfig, base_dir: Path) -> None:
    upload_dir = Path(config.storage.upload_dir).expanduser()
    if not upload_dir.is_absolute():
        upload_dir = base_dir / upload_dir
    config.storage.upload_dir = str(upload_dir.resolve())


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load *AppConfig* from YAML, applying environment overrides."""
    if settings_path is None:
        settings_path = Path(os.environ.get("RELAY_SETTINGS", SETTINGS_FILE))
    settings_path = Path(settings_path)

    data = _load_yaml(settings_path)
    config = AppConfig(**data)

    port = os.environ.get("PORT")
    if port:
        config.server.port = int(port)

    _resolve_upload_dir(config, settings_path.resolve().parent)

    logger.info(
        "Settings loaded (server=%s:%s, upload_dir=%s, ttl=%ss, sweep=%ss)",
        config.server.host,
        config.server.port,
        config.storage.upload_dir,
        config.storage.ttl_seconds,
        config.storage.sweep_interval_seconds,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[AppConfig]) -> None:
    """Replace (or clear) the process-wide config."""
    global _config
    _config = config


def reset_config() -> None:
    """Drop the cached config so the next get_config() reloads (for testing)."""
    set_config(None)
