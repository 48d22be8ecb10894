"""Chatcore application configuration.

Loads settings from two YAML files:
  * chatcore.settings.yaml: non-secret configuration
  * chatcore.secrets.yaml: secrets (never committed)

Both paths can be overridden with the CHATCORE_SETTINGS / CHATCORE_SECRETS
environment variables. Missing files fall back to the defaults below.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path(os.environ.get("CHATCORE_SETTINGS", "chatcore.settings.yaml"))
SECRETS_FILE  = Path(os.environ.get("CHATCORE_SECRETS", "chatcore.secrets.yaml"))


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key: str = "change-me-in-production"
    algorithm:  str = "HS256"


class Secrets(BaseModel):
    jwt: JWTSecrets = Field(default_factory=JWTSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if value.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class AuthSettings(BaseModel):
    token_expire_minutes: int = Field(default=1440, gt=0)


class StoreSettings(BaseModel):
    """DuckDB file locations. Use ":memory:" for throwaway databases."""
    db_path:       str = "chat.duckdb"
    users_db_path: str = "users.duckdb"


class ChatSettings(BaseModel):
    default_page_size:      int = Field(default=50, gt=0)
    max_page_size:          int = Field(default=100, gt=0)
    max_content_length:     int = Field(default=5000, gt=0)
    max_description_length: int = Field(default=500, gt=0)


class MentionSettings(BaseModel):
    suggestion_limit: int = Field(default=10, gt=0)
    search_limit:     int = Field(default=20, gt=0)


class AppSettings(BaseModel):
    server:   ServerSettings  = Field(default_factory=ServerSettings)
    logging:  LoggingSettings = Field(default_factory=LoggingSettings)
    auth:     AuthSettings    = Field(default_factory=AuthSettings)
    store:    StoreSettings   = Field(default_factory=StoreSettings)
    chat:     ChatSettings    = Field(default_factory=ChatSettings)
    mentions: MentionSettings = Field(default_factory=MentionSettings)
    secrets:  Secrets         = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(
    settings_file: Path = SETTINGS_FILE,
    secrets_file: Path = SECRETS_FILE,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_data = _load_yaml(settings_file)
    secrets_data  = _load_yaml(secrets_file)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, store=%s, log_level=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.store.db_path,
        app_settings.logging.level,
    )
    return app_settings


@lru_cache(maxsize=1)
def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    return load_settings()
