"""Roomhub application configuration.

Loads settings from a YAML file:
  * roomhub.settings.yaml: non-secret configuration (default location)
  * $ROOMHUB_SETTINGS: optional path overriding the default file

Every section has defaults, so a missing file simply yields a default
configuration (a warning is logged).
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("roomhub.settings.yaml")
SETTINGS_ENV_VAR = "ROOMHUB_SETTINGS"


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
    host:            str  = "0.0.0.0"
    port:            int  = 5000
    allowed_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])


class ChatSettings(BaseModel):
    """Limits and behaviour switches for the chat room."""
    history_page_size:  int  = 20
    max_page_size:      int  = 100
    max_participants:   int  = 0   # 0 = no limit
    max_message_length: int  = 0   # 0 = no limit
    max_name_length:    int  = 64
    dedupe_reactions:   bool = False

    @field_validator("max_page_size", "max_name_length")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @field_validator("max_participants", "max_message_length")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0 (0 disables the limit)")
        return value

    @model_validator(mode="after")
    def _page_size_within_bounds(self) -> "ChatSettings":
        if not 1 <= self.history_page_size <= self.max_page_size:
            raise ValueError(
                f"history_page_size must be between 1 and max_page_size ({self.max_page_size})"
            )
        return self


class LoggingSettings(BaseModel):
    level: str = "info"


class AppSettings(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(path: Optional[Path] = None) -> AppSettings:
    """Load settings from *path*, ``$ROOMHUB_SETTINGS`` or the default file."""
    if path is None:
        env_path = os.environ.get(SETTINGS_ENV_VAR)
        path = Path(env_path) if env_path else SETTINGS_FILE

    app_settings = AppSettings(**_load_yaml(Path(path)))
    logger.info(
        "Settings loaded (server=%s:%s, page_size=%s, dedupe_reactions=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.chat.history_page_size,
        app_settings.chat.dedupe_reactions,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def reset_config() -> None:
    """Drop the cached settings (for testing)."""
    global _config
    _config = None
