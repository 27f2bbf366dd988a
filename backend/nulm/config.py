"""Nulm application configuration.

Loads settings from a single YAML file:
  * nulm.settings.yaml: non-secret configuration

Every timing constant the matchmaking engine relies on (session duration,
report grace periods, restart delay, chat-ready staging) lives here so tests
can shrink them to milliseconds.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("nulm.settings.yaml")


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
    host: str = "0.0.0.0"
    port: int = 3000


class LoggingSettings(BaseModel):
    level: str = "info"


class SessionSettings(BaseModel):
    """Per-connection expiry timer."""
    duration_seconds: float = Field(default=8 * 60 * 60, gt=0)


class MatchingSettings(BaseModel):
    """Delays used while entering, matching and restarting."""
    wait_notice_delay:     float = Field(default=1.0, ge=0)
    ready_delay:           float = Field(default=1.0, ge=0)
    warning_delay:         float = Field(default=1.5, ge=0)
    restart_requeue_delay: float = Field(default=5.0, ge=0)


class ReportSettings(BaseModel):
    """Report accumulator and ban policy."""
    ban_threshold: int   = Field(default=100, ge=1)
    notice_delay:  float = Field(default=2.0, ge=0)
    requeue_delay: float = Field(default=5.0, ge=0)
    timezone:      str   = "Asia/Seoul"
    db_path:       str   = "reports.duckdb"


class ChatLogSettings(BaseModel):
    enabled: bool = True
    db_path: str  = "chat_logs.duckdb"


class AppSettings(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    session:  SessionSettings  = Field(default_factory=SessionSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    reports:  ReportSettings   = Field(default_factory=ReportSettings)
    chat_log: ChatLogSettings  = Field(default_factory=ChatLogSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(settings_path: Optional[Path] = None) -> AppSettings:
    """Load settings from YAML into a single *AppSettings* object."""
    settings_data = _load_yaml(Path(settings_path) if settings_path else SETTINGS_FILE)

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, session=%ss, ban_threshold=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.session.duration_seconds,
        app_settings.reports.ban_threshold,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def set_config(config: Optional[AppSettings]) -> None:
    """Replace (or with None, forget) the process-wide settings."""
    global _config
    _config = config
