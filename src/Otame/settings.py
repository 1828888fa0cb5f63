# === NAVMAP v1 ===
# {
#   "module": "Otame.settings",
#   "purpose": "Define configuration models and environment overrides for the catalog",
#   "sections": [
#     {"id": "ingestmode", "name": "IngestMode", "anchor": "class-ingestmode", "kind": "class"},
#     {"id": "storeconfiguration", "name": "StoreConfiguration", "anchor": "class-storeconfiguration", "kind": "class"},
#     {"id": "ingestconfig", "name": "IngestConfig", "anchor": "class-ingestconfig", "kind": "class"},
#     {"id": "sweepconfig", "name": "SweepConfig", "anchor": "class-sweepconfig", "kind": "class"},
#     {"id": "loggingconfig", "name": "LoggingConfig", "anchor": "class-loggingconfig", "kind": "class"},
#     {"id": "otamesettings", "name": "OtameSettings", "anchor": "class-otamesettings", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models for the Otame catalog.

Only three knobs reach the core: which dataset to write, the ingest mode,
and the retention window of the sweep.  Everything else here (database path,
logging level) is wiring for the command line and for embedding
applications.  Models are pydantic ``BaseModel`` subclasses validated on
assignment; :meth:`OtameSettings.from_env` layers ``OTAME_*`` environment
variables on top of the defaults.
"""

from __future__ import annotations

import os
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "IngestMode",
    "StoreConfiguration",
    "IngestConfig",
    "SweepConfig",
    "LoggingConfig",
    "OtameSettings",
]


class IngestMode(str, Enum):
    """How a bulk ingest treats rows already present for the dataset."""

    REPLACE = "replace"
    APPEND = "append"


class StoreConfiguration(BaseModel):
    """SQLite store location and connection behaviour."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    db_path: Path = Field(
        default=Path("otame.sqlite3"),
        description="Path to the SQLite database file",
    )
    readonly: bool = Field(default=False, description="Open the store for reads only")
    wal_mode: bool = Field(
        default=True,
        description="Use WAL journaling so readers never block on the writer",
    )
    busy_timeout_ms: int = Field(
        default=30_000,
        ge=0,
        description="How long a connection waits on a locked database",
    )
    max_idle_readers: int = Field(
        default=2,
        ge=0,
        description="Read connections kept open between reads; extras are closed on return",
    )


class IngestConfig(BaseModel):
    """Bulk ingest defaults."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    mode: IngestMode = Field(default=IngestMode.REPLACE)
    progress_every: int = Field(
        default=10_000,
        gt=0,
        description="Log ingest progress every N records",
    )


class SweepConfig(BaseModel):
    """Retention policy for dead generations."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    retention: timedelta = Field(
        default=timedelta(days=1),
        description="How long a generation stays dead before its rows are deleted",
    )

    @field_validator("retention")
    @classmethod
    def validate_retention(cls, value: timedelta) -> timedelta:
        """Reject negative retention windows."""

        if value < timedelta(0):
            raise ValueError("retention must be non-negative")
        return value


class LoggingConfig(BaseModel):
    """Logging level and output format."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    json_output: bool = Field(default=False, description="Emit JSON lines instead of plain text")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper


class OtameSettings(BaseModel):
    """Top-level settings grouping every configuration section."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    store: StoreConfiguration = Field(default_factory=StoreConfiguration)
    ingest: IngestConfig = Field(default_factory=IngestConfig)
    sweep: SweepConfig = Field(default_factory=SweepConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "OtameSettings":
        """Build settings from defaults overridden by ``OTAME_*`` variables."""

        settings = cls()
        db_path = _read_env_value("OTAME_DB_PATH")
        if db_path is not None:
            settings.store.db_path = Path(db_path)
        level = _read_env_value("OTAME_LOG_LEVEL")
        if level is not None:
            settings.logging.level = level
        hours = _read_env_value("OTAME_RETENTION_HOURS")
        if hours is not None:
            settings.sweep.retention = timedelta(hours=float(hours))
        return settings


def _read_env_value(name: str) -> Optional[str]:
    """Fetch and normalise an environment variable, treating empty values as absent."""

    raw = os.environ.get(name)
    if raw is None:
        return None
    value = raw.strip()
    return value or None
