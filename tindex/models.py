"""Pydantic models for tindex.

Provides the tracker admin API payloads and the validated configuration
models.
"""

from __future__ import annotations

import time
from enum import Enum
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class TrackerMode(str, Enum):
    """How the linked tracker admits torrents and peers."""

    PUBLIC = "public"
    LISTED = "listed"
    PRIVATE = "private"
    PRIVATE_LISTED = "private_listed"

    def is_private(self) -> bool:
        """Peers must announce with a personal key."""
        return self in (TrackerMode.PRIVATE, TrackerMode.PRIVATE_LISTED)

    def is_listed(self) -> bool:
        """Torrents must be whitelisted before the tracker serves them."""
        return self in (TrackerMode.LISTED, TrackerMode.PRIVATE_LISTED)


# --- Tracker admin API payloads ---


class TrackerKey(BaseModel):
    """Per-user announce key issued by the tracker."""

    key: str = Field(..., min_length=1, description="Announce key")
    valid_until: int = Field(..., description="Expiry as a unix timestamp (seconds)")

    def is_expired(self, now: float | None = None) -> bool:
        """Return True once the key can no longer be reused."""
        if now is None:
            now = time.time()
        return now >= self.valid_until


class PeerId(BaseModel):
    """Peer identifier as reported by the tracker."""

    id: str | None = None
    client: str | None = None


class Peer(BaseModel):
    """A peer in a tracker torrent-info response.

    Every field is optional; the tracker does not guarantee the shape.
    """

    model_config = ConfigDict(populate_by_name=True)

    peer_id: PeerId | None = None
    addr: str | None = Field(default=None, alias="peer_addr")
    updated: int | None = None
    uploaded: int | None = None
    downloaded: int | None = None
    left: int | None = None
    event: str | None = None


class TorrentInfo(BaseModel):
    """Live swarm statistics for one torrent, straight from the tracker."""

    info_hash: str
    seeders: int
    completed: int
    leechers: int
    peers: list[Peer] = Field(default_factory=list)


# --- Configuration ---


class TrackerConfig(BaseModel):
    """Linked tracker configuration."""

    url: str = Field(
        default="udp://localhost:6969",
        description="Announce URL handed out to peers",
    )
    mode: TrackerMode = Field(default=TrackerMode.PUBLIC, description="Tracker mode")
    api_url: str = Field(
        default="http://localhost:1212",
        description="Base URL of the tracker admin API",
    )
    token: SecretStr = Field(
        default=SecretStr("MyAccessToken"),
        description="Admin API token",
    )
    token_valid_seconds: int = Field(
        default=7_257_600,
        ge=1,
        description="Lifetime of issued announce keys in seconds",
    )
    request_timeout: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        description="Timeout in seconds for each admin API request",
    )

    @field_validator("url", "api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize URLs so paths can be appended with a single slash."""
        v = v.strip()
        if not v:
            msg = "URL cannot be empty"
            raise ValueError(msg)
        return v.rstrip("/")

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """The admin API is only reachable over HTTP(S)."""
        if urlparse(v).scheme not in ("http", "https"):
            msg = f"Tracker API URL must use http or https, got '{v}'"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_private_url(self) -> TrackerConfig:
        """Private trackers carry the key in the URL path, which UDP cannot do."""
        if self.mode.is_private() and urlparse(self.url).scheme not in ("http", "https"):
            msg = f"Tracker mode '{self.mode.value}' requires an http(s) tracker URL, got '{self.url}'"
            raise ValueError(msg)
        return self


class ImporterConfig(BaseModel):
    """Tracker statistics importer configuration."""

    max_concurrent_requests: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum tracker lookups in flight during an import pass",
    )
    torrent_info_update_interval: int = Field(
        default=3600,
        ge=1,
        description="Interval in seconds an external scheduler should use between passes",
    )
    page_size: int = Field(
        default=500,
        ge=1,
        le=100_000,
        description="Info-hashes fetched from storage per page",
    )


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = Field(default="./storage/tindex.db", description="SQLite database file")


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(default=False, description="Use JSON logs in the log file")
    log_correlation_id: bool = Field(
        default=True,
        description="Include correlation IDs",
    )


class Config(BaseModel):
    """Main configuration model."""

    tracker: TrackerConfig = Field(
        default_factory=TrackerConfig,
        description="Tracker configuration",
    )
    tracker_statistics_importer: ImporterConfig = Field(
        default_factory=ImporterConfig,
        description="Tracker statistics importer configuration",
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig,
        description="Database configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )

    def redacted(self) -> dict:
        """Return the configuration as plain data with secrets masked."""
        data = self.model_dump(mode="json")
        data["tracker"]["token"] = "***"
        return data
