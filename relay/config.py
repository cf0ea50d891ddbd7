"""Relay configuration management.

Configuration sources (in priority order):
1. Config file (config.yaml)
2. Environment variables (RELAY_ prefix, ``__`` for nested sections)
3. Defaults
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000


class DatabaseConfig(BaseModel):
    """Database configuration."""

    # SQLite by default; postgresql+asyncpg:// works as well
    url: str = "sqlite+aiosqlite:///./relay.db"
    echo: bool = False


class LocalMediaConfig(BaseModel):
    """Filesystem media store configuration."""

    root_path: str = "./media"


class MinioMediaConfig(BaseModel):
    """MinIO / S3-compatible media store configuration."""

    endpoint: str = "localhost:9000"
    access_key: str = "admin"
    secret_key: str = "supersecret"
    bucket: str = "relay-media"
    secure: bool = False


class MediaConfig(BaseModel):
    """Media store configuration.

    The media store holds capture uploads and the per-session manifest.
    Keys are always ``{channel_id}/{session_id}/...`` so session deletion
    is a prefix operation on any backend.
    """

    backend: Literal["local", "minio"] = "local"
    local: LocalMediaConfig = Field(default_factory=LocalMediaConfig)
    minio: MinioMediaConfig = Field(default_factory=MinioMediaConfig)


class CORSConfig(BaseModel):
    """CORS configuration for API paths."""

    allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "DELETE", "OPTIONS"]
    )
    allow_headers: list[str] = Field(
        default_factory=lambda: [
            "Content-Type",
            "Authorization",
            "X-Capture-Filename",
            "X-Capture-Started-At",
            "X-Capture-Source",
        ]
    )


class PairingConfig(BaseModel):
    """Pairing code configuration."""

    code_ttl_seconds: int = 600  # 10 minutes
    # Attempts at drawing a code that does not collide with a live one
    code_generation_attempts: int = 5
    # Used or expired codes are kept this long past expiry so late
    # redemptions still report 410, then purged by the sweep
    retention_seconds: int = 86400


class CaptureConfig(BaseModel):
    """Capture session configuration."""

    # Active sessions without an upload for this long are auto-finalized
    idle_timeout_seconds: int = 120


class GCTaskConfig(BaseModel):
    """GC task-specific configuration."""

    enabled: bool = True


class GCConfig(BaseModel):
    """Background sweep configuration."""

    enabled: bool = True
    run_on_startup: bool = True
    interval_seconds: float = 60

    # Per-task configuration
    idle_capture_session: GCTaskConfig = Field(default_factory=GCTaskConfig)
    expired_pairing_code: GCTaskConfig = Field(default_factory=GCTaskConfig)


class Settings(BaseSettings):
    """Relay application settings."""

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    cors: CORSConfig = Field(default_factory=CORSConfig)
    pairing: PairingConfig = Field(default_factory=PairingConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    gc: GCConfig = Field(default_factory=GCConfig)


def _load_config_file() -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. RELAY_CONFIG_FILE environment variable
    2. ./config.yaml
    3. /etc/relay/config.yaml
    """
    config_paths = [
        os.environ.get("RELAY_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/relay/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Values from the YAML file are passed as init arguments, so they take
    precedence over RELAY_* environment variables, which in turn override
    the defaults.
    """
    file_config = _load_config_file()
    return Settings(**file_config)
