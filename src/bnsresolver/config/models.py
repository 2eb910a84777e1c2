"""Typed configuration sections built from the validated YAML mapping.

Brief:
  The JSON Schema check in config_schema rejects unknown keys and wrong types;
  these pydantic models then fill in defaults so the rest of the service can
  read attributes instead of probing nested dicts.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..subdomains.fetcher import (
    DEFAULT_ALLOWED_HOST_PATTERNS,
    FETCH_TIMEOUT_SECONDS,
    MAX_EXTERNAL_FILE_BYTES,
)


class CorsConfig(BaseModel):
    enabled: bool = True
    allowlist: List[str] = Field(default_factory=lambda: ["*"])


class HttpConfig(BaseModel):
    """Brief: HTTP listener settings.

    Inputs:
      - host/port: Bind address for uvicorn.
      - max_limit: Upper bound applied to every paginated `limit` parameter.
      - cors: CORS middleware settings.

    Outputs:
      - HttpConfig instance.
    """

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)
    max_limit: int = Field(default=100, ge=1)
    cors: CorsConfig = Field(default_factory=CorsConfig)


class DatabaseConfig(BaseModel):
    """Brief: PostgreSQL connection settings for the indexed BNS tables.

    Inputs:
      - host/port/user/password/database: libpq connection parameters.
      - statement_timeout_ms: Server-side statement timeout per session.
      - connect_kwargs: Extra keyword arguments passed to the driver connect().
      - health_interval_seconds: Period of the background connectivity probe.

    Outputs:
      - DatabaseConfig instance.
    """

    host: str = "localhost"
    port: int = Field(default=5432, ge=1, le=65535)
    user: Optional[str] = None
    password: Optional[str] = None
    database: str = "bns"
    statement_timeout_ms: int = Field(default=30000, ge=0)
    connect_kwargs: Dict[str, Any] = Field(default_factory=dict)
    health_interval_seconds: float = Field(default=300.0, gt=0)


class ExternalFilesConfig(BaseModel):
    """Brief: Limits for fetching externally hosted subdomain files."""

    max_bytes: int = Field(default=MAX_EXTERNAL_FILE_BYTES, ge=1)
    timeout_seconds: float = Field(default=FETCH_TIMEOUT_SECONDS, gt=0)
    allowed_host_patterns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_HOST_PATTERNS)
    )
    # Added to the built-in loopback/localhost patterns, never replacing them.
    blocked_host_patterns: List[str] = Field(default_factory=list)


def load_sections(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Brief: Build typed section models from a validated config mapping.

    Inputs:
      - cfg: Configuration mapping returned by parse_config_file().

    Outputs:
      - dict with keys 'http', 'database' and 'external_files'.
    """

    server = cfg.get("server") or {}
    return {
        "http": HttpConfig(**(server.get("http") or {})),
        "database": DatabaseConfig(**(cfg.get("database") or {})),
        "external_files": ExternalFilesConfig(**(cfg.get("external_files") or {})),
    }
