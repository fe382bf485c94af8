"""Unified configuration schema for orgsync.

Defines Pydantic models for the config structure with dedicated sections
for connectors, engine tuning and logging.

Usage:
    from orgsync.config_schema import UnifiedConfig, build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    for connector in unified.connectors:
        ...
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Connector sections
# ---------------------------------------------------------------------------


class AuthConfig(BaseModel):
    """Credentials for one external endpoint.

    Only the fields relevant to ``method`` are used; the rest are ignored.
    """

    method: Literal["none", "api_key", "bearer", "basic"] = Field(
        default="none", description="Authentication method"
    )
    token: str | None = Field(
        default=None, description="Bearer token"
    )
    api_key: str | None = Field(default=None, description="API key")
    api_key_header: str = Field(
        default="X-API-Key",
        description="Header that carries the API key",
    )
    username: str | None = Field(
        default=None, description="Basic auth username"
    )
    password: str | None = Field(
        default=None, description="Basic auth password"
    )

    model_config = {"frozen": True}


class FieldMapConfig(BaseModel):
    """Bidirectional field name translation.

    Attributes:
        source_to_target: Remote field name -> local field name, used when
            applying remote-origin operations to the local store.
        target_to_source: Local field name -> remote field name, used when
            applying local-origin operations to the remote API.
    """

    source_to_target: dict[str, str] = Field(default_factory=dict)
    target_to_source: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}


class ConnectorConfig(BaseModel):
    """One named external data source owned by an organizational unit."""

    id: str = Field(description="Connector identifier")
    name: str = Field(default="", description="Display name")
    org_unit: str = Field(description="Owning organizational unit")
    endpoint: str = Field(description="URL read for change detection")
    write_endpoint: str | None = Field(
        default=None,
        description="URL written to; defaults to endpoint",
    )
    auth: AuthConfig = Field(default_factory=AuthConfig)
    headers: dict[str, str] = Field(default_factory=dict)
    collection: str = Field(
        default="projects",
        description="Logical collection synchronized by this connector",
    )
    field_maps: FieldMapConfig = Field(default_factory=FieldMapConfig)
    enrolled_collections: list[str] | None = Field(
        default=None,
        description=(
            "Collections that undergo conflict detection. "
            "None enrolls only the connector's own collection."
        ),
    )
    direction: Literal[
        "local_to_remote", "remote_to_local", "bidirectional"
    ] = "bidirectional"
    timeout: float = Field(
        default=30.0, gt=0, description="HTTP timeout in seconds"
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries for transient remote failures (0-10)",
    )
    backoff_factor: float = Field(
        default=0.5, ge=0, description="Exponential backoff factor"
    )
    lookback_hours: float | None = Field(
        default=None,
        gt=0,
        description="Checkpoint window when no previous session exists",
    )
    is_active: bool = True

    model_config = {"frozen": True}

    @property
    def resolved_write_endpoint(self) -> str:
        """URL used for create/update/delete calls."""
        return self.write_endpoint or self.endpoint

    @property
    def conflict_tracked(self) -> frozenset[str]:
        """Collections enrolled in conflict detection."""
        if self.enrolled_collections is None:
            return frozenset({self.collection})
        return frozenset(self.enrolled_collections)


# ---------------------------------------------------------------------------
# Engine and logging sections
# ---------------------------------------------------------------------------


class EngineConfig(BaseModel):
    """Sync engine tuning.

    All fields are optional so env vars can supply them at runtime.
    """

    max_parallel_operations: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Records processed concurrently (1-64)",
    )
    default_lookback_hours: float = Field(
        default=24.0,
        gt=0,
        description="Checkpoint window for a connector's first session",
    )
    state_dir: str = Field(
        default=".orgsync",
        description="Directory for session, conflict and version files",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    ``UnifiedConfig()`` (zero-config) is always valid; it simply has no
    connectors.
    """

    connectors: list[ConnectorConfig] = Field(default_factory=list)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    unified = UnifiedConfig(**raw_data)
    logger.debug(
        "Built config with %d connector(s)", len(unified.connectors)
    )
    return unified
