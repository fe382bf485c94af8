"""Connector registry.

Resolves a connector configuration for an organizational unit and checks
that it is usable before a session touches any data.
"""

from __future__ import annotations

import logging
from typing import Iterable

from orgsync.config_schema import ConnectorConfig, UnifiedConfig
from orgsync.errors import ConfigurationError, ConnectorNotFoundError
from orgsync.sync.mapper import validate_field_maps

logger = logging.getLogger(__name__)


class ConnectorRegistry:
    """Look up connectors by ``(connector_id, org_unit)``.

    Args:
        connectors: Known connector configurations.

    Raises:
        ConfigurationError: If two connectors share an id within one org
            unit.
    """

    def __init__(self, connectors: Iterable[ConnectorConfig] = ()) -> None:
        self._connectors: dict[tuple[str, str], ConnectorConfig] = {}
        for connector in connectors:
            self.register(connector)

    @classmethod
    def from_config(cls, config: UnifiedConfig) -> ConnectorRegistry:
        return cls(config.connectors)

    def register(self, connector: ConnectorConfig) -> None:
        key = (connector.id, connector.org_unit)
        if key in self._connectors:
            raise ConfigurationError(
                f"Duplicate connector '{connector.id}' for org unit '{connector.org_unit}'"
            )
        self._connectors[key] = connector

    def list(self, org_unit: str | None = None) -> list[ConnectorConfig]:
        """Connectors, optionally limited to one org unit."""
        return [
            c
            for c in self._connectors.values()
            if org_unit is None or c.org_unit == org_unit
        ]

    def resolve(self, connector_id: str, org_unit: str) -> ConnectorConfig:
        """Return a validated, active connector.

        Raises:
            ConnectorNotFoundError: No such connector for *org_unit*.
            ConfigurationError: The connector is inactive or has no
                endpoint.
            FieldMapError: The field map is malformed.
        """
        connector = self._connectors.get((connector_id, org_unit))
        if connector is None:
            raise ConnectorNotFoundError(connector_id, org_unit)

        if not connector.is_active:
            raise ConfigurationError(
                f"Connector '{connector_id}' is inactive"
            )
        if not connector.endpoint.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"Invalid endpoint '{connector.endpoint}' for connector '{connector_id}': must start with http:// or https://"
            )

        validate_field_maps(connector.field_maps)
        logger.debug(
            "Resolved connector %s for %s -> %s",
            connector_id,
            org_unit,
            connector.endpoint,
        )
        return connector
