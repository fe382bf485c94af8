"""Config-driven field mapper for bidirectional record sync.

Translates record payloads between remote field names and local field
names using a connector's ``FieldMapConfig``.

Mapping rules:

1. **Direction** -- remote-origin payloads use ``source_to_target``;
   local-origin payloads use ``target_to_source``.
2. **Whitelist** -- only fields named in the map are carried over.  Fields
   absent from the map are dropped, never passed through.
3. **Missing fields** -- a mapped field absent from the payload is simply
   omitted from the output.
"""

from __future__ import annotations

from typing import Any

from orgsync.config_schema import FieldMapConfig
from orgsync.errors import FieldMapError
from orgsync.sync.models import Origin


class FieldMapper:
    """Translate payloads for one connector.

    Args:
        field_maps: The connector's bidirectional field map.
    """

    def __init__(self, field_maps: FieldMapConfig) -> None:
        self._field_maps = field_maps

    def mapping_for(self, origin: Origin) -> dict[str, str]:
        """Return the field map applied to operations from *origin*."""
        if origin is Origin.REMOTE:
            return self._field_maps.source_to_target
        return self._field_maps.target_to_source

    def output_fields(self, origin: Origin) -> frozenset[str]:
        """Field names that can appear in a translated payload."""
        return frozenset(self.mapping_for(origin).values())

    def translate(
        self, payload: dict[str, Any], origin: Origin
    ) -> dict[str, Any]:
        """Translate *payload* from *origin* naming to the opposite side.

        Output key order follows the field map's order.
        """
        mapping = self.mapping_for(origin)
        return {
            target: payload[source]
            for source, target in mapping.items()
            if source in payload
        }


def validate_field_maps(field_maps: FieldMapConfig) -> None:
    """Check both directions of a field map.

    Raises:
        FieldMapError: If a field name is blank or two source fields map
            onto the same target field.
    """
    for name, mapping in (
        ("source_to_target", field_maps.source_to_target),
        ("target_to_source", field_maps.target_to_source),
    ):
        seen: dict[str, str] = {}
        for source, target in mapping.items():
            if not source.strip() or not target.strip():
                raise FieldMapError(
                    f"Field map '{name}' contains a blank field name"
                )
            if target in seen:
                raise FieldMapError(
                    f"Field map '{name}' maps both '{seen[target]}' and "
                    f"'{source}' onto '{target}'"
                )
            seen[target] = source
