"""Tests for connector lookup and field mapping."""

import pytest
from conftest import ORG, make_connector

from orgsync.config_schema import FieldMapConfig, build_config
from orgsync.errors import (
    ConfigurationError,
    ConnectorNotFoundError,
    FieldMapError,
)
from orgsync.sync.mapper import FieldMapper, validate_field_maps
from orgsync.sync.models import Origin
from orgsync.sync.registry import ConnectorRegistry

# -------------------------------------------------------------------------
# ConnectorRegistry
# -------------------------------------------------------------------------


class TestConnectorRegistry:
    def test_resolve(self):
        registry = ConnectorRegistry([make_connector()])
        connector = registry.resolve("grants", ORG)
        assert connector.endpoint.startswith("https://")

    def test_resolve_is_scoped_by_org_unit(self):
        registry = ConnectorRegistry([make_connector()])
        with pytest.raises(ConnectorNotFoundError) as exc_info:
            registry.resolve("grants", "other-unit")
        assert exc_info.value.org_unit == "other-unit"
        assert "not found" in str(exc_info.value)

    def test_not_found_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            ConnectorRegistry().resolve("grants", ORG)

    def test_inactive_connector(self):
        registry = ConnectorRegistry([make_connector(is_active=False)])
        with pytest.raises(ConfigurationError, match="inactive"):
            registry.resolve("grants", ORG)

    def test_invalid_endpoint(self):
        registry = ConnectorRegistry([make_connector(endpoint="ftp://x")])
        with pytest.raises(
            ConfigurationError, match="must start with http:// or https://"
        ):
            registry.resolve("grants", ORG)

    def test_bad_field_map(self):
        registry = ConnectorRegistry(
            [
                make_connector(
                    field_maps={"source_to_target": {"a": "x", "b": "x"}}
                )
            ]
        )
        with pytest.raises(FieldMapError):
            registry.resolve("grants", ORG)

    def test_duplicate_rejected(self):
        with pytest.raises(ConfigurationError, match="Duplicate"):
            ConnectorRegistry([make_connector(), make_connector()])

    def test_same_id_in_two_units_allowed(self):
        registry = ConnectorRegistry(
            [make_connector(), make_connector(org_unit="agency-9")]
        )
        assert len(registry.list()) == 2
        assert len(registry.list(ORG)) == 1

    def test_from_config(self):
        config = build_config(
            {"connectors": [make_connector().model_dump()]}
        )
        registry = ConnectorRegistry.from_config(config)
        assert registry.resolve("grants", ORG).name == "Grants API"


# -------------------------------------------------------------------------
# FieldMapper
# -------------------------------------------------------------------------


class TestFieldMapper:
    @pytest.fixture
    def mapper(self):
        return FieldMapper(
            FieldMapConfig(
                source_to_target={"name": "title", "state": "status"},
                target_to_source={"title": "name"},
            )
        )

    def test_remote_origin_uses_source_to_target(self, mapper):
        assert mapper.translate(
            {"name": "N", "state": "open", "other": 1}, Origin.REMOTE
        ) == {"title": "N", "status": "open"}

    def test_local_origin_uses_target_to_source(self, mapper):
        assert mapper.translate(
            {"title": "T", "status": "closed"}, Origin.LOCAL
        ) == {"name": "T"}

    def test_missing_fields_omitted(self, mapper):
        assert mapper.translate({"name": "N"}, Origin.REMOTE) == {"title": "N"}

    def test_empty_map_drops_everything(self):
        mapper = FieldMapper(FieldMapConfig())
        assert mapper.translate({"a": 1}, Origin.REMOTE) == {}

    def test_output_fields(self, mapper):
        assert mapper.output_fields(Origin.REMOTE) == {"title", "status"}
        assert mapper.output_fields(Origin.LOCAL) == {"name"}

    def test_falsy_values_kept(self, mapper):
        assert mapper.translate({"name": "", "state": None}, Origin.REMOTE) == {
            "title": "",
            "status": None,
        }


class TestValidateFieldMaps:
    def test_valid(self):
        validate_field_maps(
            FieldMapConfig(source_to_target={"a": "b"}, target_to_source={"b": "a"})
        )

    def test_blank_name(self):
        with pytest.raises(FieldMapError, match="blank"):
            validate_field_maps(FieldMapConfig(target_to_source={" ": "a"}))

    def test_duplicate_target(self):
        with pytest.raises(FieldMapError, match="onto 'x'"):
            validate_field_maps(
                FieldMapConfig(source_to_target={"a": "x", "b": "x"})
            )
