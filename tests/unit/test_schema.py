"""Unit tests for JSON Schema generation."""

import json

import pytest

from pgfleet.core.exceptions import ConfFileError
from pgfleet.pgconf.describe import Param
from pgfleet.schema.generator import (
    DURATION_PATTERN,
    SIZE_PATTERN,
    SchemaGenerator,
    detect_x_type,
    generate_complete_schema,
    generate_postgres_schema,
    is_sensitive,
    parse_default,
)


PARAMS = [
    Param(name="work_mem", vartype="integer", unit="kB", boot_val="4096",
          short_desc="Sets the maximum memory to be used for query workspaces."),
    Param(name="statement_timeout", vartype="integer", unit="ms", boot_val="0",
          short_desc="Sets the maximum allowed duration of any statement."),
    Param(name="fsync", vartype="bool", boot_val="on",
          short_desc="Forces synchronization of updates to disk."),
    Param(name="max_connections", vartype="integer", boot_val="100",
          min_val=1, max_val=262143,
          short_desc="Sets the maximum number of concurrent connections."),
    Param(name="random_page_cost", vartype="real", boot_val="4",
          min_val=0, max_val=1.5, short_desc="Planner cost of a random page fetch."),
    Param(name="wal_level", vartype="enum", boot_val="replica",
          enum_vals=["minimal", "replica", "logical"],
          short_desc="Sets the level of information written to the WAL."),
    Param(name="ssl_key_file", vartype="string", boot_val="server.key",
          short_desc="Location of the SSL server private key file."),
    Param(name="application_name", vartype="string",
          short_desc="Sets the application name.", extra_desc="Shown in pg_stat_activity."),
]


@pytest.fixture
def schema():
    return generate_postgres_schema(PARAMS)


class TestHelpers:
    """Tests for schema helper functions."""

    @pytest.mark.parametrize("unit,expected", [
        ("kB", "Size"), ("8kB", "Size"), ("MB", "Size"),
        ("ms", "Duration"), ("min", "Duration"),
        ("B", ""), ("", ""),
    ])
    def test_detect_x_type(self, unit, expected):
        """Units should map to the x-type hint."""
        assert detect_x_type(unit) == expected

    def test_is_sensitive(self):
        """Names mentioning secrets should be flagged."""
        assert is_sensitive("ssl_key_file")
        assert is_sensitive("krb_server_keyfile")
        assert not is_sensitive("work_mem")

    @pytest.mark.parametrize("boot_val,vartype,expected", [
        ("on", "bool", True),
        ("yes", "bool", True),
        ("off", "bool", False),
        ("maybe", "bool", False),
        ("100", "integer", 100),
        ("lots", "integer", 0),
        ("0.9", "real", 0.9),
        ("x", "real", 0.0),
        ("replica", "enum", "replica"),
    ])
    def test_parse_default(self, boot_val, vartype, expected):
        """Boot values should be converted to their JSON types."""
        assert parse_default(boot_val, vartype) == expected


class TestPostgresSchema:
    """Tests for per-parameter properties."""

    def test_sorted_by_name(self, schema):
        """Properties should be keyed and ordered by name."""
        assert list(schema) == sorted(p.name for p in PARAMS)

    def test_size_parameter(self, schema):
        """Memory parameters become patterned strings."""
        assert schema["work_mem"] == {
            "description": "Sets the maximum memory to be used for query workspaces.",
            "x-type": "Size",
            "type": "string",
            "default": "4096",
            "pattern": SIZE_PATTERN,
            "x-units": "B, kB, MB, GB, TB (1024 multiplier)",
        }

    def test_duration_parameter(self, schema):
        """Time parameters become patterned strings."""
        prop = schema["statement_timeout"]
        assert prop["x-type"] == "Duration"
        assert prop["pattern"] == DURATION_PATTERN
        assert prop["x-units"] == "us, ms, s, min, h, d"

    def test_boolean(self, schema):
        """Booleans get a boolean default."""
        assert schema["fsync"]["type"] == "boolean"
        assert schema["fsync"]["default"] is True

    def test_numeric_bounds(self, schema):
        """Integers and reals carry their bounds."""
        assert schema["max_connections"] == {
            "description": "Sets the maximum number of concurrent connections.",
            "default": 100,
            "type": "integer",
            "minimum": 1,
            "maximum": 262143,
        }
        assert isinstance(schema["max_connections"]["minimum"], int)
        assert schema["random_page_cost"]["type"] == "number"
        assert schema["random_page_cost"]["maximum"] == 1.5
        assert schema["random_page_cost"]["default"] == 4.0

    def test_enum(self, schema):
        """Enums become strings with their value list."""
        assert schema["wal_level"]["type"] == "string"
        assert schema["wal_level"]["enum"] == ["minimal", "replica", "logical"]

    def test_sensitive_and_empty_default(self, schema):
        """Sensitive names are flagged; empty boot values give no default."""
        assert schema["ssl_key_file"]["x-sensitive"] is True
        assert "default" not in schema["application_name"]
        assert schema["application_name"]["description"] == (
            "Sets the application name. Shown in pg_stat_activity."
        )


class TestCompleteSchema:
    """Tests for the composite schema."""

    def test_structure(self):
        """Every section should be a $ref to its definition."""
        schema = generate_complete_schema(PARAMS)

        assert schema["$schema"] == "http://json-schema.org/draft-07/schema#"
        assert schema["properties"] == {
            "postgres": {"$ref": "#/definitions/PostgresConf"},
            "pgbouncer": {"$ref": "#/definitions/PgBouncerConf"},
            "postgrest": {"$ref": "#/definitions/PostgrestConf"},
            "walg": {"$ref": "#/definitions/WalgConf"},
            "pgaudit": {"$ref": "#/definitions/PGAuditConf"},
            "pghba": {"$ref": "#/definitions/PgHBAConf"},
        }
        postgres = schema["definitions"]["PostgresConf"]
        assert postgres["additionalProperties"] is False
        assert set(postgres["properties"]) == {p.name for p in PARAMS}

    def test_static_sections(self):
        """Hand-written sections should carry their key settings."""
        definitions = generate_complete_schema([])["definitions"]

        pgbouncer = definitions["PgBouncerConf"]["properties"]
        assert pgbouncer["pool_mode"]["default"] == "transaction"
        assert pgbouncer["admin_password"]["x-sensitive"] is True

        hba_entry = definitions["PgHBAConf"]["properties"]["entries"]["items"]
        assert hba_entry["required"] == ["type", "database", "user", "method"]
        assert definitions["PostgresConf"]["properties"] == {}

    def test_write_schema(self, tmp_path):
        """The written file should be the same schema as JSON."""
        output = tmp_path / "schema.json"

        schema = SchemaGenerator().write_schema(PARAMS, output)

        assert json.loads(output.read_text()) == schema
        assert output.read_text().endswith("}\n")

    def test_write_schema_failure(self, tmp_path):
        """Unwritable output should raise ConfFileError."""
        with pytest.raises(ConfFileError) as exc_info:
            SchemaGenerator().write_schema(PARAMS, tmp_path / "missing" / "schema.json")
        assert exc_info.value.path == tmp_path / "missing" / "schema.json"
