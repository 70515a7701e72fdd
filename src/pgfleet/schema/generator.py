"""JSON Schema generation from PostgreSQL parameter metadata.

The postgres section is built from ``postgres --describe-config`` output;
the other sections are hand-written (see ``sections``).
"""

import json
from pathlib import Path
from typing import Any, Callable

from pgfleet.core.exceptions import ConfFileError
from pgfleet.pgconf.describe import BOOL_TOKENS, Param
from pgfleet.schema import sections


SCHEMA_DRAFT = "http://json-schema.org/draft-07/schema#"

SIZE_UNITS = ("kB", "MB", "GB", "TB", "8kB")
DURATION_UNITS = ("ms", "s", "min", "h", "d")
SIZE_PATTERN = "^[0-9]+[kMGT]?B$"
DURATION_PATTERN = "^[0-9]+(us|ms|s|min|h|d)?$"
SENSITIVE_WORDS = ("password", "secret", "key", "token", "credential")

TRUE_TOKENS = ("on", "true", "yes", "1", "t", "y")

# definition name, property name, builder
STATIC_SECTIONS: list[tuple[str, str, Callable[[], dict[str, Any]]]] = [
    ("PgBouncerConf", "pgbouncer", sections.pgbouncer_schema),
    ("PostgrestConf", "postgrest", sections.postgrest_schema),
    ("WalgConf", "walg", sections.walg_schema),
    ("PGAuditConf", "pgaudit", sections.pgaudit_schema),
    ("PgHBAConf", "pghba", sections.pghba_schema),
]


def detect_x_type(unit: str) -> str:
    """"Size", "Duration" or "" for a parameter unit."""
    if unit in SIZE_UNITS:
        return "Size"
    if unit in DURATION_UNITS:
        return "Duration"
    return ""


def units_description(unit: str) -> str:
    if unit in ("kB", "MB", "GB", "TB"):
        return "B, kB, MB, GB, TB (1024 multiplier)"
    if unit == "ms":
        return "us, ms, s, min, h, d"
    if unit == "s":
        return "s, min, h, d"
    return unit


def is_sensitive(name: str) -> bool:
    lower = name.lower()
    return any(word in lower for word in SENSITIVE_WORDS)


def parse_default(boot_val: str, vartype: str) -> Any:
    """Typed default for a boot value. Unparseable numbers become zero."""
    if vartype in ("bool", "boolean"):
        lower = boot_val.lower()
        return lower in TRUE_TOKENS if lower in BOOL_TOKENS else False
    if vartype == "integer":
        try:
            return int(boot_val)
        except ValueError:
            return 0
    if vartype == "real":
        try:
            return float(boot_val)
        except ValueError:
            return 0.0
    return boot_val


def _number(value: float, vartype: str) -> int | float:
    if vartype == "integer" and value == int(value):
        return int(value)
    return value


class SchemaGenerator:
    """Turns Param records into JSON Schema properties."""

    def param_to_property(self, param: Param) -> dict[str, Any]:
        prop: dict[str, Any] = {"description": param.description}

        x_type = detect_x_type(param.unit)
        if x_type:
            prop["x-type"] = x_type
            prop["type"] = "string"
            if param.boot_val:
                prop["default"] = param.boot_val
            prop["pattern"] = SIZE_PATTERN if x_type == "Size" else DURATION_PATTERN
        else:
            if param.boot_val:
                prop["default"] = parse_default(param.boot_val, param.vartype)

            if param.is_bool:
                prop["type"] = "boolean"
            elif param.vartype in ("integer", "real"):
                prop["type"] = "integer" if param.vartype == "integer" else "number"
                prop["minimum"] = _number(param.min_val, param.vartype)
                prop["maximum"] = _number(param.max_val, param.vartype)
            else:
                prop["type"] = "string"
                if param.vartype in ("string", "enum") and param.enum_vals:
                    prop["enum"] = list(param.enum_vals)

        if param.unit:
            prop["x-units"] = units_description(param.unit)
        if is_sensitive(param.name):
            prop["x-sensitive"] = True
        return prop

    def generate_postgres_schema(self, params: list[Param]) -> dict[str, Any]:
        """Properties keyed by parameter name, sorted."""
        return {
            p.name: self.param_to_property(p)
            for p in sorted(params, key=lambda p: p.name)
        }

    def generate_complete_schema(self, params: list[Param]) -> dict[str, Any]:
        """Composite schema with one $ref'd definition per service."""
        definitions: dict[str, Any] = {
            "PostgresConf": {
                "type": "object",
                "additionalProperties": False,
                "description": "PostgreSQL server parameters",
                "properties": self.generate_postgres_schema(params),
            },
        }
        properties: dict[str, Any] = {"postgres": {"$ref": "#/definitions/PostgresConf"}}

        for definition, prop_name, build in STATIC_SECTIONS:
            definitions[definition] = build()
            properties[prop_name] = {"$ref": f"#/definitions/{definition}"}

        return {
            "$schema": SCHEMA_DRAFT,
            "title": "pgfleet configuration",
            "type": "object",
            "properties": properties,
            "definitions": definitions,
        }

    def write_schema(self, params: list[Param], output: Path) -> dict[str, Any]:
        """Write the complete schema as indented JSON.

        Raises:
            ConfFileError: If the file cannot be written
        """
        schema = self.generate_complete_schema(params)
        try:
            output.write_text(json.dumps(schema, indent=2) + "\n")
        except OSError as e:
            raise ConfFileError(
                f"Failed to write schema file: {output}",
                path=output,
                details=[str(e)],
            ) from e
        return schema


def generate_postgres_schema(params: list[Param]) -> dict[str, Any]:
    return SchemaGenerator().generate_postgres_schema(params)


def generate_complete_schema(params: list[Param]) -> dict[str, Any]:
    return SchemaGenerator().generate_complete_schema(params)
