"""JSON Schema validation for the runtime configuration document.

The schema lives next to this module as YAML but is a valid JSON Schema
Draft 2020-12 document. Validation is strict:
- Unknown keys are rejected.
- All violations are reported at once, with JSON Pointer-like paths.

The runtime must not rely on network access for schema resolution, so the
Draft 2020-12 meta-schema is never fetched; $schema is only a marker.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

import yaml
from jsonschema import Draft202012Validator

from errors import ConfigSchemaError, ConfigurationError, SchemaViolation

SCHEMA_PATH = Path(__file__).with_name("rabbit_config.schema.yaml")


def _escape_json_pointer_token(token: str) -> str:
    # RFC 6901 escaping.
    return token.replace("~", "~0").replace("/", "~1")


def _json_pointer(path: Iterable[Any]) -> str:
    parts: list[str] = []
    for p in path:
        if isinstance(p, int):
            parts.append(str(p))
        else:
            parts.append(_escape_json_pointer_token(str(p)))
    return "/" + "/".join(parts) if parts else "/"


@lru_cache(maxsize=1)
def _validator() -> Draft202012Validator:
    try:
        schema = yaml.safe_load(SCHEMA_PATH.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config schema {SCHEMA_PATH}: {e}") from e
    if not isinstance(schema, dict):
        raise ConfigurationError(f"Expected YAML object at root: {SCHEMA_PATH}")
    # Ensure the schema itself is sane.
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def validate_config_document(document: dict[str, Any], *, source: str = "config") -> None:
    """Validate a raw config mapping; raise ConfigSchemaError listing every violation."""
    violations = [
        SchemaViolation(path=_json_pointer(err.absolute_path), message=err.message)
        for err in _validator().iter_errors(document)
    ]
    if violations:
        # Stable order: helps tests and makes errors easier to scan.
        violations.sort(key=lambda v: (v.path, v.message))
        raise ConfigSchemaError(source=source, violations=violations)
