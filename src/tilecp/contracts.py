"""Schema validation for tilecp config files."""

from __future__ import annotations

import json
from importlib import resources
from typing import Any, Mapping

import jsonschema

from tilecp.errors import ConfigError

SCHEMA_VERSION = "1"


def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON schema bundled in the package."""
    with resources.files("tilecp.schemas").joinpath(name).open("r", encoding="utf-8") as handle:
        return json.load(handle)


def validate_sources_config(payload: Mapping[str, Any]) -> None:
    """Validate a sources config payload, raising ConfigError on mismatch."""
    schema = _load_schema("sources.schema.json")
    try:
        jsonschema.validate(payload, schema)
    except jsonschema.ValidationError as exc:
        location = "/".join(str(part) for part in exc.absolute_path) or "<root>"
        raise ConfigError(f"Invalid sources config at {location}: {exc.message}") from exc
