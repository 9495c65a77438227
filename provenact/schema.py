"""JSON Schema validation infrastructure.

The SchemaStore loads a fixed set of named schemas once and serves lookups by
name:
- $ref resolution across the schema set through a ``referencing`` Registry
- one prebuilt Draft 2020-12 validator per schema
- error messages carrying the JSON path of each failure

A store is constructed explicitly and passed to whatever needs validation.
It never takes part in a trust decision; it only confirms document shape.
"""

from __future__ import annotations

import pathlib
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from provenact.core import ProvenactError, load_document, load_json
from provenact.observability import LogLayer, get_logger

BUNDLED_SCHEMA_ROOT = pathlib.Path(__file__).resolve().parent / "schemas"
SCHEMA_BASE_URI = "https://schemas.provenact.dev/v0/"

logger = get_logger("store", LogLayer.SCHEMA)

SCHEMA_POLICY = "policy"
SCHEMA_RECEIPT = "execution-receipt"
SCHEMA_SNAPSHOT = "registry-snapshot"
SCHEMA_MANIFEST = "skill-manifest"
SCHEMA_CAPABILITY_EVAL = "capability-eval"

SCHEMA_NAMES: Tuple[str, ...] = (
    SCHEMA_POLICY,
    SCHEMA_RECEIPT,
    SCHEMA_SNAPSHOT,
    SCHEMA_MANIFEST,
    SCHEMA_CAPABILITY_EVAL,
)


class SchemaValidationError(ProvenactError):
    """A document failed validation against a named schema."""

    def __init__(self, schema: str, messages: List[str]):
        self.schema = schema
        self.messages = messages
        detail = "; ".join(messages[:5])
        super().__init__(f"schema {schema} validation failed: {detail}")


def _schema_registry(root: pathlib.Path) -> Registry:
    """Build a registry over every ``*.schema.json`` file under root.

    Schemas without an ``$id`` are registered under the base URI plus their
    path relative to root.
    """
    resources = []
    for schema_path in sorted(root.glob("**/*.schema.json")):
        schema = load_json(schema_path)
        if not isinstance(schema, dict):
            raise ProvenactError(f"schema {schema_path} is not a JSON object")
        schema_id = schema.get("$id") or SCHEMA_BASE_URI + schema_path.relative_to(root).as_posix()
        resources.append((schema_id, Resource.from_contents(schema, default_specification=DRAFT202012)))
    return Registry().with_resources(resources)


@dataclass(frozen=True)
class SchemaStore:
    """Named, immutable collection of prebuilt validators."""
    root: pathlib.Path
    validators: Mapping[str, Draft202012Validator]

    @classmethod
    def load(
        cls,
        root: Optional[pathlib.Path] = None,
        names: Tuple[str, ...] = SCHEMA_NAMES,
    ) -> "SchemaStore":
        """Load and check the named schemas from root (default: bundled schemas)."""
        base = pathlib.Path(root) if root is not None else BUNDLED_SCHEMA_ROOT
        registry = _schema_registry(base)
        validators: Dict[str, Draft202012Validator] = {}
        for name in names:
            schema_path = base / f"{name}.schema.json"
            if not schema_path.is_file():
                raise ProvenactError(f"missing schema {name} under {base}")
            schema = load_json(schema_path)
            Draft202012Validator.check_schema(schema)
            validators[name] = Draft202012Validator(schema, registry=registry)
        logger.debug("schemas loaded", operation="load", root=str(base), schemas=list(validators))
        return cls(root=base, validators=MappingProxyType(validators))

    def names(self) -> List[str]:
        return sorted(self.validators)

    def _validator(self, name: str) -> Draft202012Validator:
        try:
            return self.validators[name]
        except KeyError:
            raise ProvenactError(f"unknown schema {name}") from None

    def errors(self, name: str, value: Any) -> List[str]:
        """Validation error messages for value (empty if valid)."""
        validator = self._validator(name)
        return [
            f"{error.json_path}: {error.message}"
            for error in sorted(validator.iter_errors(value), key=lambda e: e.json_path)
        ]

    def is_valid(self, name: str, value: Any) -> bool:
        return self._validator(name).is_valid(value)

    def validate_value(self, name: str, value: Any) -> None:
        """Raise SchemaValidationError unless value conforms to schema ``name``."""
        messages = self.errors(name, value)
        if messages:
            raise SchemaValidationError(name, messages)

    def validate_file(self, name: str, path: pathlib.Path) -> Any:
        """Load a JSON/YAML document, validate it and return the parsed value."""
        value = load_document(path)
        self.validate_value(name, value)
        return value
