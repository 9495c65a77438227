"""
provenact configuration

Configuration for the tooling around the kernel: where schemas and test
vectors live and how logging is rendered. The evaluator and verifier take no
configuration; everything they need is passed in explicitly.

Configuration sources (in order of precedence):
    1. Environment variables (PROVENACT_*)
    2. Values set at runtime or loaded from a YAML file
    3. Default values
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from provenact.core import ProvenactError
from provenact.observability import LogLayer, LogLevel, get_logger

T = TypeVar("T")

logger = get_logger("config", LogLayer.CONFIG)


class ConfigError(ProvenactError):
    """Configuration error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports a default, environment variable binding and validation.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if self.validator and not self.validator(value):
            raise ConfigError(f"Invalid value for config: {value}")
        self._value = value

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            return int(value)  # type: ignore
        else:
            return value  # type: ignore


_LOG_LEVELS = tuple(level.value for level in LogLevel)


@dataclass
class SchemaConfig:
    """Where the schema store loads its schemas from."""
    root: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="PROVENACT_SCHEMA_ROOT",
        description="Schema directory (empty: schemas bundled with the package)",
    ))


@dataclass
class ConformanceConfig:
    """Configuration for the conformance runner."""
    vectors_root: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=".",
        env_var="PROVENACT_VECTORS_ROOT",
        description="Root of the test-vector tree",
    ))
    strict: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="PROVENACT_CONFORMANCE_STRICT",
        description="Stop at the first conformance failure",
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for logging."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="PROVENACT_LOG_LEVEL",
        description="Log level (debug, info, warning, error, critical)",
        validator=lambda x: x in _LOG_LEVELS,
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="text",
        env_var="PROVENACT_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class ProvenactConfig:
    """
    Root configuration.

    Aggregates the section configurations and provides loading and
    validation.
    """
    schemas: SchemaConfig = field(default_factory=SchemaConfig)
    conformance: ConformanceConfig = field(default_factory=ConformanceConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False)

    def apply_dict(self, data: Dict[str, Any], path: str = "") -> None:
        """Apply nested values; unknown keys are a ConfigError."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                dotted = f"{prefix}.{key}" if prefix else str(key)
                attr = getattr(config_obj, key, None) if key in config_obj.__dataclass_fields__ else None
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif attr is not None and hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, dotted)
                else:
                    raise ConfigError(f"Invalid config path: {dotted}")

        apply_to_config(self, data, path)

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by dotted path.

        Example: config.set("observability.log_level", "debug")
        """
        *parents, leaf = path.split(".")
        obj: Any = self
        for part in parents:
            obj = getattr(obj, part, None)
            if obj is None:
                raise ConfigError(f"Invalid config path: {path}")
        attr = getattr(obj, leaf, None)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        """Get a configuration value by dotted path."""
        obj: Any = self
        for part in path.split("."):
            obj = getattr(obj, part, None)
            if obj is None:
                raise ConfigError(f"Invalid config path: {path}")
        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def validate(self) -> List[str]:
        """Return a list of validation errors (empty when valid)."""
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value}")
                except ValueError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self)
        return errors

    def schema_root(self) -> Optional[Path]:
        root = self.schemas.root.get()
        return Path(root) if root else None


def load_config(path: Optional[Union[str, Path]] = None) -> ProvenactConfig:
    """Build a fresh configuration, optionally overlaid with a YAML file."""
    config = ProvenactConfig()
    if path is None:
        return config

    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Configuration file not found: {p}")
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid configuration file {p}: {e}") from e

    if data:
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must be a mapping: {p}")
        config.apply_dict(data)
    logger.debug("configuration loaded", operation="load", path=str(p))
    return config
