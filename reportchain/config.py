"""
Report Ledger Client Configuration

Unified configuration management with YAML files, environment variables,
validation, and runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (REPORTCHAIN_*)
    2. Runtime overrides
    3. User config file (~/.reportchain/config.yaml)
    4. Project config file (./reportchain.yaml or ./config/reportchain.yaml)
    5. Default values

The deployment section (owner and registry addresses) is injected here and
nowhere else; no module carries addresses as constants.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

T = TypeVar("T")

logger = logging.getLogger("reportchain.config")

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def _address_or_empty(value: Any) -> bool:
    return value == "" or (isinstance(value, str) and bool(_ADDRESS_RE.match(value)))


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding and validation.
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
        value = self._coerce(value) if isinstance(value, str) else value
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value!r}")

        self._value = value

    def reset(self) -> None:
        self._value = None

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            return int(value)  # type: ignore
        elif target_type == float:
            return float(value)  # type: ignore
        elif target_type == Decimal:
            return Decimal(value)  # type: ignore
        elif target_type == list:
            return [v.strip() for v in value.split(",") if v.strip()]  # type: ignore
        return value  # type: ignore


# =============================================================================
# SECTIONS
# =============================================================================

@dataclass
class DeploymentConfig:
    """Owner and registry addresses of one deployment."""
    owner_address: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="REPORTCHAIN_OWNER_ADDRESS",
        description="Platform owner address",
        validator=_address_or_empty,
    ))
    institution_registry: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="REPORTCHAIN_INSTITUTION_REGISTRY",
        description="Institution registry address",
        validator=_address_or_empty,
    ))
    report_registry: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="REPORTCHAIN_REPORT_REGISTRY",
        description="Report registry address",
        validator=_address_or_empty,
    ))
    validator_registry: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="REPORTCHAIN_VALIDATOR_REGISTRY",
        description="Validator (decision) registry address",
        validator=_address_or_empty,
    ))
    reward_manager: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="REPORTCHAIN_REWARD_MANAGER",
        description="Reward and stake manager address",
        validator=_address_or_empty,
    ))
    token: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="REPORTCHAIN_TOKEN",
        description="Fungible token address",
        validator=_address_or_empty,
    ))
    rpc_url: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="http://127.0.0.1:8545",
        env_var="REPORTCHAIN_RPC_URL",
        description="JSON-RPC endpoint",
    ))
    chain_id: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=31337,
        env_var="REPORTCHAIN_CHAIN_ID",
        description="Chain id used when signing",
        validator=lambda x: x > 0,
    ))
    token_decimals: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=18,
        env_var="REPORTCHAIN_TOKEN_DECIMALS",
        description="Display decimals of the token",
        validator=lambda x: 0 <= x <= 36,
    ))


@dataclass
class OrchestratorConfig:
    """Cost ceilings and receipt polling."""
    safety_margin: ConfigValue[Decimal] = field(default_factory=lambda: ConfigValue(
        default=Decimal("0.20"),
        env_var="REPORTCHAIN_SAFETY_MARGIN",
        description="Margin applied on top of a cost estimate (0.10-0.20)",
        validator=lambda x: Decimal("0.10") <= x <= Decimal("0.20"),
    ))
    fallback_simple: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=100_000,
        env_var="REPORTCHAIN_FALLBACK_SIMPLE",
        description="Cost ceiling for simple actions when estimation fails",
        validator=lambda x: x > 21_000,
    ))
    fallback_standard: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=300_000,
        env_var="REPORTCHAIN_FALLBACK_STANDARD",
        description="Cost ceiling for standard actions when estimation fails",
        validator=lambda x: x > 21_000,
    ))
    fallback_complex: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=800_000,
        env_var="REPORTCHAIN_FALLBACK_COMPLEX",
        description="Cost ceiling for complex actions when estimation fails",
        validator=lambda x: x > 21_000,
    ))
    receipt_poll_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=2.0,
        env_var="REPORTCHAIN_RECEIPT_POLL",
        description="Receipt polling interval in seconds",
        validator=lambda x: x >= 0,
    ))
    receipt_timeout_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=120.0,
        env_var="REPORTCHAIN_RECEIPT_TIMEOUT",
        description="Time to wait for a receipt before reporting a network error",
        validator=lambda x: x > 0,
    ))
    preflight_risky_actions: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="REPORTCHAIN_PREFLIGHT",
        description="Run an advisory diagnosis before risky actions",
    ))


@dataclass
class LifecycleConfig:
    """Report lifecycle policy."""
    assignment_policy: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="assigned",
        env_var="REPORTCHAIN_ASSIGNMENT_POLICY",
        description="Who may validate: 'assigned' validator or any 'institution' validator",
        validator=lambda x: x in ("assigned", "institution"),
    ))


@dataclass
class SanitizerConfig:
    """Response sanitization limits."""
    max_description_length: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=2000,
        env_var="REPORTCHAIN_MAX_DESCRIPTION",
        description="Descriptions longer than this are truncated",
        validator=lambda x: x >= 16,
    ))
    corruption_markers: ConfigValue[list] = field(default_factory=lambda: ConfigValue(
        default=["rusak", "corrupted", "unavailable", "overflow", "encoding", "decode error"],
        env_var="REPORTCHAIN_CORRUPTION_MARKERS",
        description="Substrings that mark a decoded text as corrupted",
        validator=lambda x: isinstance(x, list) and all(isinstance(m, str) and m for m in x),
    ))
    min_timestamp: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=1_500_000_000,
        env_var="REPORTCHAIN_MIN_TIMESTAMP",
        description="Earliest plausible ledger timestamp",
        validator=lambda x: x >= 0,
    ))


@dataclass
class RoleConfig:
    """Role resolution."""
    use_index: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=False,
        env_var="REPORTCHAIN_ROLE_INDEX",
        description="Resolve roles from an address index instead of a linear scan",
    ))
    cache_ttl_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=30.0,
        env_var="REPORTCHAIN_ROLE_CACHE_TTL",
        description="Advisory role cache TTL in seconds",
        validator=lambda x: x >= 0,
    ))


@dataclass
class ObservabilityConfig:
    """Logging."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="REPORTCHAIN_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="REPORTCHAIN_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class ReportChainConfig:
    """
    Root configuration.

    Aggregates all section configurations and provides
    loading/saving functionality.
    """
    deployment: DeploymentConfig = field(default_factory=DeploymentConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    sanitizer: SanitizerConfig = field(default_factory=SanitizerConfig)
    roles: RoleConfig = field(default_factory=RoleConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                value = obj.get()
                return str(value) if isinstance(value, Decimal) else value
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    def fallback_ceilings(self) -> Dict[str, int]:
        """Fallback cost ceiling per complexity class."""
        return {
            "simple": self.orchestrator.fallback_simple.get(),
            "standard": self.orchestrator.fallback_standard.get(),
            "complex": self.orchestrator.fallback_complex.get(),
        }


def apply_dict(config: ReportChainConfig, data: Dict[str, Any]) -> None:
    """Apply nested dictionary values to a configuration object."""
    def apply_to_config(config_obj: Any, values: Dict[str, Any], path: str) -> None:
        for key, value in values.items():
            here = f"{path}.{key}" if path else key
            if not hasattr(config_obj, key):
                raise ConfigError(f"Unknown config key: {here}")
            attr = getattr(config_obj, key)
            if isinstance(attr, ConfigValue):
                if isinstance(attr.default, Decimal) and not isinstance(value, Decimal):
                    value = Decimal(str(value))
                attr.set(value)
            elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                apply_to_config(attr, value, here)
            else:
                raise ConfigError(f"Invalid config section: {here}")

    apply_to_config(config, data, "")


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = ReportChainConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (tests and CLI runs with --config)."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> ReportChainConfig:
        """Get the current configuration."""
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        from reportchain.schema import validate_document

        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f)

        if not data:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must hold a mapping: {path}")

        if "deployment" in data:
            errors = validate_document(data["deployment"], "deployment.schema.json")
            if errors:
                raise ConfigValidationError(f"invalid deployment section in {path}: {errors[0]}")

        apply_dict(self._config, data)
        self._config_paths.append(path)

    def load_defaults(self) -> None:
        """Load default configuration files if they exist."""
        default_paths = [
            Path("reportchain.yaml"),
            Path("config/reportchain.yaml"),
            Path.home() / ".reportchain" / "config.yaml",
        ]

        for path in default_paths:
            if path.exists():
                try:
                    self.load_from_file(path)
                except ConfigError as e:
                    logger.warning("Ignoring default config %s: %s", path, e)

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("orchestrator.safety_margin", Decimal("0.15"))
        """
        parts = path.split(".")
        obj: Any = self._config

        for part in parts[:-1]:
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)

        attr = getattr(obj, parts[-1], None)
        if isinstance(attr, ConfigValue):
            attr.set(value)
        else:
            raise ConfigError(f"Invalid config path: {path}")

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("deployment.token_decimals")
        """
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)

        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                except (TypeError, ValueError, ArithmeticError) as e:
                    errors.append(f"{path}: {e}")
                    return
                if obj.validator and not obj.validator(value):
                    errors.append(f"{path}: validation failed for value {value}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)

        deployment = self._config.deployment
        for name in ("institution_registry", "report_registry", "validator_registry",
                     "reward_manager", "token"):
            if not getattr(deployment, name).get():
                errors.append(f"deployment.{name}: not configured")
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


def get_config() -> ReportChainConfig:
    """Get the current configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
