"""Configuration loading for Skillward."""

from skillward.config.loader import (
    ConfigurationError,
    apply_env_overrides,
    load_config,
    load_yaml_file,
)
from skillward.config.merger import deep_merge, set_nested_value
from skillward.config.schema import (
    AuditLogConfig,
    Config,
    GeneralConfig,
    UninstallConfig,
    UpdateConfig,
)

__all__ = [
    "AuditLogConfig",
    "Config",
    "ConfigurationError",
    "GeneralConfig",
    "UninstallConfig",
    "UpdateConfig",
    "apply_env_overrides",
    "deep_merge",
    "load_config",
    "load_yaml_file",
    "set_nested_value",
]
