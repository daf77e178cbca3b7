"""Utility functions for unistore."""

from unistore.core.utils.config import (
    ProfileConfigError,
    load_and_resolve_config,
    load_config_from_module,
    resolve_config_inheritance,
)
from unistore.core.utils.env import (
    config_map_from_env,
    integration_enabled,
    load_env_file_if_present,
)

__all__ = [
    "load_env_file_if_present",
    "config_map_from_env",
    "integration_enabled",
    "load_config_from_module",
    "load_and_resolve_config",
    "resolve_config_inheritance",
    "ProfileConfigError",
]
