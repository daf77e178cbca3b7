"""Profile configuration loading using importlib.

Profiles live in a Python module as a ``CONFIGURATION`` dict mapping profile
names to flat string mappings. A profile may inherit from another with the
``__inherits__`` key; the child's entries override the parent's.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any

logger = logging.getLogger(__name__)

INHERITS_KEY = "__inherits__"


class ProfileConfigError(Exception):
    """Raised when profile configuration cannot be loaded or resolved."""

    pass


def load_config_from_module(
    module_path: str,
    config_name: str = "CONFIGURATION",
    default: Any | None = None,
) -> Any:
    """Load a configuration object from a Python module using importlib.

    Args:
        module_path: Dotted module path (e.g., "configs.operators")
        config_name: Name of the configuration object to retrieve
        default: Value returned when the module cannot be imported or lacks
            the attribute

    Returns:
        The configuration object from the module, or default
    """
    try:
        module = importlib.import_module(module_path)
    except ModuleNotFoundError as e:
        logger.warning(f"Could not import module '{module_path}': {e}")
        return default

    if not hasattr(module, config_name):
        logger.warning(f"Module '{module_path}' does not have attribute '{config_name}'")
        return default

    config = getattr(module, config_name)
    logger.debug(f"Loaded configuration from {module_path}.{config_name}")
    return config


def resolve_config_inheritance(config_dict: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Resolve ``__inherits__`` relationships in a profile dictionary.

    Args:
        config_dict: Profiles with potential inheritance relationships

    Returns:
        Fully resolved profiles with the ``__inherits__`` keys removed

    Raises:
        ProfileConfigError: If inheritance is circular or a parent is missing

    Examples:
        >>> config = {
        ...     "cache": {"scheme": "kv-plain", "endpoint": "tcp://cache:6379"},
        ...     "sessions": {"__inherits__": "cache", "db": "1"},
        ... }
        >>> resolve_config_inheritance(config)["sessions"]["endpoint"]
        'tcp://cache:6379'
    """
    resolved_configs: dict[str, dict[str, Any]] = {}

    def _resolve_single(name: str, chain: tuple[str, ...]) -> dict[str, Any]:
        if name in chain:
            raise ProfileConfigError(
                f"Circular inheritance detected: {' -> '.join(chain + (name,))}"
            )
        if name in resolved_configs:
            return resolved_configs[name]

        config = config_dict[name]
        parent_name = config.get(INHERITS_KEY)
        if parent_name is None:
            resolved = dict(config)
        else:
            if parent_name not in config_dict:
                raise ProfileConfigError(
                    f"Configuration '{name}' inherits from '{parent_name}', "
                    f"but '{parent_name}' not found"
                )
            resolved = dict(_resolve_single(parent_name, chain + (name,)))
            resolved.update({k: v for k, v in config.items() if k != INHERITS_KEY})
            logger.debug(f"Resolved inheritance for '{name}' from '{parent_name}'")

        resolved_configs[name] = resolved
        return resolved

    for name in config_dict:
        _resolve_single(name, ())
    return resolved_configs


def load_and_resolve_config(
    module_path: str,
    config_name: str = "CONFIGURATION",
    default: dict[str, dict[str, Any]] | None = None,
) -> dict[str, dict[str, Any]]:
    """Load profiles from a module and resolve all inheritance.

    Raises:
        ProfileConfigError: If the loaded object is not a dict, or
            inheritance cannot be resolved
    """
    raw_config = load_config_from_module(module_path, config_name, default)
    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise ProfileConfigError(
            f"{module_path}.{config_name} must be a dict, got {type(raw_config).__name__}"
        )

    resolved = resolve_config_inheritance(raw_config)
    logger.info(f"Loaded and resolved {len(resolved)} profiles from {module_path}")
    return resolved
