"""Environment collaborators.

``config_map_from_env`` reads a scheme's options from environment variables
named ``UNISTORE_<SCHEME>_<KEY>``, e.g. ``UNISTORE_RELATIONAL_KV_VALUE_FIELD``
for the ``value-field`` option of ``relational-kv``. The environment is read
once; the resulting ``ConfigMap`` never changes afterwards.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from unistore.core.storage.config_map import ConfigMap
from unistore.core.storage.scheme import Scheme

DEFAULT_PREFIX = "UNISTORE"

# Switches integration tests on; never part of a ConfigMap
TEST_SWITCH = "TEST"


def load_env_file_if_present(path: str | Path = ".env", override: bool = False) -> dict[str, str]:
    """Load simple KEY=VALUE pairs from a .env file if present.

    Returns a dict of loaded key-values (also updates os.environ for the process).
    Lines starting with '#' are ignored. Quoted values are unquoted, and an
    ``export`` prefix is accepted.
    """
    env_path = Path(path)
    loaded: dict[str, str] = {}
    if not env_path.exists():
        return loaded

    for line in env_path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.removeprefix("export ").strip()
        value = value.strip().strip('"').strip("'")
        if override or key not in os.environ:
            os.environ[key] = value
        loaded[key] = value
    return loaded


def env_prefix(scheme: str | Scheme, prefix: str = DEFAULT_PREFIX) -> str:
    """Variable name prefix for ``scheme``, e.g. ``UNISTORE_KV_TLS_``."""
    return f"{prefix}_{Scheme.parse(scheme).env_name}_"


def config_map_from_env(
    scheme: str | Scheme,
    environ: Mapping[str, str] | None = None,
    prefix: str = DEFAULT_PREFIX,
) -> ConfigMap:
    """Collect a scheme's options from the environment.

    Variable suffixes are lower-cased and underscores become hyphens.

    Args:
        scheme: Scheme whose variables to read
        environ: Mapping to read instead of ``os.environ``
        prefix: Leading variable name component

    Examples:
        >>> config_map_from_env("relational-kv", {"UNISTORE_RELATIONAL_KV_TABLE": "data"})
        ConfigMap(['table'])
    """
    source = os.environ if environ is None else environ
    lead = env_prefix(scheme, prefix)
    options = {}
    for name, value in source.items():
        if not name.startswith(lead):
            continue
        suffix = name[len(lead) :]
        if not suffix or suffix == TEST_SWITCH:
            continue
        options[suffix.lower().replace("_", "-")] = value
    return ConfigMap(options)


def integration_enabled(scheme: str | Scheme, environ: Mapping[str, str] | None = None) -> bool:
    """Whether ``UNISTORE_<SCHEME>_TEST`` switches integration tests on."""
    source = os.environ if environ is None else environ
    value = source.get(env_prefix(scheme) + TEST_SWITCH, "")
    return value.strip().lower() in {"on", "true"}
