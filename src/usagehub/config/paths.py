"""Platform-specific paths for usagehub configuration, cache and state.

Each base directory can be redirected with an environment variable
(``USAGEHUB_CONFIG_DIR``, ``USAGEHUB_CACHE_DIR``, ``USAGEHUB_STATE_DIR``).
"""

from __future__ import annotations

import os
from pathlib import Path

import platformdirs

PACKAGE_NAME = "usagehub"


def _resolve(env_var: str, default: str | Path) -> Path:
    override = os.environ.get(env_var)
    return Path(override) if override else Path(default)


def config_dir() -> Path:
    return _resolve("USAGEHUB_CONFIG_DIR", platformdirs.user_config_dir(PACKAGE_NAME))


def cache_dir() -> Path:
    return _resolve("USAGEHUB_CACHE_DIR", platformdirs.user_cache_dir(PACKAGE_NAME))


def state_dir() -> Path:
    """Runtime state that should survive restarts (cooldowns)."""
    return _resolve("USAGEHUB_STATE_DIR", platformdirs.user_state_path(PACKAGE_NAME))


def config_file() -> Path:
    return config_dir() / "config.toml"


def snapshots_dir() -> Path:
    """Last successful snapshot per provider."""
    return cache_dir() / "snapshots"


def cooldowns_dir() -> Path:
    """Persisted refresh and secure-store cooldowns."""
    return state_dir() / "cooldowns"
