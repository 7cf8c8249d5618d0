"""Configuration structures and loading for usagehub."""

import os
import tomllib
from pathlib import Path
from typing import Literal

import msgspec
import tomli_w

from usagehub.config.paths import config_file
from usagehub.models import Runtime
from usagehub.models import SourceMode


# Default values
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_CONCURRENT = 5
DEFAULT_MEMORY_CACHE_TTL = 30 * 60.0
DEFAULT_LONG_COOLDOWN = 5 * 60.0
DEFAULT_SHORT_COOLDOWN = 20.0
DEFAULT_POLL_DELAYS = (0.2, 0.5, 0.8)
DEFAULT_TOUCH_TIMEOUT = 8.0

PromptModeName = Literal["never", "only_on_user_action", "always"]
ReadStrategyName = Literal["secure_store", "helper_cli"]


# Fetch configuration
class FetchConfig(msgspec.Struct, omit_defaults=True):
    """Fetch behavior settings."""

    timeout: float = DEFAULT_TIMEOUT
    max_concurrent: int = DEFAULT_MAX_CONCURRENT


# Credentials configuration
class CredentialsConfig(msgspec.Struct, omit_defaults=True):
    """Credential loading and secure-store prompt settings."""

    prompt_mode: PromptModeName = "only_on_user_action"
    read_strategy: ReadStrategyName = "secure_store"
    use_keyring_cache: bool = True
    memory_cache_ttl_seconds: float = DEFAULT_MEMORY_CACHE_TTL


# Delegated refresh configuration
class RefreshConfig(msgspec.Struct, omit_defaults=True):
    """Delegated credential refresh rate limits."""

    long_cooldown_seconds: float = DEFAULT_LONG_COOLDOWN
    short_cooldown_seconds: float = DEFAULT_SHORT_COOLDOWN
    poll_delays: tuple[float, ...] = DEFAULT_POLL_DELAYS
    touch_timeout: float = DEFAULT_TOUCH_TIMEOUT


# Per-provider configuration
class ProviderConfig(msgspec.Struct, omit_defaults=True):
    """Configuration for a specific provider."""

    source_mode: SourceMode = SourceMode.AUTO
    enabled: bool = True
    cookie_header: str | None = None  # Manual "Cookie:" header for web strategies
    api_token: str | None = None


# Main configuration
class Config(msgspec.Struct, omit_defaults=True):
    """Main configuration structure."""

    enabled_providers: list[str] = []
    runtime: Runtime = Runtime.CLI
    fetch: FetchConfig = msgspec.field(default_factory=FetchConfig)
    credentials: CredentialsConfig = msgspec.field(default_factory=CredentialsConfig)
    refresh: RefreshConfig = msgspec.field(default_factory=RefreshConfig)
    providers: dict[str, ProviderConfig] = msgspec.field(default_factory=dict)

    def get_provider_config(self, provider_id: str) -> ProviderConfig:
        """Get config for a provider, with defaults."""
        return self.providers.get(provider_id, ProviderConfig())

    def is_provider_enabled(self, provider_id: str) -> bool:
        """An explicit ``enabled = false`` wins; an empty list enables everything."""
        if not self.get_provider_config(provider_id).enabled:
            return False
        return not self.enabled_providers or provider_id in self.enabled_providers


_ENV_ENABLED_PROVIDERS = "USAGEHUB_ENABLED_PROVIDERS"
_ENV_PROMPT_MODE = "USAGEHUB_PROMPT_MODE"

_config: Config | None = None


def _env_overrides(config: Config) -> Config:
    """Return ``config`` with ``USAGEHUB_*`` environment overrides applied."""
    if _ENV_ENABLED_PROVIDERS in os.environ:
        enabled = [
            name.strip()
            for name in os.environ[_ENV_ENABLED_PROVIDERS].split(",")
            if name.strip()
        ]
        config = msgspec.structs.replace(config, enabled_providers=enabled)

    if prompt_mode := os.environ.get(_ENV_PROMPT_MODE):
        raw = msgspec.to_builtins(config.credentials) | {"prompt_mode": prompt_mode}
        config = msgspec.structs.replace(
            config, credentials=msgspec.convert(raw, type=CredentialsConfig)
        )

    return config


def load_config(path: Path | None = None) -> Config:
    """Read ``config.toml`` and apply environment overrides.

    A missing file yields the defaults. Values that do not match the schema
    raise ``msgspec.ValidationError``.
    """
    config_path = path or config_file()
    try:
        raw = tomllib.loads(config_path.read_text())
    except FileNotFoundError:
        raw = {}
    return _env_overrides(msgspec.convert(raw, type=Config))


def get_config() -> Config:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    global _config
    _config = load_config()
    return _config


def save_config(config: Config, path: Path | None = None) -> None:
    """Write ``config`` as TOML and make it the active configuration."""
    global _config

    config_path = path or config_file()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    # omit_defaults keeps None and empty collections out of the document
    config_path.write_bytes(tomli_w.dumps(msgspec.to_builtins(config)).encode())
    _config = config
