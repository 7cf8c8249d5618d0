"""Configuration management for usagehub."""

from usagehub.config.cache import (
    CooldownState,
    CooldownStore,
    FileCooldownStore,
    MemoryCooldownStore,
    cache_snapshot,
    load_cached_snapshot,
    snapshot_path,
)
from usagehub.config.credentials import (
    check_credential_permissions,
    provider_credential_path,
    read_credential,
    write_credential,
)
from usagehub.config.keyring import (
    APP_SERVICE,
    delete_from_keyring,
    get_from_keyring,
    keyring_key,
    store_in_keyring,
)
from usagehub.config.paths import (
    cache_dir,
    config_dir,
    config_file,
    cooldowns_dir,
    snapshots_dir,
    state_dir,
)
from usagehub.config.settings import (
    Config,
    CredentialsConfig,
    FetchConfig,
    ProviderConfig,
    RefreshConfig,
    get_config,
    load_config,
    reload_config,
    save_config,
)

__all__ = [
    # paths
    "config_dir",
    "cache_dir",
    "state_dir",
    "snapshots_dir",
    "cooldowns_dir",
    "config_file",
    # settings
    "Config",
    "CredentialsConfig",
    "FetchConfig",
    "ProviderConfig",
    "RefreshConfig",
    "get_config",
    "load_config",
    "reload_config",
    "save_config",
    # credentials
    "provider_credential_path",
    "write_credential",
    "read_credential",
    "check_credential_permissions",
    # cache
    "snapshot_path",
    "cache_snapshot",
    "load_cached_snapshot",
    "CooldownState",
    "CooldownStore",
    "FileCooldownStore",
    "MemoryCooldownStore",
    # keyring
    "APP_SERVICE",
    "keyring_key",
    "store_in_keyring",
    "get_from_keyring",
    "delete_from_keyring",
]
