"""Process-wide credential and refresh services."""

from __future__ import annotations

from datetime import timedelta

from usagehub.config.cache import FileCooldownStore
from usagehub.config.settings import Config
from usagehub.config.settings import get_config
from usagehub.core.gate import AccessGate
from usagehub.core.gate import PromptMode
from usagehub.core.gate import ReadStrategy
from usagehub.core.refresh import RefreshCoordinator
from usagehub.credentials.store import SecureCredentialLayer
from usagehub.credentials.tiers import CredentialsFile
from usagehub.credentials.tiers import KeyringCacheStore
from usagehub.credentials.tiers import KeyringSecureStore
from usagehub.credentials.tiers import SecurityCLISecureStore

REFRESH_COOLDOWN_NAME = "claude-delegated-refresh"
DENIED_COOLDOWN_NAME = "claude-secure-store-denied"


class Services:
    """Shared collaborators handed to strategies.

    One instance per process so every caller sees the same cooldowns and
    joins the same in-flight refresh.
    """

    def __init__(
        self,
        credentials: SecureCredentialLayer,
        gate: AccessGate,
        coordinator: RefreshCoordinator,
        touch_timeout: float = 8.0,
    ):
        self.credentials = credentials
        self.gate = gate
        self.coordinator = coordinator
        self.touch_timeout = touch_timeout

    @classmethod
    def from_config(cls, config: Config) -> Services:
        from usagehub.providers.claude.cli import ClaudeCLITouch

        creds_cfg = config.credentials
        refresh_cfg = config.refresh
        read_strategy = ReadStrategy(creds_cfg.read_strategy)

        gate = AccessGate(
            mode=PromptMode(creds_cfg.prompt_mode),
            read_strategy=read_strategy,
            store=FileCooldownStore(DENIED_COOLDOWN_NAME),
        )
        if read_strategy == ReadStrategy.HELPER_CLI:
            secure_store = SecurityCLISecureStore()
        else:
            secure_store = KeyringSecureStore()

        credentials = SecureCredentialLayer(
            cache_store=KeyringCacheStore() if creds_cfg.use_keyring_cache else None,
            credentials_file=CredentialsFile(),
            secure_store=secure_store,
            gate=gate,
            memory_ttl=timedelta(seconds=creds_cfg.memory_cache_ttl_seconds),
        )
        coordinator = RefreshCoordinator(
            tool=ClaudeCLITouch(),
            fingerprint_reader=credentials.fingerprint,
            store=FileCooldownStore(REFRESH_COOLDOWN_NAME),
            poll_delays=refresh_cfg.poll_delays,
            long_cooldown=timedelta(seconds=refresh_cfg.long_cooldown_seconds),
            short_cooldown=timedelta(seconds=refresh_cfg.short_cooldown_seconds),
        )
        return cls(
            credentials=credentials,
            gate=gate,
            coordinator=coordinator,
            touch_timeout=refresh_cfg.touch_timeout,
        )


_services: Services | None = None


def get_services() -> Services:
    """Get the process-wide services (built from config on first use)."""
    global _services
    if _services is None:
        _services = Services.from_config(get_config())
    return _services


def set_services(services: Services | None) -> None:
    """Replace the process-wide services. None rebuilds on next use."""
    global _services
    _services = services
