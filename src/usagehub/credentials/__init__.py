"""OAuth credential loading for usagehub."""

from usagehub.credentials.store import (
    CLAUDE_SECURE_STORE_SERVICE,
    ENV_SCOPES_KEY,
    ENV_TOKEN_KEY,
    CredentialRecord,
    CredentialSource,
    OAuthCredentials,
    SecureCredentialLayer,
    credentials_from_environment,
)
from usagehub.credentials.tiers import (
    CacheEntry,
    CredentialOwner,
    CredentialsFile,
    KeyringCacheStore,
    KeyringSecureStore,
    PreflightOutcome,
    SecureStore,
    SecurityCLISecureStore,
)

__all__ = [
    # store
    "SecureCredentialLayer",
    "OAuthCredentials",
    "CredentialRecord",
    "CredentialSource",
    "credentials_from_environment",
    "CLAUDE_SECURE_STORE_SERVICE",
    "ENV_TOKEN_KEY",
    "ENV_SCOPES_KEY",
    # tiers
    "CredentialOwner",
    "CacheEntry",
    "KeyringCacheStore",
    "CredentialsFile",
    "SecureStore",
    "PreflightOutcome",
    "KeyringSecureStore",
    "SecurityCLISecureStore",
]
