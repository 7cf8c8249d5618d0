"""Tiered OAuth credential loading.

Credentials are looked up in order of cost:

0. environment override
1. in-process memory cache
2. app-owned keyring cache entry (never prompts)
3. the external tool's plaintext credentials file
4. the OS secure store, which may show a prompt and is therefore gated

A hit in a slower tier is written through to the faster ones.
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
from collections.abc import Callable
from collections.abc import Mapping
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from enum import StrEnum

import msgspec

from usagehub.core.gate import AccessGate
from usagehub.credentials.tiers import CacheEntry
from usagehub.credentials.tiers import CredentialOwner
from usagehub.credentials.tiers import CredentialsFile
from usagehub.credentials.tiers import KeyringCacheStore
from usagehub.credentials.tiers import KeyringSecureStore
from usagehub.credentials.tiers import PreflightOutcome
from usagehub.credentials.tiers import SecureStore
from usagehub.errors.types import CredentialDecodeError
from usagehub.errors.types import CredentialError
from usagehub.errors.types import CredentialNeedsRepairError
from usagehub.errors.types import CredentialNotFoundError
from usagehub.errors.types import SecureStoreError
from usagehub.models import Interaction

logger = logging.getLogger(__name__)

CLAUDE_SECURE_STORE_SERVICE = "Claude Code-credentials"
ENV_TOKEN_KEY = "USAGEHUB_CLAUDE_OAUTH_TOKEN"
ENV_SCOPES_KEY = "USAGEHUB_CLAUDE_OAUTH_SCOPES"
DEFAULT_SCOPES = ("user:profile",)
MEMORY_CACHE_TTL = timedelta(minutes=30)
FINGERPRINT_LENGTH = 12

# Environment tokens carry no expiry.
NEVER_EXPIRES = datetime.max.replace(tzinfo=UTC)


class _ClaudeOAuthPayload(msgspec.Struct, rename="camel", omit_defaults=True):
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: float | None = None  # Milliseconds since the epoch
    scopes: list[str] | None = None
    rate_limit_tier: str | None = None


class _ClaudeCredentialsDocument(msgspec.Struct, rename="camel", omit_defaults=True):
    claude_ai_oauth: _ClaudeOAuthPayload | None = None


class OAuthCredentials(msgspec.Struct, frozen=True):
    """OAuth token set. Secret: never log it."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    scopes: tuple[str, ...] = ()
    rate_limit_tier: str | None = None

    def __repr__(self) -> str:
        return (
            f"OAuthCredentials(expires_at={self.expires_at!r}, "
            f"scopes={self.scopes!r}, has_refresh_token={self.refresh_token is not None})"
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        """Credentials without an expiry are treated as expired."""
        if self.expires_at is None:
            return True
        return (now or datetime.now(UTC)) >= self.expires_at

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes

    @classmethod
    def parse(cls, data: bytes | str) -> OAuthCredentials:
        """Parse the ``{"claudeAiOauth": {...}}`` credentials document."""
        try:
            document = msgspec.json.decode(data, type=_ClaudeCredentialsDocument)
        except msgspec.DecodeError as e:
            raise CredentialDecodeError(f"Credentials are not valid JSON: {e}") from e

        oauth = document.claude_ai_oauth
        if oauth is None:
            raise CredentialDecodeError("Credentials are missing the OAuth section.")
        access_token = (oauth.access_token or "").strip()
        if not access_token:
            raise CredentialDecodeError("Credentials are missing an access token.")

        expires_at = None
        if oauth.expires_at is not None:
            expires_at = datetime.fromtimestamp(oauth.expires_at / 1000, tz=UTC)

        return cls(
            access_token=access_token,
            refresh_token=oauth.refresh_token,
            expires_at=expires_at,
            scopes=tuple(oauth.scopes or ()),
            rate_limit_tier=oauth.rate_limit_tier,
        )

    def to_json(self) -> bytes:
        """Serialize in the same document format ``parse`` accepts."""
        expires_at = None
        if self.expires_at is not None and self.expires_at != NEVER_EXPIRES:
            expires_at = self.expires_at.timestamp() * 1000
        payload = _ClaudeOAuthPayload(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=expires_at,
            scopes=list(self.scopes),
            rate_limit_tier=self.rate_limit_tier,
        )
        return msgspec.json.encode(_ClaudeCredentialsDocument(claude_ai_oauth=payload))


def credentials_from_environment(
    environment: Mapping[str, str],
) -> OAuthCredentials | None:
    """Build credentials from USAGEHUB_CLAUDE_OAUTH_TOKEN, if set."""
    token = environment.get(ENV_TOKEN_KEY, "").strip()
    if not token:
        return None

    scopes: tuple[str, ...] = DEFAULT_SCOPES
    if raw_scopes := environment.get(ENV_SCOPES_KEY):
        parsed = tuple(s.strip() for s in raw_scopes.split(",") if s.strip())
        scopes = parsed or DEFAULT_SCOPES

    return OAuthCredentials(access_token=token, expires_at=NEVER_EXPIRES, scopes=scopes)


class CredentialSource(StrEnum):
    """Tier a credential record was read from."""

    ENVIRONMENT = "environment"
    MEMORY_CACHE = "memory_cache"
    CACHE_STORE = "cache_store"
    CREDENTIALS_FILE = "credentials_file"
    SECURE_STORE = "secure_store"


class CredentialRecord(msgspec.Struct, frozen=True):
    credentials: OAuthCredentials
    owner: CredentialOwner
    source: CredentialSource
    needs_repair: bool = False


class SecureCredentialLayer:
    """Loads Claude OAuth credentials from the cheapest tier that has them."""

    def __init__(
        self,
        cache_store: KeyringCacheStore | None = None,
        credentials_file: CredentialsFile | None = None,
        secure_store: SecureStore | None = None,
        gate: AccessGate | None = None,
        service: str = CLAUDE_SECURE_STORE_SERVICE,
        memory_ttl: timedelta = MEMORY_CACHE_TTL,
        clock: Callable[[], datetime] | None = None,
    ):
        self.cache_store = cache_store
        self.credentials_file = credentials_file or CredentialsFile()
        self.secure_store = secure_store or KeyringSecureStore()
        self.gate = gate or AccessGate()
        self.service = service
        self.memory_ttl = memory_ttl
        self.clock = clock or (lambda: datetime.now(UTC))

        self._memory_lock = threading.Lock()
        self._memory: tuple[CredentialRecord, datetime] | None = None
        self._prompt_lock = threading.Lock()

    # Tier 1

    def _read_memory(self, now: datetime) -> CredentialRecord | None:
        with self._memory_lock:
            if self._memory is None:
                return None
            record, stored_at = self._memory
            if now - stored_at >= self.memory_ttl or record.credentials.is_expired(now):
                self._memory = None
                return None
        return msgspec.structs.replace(record, source=CredentialSource.MEMORY_CACHE)

    def _write_memory(self, record: CredentialRecord, now: datetime) -> None:
        with self._memory_lock:
            self._memory = (record, now)

    # Tier 2

    def _read_cache_store(self) -> CredentialRecord | None:
        if self.cache_store is None:
            return None
        entry = self.cache_store.load()
        if entry is None:
            return None
        try:
            credentials = OAuthCredentials.parse(entry.data)
        except CredentialDecodeError:
            logger.warning("Clearing undecodable credential cache entry")
            self.cache_store.clear()
            return None
        return CredentialRecord(
            credentials=credentials,
            owner=entry.owner,
            source=CredentialSource.CACHE_STORE,
        )

    def _write_cache_store(self, record: CredentialRecord, now: datetime) -> None:
        if self.cache_store is None:
            return
        self.cache_store.save(
            CacheEntry(
                data=record.credentials.to_json().decode(),
                stored_at=now,
                owner=record.owner,
            )
        )

    def _fast_tiers(self, now: datetime) -> tuple[CredentialRecord | None, list]:
        """Check tiers 1-2. Returns a valid record, or None plus expired ones."""
        expired: list[CredentialRecord] = []
        if record := self._read_memory(now):
            return record, expired
        if record := self._read_cache_store():
            if not record.credentials.is_expired(now):
                self._write_memory(record, now)
                return record, expired
            expired.append(record)
        return None, expired

    # Tier 4

    def _may_read_secure_store(
        self,
        allow_interactive_prompt: bool,
        respect_cooldown: bool,
        interaction: Interaction,
    ) -> bool:
        if not self.gate.is_applicable:
            return True
        if not allow_interactive_prompt:
            return False
        if respect_cooldown:
            return self.gate.should_allow_prompt(interaction, now=self.clock())
        return True

    def _read_secure_store(self, interaction: Interaction) -> bytes | None:
        preflight = self.secure_store.preflight(self.service)
        logger.debug("Secure store preflight: %s", preflight)
        match preflight:
            case PreflightOutcome.NOT_FOUND:
                return None
            case PreflightOutcome.FAILURE:
                raise SecureStoreError(-1, "Secure store preflight failed.")
            case PreflightOutcome.INTERACTION_REQUIRED if (
                interaction != Interaction.USER_INITIATED
            ):
                # Don't surprise a background caller with a prompt.
                self.gate.record_denied()
                return None
        try:
            return self.secure_store.read(self.service)
        except SecureStoreError:
            if self.gate.is_applicable:
                self.gate.record_denied()
            raise

    # Public API

    def load(
        self,
        allow_interactive_prompt: bool = True,
        respect_cooldown: bool = False,
        environment: Mapping[str, str] | None = None,
        interaction: Interaction = Interaction.BACKGROUND,
    ) -> CredentialRecord:
        """Load the best available credentials.

        Raises:
            CredentialNotFoundError: No tier had credentials
            CredentialNeedsRepairError: Only expired environment credentials exist
            CredentialError: The last tier read failed
        """
        env = os.environ if environment is None else environment
        if (credentials := credentials_from_environment(env)) is not None:
            record = CredentialRecord(
                credentials=credentials,
                owner=CredentialOwner.ENVIRONMENT_OVERRIDE,
                source=CredentialSource.ENVIRONMENT,
            )
            return self._finish(record, [])

        now = self.clock()
        record, expired = self._fast_tiers(now)
        if record is not None:
            return record

        last_error: CredentialError | None = None

        # Tier 3
        try:
            if content := self.credentials_file.read():
                record = CredentialRecord(
                    credentials=OAuthCredentials.parse(content),
                    owner=CredentialOwner.EXTERNAL_TOOL,
                    source=CredentialSource.CREDENTIALS_FILE,
                )
                if not record.credentials.is_expired(now):
                    return self._write_through(record, now)
                expired.append(record)
        except CredentialError as e:
            logger.debug("Credentials file unusable: %s", e)
            last_error = e
        except OSError as e:
            logger.debug("Credentials file unreadable: %s", e)
            last_error = CredentialError(f"Could not read credentials file: {e}")

        # Tier 4
        if self._may_read_secure_store(
            allow_interactive_prompt, respect_cooldown, interaction
        ):
            with self._prompt_lock:
                # Another caller may have filled the fast tiers while we waited.
                record, more_expired = self._fast_tiers(self.clock())
                if record is not None:
                    return record
                expired.extend(more_expired)
                try:
                    if content := self._read_secure_store(interaction):
                        record = CredentialRecord(
                            credentials=OAuthCredentials.parse(content),
                            owner=CredentialOwner.EXTERNAL_TOOL,
                            source=CredentialSource.SECURE_STORE,
                        )
                        if not record.credentials.is_expired(now):
                            return self._write_through(record, now)
                        expired.append(record)
                except CredentialError as e:
                    logger.debug("Secure store unusable: %s", e)
                    last_error = e
        else:
            logger.debug("Secure store read not permitted for this request")

        if expired:
            return self._finish(expired[0], expired[1:])
        if last_error is not None:
            raise last_error
        raise CredentialNotFoundError(
            "Claude OAuth credentials not found. Run `claude` to authenticate."
        )

    def _write_through(self, record: CredentialRecord, now: datetime) -> CredentialRecord:
        logger.debug(
            "Loaded credentials from %s (owner=%s, expires_at=%s)",
            record.source,
            record.owner,
            record.credentials.expires_at,
        )
        self._write_memory(record, now)
        self._write_cache_store(record, now)
        return record

    def _finish(
        self, best: CredentialRecord, others: list[CredentialRecord]
    ) -> CredentialRecord:
        """Pick the freshest expired record and mark it for repair."""
        for other in others:
            if (other.credentials.expires_at or datetime.min.replace(tzinfo=UTC)) > (
                best.credentials.expires_at or datetime.min.replace(tzinfo=UTC)
            ):
                best = other

        if not best.credentials.is_expired(self.clock()):
            return best
        if best.owner == CredentialOwner.ENVIRONMENT_OVERRIDE:
            raise CredentialNeedsRepairError(
                f"{ENV_TOKEN_KEY} is expired. Set a fresh token or unset it."
            )
        logger.info(
            "Credentials from %s expired at %s (owner=%s)",
            best.source,
            best.credentials.expires_at,
            best.owner,
        )
        return msgspec.structs.replace(best, needs_repair=True)

    def invalidate(self) -> None:
        """Drop the memory and keyring caches so the next load re-reads sources."""
        with self._memory_lock:
            self._memory = None
        if self.cache_store is not None:
            self.cache_store.clear()

    def save_refreshed(self, credentials: OAuthCredentials) -> CredentialRecord:
        """Store credentials this application refreshed itself."""
        now = self.clock()
        record = CredentialRecord(
            credentials=credentials,
            owner=CredentialOwner.THIS_APPLICATION,
            source=CredentialSource.MEMORY_CACHE,
        )
        self._write_memory(record, now)
        self._write_cache_store(record, now)
        return record

    def fingerprint(self) -> str | None:
        """Short hash of the external tool's stored credentials, read without UI."""
        content: bytes | None = None
        try:
            if self.secure_store.preflight(self.service) == PreflightOutcome.ALLOWED:
                content = self.secure_store.read(self.service)
        except SecureStoreError as e:
            logger.debug("Fingerprint secure store read failed: %s", e)
        if content is None:
            try:
                content = self.credentials_file.read()
            except OSError as e:
                logger.debug("Fingerprint file read failed: %s", e)
        if not content:
            return None
        return hashlib.sha256(content).hexdigest()[:FINGERPRINT_LENGTH]
