"""Credential storage tiers: app cache, plaintext file and OS secure store."""

from __future__ import annotations

import getpass
import logging
import shutil
import subprocess
import threading
import time
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Protocol

import keyring
import msgspec
from keyring.errors import KeyringError
from keyring.errors import KeyringLocked

from usagehub.config.credentials import check_credential_permissions
from usagehub.config.credentials import provider_credential_path
from usagehub.config.credentials import write_credential
from usagehub.config.keyring import APP_SERVICE
from usagehub.config.keyring import delete_from_keyring
from usagehub.config.keyring import get_from_keyring
from usagehub.config.keyring import keyring_key
from usagehub.config.keyring import store_in_keyring
from usagehub.errors.types import SecureStoreError

logger = logging.getLogger(__name__)


class CredentialOwner(StrEnum):
    """Who is responsible for refreshing the credentials."""

    EXTERNAL_TOOL = "external_tool"
    THIS_APPLICATION = "this_application"
    ENVIRONMENT_OVERRIDE = "environment_override"


class CacheEntry(msgspec.Struct):
    """Credentials cached in the app's own keyring entry."""

    data: str  # Credentials JSON, in the external tool's file format
    stored_at: datetime
    owner: CredentialOwner = CredentialOwner.EXTERNAL_TOOL


class KeyringCacheStore:
    """App-owned cache entry in the system keyring.

    The entry belongs to usagehub, so reading it never shows a prompt.
    """

    def __init__(self, account: str | None = None, service: str = APP_SERVICE):
        self.service = service
        self.account = account or keyring_key("claude", "oauth-cache")

    def load(self) -> CacheEntry | None:
        raw = get_from_keyring(self.account, service=self.service)
        if raw is None:
            return None
        try:
            return msgspec.json.decode(raw, type=CacheEntry)
        except msgspec.DecodeError:
            logger.warning("Discarding undecodable credential cache entry")
            self.clear()
            return None

    def save(self, entry: CacheEntry) -> None:
        store_in_keyring(
            self.account, msgspec.json.encode(entry).decode(), service=self.service
        )

    def clear(self) -> None:
        delete_from_keyring(self.account, service=self.service)


class CredentialsFile:
    """The external tool's plaintext credentials file."""

    def __init__(self, path: Path | None = None):
        self.path = path or provider_credential_path("claude")

    def read(self) -> bytes | None:
        """Read the file, or None when absent or unsafely shared."""
        if not self.path.exists():
            return None
        if not check_credential_permissions(self.path):
            logger.warning(
                "Skipping %s: readable by group or others (chmod 600 to use it)",
                self.path,
            )
            return None
        return self.path.read_bytes()

    def write(self, content: bytes) -> None:
        write_credential(self.path, content)


class PreflightOutcome(StrEnum):
    """What a read of the secure store item would do right now."""

    ALLOWED = "allowed"
    INTERACTION_REQUIRED = "interaction_required"
    NOT_FOUND = "not_found"
    FAILURE = "failure"


class SecureStore(Protocol):
    def read(self, service: str) -> bytes | None: ...

    def preflight(self, service: str) -> PreflightOutcome: ...


class KeyringSecureStore:
    """Reads another tool's item through the ``keyring`` library.

    Depending on the backend this may show a system prompt.
    """

    def __init__(self, account: str | None = None):
        self.account = account or getpass.getuser()

    def read(self, service: str) -> bytes | None:
        try:
            value = keyring.get_password(service, self.account)
        except KeyringLocked as e:
            raise SecureStoreError(-1, f"Secure store locked: {e}") from e
        except KeyringError as e:
            raise SecureStoreError(-1, f"Secure store read failed: {e}") from e
        return value.encode() if value is not None else None

    def preflight(self, service: str) -> PreflightOutcome:
        try:
            value = keyring.get_password(service, self.account)
        except KeyringLocked:
            return PreflightOutcome.INTERACTION_REQUIRED
        except KeyringError as e:
            logger.debug("Secure store preflight failed: %s", e)
            return PreflightOutcome.FAILURE
        if value is None:
            return PreflightOutcome.NOT_FOUND
        return PreflightOutcome.ALLOWED


# macOS `security` exit status for "item not found"
SECURITY_ITEM_NOT_FOUND = 44


class SecurityCLISecureStore:
    """Reads the item with the one-shot ``security`` helper (never prompts).

    The helper prints the secret even for a preflight, so a successful
    preflight's output is handed to a ``read`` of the same service that
    follows within ``reuse_window`` seconds instead of spawning it again.
    """

    def __init__(
        self, binary: str = "security", timeout: float = 5.0, reuse_window: float = 1.0
    ):
        self.binary = binary
        self.timeout = timeout
        self.reuse_window = reuse_window
        self._lock = threading.Lock()
        self._pending: tuple[str, bytes, float] | None = None

    def _take_pending(self, service: str) -> bytes | None:
        with self._lock:
            pending, self._pending = self._pending, None
        if pending is None:
            return None
        pending_service, content, read_at = pending
        if pending_service != service or time.monotonic() - read_at >= self.reuse_window:
            return None
        return content

    def _run(self, service: str) -> subprocess.CompletedProcess[bytes]:
        path = shutil.which(self.binary)
        if path is None:
            raise SecureStoreError(-1, f"{self.binary} helper not found in PATH")
        try:
            return subprocess.run(
                [path, "find-generic-password", "-s", service, "-w"],
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise SecureStoreError(-1, f"{self.binary} helper timed out") from e
        except OSError as e:
            raise SecureStoreError(-1, f"{self.binary} helper failed: {e}") from e

    def read(self, service: str) -> bytes | None:
        if (content := self._take_pending(service)) is not None:
            return content
        result = self._run(service)
        if result.returncode == SECURITY_ITEM_NOT_FOUND:
            return None
        if result.returncode != 0:
            raise SecureStoreError(result.returncode)
        return result.stdout.strip() or None

    def preflight(self, service: str) -> PreflightOutcome:
        try:
            result = self._run(service)
        except SecureStoreError:
            return PreflightOutcome.FAILURE
        if result.returncode == 0:
            if content := result.stdout.strip():
                with self._lock:
                    self._pending = (service, content, time.monotonic())
            return PreflightOutcome.ALLOWED
        if result.returncode == SECURITY_ITEM_NOT_FOUND:
            return PreflightOutcome.NOT_FOUND
        return PreflightOutcome.FAILURE
