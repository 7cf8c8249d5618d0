"""Snapshot caching and cooldown persistence for usagehub."""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Protocol

import msgspec

from usagehub.config.paths import cooldowns_dir
from usagehub.config.paths import snapshots_dir
from usagehub.models import UsageSnapshot

logger = logging.getLogger(__name__)


def snapshot_path(provider_id: str) -> Path:
    """Get path for provider's cached snapshot."""
    return snapshots_dir() / f"{provider_id}.json"


def cache_snapshot(snapshot: UsageSnapshot) -> None:
    """Save usage snapshot to cache."""
    path = snapshot_path(snapshot.provider)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = msgspec.json.encode(snapshot)
    path.write_bytes(data)


def load_cached_snapshot(provider_id: str) -> UsageSnapshot | None:
    """Load cached snapshot for provider."""
    path = snapshot_path(provider_id)
    if not path.exists():
        return None

    try:
        data = path.read_bytes()
        return msgspec.json.decode(data, type=UsageSnapshot)
    except (msgspec.DecodeError, OSError):
        return None


# Cooldown persistence


class CooldownState(msgspec.Struct, frozen=True):
    """Last attempt time and the interval that must pass before the next one."""

    last_attempt_at: datetime | None = None
    cooldown_seconds: float | None = None


class CooldownStore(Protocol):
    def load(self) -> CooldownState: ...

    def save(self, state: CooldownState) -> None: ...

    def clear(self) -> None: ...


class MemoryCooldownStore:
    """Process-local cooldown storage."""

    def __init__(self, state: CooldownState | None = None):
        self._state = state or CooldownState()
        self._lock = threading.Lock()

    def load(self) -> CooldownState:
        with self._lock:
            return self._state

    def save(self, state: CooldownState) -> None:
        with self._lock:
            self._state = state

    def clear(self) -> None:
        self.save(CooldownState())


class FileCooldownStore:
    """Cooldown state persisted as JSON under the state directory.

    The loaded state is kept in memory so repeated reads don't touch disk.
    Unreadable files are treated as "no cooldown".
    """

    def __init__(self, name: str, path: Path | None = None):
        self.name = name
        self.path = path or cooldowns_dir() / f"{name}.json"
        self._lock = threading.Lock()
        self._state: CooldownState | None = None

    def _read(self) -> CooldownState:
        if not self.path.exists():
            return CooldownState()
        try:
            return msgspec.json.decode(self.path.read_bytes(), type=CooldownState)
        except (msgspec.DecodeError, OSError) as e:
            logger.warning("Ignoring unreadable cooldown state %s: %s", self.path, e)
            return CooldownState()

    def load(self) -> CooldownState:
        with self._lock:
            if self._state is None:
                self._state = self._read()
            return self._state

    def save(self, state: CooldownState) -> None:
        with self._lock:
            self._state = state
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_bytes(msgspec.json.encode(state))
        except OSError as e:
            logger.warning("Could not persist cooldown state %s: %s", self.path, e)

    def clear(self) -> None:
        with self._lock:
            self._state = CooldownState()
        self.path.unlink(missing_ok=True)
