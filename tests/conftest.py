"""Pytest configuration and shared fixtures for usagehub tests."""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock
from unittest.mock import MagicMock

import httpx
import keyring
import pytest
from keyring.backend import KeyringBackend
from keyring.errors import PasswordDeleteError

from usagehub.config import settings as settings_module
from usagehub.core import http as http_module
from usagehub.core.services import set_services
from usagehub.credentials.tiers import PreflightOutcome
from usagehub.errors.types import SecureStoreError
from usagehub.models import OverageUsage
from usagehub.models import PeriodType
from usagehub.models import ProviderIdentity
from usagehub.models import UsagePeriod
from usagehub.models import UsageSnapshot

ISOLATED_ENV_VARS = (
    "USAGEHUB_ENABLED_PROVIDERS",
    "USAGEHUB_PROMPT_MODE",
    "USAGEHUB_CLAUDE_OAUTH_TOKEN",
    "USAGEHUB_CLAUDE_OAUTH_SCOPES",
    "USAGEHUB_CLAUDE_OAUTH_CLIENT_ID",
    "OPENROUTER_API_KEY",
)


class MemoryKeyring(KeyringBackend):
    """In-memory keyring backend so tests never touch the OS store."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def delete_password(self, service, username):
        if self.passwords.pop((service, username), None) is None:
            raise PasswordDeleteError("not found")


@pytest.fixture(autouse=True)
def isolated_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Point every usagehub path at tmp_path and reset process-wide singletons."""
    monkeypatch.setenv("USAGEHUB_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("USAGEHUB_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("USAGEHUB_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("CODEX_HOME", str(tmp_path / "codex"))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for name in ISOLATED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)

    monkeypatch.setattr(settings_module, "_config", None)
    monkeypatch.setattr(http_module, "_client", None)
    set_services(None)
    yield tmp_path
    set_services(None)


@pytest.fixture(autouse=True)
def memory_keyring() -> Generator[MemoryKeyring, None, None]:
    previous = keyring.get_keyring()
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeRefreshTool:
    """Delegated refresh tool that optionally rewrites the fingerprint."""

    def __init__(
        self,
        available: bool = True,
        fingerprint: FakeFingerprint | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.available = available
        self.fingerprint = fingerprint
        self.error = error
        self.delay = delay
        self.touch_count = 0
        self.timeouts: list[float] = []

    def is_available(self) -> bool:
        return self.available

    async def touch(self, timeout: float) -> None:
        self.touch_count += 1
        self.timeouts.append(timeout)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fingerprint is not None:
            self.fingerprint.rotate()
        if self.error is not None:
            raise self.error


class FakeFingerprint:
    """Fingerprint reader whose value changes when rotated."""

    def __init__(self, value: str | None = "aaaaaaaaaaaa"):
        self.value = value
        self.reads = 0
        self._generation = 0

    def rotate(self) -> None:
        self._generation += 1
        self.value = f"{self._generation:012d}"

    def __call__(self) -> str | None:
        self.reads += 1
        return self.value


class FakeSecureStore:
    """SecureStore stand-in with a scripted preflight outcome."""

    def __init__(
        self,
        content: bytes | None = None,
        preflight_outcome: PreflightOutcome | None = None,
        read_error: SecureStoreError | None = None,
    ):
        self.content = content
        self.preflight_outcome = preflight_outcome
        self.read_error = read_error
        self.reads = 0
        self.preflights = 0

    def preflight(self, service: str) -> PreflightOutcome:
        self.preflights += 1
        if self.preflight_outcome is not None:
            return self.preflight_outcome
        return PreflightOutcome.ALLOWED if self.content else PreflightOutcome.NOT_FOUND

    def read(self, service: str) -> bytes | None:
        self.reads += 1
        if self.read_error is not None:
            raise self.read_error
        return self.content


async def no_sleep(delay: float) -> None:
    """Sleep replacement that only yields to the loop."""
    await asyncio.sleep(0)


@pytest.fixture
def utc_now() -> datetime:
    """Fixed UTC datetime for consistent testing."""
    return datetime(2025, 1, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def clock(utc_now: datetime) -> FakeClock:
    return FakeClock(utc_now)


@pytest.fixture
def fingerprint() -> FakeFingerprint:
    return FakeFingerprint()


@pytest.fixture
def sample_period(utc_now: datetime) -> UsagePeriod:
    """Sample usage period with known values."""
    return UsagePeriod(
        name="Session (5h)",
        utilization=65,
        period_type=PeriodType.SESSION,
        resets_at=utc_now + timedelta(hours=3),
    )


@pytest.fixture
def sample_snapshot(utc_now: datetime, sample_period: UsagePeriod) -> UsageSnapshot:
    """Sample complete usage snapshot."""
    return UsageSnapshot(
        provider="claude",
        fetched_at=utc_now,
        periods=(
            sample_period,
            UsagePeriod(
                name="All Models",
                utilization=30,
                period_type=PeriodType.WEEKLY,
                resets_at=utc_now + timedelta(days=3),
            ),
        ),
        overage=OverageUsage(
            used=Decimal("2.50"),
            limit=Decimal("15.00"),
            currency="USD",
            is_enabled=True,
        ),
        identity=ProviderIdentity(email="user@example.com", plan="pro"),
        source="oauth",
    )


def make_credentials_json(
    expires_at: datetime,
    access_token: str = "sk-ant-oat01-test",
    refresh_token: str | None = "sk-ant-ort01-test",
    scopes: tuple[str, ...] = ("user:inference", "user:profile"),
) -> bytes:
    """Build a Claude credentials document."""
    import msgspec

    oauth = {
        "accessToken": access_token,
        "expiresAt": int(expires_at.timestamp() * 1000),
        "scopes": list(scopes),
        "rateLimitTier": "default_claude_max_5x",
    }
    if refresh_token is not None:
        oauth["refreshToken"] = refresh_token
    return msgspec.json.encode({"claudeAiOauth": oauth})


@pytest.fixture
def mock_httpx_client() -> MagicMock:
    """Mock httpx.AsyncClient."""
    client = MagicMock(spec=httpx.AsyncClient)
    client.get = AsyncMock()
    client.post = AsyncMock()
    client.is_closed = False
    client.aclose = AsyncMock()
    return client


def make_response(
    status_code: int = 200, json: object = None, url: str = "https://example.test"
) -> httpx.Response:
    """Build a real httpx.Response with a JSON body."""
    return httpx.Response(
        status_code, json=json if json is not None else {}, request=httpx.Request("GET", url)
    )


def patch_http_client(module: str, client: MagicMock):
    """Patch ``get_http_client`` as imported by ``module`` to yield ``client``."""
    from contextlib import asynccontextmanager
    from unittest.mock import patch

    @asynccontextmanager
    async def fake_get_http_client():
        yield client

    return patch(f"{module}.get_http_client", fake_get_http_client)
