"""OAuth strategy for Codex (OpenAI) provider."""

from __future__ import annotations

import base64
import logging
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

import msgspec

from usagehub.config.credentials import provider_credential_path
from usagehub.config.credentials import read_credential
from usagehub.config.credentials import write_credential
from usagehub.core.http import check_response
from usagehub.core.http import get_http_client
from usagehub.errors.messages import get_auth_error_message
from usagehub.errors.types import ErrorCategory
from usagehub.errors.types import UsageFetchError
from usagehub.models import OverageUsage
from usagehub.models import PeriodType
from usagehub.models import ProviderIdentity
from usagehub.models import SourceMode
from usagehub.models import UsagePeriod
from usagehub.models import UsageSnapshot
from usagehub.strategies.base import FetchContext
from usagehub.strategies.base import FetchKind
from usagehub.strategies.base import FetchResult
from usagehub.strategies.base import FetchStrategy

logger = logging.getLogger(__name__)

TOKEN_URL = "https://auth.openai.com/oauth/token"
USAGE_URL = "https://chatgpt.com/backend-api/wham/usage"
CLIENT_ID = "app_EMoamEEZ73f0CkXaXp7hrann"

# Codex CLI refreshes its tokens after this long; so do we.
REFRESH_INTERVAL = timedelta(days=8)


class CodexTokens(msgspec.Struct):
    access_token: str
    refresh_token: str = ""
    id_token: str | None = None
    account_id: str | None = None


class CodexAuthFile(msgspec.Struct):
    """``~/.codex/auth.json``; unknown keys are preserved on rewrite."""

    tokens: CodexTokens | None = None
    last_refresh: datetime | None = None
    OPENAI_API_KEY: str | None = None

    def needs_refresh(self, now: datetime | None = None) -> bool:
        if self.last_refresh is None:
            return True
        return (now or datetime.now(UTC)) - self.last_refresh >= REFRESH_INTERVAL


class _Window(msgspec.Struct):
    used_percent: float
    limit_window_seconds: int | None = None
    reset_at: int | None = None


class _RateLimit(msgspec.Struct):
    primary_window: _Window | None = None
    secondary_window: _Window | None = None


class _Credits(msgspec.Struct):
    has_credits: bool = False
    balance: float | None = None


class CodexUsageResponse(msgspec.Struct):
    plan_type: str | None = None
    rate_limit: _RateLimit | None = None
    credits: _Credits | None = None


def auth_file_path() -> Path:
    return provider_credential_path("codex")


def load_auth_file(path: Path | None = None) -> CodexAuthFile | None:
    content = read_credential(path or auth_file_path())
    if not content:
        return None
    try:
        return msgspec.json.decode(content, type=CodexAuthFile)
    except msgspec.DecodeError as e:
        logger.warning("Ignoring unreadable Codex auth file: %s", e)
        return None


def save_auth_file(auth: CodexAuthFile, path: Path | None = None) -> None:
    path = path or auth_file_path()
    # Merge into the existing document so fields we don't model survive.
    existing: dict = {}
    if content := read_credential(path):
        try:
            existing = msgspec.json.decode(content)
        except msgspec.DecodeError:
            existing = {}
    existing.update(msgspec.to_builtins(auth))
    write_credential(path, msgspec.json.encode(existing))


def email_from_id_token(id_token: str | None) -> str | None:
    """Read the email claim from an unverified JWT payload."""
    if not id_token or id_token.count(".") < 2:
        return None
    payload = id_token.split(".")[1]
    payload += "=" * (-len(payload) % 4)
    try:
        claims = msgspec.json.decode(base64.urlsafe_b64decode(payload))
    except (ValueError, msgspec.DecodeError):
        return None
    if not isinstance(claims, dict):
        return None
    profile = claims.get("https://api.openai.com/profile") or {}
    email = claims.get("email") or profile.get("email")
    return email.strip() if isinstance(email, str) else None


def _window_period(window: _Window, name: str, period_type: PeriodType) -> UsagePeriod:
    resets_at = None
    if window.reset_at:
        resets_at = datetime.fromtimestamp(window.reset_at, tz=UTC)
    return UsagePeriod(
        name=name,
        utilization=int(window.used_percent),
        period_type=period_type,
        resets_at=resets_at,
    )


def parse_usage_response(
    content: bytes, source: str, email: str | None = None
) -> UsageSnapshot:
    """Parse the ``wham/usage`` document.

    Format:
    {
        "plan_type": "plus",
        "rate_limit": {
            "primary_window": {"used_percent": 58, "limit_window_seconds": 18000, "reset_at": 1234567890},
            "secondary_window": {"used_percent": 23, "limit_window_seconds": 604800, "reset_at": 1234567890}
        },
        "credits": {"has_credits": true, "balance": 10.5}
    }
    """
    try:
        usage = msgspec.json.decode(content, type=CodexUsageResponse)
    except msgspec.DecodeError as e:
        raise UsageFetchError(
            "Invalid response from Codex usage endpoint.", category=ErrorCategory.PARSE
        ) from e

    periods = []
    if usage.rate_limit is not None:
        if usage.rate_limit.primary_window is not None:
            periods.append(
                _window_period(usage.rate_limit.primary_window, "Session", PeriodType.SESSION)
            )
        if usage.rate_limit.secondary_window is not None:
            periods.append(
                _window_period(usage.rate_limit.secondary_window, "Weekly", PeriodType.WEEKLY)
            )
    if not periods:
        raise UsageFetchError(
            "Codex usage response contained no rate limit windows.",
            category=ErrorCategory.PARSE,
        )

    overage = None
    if usage.credits and usage.credits.has_credits and usage.credits.balance is not None:
        overage = OverageUsage(
            used=Decimal(0),  # API doesn't expose used amount
            limit=Decimal(str(usage.credits.balance)),
            currency="credits",
            is_enabled=True,
        )

    identity = None
    if usage.plan_type or email:
        identity = ProviderIdentity(email=email, plan=usage.plan_type)

    return UsageSnapshot(
        provider="codex",
        fetched_at=datetime.now(UTC),
        periods=tuple(periods),
        overage=overage,
        identity=identity,
        source=source,
    )


async def fetch_usage(access_token: str, account_id: str | None = None) -> bytes:
    headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
    if account_id:
        headers["ChatGPT-Account-Id"] = account_id
    async with get_http_client() as client:
        response = await client.get(USAGE_URL, headers=headers)
    check_response(response, "codex")
    return response.content


async def refresh_tokens(tokens: CodexTokens) -> CodexTokens:
    """Refresh the Codex access token with its refresh token."""
    async with get_http_client() as client:
        response = await client.post(
            TOKEN_URL,
            json={
                "client_id": CLIENT_ID,
                "grant_type": "refresh_token",
                "refresh_token": tokens.refresh_token,
                "scope": "openid profile email",
            },
        )
    check_response(response, "codex")
    try:
        data = msgspec.json.decode(response.content)
    except msgspec.DecodeError as e:
        raise UsageFetchError(
            "Invalid response from Codex token endpoint.", category=ErrorCategory.PARSE
        ) from e

    return CodexTokens(
        access_token=data.get("access_token") or tokens.access_token,
        # Preserve refresh_token if not in response
        refresh_token=data.get("refresh_token") or tokens.refresh_token,
        id_token=data.get("id_token") or tokens.id_token,
        account_id=tokens.account_id,
    )


class CodexOAuthStrategy(FetchStrategy):
    """Fetch Codex usage using the Codex CLI's OAuth tokens."""

    id = "codex.oauth"
    kind = FetchKind.OAUTH

    def __init__(self, path: Path | None = None):
        self.path = path

    async def is_available(self, ctx: FetchContext) -> bool:
        auth = load_auth_file(self.path)
        return auth is not None and auth.tokens is not None

    def should_fallback(self, error: BaseException, ctx: FetchContext) -> bool:
        return ctx.source_mode == SourceMode.AUTO

    async def fetch(self, ctx: FetchContext) -> FetchResult:
        auth = load_auth_file(self.path)
        if auth is None or auth.tokens is None:
            raise UsageFetchError(
                get_auth_error_message("codex", "no_credentials"),
                category=ErrorCategory.AUTHENTICATION,
            )

        tokens = auth.tokens
        if auth.needs_refresh() and tokens.refresh_token:
            logger.info("Refreshing Codex OAuth token")
            tokens = await refresh_tokens(tokens)
            auth = msgspec.structs.replace(
                auth, tokens=tokens, last_refresh=datetime.now(UTC)
            )
            save_auth_file(auth, self.path)

        content = await fetch_usage(tokens.access_token, tokens.account_id)
        snapshot = parse_usage_response(
            content, self.source_label, email_from_id_token(tokens.id_token)
        )
        return self.result(snapshot)
