"""OAuth strategy for Claude provider."""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from decimal import Decimal

import msgspec

from usagehub.core.gate import PromptMode
from usagehub.core.gate import PromptPolicy
from usagehub.core.http import check_response
from usagehub.core.http import get_http_client
from usagehub.core.refresh import RefreshOutcomeKind
from usagehub.core.services import Services
from usagehub.core.services import get_services
from usagehub.credentials.store import CredentialRecord
from usagehub.credentials.store import OAuthCredentials
from usagehub.credentials.tiers import CredentialOwner
from usagehub.errors.messages import get_auth_error_message
from usagehub.errors.messages import refresh_failure_message
from usagehub.errors.types import CredentialError
from usagehub.errors.types import ErrorCategory
from usagehub.errors.types import UsageFetchError
from usagehub.models import Interaction
from usagehub.models import OverageUsage
from usagehub.models import PeriodType
from usagehub.models import Runtime
from usagehub.models import SourceMode
from usagehub.models import UsagePeriod
from usagehub.models import UsageSnapshot
from usagehub.strategies.base import FetchContext
from usagehub.strategies.base import FetchKind
from usagehub.strategies.base import FetchResult
from usagehub.strategies.base import FetchStrategy

logger = logging.getLogger(__name__)

USAGE_URL = "https://api.anthropic.com/api/oauth/usage"
TOKEN_URL = "https://platform.claude.com/v1/oauth/token"
# Public client id of the Claude CLI's OAuth app (not a secret)
DEFAULT_CLIENT_ID = "9d1c250a-e61b-44d9-88ed-5944d1962f5e"
CLIENT_ID_ENV_KEY = "USAGEHUB_CLAUDE_OAUTH_CLIENT_ID"
OAUTH_BETA_HEADER = "oauth-2025-04-20"
REQUIRED_SCOPE = "user:profile"


class _TokenRefreshResponse(msgspec.Struct):
    access_token: str
    expires_in: int
    refresh_token: str | None = None
    scope: str | None = None


def _parse_period(
    data: dict, key: str, name: str, period_type: PeriodType, model: str | None = None
) -> UsagePeriod | None:
    period_data = data.get(key)
    if not period_data or period_data.get("utilization") is None:
        return None

    resets_at = None
    if resets_at_str := period_data.get("resets_at"):
        try:
            resets_at = datetime.fromisoformat(resets_at_str)
        except (ValueError, TypeError):
            pass

    return UsagePeriod(
        name=name,
        utilization=int(period_data["utilization"]),
        period_type=period_type,
        resets_at=resets_at,
        model=model,
    )


def parse_usage_response(data: dict, source: str) -> UsageSnapshot:
    """Parse the usage document shared by the OAuth and web endpoints.

    Format (2025-01):
    {
        "five_hour": { "utilization": 0.0, "resets_at": "2026-01-17T06:59:59.846865+00:00" },
        "seven_day": { "utilization": 27.0, "resets_at": "2026-01-22T18:59:59.846886+00:00" },
        "seven_day_sonnet": { "utilization": 3.0, "resets_at": "..." },
        "extra_usage": { "is_enabled": false, ... }
    }
    """
    period_mapping = {
        "five_hour": ("Session (5h)", PeriodType.SESSION),
        "seven_day": ("All Models", PeriodType.WEEKLY),
    }
    model_mapping = {
        "seven_day_sonnet": "Sonnet",
        "seven_day_opus": "Opus",
    }

    periods = [
        period
        for key, (name, period_type) in period_mapping.items()
        if (period := _parse_period(data, key, name, period_type))
    ]
    periods.extend(
        period
        for key, name in model_mapping.items()
        if (period := _parse_period(data, key, name, PeriodType.WEEKLY, name.lower()))
    )
    if not periods:
        raise UsageFetchError(
            "Claude usage response contained no usage windows.",
            category=ErrorCategory.PARSE,
        )

    overage = None
    extra_usage = data.get("extra_usage") or {}
    if extra_usage.get("is_enabled"):
        used_credits = extra_usage.get("used_credits")
        monthly_limit = extra_usage.get("monthly_limit")
        if used_credits is not None and monthly_limit is not None:
            overage = OverageUsage(
                used=Decimal(str(used_credits)),
                limit=Decimal(str(monthly_limit)),
                currency="USD",
                is_enabled=True,
            )

    return UsageSnapshot(
        provider="claude",
        fetched_at=datetime.now(UTC),
        periods=tuple(periods),
        overage=overage,
        source=source,
    )


async def refresh_access_token(credentials: OAuthCredentials) -> OAuthCredentials:
    """Exchange the refresh token for a new access token."""
    if not credentials.refresh_token:
        raise UsageFetchError(
            "Claude OAuth token expired and has no refresh token.",
            category=ErrorCategory.AUTHENTICATION,
            remediation="Run `claude login`, then retry.",
        )

    client_id = os.environ.get(CLIENT_ID_ENV_KEY, "").strip() or DEFAULT_CLIENT_ID
    async with get_http_client() as client:
        response = await client.post(
            TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": credentials.refresh_token,
                "client_id": client_id,
            },
            headers={"Accept": "application/json"},
        )
    if response.status_code != 200:
        raise UsageFetchError(
            f"Claude OAuth token refresh failed: HTTP {response.status_code}.",
            category=ErrorCategory.AUTHENTICATION,
            remediation="Run `claude login`, then retry.",
        )

    try:
        token = msgspec.json.decode(response.content, type=_TokenRefreshResponse)
    except msgspec.DecodeError as e:
        raise UsageFetchError(
            "Invalid response from Claude token endpoint.",
            category=ErrorCategory.PARSE,
        ) from e

    scopes = tuple(token.scope.split()) if token.scope else credentials.scopes
    return OAuthCredentials(
        access_token=token.access_token,
        refresh_token=token.refresh_token or credentials.refresh_token,
        expires_at=datetime.now(UTC) + timedelta(seconds=token.expires_in),
        scopes=scopes,
        rate_limit_tier=credentials.rate_limit_tier,
    )


class ClaudeOAuthStrategy(FetchStrategy):
    """Fetch Claude usage using OAuth tokens."""

    id = "claude.oauth"
    kind = FetchKind.OAUTH

    def __init__(self, services: Services | None = None):
        self._services = services

    @property
    def services(self) -> Services:
        return self._services or get_services()

    async def is_available(self, ctx: FetchContext) -> bool:
        """Explicit oauth mode always tries; auto needs usable credentials."""
        if ctx.source_mode == SourceMode.OAUTH:
            return True
        try:
            record = await asyncio.to_thread(
                self.services.credentials.load,
                allow_interactive_prompt=False,
                respect_cooldown=True,
                environment=ctx.environment,
                interaction=ctx.interaction,
            )
        except CredentialError:
            return False
        return record.credentials.has_scope(REQUIRED_SCOPE)

    def should_fallback(self, error: BaseException, ctx: FetchContext) -> bool:
        return ctx.runtime == Runtime.APP and ctx.source_mode in (
            SourceMode.AUTO,
            SourceMode.OAUTH,
        )

    async def fetch(self, ctx: FetchContext) -> FetchResult:
        """Fetch usage using OAuth credentials."""
        policy = self.services.gate.policy(ctx.interaction)
        record = await self._load(ctx, policy)

        if record.needs_repair:
            record = await self._repair(record, ctx, policy)

        credentials = record.credentials
        if not credentials.has_scope(REQUIRED_SCOPE):
            raise UsageFetchError(
                get_auth_error_message("claude", "403"),
                category=ErrorCategory.AUTHORIZATION,
            )

        try:
            data = await self._fetch_usage(credentials.access_token)
        except UsageFetchError as e:
            if e.category in (ErrorCategory.AUTHENTICATION, ErrorCategory.AUTHORIZATION):
                # Cached token was rejected; make the next load re-read sources.
                self.services.credentials.invalidate()
            raise

        return self.result(parse_usage_response(data, self.source_label))

    async def _load(
        self,
        ctx: FetchContext,
        policy: PromptPolicy,
        allow_prompt: bool | None = None,
    ) -> CredentialRecord:
        if allow_prompt is None:
            allow_prompt = policy.can_prompt_now
        try:
            return await asyncio.to_thread(
                self.services.credentials.load,
                allow_interactive_prompt=allow_prompt,
                respect_cooldown=policy.should_respect_cooldown,
                environment=ctx.environment,
                interaction=ctx.interaction,
            )
        except CredentialError as e:
            raise UsageFetchError(
                str(e), category=ErrorCategory.AUTHENTICATION
            ) from e

    async def _repair(
        self, record: CredentialRecord, ctx: FetchContext, policy: PromptPolicy
    ) -> CredentialRecord:
        """Bring expired credentials back to life, or raise an actionable error."""
        if record.owner == CredentialOwner.THIS_APPLICATION:
            logger.info("Refreshing app-owned Claude OAuth token")
            refreshed = await refresh_access_token(record.credentials)
            return self.services.credentials.save_refreshed(refreshed)

        if policy.mode == PromptMode.NEVER:
            raise UsageFetchError(
                "Claude OAuth token expired and secure store access is disabled.",
                category=ErrorCategory.AUTHENTICATION,
                remediation="Run `claude login`, or switch the Claude source mode.",
            )
        if (
            policy.mode == PromptMode.ONLY_ON_USER_ACTION
            and ctx.interaction != Interaction.USER_INITIATED
        ):
            raise UsageFetchError(
                "Claude OAuth token expired; waiting for a user-initiated refresh.",
                category=ErrorCategory.AUTHENTICATION,
                remediation="Run `usagehub refresh`, or `claude login`.",
            )

        coordinator = self.services.coordinator
        outcome = await coordinator.attempt(timeout=self.services.touch_timeout)
        logger.info("Delegated refresh outcome: %s", outcome.kind)

        if outcome.kind in (
            RefreshOutcomeKind.ATTEMPTED_SUCCEEDED,
            RefreshOutcomeKind.ATTEMPTED_FAILED,
        ):
            # The tool may have refreshed even when the change wasn't observed.
            self.services.credentials.invalidate()
            try:
                reloaded = await self._load(ctx, policy, allow_prompt=False)
            except UsageFetchError:
                reloaded = None
            if reloaded is not None and not reloaded.needs_repair:
                return reloaded

        raise UsageFetchError(
            refresh_failure_message(outcome),
            category=ErrorCategory.AUTHENTICATION,
        )

    async def _fetch_usage(self, access_token: str) -> dict:
        async with get_http_client() as client:
            response = await client.get(
                USAGE_URL,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "anthropic-beta": OAUTH_BETA_HEADER,
                },
            )
        check_response(response, "claude")
        try:
            return response.json()
        except ValueError as e:
            raise UsageFetchError(
                "Invalid response from Claude usage endpoint.",
                category=ErrorCategory.PARSE,
            ) from e
