"""API token strategy for OpenRouter provider."""

from __future__ import annotations

from datetime import UTC
from datetime import datetime
from decimal import Decimal

import msgspec

from usagehub.config.keyring import get_from_keyring
from usagehub.config.keyring import keyring_key
from usagehub.core.http import check_response
from usagehub.core.http import get_http_client
from usagehub.errors.messages import get_auth_error_message
from usagehub.errors.types import ErrorCategory
from usagehub.errors.types import UsageFetchError
from usagehub.models import OverageUsage
from usagehub.models import PeriodType
from usagehub.models import ProviderIdentity
from usagehub.models import UsagePeriod
from usagehub.models import UsageSnapshot
from usagehub.strategies.base import FetchContext
from usagehub.strategies.base import FetchKind
from usagehub.strategies.base import FetchResult
from usagehub.strategies.base import FetchStrategy

API_BASE = "https://openrouter.ai/api/v1"
ENV_VAR = "OPENROUTER_API_KEY"


class _Credits(msgspec.Struct):
    total_credits: float
    total_usage: float


class _CreditsResponse(msgspec.Struct):
    data: _Credits


class _KeyInfo(msgspec.Struct):
    label: str | None = None
    is_free_tier: bool = False


class _KeyResponse(msgspec.Struct):
    data: _KeyInfo


def load_api_token(ctx: FetchContext) -> str | None:
    """Token from the environment, then provider settings, then the keyring."""
    if token := ctx.environment.get(ENV_VAR, "").strip():
        return token
    if ctx.settings is not None and ctx.settings.api_token:
        return ctx.settings.api_token.strip()
    return get_from_keyring(keyring_key("openrouter", "api_key"))


def parse_credits(
    content: bytes, source: str, key_info: _KeyInfo | None = None
) -> UsageSnapshot:
    """Parse the ``/credits`` document.

    Format:
    {"data": {"total_credits": 25.0, "total_usage": 7.31}}
    """
    try:
        credits = msgspec.json.decode(content, type=_CreditsResponse).data
    except msgspec.ValidationError as e:
        raise UsageFetchError(
            f"Unexpected OpenRouter credits response: {e}",
            category=ErrorCategory.PARSE,
        ) from e
    except msgspec.DecodeError as e:
        raise UsageFetchError(
            "Invalid response from OpenRouter credits endpoint.",
            category=ErrorCategory.PARSE,
        ) from e

    total = Decimal(str(credits.total_credits))
    used = Decimal(str(credits.total_usage))
    utilization = int(min(used / total, 1) * 100) if total > 0 else 100

    identity = None
    if key_info is not None:
        identity = ProviderIdentity(
            organization=key_info.label,
            plan="Free" if key_info.is_free_tier else "Pay as you go",
        )

    return UsageSnapshot(
        provider="openrouter",
        fetched_at=datetime.now(UTC),
        periods=(
            UsagePeriod(
                name="Credits",
                utilization=utilization,
                period_type=PeriodType.MONTHLY,
            ),
        ),
        overage=OverageUsage(used=used, limit=total, currency="USD", is_enabled=True),
        identity=identity,
        source=source,
    )


class OpenRouterAPITokenStrategy(FetchStrategy):
    """Fetch OpenRouter credit usage with an API key."""

    id = "openrouter.api"
    kind = FetchKind.API_TOKEN

    @property
    def source_label(self) -> str:
        return "api"

    async def is_available(self, ctx: FetchContext) -> bool:
        return load_api_token(ctx) is not None

    async def fetch(self, ctx: FetchContext) -> FetchResult:
        token = load_api_token(ctx)
        if not token:
            raise UsageFetchError(
                get_auth_error_message("openrouter", "no_credentials"),
                category=ErrorCategory.AUTHENTICATION,
            )

        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        async with get_http_client() as client:
            credits_response = await client.get(f"{API_BASE}/credits", headers=headers)
            check_response(credits_response, "openrouter")
            key_response = await client.get(f"{API_BASE}/key", headers=headers)

        key_info = None
        if key_response.is_success:
            try:
                key_info = msgspec.json.decode(key_response.content, type=_KeyResponse).data
            except msgspec.DecodeError:
                key_info = None

        return self.result(
            parse_credits(credits_response.content, self.source_label, key_info)
        )
