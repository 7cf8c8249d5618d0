"""Web (session cookie) strategy for Claude provider."""

from __future__ import annotations

from decimal import Decimal
from decimal import InvalidOperation

import msgspec

from usagehub.core.http import check_response
from usagehub.core.http import get_http_client
from usagehub.errors.types import ErrorCategory
from usagehub.errors.types import UsageFetchError
from usagehub.models import OverageUsage
from usagehub.models import SourceMode
from usagehub.providers.claude.oauth import parse_usage_response
from usagehub.strategies.base import FetchContext
from usagehub.strategies.base import FetchKind
from usagehub.strategies.base import FetchResult
from usagehub.strategies.base import FetchStrategy


class ClaudeWebStrategy(FetchStrategy):
    """Fetch Claude usage using a claude.ai session cookie."""

    id = "claude.web"
    kind = FetchKind.WEB

    # API endpoints
    ORG_URL = "https://claude.ai/api/organizations"
    USAGE_URL_TEMPLATE = "https://claude.ai/api/organizations/{org_id}/usage"
    OVERAGE_URL_TEMPLATE = (
        "https://claude.ai/api/organizations/{org_id}/overage_spend_limit"
    )

    @staticmethod
    def _cookie_header(ctx: FetchContext) -> str | None:
        if ctx.settings is None or not ctx.settings.cookie_header:
            return None
        header = ctx.settings.cookie_header.strip()
        if header.lower().startswith("cookie:"):
            header = header[len("cookie:") :].strip()
        return header if "sessionKey=" in header else None

    async def is_available(self, ctx: FetchContext) -> bool:
        """Check if a session cookie is configured."""
        return self._cookie_header(ctx) is not None

    def should_fallback(self, error: BaseException, ctx: FetchContext) -> bool:
        return ctx.source_mode == SourceMode.AUTO

    async def fetch(self, ctx: FetchContext) -> FetchResult:
        """Fetch usage using the session cookie."""
        headers = {"Cookie": self._cookie_header(ctx) or "", "Accept": "application/json"}

        async with get_http_client() as client:
            org_response = await client.get(self.ORG_URL, headers=headers)
            check_response(org_response, "claude")
            org_id = self._select_org_id(org_response.content)

            usage_response = await client.get(
                self.USAGE_URL_TEMPLATE.format(org_id=org_id), headers=headers
            )
            check_response(usage_response, "claude")
            try:
                usage_data = usage_response.json()
            except ValueError as e:
                raise UsageFetchError(
                    "Invalid usage response from claude.ai.",
                    category=ErrorCategory.PARSE,
                ) from e

            overage_response = await client.get(
                self.OVERAGE_URL_TEMPLATE.format(org_id=org_id), headers=headers
            )

        snapshot = parse_usage_response(usage_data, self.source_label)
        if overage_response.is_success:
            if overage := self._parse_overage(overage_response.content):
                snapshot = msgspec.structs.replace(snapshot, overage=overage)
        return self.result(snapshot)

    @staticmethod
    def _select_org_id(content: bytes) -> str:
        """Prefer the organization with chat capability, else the first one."""
        try:
            orgs = msgspec.json.decode(content)
        except msgspec.DecodeError as e:
            raise UsageFetchError(
                "Invalid organizations response from claude.ai.",
                category=ErrorCategory.PARSE,
            ) from e

        orgs = [org for org in orgs if isinstance(org, dict)] if isinstance(orgs, list) else []
        orgs.sort(key=lambda org: "chat" not in org.get("capabilities", []))
        for org in orgs:
            if org_id := org.get("uuid") or org.get("id"):
                return org_id
        raise UsageFetchError(
            "No claude.ai organization found for this session.",
            category=ErrorCategory.NOT_FOUND,
        )

    @staticmethod
    def _parse_overage(content: bytes) -> OverageUsage | None:
        try:
            data = msgspec.json.decode(content)
            return OverageUsage(
                used=Decimal(str(data.get("current_spend", 0))),
                limit=Decimal(str(data.get("hard_limit", 0))),
                currency="USD",
                is_enabled=bool(data.get("has_hard_limit", False)),
            )
        except (msgspec.DecodeError, AttributeError, InvalidOperation):
            return None
