"""Web (session cookie) strategy for Codex provider."""

from __future__ import annotations

import msgspec

from usagehub.core.http import check_response
from usagehub.core.http import get_http_client
from usagehub.errors.messages import get_auth_error_message
from usagehub.errors.types import ErrorCategory
from usagehub.errors.types import UsageFetchError
from usagehub.models import SourceMode
from usagehub.providers.codex.oauth import USAGE_URL
from usagehub.providers.codex.oauth import parse_usage_response
from usagehub.strategies.base import FetchContext
from usagehub.strategies.base import FetchKind
from usagehub.strategies.base import FetchResult
from usagehub.strategies.base import FetchStrategy

SESSION_URL = "https://chatgpt.com/api/auth/session"
SESSION_COOKIE = "__Secure-next-auth.session-token"


class _Session(msgspec.Struct):
    accessToken: str | None = None
    user: dict | None = None


class CodexWebStrategy(FetchStrategy):
    """Fetch Codex usage using a chatgpt.com session cookie."""

    id = "codex.web"
    kind = FetchKind.WEB

    @staticmethod
    def _cookie_header(ctx: FetchContext) -> str | None:
        if ctx.settings is None or not ctx.settings.cookie_header:
            return None
        header = ctx.settings.cookie_header.strip()
        if header.lower().startswith("cookie:"):
            header = header[len("cookie:") :].strip()
        return header if SESSION_COOKIE in header else None

    async def is_available(self, ctx: FetchContext) -> bool:
        return self._cookie_header(ctx) is not None

    def should_fallback(self, error: BaseException, ctx: FetchContext) -> bool:
        return ctx.source_mode == SourceMode.AUTO

    async def fetch(self, ctx: FetchContext) -> FetchResult:
        cookie = self._cookie_header(ctx) or ""
        async with get_http_client() as client:
            session_response = await client.get(
                SESSION_URL, headers={"Cookie": cookie, "Accept": "application/json"}
            )
            check_response(session_response, "codex")
            try:
                session = msgspec.json.decode(session_response.content, type=_Session)
            except msgspec.DecodeError as e:
                raise UsageFetchError(
                    "Invalid session response from chatgpt.com.",
                    category=ErrorCategory.PARSE,
                ) from e
            if not session.accessToken:
                # An expired cookie yields an empty session rather than a 401.
                raise UsageFetchError(
                    get_auth_error_message("codex", "401"),
                    category=ErrorCategory.AUTHENTICATION,
                )

            usage_response = await client.get(
                USAGE_URL,
                headers={
                    "Authorization": f"Bearer {session.accessToken}",
                    "Cookie": cookie,
                    "Accept": "application/json",
                },
            )
        check_response(usage_response, "codex")

        email = (session.user or {}).get("email")
        snapshot = parse_usage_response(
            usage_response.content,
            self.source_label,
            email if isinstance(email, str) else None,
        )
        return self.result(snapshot)
