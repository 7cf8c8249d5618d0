"""Shared HTTP client for usagehub."""

from contextlib import asynccontextmanager

import httpx

from usagehub import __version__
from usagehub.config.settings import get_config
from usagehub.errors.messages import get_auth_error_message
from usagehub.errors.messages import get_provider_remediation
from usagehub.errors.types import ErrorCategory
from usagehub.errors.types import UsageFetchError
from usagehub.errors.types import classify_http_status

USER_AGENT = f"usagehub/{__version__}"

_client: httpx.AsyncClient | None = None


def get_timeout_config() -> httpx.Timeout:
    """Get timeout configuration from settings."""
    timeout = get_config().fetch.timeout
    return httpx.Timeout(timeout, connect=min(10.0, timeout))


@asynccontextmanager
async def get_http_client():
    """Yield the process-wide client, creating it on first use."""
    global _client

    if _client is None:
        limits = httpx.Limits(
            max_connections=20,
            max_keepalive_connections=5,
        )
        _client = httpx.AsyncClient(
            timeout=get_timeout_config(),
            limits=limits,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    # Not closed here; reused until cleanup()
    yield _client


async def cleanup() -> None:
    """Close the shared client; the next get_http_client() opens a new one."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


def check_response(response: httpx.Response, provider_id: str) -> None:
    """Raise a UsageFetchError for a non-2xx response."""
    if response.is_success:
        return

    status = response.status_code
    mapping = classify_http_status(status)
    if mapping.category in (ErrorCategory.AUTHENTICATION, ErrorCategory.AUTHORIZATION):
        message = get_auth_error_message(provider_id, str(status))
        remediation = None
    else:
        message = f"{provider_id} request failed: HTTP {status}"
        remediation = get_provider_remediation(provider_id, mapping.category)

    raise UsageFetchError(
        message,
        category=mapping.category,
        remediation=remediation,
        should_fallback=mapping.should_fallback,
    )
