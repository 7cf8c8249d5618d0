"""Exception classification for structured error handling."""

from __future__ import annotations

import httpx

from usagehub.errors.types import CredentialError
from usagehub.errors.types import CredentialNotFoundError
from usagehub.errors.types import ErrorCategory
from usagehub.errors.types import FetchPipelineError
from usagehub.errors.types import UsageFetchError
from usagehub.errors.types import classify_http_status


def classify_exception(e: BaseException) -> ErrorCategory:
    """Map any exception onto an ErrorCategory."""
    if isinstance(e, UsageFetchError):
        return e.category
    if isinstance(e, FetchPipelineError):
        return ErrorCategory.CONFIGURATION
    if isinstance(e, CredentialNotFoundError):
        return ErrorCategory.NOT_FOUND
    if isinstance(e, CredentialError):
        return ErrorCategory.AUTHENTICATION
    if isinstance(e, httpx.HTTPStatusError):
        return classify_http_status(e.response.status_code).category
    if isinstance(e, (httpx.TimeoutException, httpx.NetworkError)):
        return ErrorCategory.NETWORK
    if isinstance(e, ValueError):
        return ErrorCategory.PARSE
    return ErrorCategory.UNKNOWN
