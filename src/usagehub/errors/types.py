"""Error types and classifications."""

from __future__ import annotations

from enum import StrEnum

import msgspec


class ErrorCategory(StrEnum):
    """Error categories for handling decisions."""

    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    PROVIDER = "provider"
    PARSE = "parse"
    CONFIGURATION = "configuration"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


class ErrorSeverity(StrEnum):
    """Error severity levels."""

    FATAL = "fatal"
    RECOVERABLE = "recoverable"
    TRANSIENT = "transient"


class HTTPErrorMapping(msgspec.Struct, frozen=True):
    """How to handle an HTTP status code."""

    category: ErrorCategory
    severity: ErrorSeverity
    should_fallback: bool = True


HTTP_ERROR_MAPPINGS: dict[int, HTTPErrorMapping] = {
    401: HTTPErrorMapping(
        category=ErrorCategory.AUTHENTICATION,
        severity=ErrorSeverity.RECOVERABLE,
    ),
    403: HTTPErrorMapping(
        category=ErrorCategory.AUTHORIZATION,
        severity=ErrorSeverity.RECOVERABLE,
    ),
    404: HTTPErrorMapping(
        category=ErrorCategory.NOT_FOUND,
        severity=ErrorSeverity.RECOVERABLE,
    ),
    429: HTTPErrorMapping(
        category=ErrorCategory.RATE_LIMITED,
        severity=ErrorSeverity.TRANSIENT,
        should_fallback=False,
    ),
}


def classify_http_status(status_code: int) -> HTTPErrorMapping:
    """Classify an HTTP error by status code."""
    if status_code in HTTP_ERROR_MAPPINGS:
        return HTTP_ERROR_MAPPINGS[status_code]

    if 400 <= status_code < 500:
        return HTTPErrorMapping(
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.RECOVERABLE,
        )
    elif 500 <= status_code < 600:
        return HTTPErrorMapping(
            category=ErrorCategory.PROVIDER,
            severity=ErrorSeverity.TRANSIENT,
        )
    return HTTPErrorMapping(
        category=ErrorCategory.UNKNOWN,
        severity=ErrorSeverity.RECOVERABLE,
    )


# Fetch pipeline errors


class FetchPipelineError(Exception):
    """Base class for errors raised by the pipeline itself."""


class UnsupportedSourceModeError(FetchPipelineError):
    """The requested source mode is not declared by the provider."""

    def __init__(self, provider_id: str, mode: str, supported: frozenset[str]):
        self.provider_id = provider_id
        self.mode = mode
        self.supported = supported
        modes = ", ".join(sorted(supported))
        super().__init__(
            f"{provider_id} does not support source mode '{mode}' "
            f"(supported: {modes}). Switch the source mode and retry."
        )


class NoCandidatesError(FetchPipelineError):
    """No strategy could be attempted."""

    def __init__(self, provider_id: str | None = None):
        self.provider_id = provider_id
        subject = provider_id or "provider"
        super().__init__(
            f"No available fetch strategy for {subject}. "
            "Configure credentials or switch the source mode."
        )


class UsageFetchError(Exception):
    """Strategy-level failure carrying an actionable message."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        remediation: str | None = None,
        should_fallback: bool = True,
    ):
        self.message = message
        self.category = category
        self.remediation = remediation
        self.should_fallback = should_fallback
        super().__init__(message)

    def __str__(self) -> str:
        if self.remediation:
            return f"{self.message} {self.remediation}"
        return self.message


# Credential errors


class CredentialError(Exception):
    """Base class for credential loading failures."""


class CredentialNotFoundError(CredentialError):
    def __init__(self, message: str = "Credentials not found."):
        super().__init__(message)


class CredentialDecodeError(CredentialError):
    def __init__(self, message: str = "Credentials are invalid."):
        super().__init__(message)


class CredentialNeedsRepairError(CredentialError):
    """Credentials are expired and cannot be repaired by this caller."""

    def __init__(self, message: str = "Credentials expired and need repair."):
        super().__init__(message)


class SecureStoreError(CredentialError):
    """The OS secure store refused or failed a read."""

    def __init__(self, code: int, message: str | None = None):
        self.code = code
        super().__init__(message or f"Secure store error: {code}")
