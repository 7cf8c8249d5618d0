"""Error handling for usagehub."""

from usagehub.errors.classify import classify_exception
from usagehub.errors.messages import (
    AUTH_ERROR_TEMPLATES,
    get_auth_error_message,
    get_provider_remediation,
    refresh_failure_message,
)
from usagehub.errors.types import (
    HTTP_ERROR_MAPPINGS,
    CredentialDecodeError,
    CredentialError,
    CredentialNeedsRepairError,
    CredentialNotFoundError,
    ErrorCategory,
    ErrorSeverity,
    FetchPipelineError,
    HTTPErrorMapping,
    NoCandidatesError,
    SecureStoreError,
    UnsupportedSourceModeError,
    UsageFetchError,
    classify_http_status,
)

__all__ = [
    # Core types
    "ErrorCategory",
    "ErrorSeverity",
    "HTTPErrorMapping",
    "HTTP_ERROR_MAPPINGS",
    "classify_http_status",
    "classify_exception",
    # Pipeline
    "FetchPipelineError",
    "UnsupportedSourceModeError",
    "NoCandidatesError",
    "UsageFetchError",
    # Credentials
    "CredentialError",
    "CredentialNotFoundError",
    "CredentialDecodeError",
    "CredentialNeedsRepairError",
    "SecureStoreError",
    # Message templates
    "AUTH_ERROR_TEMPLATES",
    "get_auth_error_message",
    "get_provider_remediation",
    "refresh_failure_message",
]
