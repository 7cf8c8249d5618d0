"""Provider-specific error message templates with remediation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from usagehub.errors.types import ErrorCategory

if TYPE_CHECKING:
    from usagehub.core.refresh import RefreshOutcome


AUTH_ERROR_TEMPLATES: dict[str, dict[str, str]] = {
    "claude": {
        "401": "Claude OAuth token rejected. Run `claude login`, then retry.",
        "403": (
            "Claude OAuth token does not meet scope requirement 'user:profile'. "
            "Run `claude setup-token` to re-generate credentials, "
            "or switch the Claude source mode to web/cli."
        ),
        "no_credentials": (
            "Claude OAuth credentials not found. Run `claude` to authenticate."
        ),
        "cli_not_found": (
            "Claude CLI not found in PATH. Install it, or switch the Claude "
            "source mode to web/oauth."
        ),
        "secure_store_denied": (
            "Claude secure store access was denied. Background reads will back "
            "off until you retry from a user action, or switch the Claude "
            "source mode to web/cli."
        ),
    },
    "codex": {
        "401": "Codex session expired or invalid. Run `codex login`, then retry.",
        "no_credentials": (
            "No Codex credentials found. Run `codex login` to authenticate."
        ),
        "cli_not_found": "Codex CLI not found in PATH. Install it from npm.",
    },
    "openrouter": {
        "401": "OpenRouter API key rejected. Update the key and retry.",
        "no_credentials": (
            "No OpenRouter API key configured. Set OPENROUTER_API_KEY or "
            "providers.openrouter.api_token in the config file."
        ),
    },
}


def get_auth_error_message(provider_id: str, error_type: str) -> str:
    """Get provider-specific auth error message.

    Args:
        provider_id: Provider identifier (e.g., "claude", "codex")
        error_type: Error type key (e.g., "401", "no_credentials")

    Returns:
        Error message string with remediation steps
    """
    templates = AUTH_ERROR_TEMPLATES.get(provider_id, {})
    return templates.get(
        error_type,
        f"Authentication error for {provider_id}. "
        f"Re-authenticate, or switch the {provider_id} source mode.",
    )


def get_provider_remediation(provider_id: str, category: str) -> str | None:
    """Get remediation message for a provider error category."""
    general_remediation = {
        ErrorCategory.AUTHENTICATION: (
            f"Re-authenticate with {provider_id}, or switch its source mode."
        ),
        ErrorCategory.AUTHORIZATION: (
            f"Check your {provider_id} account permissions and subscription status."
        ),
        ErrorCategory.RATE_LIMITED: "Wait a few minutes before trying again.",
        ErrorCategory.NETWORK: "Check your internet connection and try again.",
        ErrorCategory.CONFIGURATION: (
            "Run `usagehub providers` to check supported source modes."
        ),
    }
    return general_remediation.get(category)


def refresh_failure_message(outcome: RefreshOutcome) -> str:
    """Compose the user-facing message after a delegated refresh did not recover."""
    from usagehub.core.refresh import RefreshOutcomeKind

    match outcome.kind:
        case RefreshOutcomeKind.SKIPPED_BY_COOLDOWN:
            return (
                "Claude OAuth token expired and delegated refresh is cooling down. "
                "Please retry shortly, or run `claude login`."
            )
        case RefreshOutcomeKind.CLI_UNAVAILABLE:
            return (
                "Claude OAuth token expired and Claude CLI is not available for "
                "delegated refresh. Install/configure `claude`, or run `claude login`."
            )
        case RefreshOutcomeKind.ATTEMPTED_SUCCEEDED:
            return (
                "Claude OAuth token is still unavailable after delegated Claude CLI "
                "refresh. Run `claude login`, then retry."
            )
        case RefreshOutcomeKind.ATTEMPTED_FAILED:
            return (
                "Claude OAuth token expired and delegated Claude CLI refresh failed: "
                f"{outcome.reason}. Run `claude login`, then retry."
            )
