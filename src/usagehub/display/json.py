"""JSON output utilities for usagehub."""

from __future__ import annotations

import sys
from datetime import UTC
from datetime import datetime

import msgspec

from usagehub.errors.classify import classify_exception
from usagehub.models import UsageSnapshot
from usagehub.strategies.base import FetchAttempt
from usagehub.strategies.base import FetchOutcome


class ErrorData(msgspec.Struct, frozen=True, omit_defaults=True):
    """Error data with category and remediation."""

    message: str
    category: str
    provider: str | None = None
    remediation: str | None = None


class ProviderUsage(msgspec.Struct, frozen=True):
    """JSON shape of one provider's outcome."""

    provider: str
    snapshot: UsageSnapshot | None
    source: str | None
    strategy_id: str | None
    cached: bool
    error: ErrorData | None
    attempts: tuple[FetchAttempt, ...]


class UsageReport(msgspec.Struct, frozen=True):
    fetched_at: datetime
    providers: dict[str, ProviderUsage]


def error_data(error: BaseException, provider: str | None = None) -> ErrorData:
    return ErrorData(
        message=str(error) or type(error).__name__,
        category=classify_exception(error).value,
        provider=provider,
        remediation=getattr(error, "remediation", None),
    )


def provider_usage(outcome: FetchOutcome) -> ProviderUsage:
    result = outcome.result
    return ProviderUsage(
        provider=outcome.provider_id,
        snapshot=result.snapshot if result else None,
        source=result.source_label if result else None,
        strategy_id=result.strategy_id if result else None,
        cached=outcome.cached,
        error=error_data(outcome.error, outcome.provider_id) if outcome.error else None,
        attempts=outcome.attempts,
    )


def usage_report(outcomes: dict[str, FetchOutcome]) -> UsageReport:
    return UsageReport(
        fetched_at=datetime.now(UTC),
        providers={pid: provider_usage(o) for pid, o in outcomes.items()},
    )


def encode_json(data: object, indent: int = 2) -> bytes:
    """Encode any msgspec-serializable object as indented JSON."""
    return msgspec.json.format(msgspec.json.encode(data), indent=indent)


def output_json_pretty(data: object, indent: int = 2) -> None:
    """Output data as pretty-printed JSON to stdout."""
    sys.stdout.write(encode_json(data, indent).decode())
    sys.stdout.write("\n")
