"""Data models for usagehub.

Defines normalized data structures that all providers must produce, plus the
small enums that describe how a fetch was requested.
"""

from __future__ import annotations

from datetime import datetime
from datetime import timedelta
from decimal import Decimal
from enum import StrEnum

import msgspec


class Runtime(StrEnum):
    """Where the fetch is running."""

    CLI = "cli"  # One-shot command-line invocation
    APP = "app"  # Long-lived process (timer driven)


class SourceMode(StrEnum):
    """User- or caller-selected strategy family."""

    AUTO = "auto"
    CLI = "cli"
    WEB = "web"
    OAUTH = "oauth"
    API = "api"


class Interaction(StrEnum):
    """Whether a human is waiting on the result."""

    USER_INITIATED = "user_initiated"
    BACKGROUND = "background"


class PeriodType(StrEnum):
    """Usage period types with their durations."""

    SESSION = "session"  # Short-term window (typically 5 hours)
    DAILY = "daily"  # 24-hour window
    WEEKLY = "weekly"  # 7-day window
    MONTHLY = "monthly"  # 30-day window

    @property
    def hours(self) -> float:
        """Return the duration in hours."""
        match self:
            case PeriodType.SESSION:
                return 5.0
            case PeriodType.DAILY:
                return 24.0
            case PeriodType.WEEKLY:
                return 7.0 * 24.0
            case PeriodType.MONTHLY:
                return 30.0 * 24.0


class UsagePeriod(msgspec.Struct, frozen=True):
    """A usage rate window (e.g., 5-hour session, 7-day weekly)."""

    name: str  # Display name (e.g., "Session (5h)", "Weekly")
    utilization: int  # 0-100 percentage used
    period_type: PeriodType
    resets_at: datetime | None = None  # When the window resets (UTC)
    model: str | None = None  # Model-specific window (e.g., "opus", "sonnet")

    def remaining(self) -> int:
        """Return percentage remaining (100 - utilization)."""
        return 100 - self.utilization

    def time_until_reset(self) -> timedelta | None:
        """Return time remaining until reset."""
        if self.resets_at is None:
            return None
        now = datetime.now(self.resets_at.tzinfo)
        return max(timedelta(0), self.resets_at - now)


class OverageUsage(msgspec.Struct, frozen=True):
    """Extra usage / overage cost tracking."""

    used: Decimal
    limit: Decimal
    currency: str  # Currency code (e.g., "USD", "credits")
    is_enabled: bool

    def remaining(self) -> Decimal:
        """Return remaining limit."""
        return max(Decimal(0), self.limit - self.used)


class ProviderIdentity(msgspec.Struct, frozen=True):
    """Account and plan information."""

    email: str | None = None
    organization: str | None = None
    plan: str | None = None


class UsageSnapshot(msgspec.Struct, frozen=True):
    """Complete usage snapshot from a provider."""

    provider: str
    fetched_at: datetime
    periods: tuple[UsagePeriod, ...] = ()
    overage: OverageUsage | None = None
    identity: ProviderIdentity | None = None
    source: str | None = None  # Label of the strategy that produced it


def classify_period(name: str) -> PeriodType:
    """Classify a free-form period label to a PeriodType."""
    name_lower = name.lower()

    if "hour" in name_lower or "session" in name_lower:
        return PeriodType.SESSION
    elif "week" in name_lower or "7-day" in name_lower:
        return PeriodType.WEEKLY
    elif "month" in name_lower or "billing" in name_lower:
        return PeriodType.MONTHLY
    elif "day" in name_lower:
        return PeriodType.DAILY

    return PeriodType.DAILY


def format_reset_countdown(delta: timedelta | None) -> str:
    """Format reset time as countdown string."""
    if delta is None:
        return ""

    total_seconds = int(delta.total_seconds())
    if total_seconds <= 0:
        return "now"

    days, remainder = divmod(total_seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60

    if days > 0:
        return f"{days}d {hours}h"
    elif hours > 0:
        return f"{hours}h {minutes}m"
    else:
        return f"{minutes}m"


def utilization_color(utilization: int) -> str:
    """Threshold-based display color for a utilization percentage."""
    if utilization < 50:
        return "green"
    elif utilization < 80:
        return "yellow"
    return "red"
