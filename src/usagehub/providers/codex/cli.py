"""CLI strategy for Codex: read rate limits the codex CLI records in its session logs."""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from pathlib import Path

import msgspec

from usagehub.errors.types import ErrorCategory
from usagehub.errors.types import UsageFetchError
from usagehub.models import PeriodType
from usagehub.models import UsagePeriod
from usagehub.models import UsageSnapshot
from usagehub.strategies.base import FetchContext
from usagehub.strategies.base import FetchKind
from usagehub.strategies.base import FetchResult
from usagehub.strategies.base import FetchStrategy

logger = logging.getLogger(__name__)

# Only the newest files are scanned; older sessions can't hold newer limits.
MAX_SESSION_FILES = 20


class _LogWindow(msgspec.Struct):
    used_percent: float
    window_minutes: int | None = None
    resets_in_seconds: int | None = None
    resets_at: int | None = None


class _LogRateLimits(msgspec.Struct):
    primary: _LogWindow | None = None
    secondary: _LogWindow | None = None


class _LogPayload(msgspec.Struct):
    type: str = ""
    rate_limits: _LogRateLimits | None = None


class _LogLine(msgspec.Struct):
    timestamp: datetime | None = None
    type: str = ""
    payload: _LogPayload | None = None


_line_decoder = msgspec.json.Decoder(_LogLine)


def sessions_dir(environment: dict[str, str] | None = None) -> Path:
    env = environment if environment is not None else os.environ
    if codex_home := env.get("CODEX_HOME"):
        return Path(codex_home).expanduser() / "sessions"
    return Path.home() / ".codex" / "sessions"


def latest_rate_limits(root: Path) -> tuple[datetime, _LogRateLimits] | None:
    """Most recent ``token_count`` rate-limit event across recent sessions."""
    files = sorted(
        root.rglob("rollout-*.jsonl"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )[:MAX_SESSION_FILES]

    for path in files:
        try:
            lines = path.read_bytes().splitlines()
        except OSError as e:
            logger.debug("Skipping unreadable session log %s: %s", path, e)
            continue
        for raw in reversed(lines):
            if b"rate_limits" not in raw:
                continue
            try:
                line = _line_decoder.decode(raw)
            except msgspec.DecodeError:
                continue
            payload = line.payload
            if payload is None or payload.type != "token_count" or payload.rate_limits is None:
                continue
            stamp = line.timestamp or datetime.fromtimestamp(path.stat().st_mtime, tz=UTC)
            return stamp, payload.rate_limits
    return None


def _period(
    window: _LogWindow, name: str, period_type: PeriodType, observed_at: datetime
) -> UsagePeriod:
    resets_at = None
    if window.resets_at:
        resets_at = datetime.fromtimestamp(window.resets_at, tz=UTC)
    elif window.resets_in_seconds is not None:
        resets_at = observed_at + timedelta(seconds=window.resets_in_seconds)
    return UsagePeriod(
        name=name,
        utilization=int(window.used_percent),
        period_type=period_type,
        resets_at=resets_at,
    )


def parse_rate_limits(
    observed_at: datetime, limits: _LogRateLimits, source: str = "cli"
) -> UsageSnapshot | None:
    periods = []
    if limits.primary is not None:
        periods.append(_period(limits.primary, "Session", PeriodType.SESSION, observed_at))
    if limits.secondary is not None:
        periods.append(_period(limits.secondary, "Weekly", PeriodType.WEEKLY, observed_at))
    if not periods:
        return None
    return UsageSnapshot(
        provider="codex",
        fetched_at=datetime.now(UTC),
        periods=tuple(periods),
        source=source,
    )


class CodexCLIStrategy(FetchStrategy):
    """Fetch Codex usage from the codex CLI's local session logs."""

    id = "codex.cli"
    kind = FetchKind.CLI

    def __init__(self, root: Path | None = None):
        self.root = root

    def _root(self, ctx: FetchContext) -> Path:
        return self.root or sessions_dir(ctx.environment or None)

    async def is_available(self, ctx: FetchContext) -> bool:
        return True

    def should_fallback(self, error: BaseException, ctx: FetchContext) -> bool:
        return False

    async def fetch(self, ctx: FetchContext) -> FetchResult:
        root = self._root(ctx)
        if not root.is_dir():
            raise UsageFetchError(
                f"No codex session logs found in {root}.",
                category=ErrorCategory.NOT_FOUND,
                remediation="Run `codex` once so it records your rate limits.",
            )

        found = await asyncio.to_thread(latest_rate_limits, root)
        snapshot = parse_rate_limits(*found, self.source_label) if found else None
        if snapshot is None:
            raise UsageFetchError(
                "codex session logs contain no rate limit information yet.",
                category=ErrorCategory.NOT_FOUND,
                remediation="Send a message in `codex`, then retry.",
            )
        return self.result(snapshot)
