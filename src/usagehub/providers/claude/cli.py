"""CLI strategy for Claude provider."""
from __future__ import annotations

import asyncio
import logging
import re
import shutil
from datetime import UTC
from datetime import datetime

from usagehub.errors.messages import get_auth_error_message
from usagehub.errors.types import ErrorCategory
from usagehub.errors.types import UsageFetchError
from usagehub.models import UsagePeriod
from usagehub.models import UsageSnapshot
from usagehub.models import classify_period
from usagehub.strategies.base import FetchContext
from usagehub.strategies.base import FetchKind
from usagehub.strategies.base import FetchResult
from usagehub.strategies.base import FetchStrategy

logger = logging.getLogger(__name__)

COMMAND = "claude"
DEFAULT_TIMEOUT = 20.0

# ANSI escape code pattern for stripping
ANSI_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

# Pattern to match usage output like "█ 45.2% (5-hour session)"
USAGE_PATTERN = re.compile(r"█\s*([\d.]+)%\s*(?:\(([^)]+)\)|\[([^\]]+)\])")


async def run_claude(args: list[str], timeout: float) -> tuple[int, str, str]:
    """Run the claude binary, killing it if it outlives ``timeout``."""
    process = await asyncio.create_subprocess_exec(
        COMMAND,
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except (TimeoutError, asyncio.CancelledError):
        process.kill()
        await process.wait()
        raise
    return process.returncode, stdout.decode(errors="replace"), stderr.decode(
        errors="replace"
    )


def parse_cli_output(output: str) -> UsageSnapshot | None:
    """Parse usage output from claude CLI.

    Expected format:
    █ 45.2% (5-hour session)
    █ 32.0% (7-day period)
    """
    clean_output = ANSI_PATTERN.sub("", output)

    periods = []
    for line in clean_output.splitlines():
        line = line.strip()
        if not line.startswith("█"):
            continue

        match = USAGE_PATTERN.search(line)
        if not match:
            continue
        try:
            utilization = int(float(match.group(1)))
        except ValueError:
            continue

        period_name = (match.group(2) or match.group(3) or "Usage").strip()
        periods.append(
            UsagePeriod(
                name=period_name,
                utilization=utilization,
                period_type=classify_period(period_name),
            )
        )

    if not periods:
        return None

    return UsageSnapshot(
        provider="claude",
        fetched_at=datetime.now(UTC),
        periods=tuple(periods),
        source="cli",
    )


class ClaudeCLIStrategy(FetchStrategy):
    """Fetch Claude usage by delegating to the claude CLI tool."""

    id = "claude.cli"
    kind = FetchKind.CLI

    USAGE_ARGS = ["/usage"]

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    async def is_available(self, ctx: FetchContext) -> bool:
        """Check if claude CLI is available."""
        return shutil.which(COMMAND) is not None

    def should_fallback(self, error: BaseException, ctx: FetchContext) -> bool:
        return False

    async def fetch(self, ctx: FetchContext) -> FetchResult:
        """Fetch usage by running claude CLI."""
        try:
            returncode, output, stderr = await run_claude(self.USAGE_ARGS, self.timeout)
        except FileNotFoundError as e:
            raise UsageFetchError(
                get_auth_error_message("claude", "cli_not_found"),
                category=ErrorCategory.CONFIGURATION,
            ) from e
        except TimeoutError as e:
            raise UsageFetchError(
                f"claude CLI did not answer within {self.timeout:g}s.",
                category=ErrorCategory.PROVIDER,
            ) from e

        if returncode != 0:
            raise UsageFetchError(
                f"claude CLI failed: {stderr.strip() or f'exit status {returncode}'}",
                category=ErrorCategory.PROVIDER,
            )

        snapshot = parse_cli_output(output)
        if snapshot is None:
            raise UsageFetchError(
                "Failed to parse claude CLI output.", category=ErrorCategory.PARSE
            )
        return self.result(snapshot)


class ClaudeCLITouch:
    """Delegated refresh tool: running the CLI makes it refresh its own token."""

    STATUS_ARGS = ["/status"]

    def is_available(self) -> bool:
        return shutil.which(COMMAND) is not None

    async def touch(self, timeout: float) -> None:
        try:
            returncode, _, stderr = await run_claude(self.STATUS_ARGS, timeout)
        except TimeoutError as e:
            raise TimeoutError(f"claude CLI timed out after {timeout:g}s") from e
        if returncode != 0:
            raise RuntimeError(
                f"claude CLI exited with status {returncode}: {stderr.strip()}"
            )
