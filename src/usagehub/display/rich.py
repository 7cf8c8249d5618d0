"""Rich-based rendering utilities for usagehub."""

from __future__ import annotations

from rich.console import Console
from rich.console import ConsoleOptions
from rich.console import RenderResult
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from usagehub.models import OverageUsage
from usagehub.models import UsagePeriod
from usagehub.models import UsageSnapshot
from usagehub.models import format_reset_countdown
from usagehub.models import utilization_color
from usagehub.strategies.base import FetchAttempt


def render_usage_bar(
    utilization: int,
    width: int = 20,
    color: str | None = None,
) -> Text:
    """Render a usage progress bar.

    Args:
        utilization: Usage percentage (0-100)
        width: Bar width in characters
        color: Optional color override

    Returns:
        Rich Text with the progress bar
    """
    filled = max(0, min(utilization, 100)) * width // 100
    bar = "█" * filled + "░" * (width - filled)
    return Text(bar, style=color or "default")


def format_period(period: UsagePeriod) -> Text:
    """One line per period: bar, percentage, name and reset countdown."""
    text = Text()
    text.append_text(
        render_usage_bar(period.utilization, color=utilization_color(period.utilization))
    )
    text.append(" ")
    text.append(f"{period.utilization:>3}%", style="bold")
    text.append(f" {period.name}", style="dim")

    time_until = period.time_until_reset()
    if time_until is not None:
        text.append(f" • resets in {format_reset_countdown(time_until)}", style="dim")
    return text


def format_overage(overage: OverageUsage) -> Text:
    text = Text()
    symbol = "$" if overage.currency == "USD" else ""
    suffix = "" if symbol else f" {overage.currency}"

    text.append(f"Overage: {symbol}{overage.used:.2f}{suffix}", style="yellow")
    text.append(f" / {symbol}{overage.limit:.2f}", style="dim")
    text.append(f" ({symbol}{overage.remaining():.2f} remaining)", style="bold yellow")
    return text


class ProviderPanel:
    """Rich renderable for one provider's snapshot inside a bordered panel."""

    def __init__(
        self,
        snapshot: UsageSnapshot,
        title: str | None = None,
        color: str = "cyan",
        cached: bool = False,
    ):
        self.snapshot = snapshot
        self.title = title or snapshot.provider.title()
        self.color = color
        self.cached = cached

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        grid = Table.grid(padding=(0, 1))
        grid.add_column()

        for period in self.snapshot.periods:
            grid.add_row(format_period(period))

        if self.snapshot.overage and self.snapshot.overage.is_enabled:
            grid.add_row(format_overage(self.snapshot.overage))

        identity = self.snapshot.identity
        if identity and (identity.email or identity.plan):
            parts = [p for p in (identity.email, identity.plan) if p]
            grid.add_row(Text(" · ".join(parts), style="dim"))

        subtitle = f"via {self.snapshot.source}" if self.snapshot.source else None
        if self.cached:
            fetched = self.snapshot.fetched_at.astimezone().strftime("%Y-%m-%d %H:%M")
            subtitle = f"cached {fetched}"

        yield Panel(
            grid,
            title=Text(self.title, style=f"bold {self.color}"),
            title_align="left",
            subtitle=subtitle,
            subtitle_align="right",
            border_style=self.color if not self.cached else "dim",
            expand=False,
        )


def attempts_table(attempts: tuple[FetchAttempt, ...]) -> Table:
    """Diagnostic table of strategy attempts for --verbose output."""
    table = Table(show_header=True, header_style="dim", box=None, padding=(0, 2))
    table.add_column("Strategy")
    table.add_column("Kind", style="dim")
    table.add_column("Result")
    table.add_column("Time", justify="right", style="dim")

    for attempt in attempts:
        if attempt.error_description:
            result = Text(attempt.error_description, style="red")
        elif not attempt.was_available:
            result = Text("unavailable", style="dim")
        else:
            result = Text("ok", style="green")
        table.add_row(attempt.strategy_id, attempt.kind.value, result, f"{attempt.duration_ms}ms")
    return table
