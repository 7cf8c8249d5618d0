"""Usage display commands for usagehub."""

from __future__ import annotations

import asyncio
import time

import typer
from rich.console import Console
from rich.text import Text

from usagehub.cli.app import ExitCode
from usagehub.cli.app import app
from usagehub.config.settings import get_config
from usagehub.core.http import cleanup
from usagehub.core.orchestrator import fetch_all_providers
from usagehub.display.json import output_json_pretty
from usagehub.display.json import usage_report
from usagehub.display.rich import ProviderPanel
from usagehub.display.rich import attempts_table
from usagehub.errors.classify import classify_exception
from usagehub.errors.types import ErrorCategory
from usagehub.models import Interaction
from usagehub.models import SourceMode
from usagehub.providers import get_descriptor
from usagehub.providers import list_provider_ids
from usagehub.strategies.base import FetchOutcome

CATEGORY_EXIT_CODES = {
    ErrorCategory.AUTHENTICATION: ExitCode.AUTH_ERROR,
    ErrorCategory.AUTHORIZATION: ExitCode.AUTH_ERROR,
    ErrorCategory.NETWORK: ExitCode.NETWORK_ERROR,
    ErrorCategory.CONFIGURATION: ExitCode.CONFIG_ERROR,
}


def exit_code_for(outcomes: dict[str, FetchOutcome]) -> ExitCode:
    """Pick the process exit code for a set of outcomes.

    Any live success next to a failure is a partial failure; a cached
    snapshot counts as partial too. When everything failed the first
    error's category decides.
    """
    failed = [o for o in outcomes.values() if o.error is not None]
    if not failed:
        return ExitCode.SUCCESS
    if any(o.success for o in outcomes.values()):
        return ExitCode.PARTIAL_FAILURE
    category = classify_exception(failed[0].error)
    return CATEGORY_EXIT_CODES.get(category, ExitCode.GENERAL_ERROR)


def display_outcomes(
    console: Console,
    outcomes: dict[str, FetchOutcome],
    verbose: bool = False,
    total_duration_ms: float = 0,
) -> None:
    """Display provider outcomes using a panel per provider."""
    if not outcomes:
        console.print("[yellow]No providers enabled[/yellow]")
        return

    for provider_id, outcome in outcomes.items():
        descriptor = get_descriptor(provider_id)
        title = descriptor.name if descriptor else provider_id
        color = descriptor.branding.color if descriptor else "cyan"

        if outcome.success:
            console.print(
                ProviderPanel(outcome.snapshot, title=title, color=color, cached=outcome.cached)
            )
        else:
            console.print(Text(title, style=f"bold {color}"))

        if outcome.error is not None:
            style = "yellow" if outcome.cached else "red"
            label = "Showing cached data" if outcome.cached else "Error"
            console.print(f"  [{style}]{label}:[/{style}] {outcome.error}", highlight=False)
            if remediation := getattr(outcome.error, "remediation", None):
                console.print(f"  [dim]{remediation}[/dim]", highlight=False)

        if verbose and outcome.attempts:
            console.print(attempts_table(outcome.attempts))
        console.print()

    if verbose and total_duration_ms > 0:
        console.print(f"[dim]Total fetch time: {total_duration_ms:.0f}ms[/dim]")


async def run_usage(
    ctx: typer.Context,
    providers: list[str],
    source: SourceMode | None = None,
    json_output: bool = False,
    use_cache: bool = True,
) -> ExitCode:
    """Fetch the requested providers (all enabled ones when empty) and display them."""
    console = Console()
    json_mode = json_output or ctx.meta.get("json", False)
    verbose = ctx.meta.get("verbose", False)
    config = get_config()

    unknown = [p for p in providers if get_descriptor(p) is None]
    if unknown:
        console.print(
            f"[red]Unknown provider:[/red] {', '.join(unknown)}. "
            f"Available: {', '.join(list_provider_ids())}"
        )
        return ExitCode.CONFIG_ERROR

    provider_ids = providers or [
        pid for pid in list_provider_ids() if config.is_provider_enabled(pid)
    ]

    start_time = time.monotonic()
    try:
        outcomes = await fetch_all_providers(
            provider_ids,
            config=config,
            source_mode=source,
            interaction=Interaction.USER_INITIATED,
            use_cache=use_cache,
        )
    finally:
        await cleanup()
    duration_ms = (time.monotonic() - start_time) * 1000

    if json_mode:
        output_json_pretty(usage_report(outcomes))
    else:
        display_outcomes(console, outcomes, verbose=verbose, total_duration_ms=duration_ms)
    return exit_code_for(outcomes)


@app.command("usage")
def usage_command(
    ctx: typer.Context,
    providers: list[str] = typer.Argument(
        None, help="Providers to show (default: all enabled)"
    ),
    source: SourceMode = typer.Option(
        None, "--source", "-s", help="Force a source mode for every provider"
    ),
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Output in JSON format"
    ),
    no_cache: bool = typer.Option(
        False, "--no-cache", help="Don't fall back to cached snapshots"
    ),
) -> None:
    """Show usage statistics for all enabled providers or specific ones."""
    code = asyncio.run(
        run_usage(
            ctx,
            providers=list(providers or []),
            source=source,
            json_output=json_output,
            use_cache=not no_cache,
        )
    )
    raise typer.Exit(code)


def _create_provider_command(provider_id: str) -> None:
    """Top-level shortcut: `usagehub <provider>` is `usagehub usage <provider>`."""
    descriptor = get_descriptor(provider_id)
    help_text = f"Show usage statistics for {descriptor.name if descriptor else provider_id}."

    @app.command(provider_id, help=help_text)
    def provider_command(
        ctx: typer.Context,
        source: SourceMode = typer.Option(None, "--source", "-s", help="Source mode"),
        json_output: bool = typer.Option(
            False, "--json", "-j", help="Output in JSON format"
        ),
    ) -> None:
        code = asyncio.run(
            run_usage(ctx, providers=[provider_id], source=source, json_output=json_output)
        )
        raise typer.Exit(code)


def register_provider_aliases() -> None:
    for provider_id in list_provider_ids():
        _create_provider_command(provider_id)
