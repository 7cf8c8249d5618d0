"""Delegated refresh and cooldown commands for usagehub."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from usagehub.cli.app import ExitCode
from usagehub.cli.app import app
from usagehub.core.refresh import RefreshOutcomeKind
from usagehub.core.services import get_services
from usagehub.display.json import output_json_pretty
from usagehub.errors.messages import refresh_failure_message
from usagehub.models import Interaction
from usagehub.models import format_reset_countdown


@app.command("refresh")
def refresh_command(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Output in JSON format"
    ),
) -> None:
    """Ask the claude CLI to refresh its credentials now."""
    services = get_services()
    # A user action lifts any secure store denied backoff.
    services.gate.policy(Interaction.USER_INITIATED)

    outcome = asyncio.run(services.coordinator.attempt(timeout=services.touch_timeout))
    if outcome.succeeded:
        services.credentials.invalidate()

    remaining = services.coordinator.cooldown_remaining_seconds()
    if json_output or ctx.meta.get("json", False):
        output_json_pretty(
            {
                "kind": outcome.kind.value,
                "reason": outcome.reason,
                "cooldown_remaining_seconds": remaining,
            }
        )
    else:
        console = Console()
        if outcome.succeeded:
            console.print("[green]Claude credentials refreshed.[/green]")
        else:
            console.print(f"[yellow]{refresh_failure_message(outcome)}[/yellow]")

    if outcome.kind in (
        RefreshOutcomeKind.ATTEMPTED_SUCCEEDED,
        RefreshOutcomeKind.SKIPPED_BY_COOLDOWN,
    ):
        raise typer.Exit(ExitCode.SUCCESS)
    raise typer.Exit(ExitCode.GENERAL_ERROR)


@app.command("cooldown")
def cooldown_command(
    ctx: typer.Context,
    reset: bool = typer.Option(
        False, "--reset", help="Clear the refresh and secure store cooldowns"
    ),
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Output in JSON format"
    ),
) -> None:
    """Show or reset the delegated refresh and secure store cooldowns."""
    services = get_services()
    if reset:
        services.coordinator.reset()
        services.gate.clear_denied()

    state = services.coordinator.cooldown_state()
    refresh_remaining = services.coordinator.cooldown_remaining_seconds()
    denied_remaining = services.gate.denied_remaining()

    if json_output or ctx.meta.get("json", False):
        output_json_pretty(
            {
                "refresh": {
                    "last_attempt_at": state.last_attempt_at,
                    "remaining_seconds": refresh_remaining,
                },
                "secure_store_denied": {
                    "remaining_seconds": (
                        int(denied_remaining.total_seconds()) if denied_remaining else None
                    ),
                },
            }
        )
        return

    console = Console()
    if reset:
        console.print("[green]Cooldowns cleared.[/green]")

    if refresh_remaining is None:
        console.print("Delegated refresh: [green]ready[/green]")
    else:
        console.print(f"Delegated refresh: cooling down ({refresh_remaining}s left)")
    if state.last_attempt_at is not None:
        console.print(
            f"  [dim]last attempt {state.last_attempt_at.astimezone():%Y-%m-%d %H:%M:%S}[/dim]"
        )

    if denied_remaining is None:
        console.print("Secure store prompts: [green]allowed[/green]")
    else:
        console.print(
            "Secure store prompts: backing off after a denial "
            f"({format_reset_countdown(denied_remaining)} left)"
        )
