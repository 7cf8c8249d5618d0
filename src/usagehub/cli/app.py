"""Main CLI application for usagehub."""

from __future__ import annotations

import asyncio
import logging
from enum import IntEnum

import typer
from rich.console import Console
from rich.logging import RichHandler

app = typer.Typer(
    name="usagehub",
    help="Track usage across agentic LLM providers",
    add_completion=True,
    no_args_is_help=False,
    invoke_without_command=True,
)


class ExitCode(IntEnum):
    """Exit codes for usagehub."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    AUTH_ERROR = 2
    NETWORK_ERROR = 3
    CONFIG_ERROR = 4
    PARTIAL_FAILURE = 5


def configure_logging(verbose: bool = False, debug: bool = False) -> None:
    """Route library logs through rich on stderr."""
    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=debug,
        rich_tracebacks=debug,
    )
    root = logging.getLogger("usagehub")
    root.handlers[:] = [handler]
    root.setLevel(level)
    root.propagate = False


@app.callback()
def main(
    ctx: typer.Context,
    json: bool = typer.Option(False, "--json", "-j", help="Enable JSON output mode"),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show strategy attempts and info logs"
    ),
    debug: bool = typer.Option(False, "--debug", help="Show debug logs"),
    version: bool = typer.Option(False, "--version", help="Show version and exit"),
) -> None:
    """Usagehub - Track usage across agentic LLM providers."""
    if version:
        from usagehub import __version__

        typer.echo(f"usagehub {__version__}")
        raise typer.Exit()

    configure_logging(verbose=verbose, debug=debug)

    ctx.meta["json"] = json
    ctx.meta["verbose"] = verbose or debug

    # If no command provided, show all enabled providers
    if ctx.invoked_subcommand is None:
        from usagehub.cli.commands.usage import run_usage

        code = asyncio.run(run_usage(ctx, providers=[]))
        raise typer.Exit(code)


def run_app() -> None:
    """Run the CLI app."""
    app()


# Command modules register themselves via @app.command() decorators
from usagehub.cli.commands import cooldown  # noqa: E402,F401
from usagehub.cli.commands import providers  # noqa: E402,F401
from usagehub.cli.commands import usage  # noqa: E402,F401

usage.register_provider_aliases()
