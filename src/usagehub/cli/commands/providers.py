"""Provider listing command for usagehub."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from usagehub.cli.app import app
from usagehub.config.settings import get_config
from usagehub.display.json import output_json_pretty
from usagehub.models import SourceMode
from usagehub.providers import all_descriptors


@app.command("providers")
def providers_command(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Output in JSON format"
    ),
) -> None:
    """List providers, their supported source modes and configuration."""
    config = get_config()
    rows = []
    for descriptor in all_descriptors():
        provider_cfg = config.get_provider_config(descriptor.id)
        rows.append(
            {
                "id": descriptor.id,
                "name": descriptor.name,
                "enabled": config.is_provider_enabled(descriptor.id),
                "source_mode": provider_cfg.source_mode.value,
                # Declaration order of SourceMode, not set order
                "source_modes": [m.value for m in SourceMode if m in descriptor.source_modes],
                "dashboard_url": descriptor.metadata.dashboard_url,
            }
        )

    if json_output or ctx.meta.get("json", False):
        output_json_pretty(rows)
        return

    table = Table(title="Providers", title_justify="left")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Enabled")
    table.add_column("Source")
    table.add_column("Supported modes", style="dim")

    for descriptor, row in zip(all_descriptors(), rows):
        table.add_row(
            f"[{descriptor.branding.color}]{descriptor.branding.symbol}[/] {row['id']}",
            row["name"],
            "[green]yes[/green]" if row["enabled"] else "[dim]no[/dim]",
            row["source_mode"],
            ", ".join(row["source_modes"]),
        )
    Console().print(table)
