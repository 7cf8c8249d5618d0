"""usagehub: Track usage across agentic LLM providers."""

from __future__ import annotations

__version__ = "0.1.0"

from usagehub.models import Interaction
from usagehub.models import OverageUsage
from usagehub.models import PeriodType
from usagehub.models import ProviderIdentity
from usagehub.models import Runtime
from usagehub.models import SourceMode
from usagehub.models import UsagePeriod
from usagehub.models import UsageSnapshot
from usagehub.models import format_reset_countdown

__all__ = [
    "__version__",
    "Interaction",
    "PeriodType",
    "Runtime",
    "SourceMode",
    "UsagePeriod",
    "OverageUsage",
    "ProviderIdentity",
    "UsageSnapshot",
    "format_reset_countdown",
]


def main() -> None:
    """Entry point for the usagehub CLI."""
    from usagehub.cli.app import run_app

    run_app()
