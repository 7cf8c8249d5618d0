"""CLI framework for usagehub."""
from __future__ import annotations

from usagehub.cli.app import ExitCode
from usagehub.cli.app import app
from usagehub.cli.app import run_app

__all__ = ["app", "run_app", "ExitCode"]
