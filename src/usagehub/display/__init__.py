"""Display utilities for usagehub.

This module provides rendering and output utilities for both terminal
(Rich-based) and JSON output modes.
"""
from __future__ import annotations

from usagehub.display.json import encode_json
from usagehub.display.json import output_json_pretty
from usagehub.display.json import usage_report
from usagehub.display.rich import ProviderPanel
from usagehub.display.rich import attempts_table
from usagehub.display.rich import format_overage
from usagehub.display.rich import format_period
from usagehub.display.rich import render_usage_bar

__all__ = [
    # Rich rendering
    "ProviderPanel",
    "attempts_table",
    "render_usage_bar",
    "format_period",
    "format_overage",
    # JSON output
    "encode_json",
    "output_json_pretty",
    "usage_report",
]
