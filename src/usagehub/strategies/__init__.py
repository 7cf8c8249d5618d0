"""Fetch strategies for usagehub."""

from __future__ import annotations

from usagehub.strategies.base import FetchAttempt
from usagehub.strategies.base import FetchContext
from usagehub.strategies.base import FetchKind
from usagehub.strategies.base import FetchOutcome
from usagehub.strategies.base import FetchResult
from usagehub.strategies.base import FetchStrategy

__all__ = [
    "FetchStrategy",
    "FetchContext",
    "FetchKind",
    "FetchResult",
    "FetchAttempt",
    "FetchOutcome",
]
