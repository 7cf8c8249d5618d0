"""Core orchestration and utilities for usagehub."""

from usagehub.core.fetch import FetchPipeline, ProviderFetchPlan, StrategyUnavailable
from usagehub.core.gate import AccessGate, PromptMode, PromptPolicy, ReadStrategy
from usagehub.core.http import check_response, cleanup, get_http_client, get_timeout_config
from usagehub.core.orchestrator import (
    fetch_all_providers,
    fetch_enabled_providers,
    fetch_provider,
)
from usagehub.core.refresh import (
    DelegatedRefreshTool,
    RefreshCoordinator,
    RefreshOutcome,
    RefreshOutcomeKind,
)
from usagehub.core.retry import run_candidates

__all__ = [
    # http
    "get_http_client",
    "cleanup",
    "check_response",
    "get_timeout_config",
    # retry
    "run_candidates",
    # fetch
    "FetchPipeline",
    "ProviderFetchPlan",
    "StrategyUnavailable",
    # gate
    "AccessGate",
    "PromptMode",
    "PromptPolicy",
    "ReadStrategy",
    # refresh
    "DelegatedRefreshTool",
    "RefreshCoordinator",
    "RefreshOutcome",
    "RefreshOutcomeKind",
    # orchestrator
    "fetch_provider",
    "fetch_all_providers",
    "fetch_enabled_providers",
]
