"""Codex (OpenAI/ChatGPT) provider for usagehub."""

from __future__ import annotations

from usagehub.core.fetch import FetchPipeline
from usagehub.core.fetch import ProviderFetchPlan
from usagehub.models import Runtime
from usagehub.models import SourceMode
from usagehub.providers.base import ProviderBranding
from usagehub.providers.base import ProviderDescriptor
from usagehub.providers.base import ProviderMetadata
from usagehub.providers.codex.cli import CodexCLIStrategy
from usagehub.providers.codex.oauth import CodexOAuthStrategy
from usagehub.providers.codex.web import CodexWebStrategy
from usagehub.strategies.base import FetchContext
from usagehub.strategies.base import FetchStrategy

METADATA = ProviderMetadata(
    id="codex",
    name="Codex",
    description="OpenAI's ChatGPT and Codex",
    homepage="https://chatgpt.com",
    dashboard_url="https://chatgpt.com/codex/settings/usage",
)

SOURCE_MODES = (SourceMode.AUTO, SourceMode.WEB, SourceMode.CLI, SourceMode.OAUTH)


def resolve_strategies(ctx: FetchContext) -> list[FetchStrategy]:
    """Ordered strategies for Codex."""
    match ctx.source_mode:
        case SourceMode.OAUTH:
            return [CodexOAuthStrategy()]
        case SourceMode.WEB:
            return [CodexWebStrategy()]
        case SourceMode.CLI:
            return [CodexCLIStrategy()]
        case SourceMode.AUTO if ctx.runtime == Runtime.APP:
            return [CodexOAuthStrategy(), CodexCLIStrategy()]
        case SourceMode.AUTO:
            return [CodexWebStrategy(), CodexCLIStrategy()]
    return []


def descriptor() -> ProviderDescriptor:
    return ProviderDescriptor(
        id=METADATA.id,
        metadata=METADATA,
        branding=ProviderBranding(color="#49a3b0"),
        fetch_plan=ProviderFetchPlan(
            SOURCE_MODES, FetchPipeline("codex", resolve_strategies)
        ),
    )


__all__ = [
    "CodexCLIStrategy",
    "CodexOAuthStrategy",
    "CodexWebStrategy",
    "descriptor",
    "resolve_strategies",
]
