"""Claude (Anthropic) provider for usagehub."""

from __future__ import annotations

from usagehub.core.fetch import FetchPipeline
from usagehub.core.fetch import ProviderFetchPlan
from usagehub.core.services import Services
from usagehub.models import Runtime
from usagehub.models import SourceMode
from usagehub.providers.base import ProviderBranding
from usagehub.providers.base import ProviderDescriptor
from usagehub.providers.base import ProviderMetadata
from usagehub.providers.claude.cli import ClaudeCLIStrategy
from usagehub.providers.claude.oauth import ClaudeOAuthStrategy
from usagehub.providers.claude.web import ClaudeWebStrategy
from usagehub.strategies.base import FetchContext
from usagehub.strategies.base import FetchStrategy

METADATA = ProviderMetadata(
    id="claude",
    name="Claude",
    description="Anthropic's Claude AI assistant",
    homepage="https://claude.ai",
    dashboard_url="https://claude.ai/settings/usage",
)

SOURCE_MODES = (SourceMode.AUTO, SourceMode.WEB, SourceMode.CLI, SourceMode.OAUTH)


def resolve_strategies(
    ctx: FetchContext, services: Services | None = None
) -> list[FetchStrategy]:
    """Ordered strategies for Claude.

    The long-lived app prefers OAuth; one-shot CLI runs never touch the
    secure store unless OAuth is asked for explicitly.
    """
    oauth = ClaudeOAuthStrategy(services)
    web = ClaudeWebStrategy()
    cli = ClaudeCLIStrategy()

    match ctx.source_mode:
        case SourceMode.OAUTH if ctx.runtime == Runtime.APP:
            return [oauth, web, cli]
        case SourceMode.OAUTH:
            return [oauth]
        case SourceMode.WEB:
            return [web]
        case SourceMode.CLI:
            return [cli]
        case SourceMode.AUTO if ctx.runtime == Runtime.APP:
            return [oauth, web, cli]
        case SourceMode.AUTO:
            return [web, cli]
    return []


def descriptor(services: Services | None = None) -> ProviderDescriptor:
    pipeline = FetchPipeline("claude", lambda ctx: resolve_strategies(ctx, services))
    return ProviderDescriptor(
        id=METADATA.id,
        metadata=METADATA,
        branding=ProviderBranding(color="#d97757"),
        fetch_plan=ProviderFetchPlan(SOURCE_MODES, pipeline),
    )


__all__ = [
    "ClaudeCLIStrategy",
    "ClaudeOAuthStrategy",
    "ClaudeWebStrategy",
    "descriptor",
    "resolve_strategies",
]
