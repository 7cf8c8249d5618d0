"""OpenRouter provider for usagehub."""

from __future__ import annotations

from usagehub.core.fetch import FetchPipeline
from usagehub.core.fetch import ProviderFetchPlan
from usagehub.models import SourceMode
from usagehub.providers.base import ProviderBranding
from usagehub.providers.base import ProviderDescriptor
from usagehub.providers.base import ProviderMetadata
from usagehub.providers.openrouter.api import OpenRouterAPITokenStrategy
from usagehub.strategies.base import FetchContext
from usagehub.strategies.base import FetchStrategy

METADATA = ProviderMetadata(
    id="openrouter",
    name="OpenRouter",
    description="Unified API for hosted LLMs",
    homepage="https://openrouter.ai",
    dashboard_url="https://openrouter.ai/settings/credits",
)

SOURCE_MODES = (SourceMode.AUTO, SourceMode.API)


def resolve_strategies(ctx: FetchContext) -> list[FetchStrategy]:
    if ctx.source_mode in (SourceMode.AUTO, SourceMode.API):
        return [OpenRouterAPITokenStrategy()]
    return []


def descriptor() -> ProviderDescriptor:
    return ProviderDescriptor(
        id=METADATA.id,
        metadata=METADATA,
        branding=ProviderBranding(color="#6467f2"),
        fetch_plan=ProviderFetchPlan(
            SOURCE_MODES, FetchPipeline("openrouter", resolve_strategies)
        ),
    )


__all__ = ["OpenRouterAPITokenStrategy", "descriptor", "resolve_strategies"]
