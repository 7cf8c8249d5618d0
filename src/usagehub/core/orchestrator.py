"""Orchestration for multi-provider fetch operations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from collections.abc import Iterable

import msgspec

from usagehub.config.cache import cache_snapshot
from usagehub.config.cache import load_cached_snapshot
from usagehub.config.settings import Config
from usagehub.config.settings import get_config
from usagehub.errors.types import ErrorCategory
from usagehub.errors.types import FetchPipelineError
from usagehub.errors.types import UsageFetchError
from usagehub.models import Interaction
from usagehub.models import SourceMode
from usagehub.strategies.base import FetchContext
from usagehub.strategies.base import FetchOutcome
from usagehub.strategies.base import FetchResult

logger = logging.getLogger(__name__)

OutcomeCallback = Callable[[FetchOutcome], None]


def _unknown_provider(provider_id: str) -> FetchOutcome:
    return FetchOutcome(
        provider_id=provider_id,
        error=UsageFetchError(
            f"Unknown provider: {provider_id}",
            category=ErrorCategory.CONFIGURATION,
        ),
    )


async def fetch_provider(
    provider_id: str,
    ctx: FetchContext,
    use_cache: bool = True,
) -> FetchOutcome:
    """Fetch one provider through its fetch plan.

    A successful snapshot is written to the cache. On failure the last
    cached snapshot, if any, is returned with ``cached=True`` alongside
    the original error. Pipeline errors (unsupported mode, no candidates)
    are configuration problems and never fall back to the cache.
    """
    from usagehub.providers import get_descriptor

    descriptor = get_descriptor(provider_id)
    if descriptor is None:
        return _unknown_provider(provider_id)

    outcome = await descriptor.fetch_plan.fetch(ctx)

    if outcome.result is not None:
        try:
            cache_snapshot(outcome.result.snapshot)
        except OSError as e:
            logger.warning("Could not cache %s snapshot: %s", provider_id, e)
        return outcome

    if isinstance(outcome.error, FetchPipelineError) or not use_cache:
        return outcome

    if (cached := load_cached_snapshot(provider_id)) is not None:
        logger.info("%s: using cached snapshot from %s", provider_id, cached.fetched_at)
        return msgspec.structs.replace(
            outcome,
            result=FetchResult(
                snapshot=cached,
                source_label="cache",
                strategy_id=f"{provider_id}.cache",
            ),
            cached=True,
        )
    return outcome


async def fetch_all_providers(
    provider_ids: Iterable[str],
    config: Config | None = None,
    source_mode: SourceMode | None = None,
    interaction: Interaction = Interaction.USER_INITIATED,
    on_complete: OutcomeCallback | None = None,
    use_cache: bool = True,
) -> dict[str, FetchOutcome]:
    """Fetch usage data from several providers concurrently.

    At most ``config.fetch.max_concurrent`` providers run at once.

    Returns:
        Dict of provider_id to FetchOutcome, in the order requested
    """
    config = config or get_config()
    provider_ids = list(dict.fromkeys(provider_ids))
    semaphore = asyncio.Semaphore(max(1, config.fetch.max_concurrent))
    outcomes: dict[str, FetchOutcome] = {}

    async def bounded_fetch(provider_id: str) -> None:
        async with semaphore:
            ctx = FetchContext.for_provider(
                config, provider_id, source_mode=source_mode, interaction=interaction
            )
            outcome = await fetch_provider(provider_id, ctx, use_cache=use_cache)
        outcomes[provider_id] = outcome
        if on_complete:
            on_complete(outcome)

    await asyncio.gather(*(bounded_fetch(pid) for pid in provider_ids))
    return {pid: outcomes[pid] for pid in provider_ids}


async def fetch_enabled_providers(
    config: Config | None = None,
    source_mode: SourceMode | None = None,
    interaction: Interaction = Interaction.USER_INITIATED,
    on_complete: OutcomeCallback | None = None,
) -> dict[str, FetchOutcome]:
    """Fetch only enabled providers based on config."""
    from usagehub.providers import list_provider_ids

    config = config or get_config()
    enabled = [pid for pid in list_provider_ids() if config.is_provider_enabled(pid)]
    return await fetch_all_providers(
        enabled,
        config=config,
        source_mode=source_mode,
        interaction=interaction,
        on_complete=on_complete,
    )
