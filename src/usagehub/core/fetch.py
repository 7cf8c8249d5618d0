"""Fetch pipeline for executing provider fetch strategies."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Sequence

from usagehub.core.retry import run_candidates
from usagehub.errors.types import NoCandidatesError
from usagehub.errors.types import UnsupportedSourceModeError
from usagehub.models import SourceMode
from usagehub.strategies.base import FetchAttempt
from usagehub.strategies.base import FetchContext
from usagehub.strategies.base import FetchOutcome
from usagehub.strategies.base import FetchResult
from usagehub.strategies.base import FetchStrategy

logger = logging.getLogger(__name__)

StrategyResolver = Callable[[FetchContext], Sequence[FetchStrategy]]


class StrategyUnavailable(Exception):
    """Internal marker for a candidate whose is_available() was false."""


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class FetchPipeline:
    """Resolves a provider's ordered strategies and runs them with fallback."""

    def __init__(self, provider_id: str, resolve_strategies: StrategyResolver):
        self.provider_id = provider_id
        self.resolve_strategies = resolve_strategies

    def resolve(self, ctx: FetchContext) -> list[FetchStrategy]:
        return list(self.resolve_strategies(ctx))

    async def fetch(self, ctx: FetchContext) -> FetchOutcome:
        return await self.run(self.resolve(ctx), ctx)

    async def run(
        self, candidates: Sequence[FetchStrategy], ctx: FetchContext
    ) -> FetchOutcome:
        """Execute strategies in order.

        Unavailable strategies are recorded and skipped. A failed strategy
        falls through to the next one only if it says so and one remains.

        Returns:
            FetchOutcome with the result or final error, plus every attempt
        """
        attempts: list[FetchAttempt] = []
        last_error: Exception | None = None

        async def attempt(strategy: FetchStrategy) -> FetchResult:
            nonlocal last_error
            try:
                available = await strategy.is_available(ctx)
            except Exception as e:
                logger.debug(
                    "%s: %s availability check failed: %s",
                    self.provider_id,
                    strategy.id,
                    _describe(e),
                )
                attempts.append(
                    FetchAttempt(
                        strategy_id=strategy.id,
                        kind=strategy.kind,
                        was_available=False,
                        error_description=_describe(e),
                    )
                )
                last_error = e
                raise

            if not available:
                logger.debug("%s: %s unavailable", self.provider_id, strategy.id)
                attempts.append(
                    FetchAttempt(
                        strategy_id=strategy.id,
                        kind=strategy.kind,
                        was_available=False,
                    )
                )
                raise StrategyUnavailable(strategy.id)

            start_time = time.monotonic()
            try:
                result = await strategy.fetch(ctx)
            except Exception as e:
                duration_ms = int((time.monotonic() - start_time) * 1000)
                logger.debug(
                    "%s: %s failed after %dms: %s",
                    self.provider_id,
                    strategy.id,
                    duration_ms,
                    _describe(e),
                )
                attempts.append(
                    FetchAttempt(
                        strategy_id=strategy.id,
                        kind=strategy.kind,
                        was_available=True,
                        error_description=_describe(e),
                        duration_ms=duration_ms,
                    )
                )
                last_error = e
                raise

            duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.debug(
                "%s: %s succeeded in %dms", self.provider_id, strategy.id, duration_ms
            )
            attempts.append(
                FetchAttempt(
                    strategy_id=strategy.id,
                    kind=strategy.kind,
                    was_available=True,
                    duration_ms=duration_ms,
                )
            )
            return result

        def should_retry(strategy: FetchStrategy, error: Exception) -> bool:
            if isinstance(error, StrategyUnavailable):
                return True
            return strategy.should_fallback(error, ctx)

        try:
            result = await run_candidates(candidates, should_retry, attempt)
        except StrategyUnavailable:
            # Trailing unavailable candidates after a fallback-able failure.
            error: Exception = last_error or NoCandidatesError(self.provider_id)
        except NoCandidatesError:
            error = NoCandidatesError(self.provider_id)
        except Exception as e:
            error = e
        else:
            return FetchOutcome(
                provider_id=self.provider_id,
                result=result,
                attempts=tuple(attempts),
            )

        logger.info("%s: fetch failed: %s", self.provider_id, _describe(error))
        return FetchOutcome(
            provider_id=self.provider_id,
            error=error,
            attempts=tuple(attempts),
        )


class ProviderFetchPlan:
    """A provider's declared source modes and its pipeline."""

    def __init__(self, source_modes: Iterable[SourceMode], pipeline: FetchPipeline):
        self.source_modes = frozenset(source_modes)
        self.pipeline = pipeline

    def supports(self, mode: SourceMode) -> bool:
        return mode in self.source_modes

    async def fetch(self, ctx: FetchContext) -> FetchOutcome:
        """Check the source mode, then run the pipeline."""
        if not self.supports(ctx.source_mode):
            error = UnsupportedSourceModeError(
                self.pipeline.provider_id,
                ctx.source_mode,
                frozenset(str(m) for m in self.source_modes),
            )
            logger.info("%s", error)
            return FetchOutcome(provider_id=self.pipeline.provider_id, error=error)
        return await self.pipeline.fetch(ctx)
