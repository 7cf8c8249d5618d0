"""Fetch strategy base classes."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import msgspec

from usagehub.config.settings import ProviderConfig
from usagehub.models import Interaction
from usagehub.models import Runtime
from usagehub.models import SourceMode
from usagehub.models import UsageSnapshot

if TYPE_CHECKING:
    from usagehub.config.settings import Config


class FetchKind(StrEnum):
    """Closed set of strategy families, used for diagnostics."""

    CLI = "cli"
    OAUTH = "oauth"
    WEB = "web"
    API_TOKEN = "api_token"


class FetchContext(msgspec.Struct, frozen=True):
    """Per-request inputs shared by every strategy of one fetch."""

    runtime: Runtime = Runtime.CLI
    source_mode: SourceMode = SourceMode.AUTO
    interaction: Interaction = Interaction.BACKGROUND
    environment: dict[str, str] = msgspec.field(default_factory=dict)
    settings: ProviderConfig | None = None
    browser_detection: Any = None

    @classmethod
    def for_provider(
        cls,
        config: Config,
        provider_id: str,
        source_mode: SourceMode | None = None,
        interaction: Interaction = Interaction.USER_INITIATED,
        runtime: Runtime | None = None,
    ) -> FetchContext:
        """Build a context from configuration for one provider."""
        settings = config.get_provider_config(provider_id)
        return cls(
            runtime=runtime or config.runtime,
            source_mode=source_mode or settings.source_mode,
            interaction=interaction,
            environment=dict(os.environ),
            settings=settings,
        )


class FetchResult(msgspec.Struct, frozen=True):
    """Successful fetch."""

    snapshot: UsageSnapshot
    source_label: str
    strategy_id: str
    strategy_kind: FetchKind | None = None  # None for cached snapshots


class FetchAttempt(msgspec.Struct, frozen=True):
    """Record of a single candidate considered by the pipeline."""

    strategy_id: str
    kind: FetchKind
    was_available: bool
    error_description: str | None = None
    duration_ms: int = 0


class FetchOutcome(msgspec.Struct, frozen=True):
    """Complete result of fetching from a provider."""

    provider_id: str
    result: FetchResult | None = None
    error: BaseException | None = None
    attempts: tuple[FetchAttempt, ...] = ()  # All attempts for debugging
    cached: bool = False  # Whether result came from the snapshot cache

    @property
    def success(self) -> bool:
        return self.result is not None

    @property
    def snapshot(self) -> UsageSnapshot | None:
        return self.result.snapshot if self.result else None

    def get(self) -> FetchResult:
        """Return the result or raise the final error."""
        if self.result is not None:
            return self.result
        raise self.error or RuntimeError(f"{self.provider_id} fetch failed")


class FetchStrategy(ABC):
    """Base class for fetch strategies.

    Strategies are stateless and built fresh for every resolution.
    """

    #: Stable identifier (e.g. "claude.oauth").
    id: str
    kind: FetchKind

    @property
    def source_label(self) -> str:
        return self.kind.value

    @abstractmethod
    async def is_available(self, ctx: FetchContext) -> bool:
        """
        Check if this strategy can be attempted.

        Returns True if credentials/requirements exist.
        Should be fast (no network calls).
        """
        ...

    @abstractmethod
    async def fetch(self, ctx: FetchContext) -> FetchResult:
        """
        Attempt to fetch usage data.

        Raises on failure; the pipeline records the error.
        """
        ...

    def should_fallback(self, error: BaseException, ctx: FetchContext) -> bool:
        """Whether the pipeline may try the next candidate after ``error``."""
        return getattr(error, "should_fallback", True)

    def result(self, snapshot: UsageSnapshot) -> FetchResult:
        return FetchResult(
            snapshot=snapshot,
            source_label=self.source_label,
            strategy_id=self.id,
            strategy_kind=self.kind,
        )
