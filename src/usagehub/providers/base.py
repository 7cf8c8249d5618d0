"""Provider descriptors for usagehub."""

from msgspec import Struct

from usagehub.core.fetch import ProviderFetchPlan
from usagehub.models import SourceMode


class ProviderMetadata(Struct, frozen=True):
    """Metadata about a provider."""

    id: str
    name: str
    description: str
    homepage: str
    dashboard_url: str | None = None


class ProviderBranding(Struct, frozen=True):
    """How a provider is drawn in terminal output."""

    color: str  # rich color name or hex
    symbol: str = "●"


class ProviderDescriptor(Struct, frozen=True):
    """Everything the pipeline needs to know about one provider."""

    id: str
    metadata: ProviderMetadata
    branding: ProviderBranding
    fetch_plan: ProviderFetchPlan

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def source_modes(self) -> frozenset[SourceMode]:
        return self.fetch_plan.source_modes
