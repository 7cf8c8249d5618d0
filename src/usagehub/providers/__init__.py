"""Provider registry for usagehub."""

from usagehub.providers.base import ProviderBranding
from usagehub.providers.base import ProviderDescriptor
from usagehub.providers.base import ProviderMetadata

# Provider registry
_DESCRIPTORS: dict[str, ProviderDescriptor] = {}


def register_descriptor(descriptor: ProviderDescriptor) -> ProviderDescriptor:
    """Register a provider descriptor, replacing any with the same id."""
    _DESCRIPTORS[descriptor.id] = descriptor
    return descriptor


def get_descriptor(provider_id: str) -> ProviderDescriptor | None:
    """Get a provider descriptor by ID.

    Returns:
        ProviderDescriptor or None if not found
    """
    return _DESCRIPTORS.get(provider_id)


def all_descriptors() -> list[ProviderDescriptor]:
    """All registered descriptors, in registration order."""
    return list(_DESCRIPTORS.values())


def list_provider_ids() -> list[str]:
    """List all registered provider IDs."""
    return list(_DESCRIPTORS.keys())


# Import and register providers
from usagehub.providers import claude  # noqa: E402
from usagehub.providers import codex  # noqa: E402
from usagehub.providers import openrouter  # noqa: E402

register_descriptor(claude.descriptor())
register_descriptor(codex.descriptor())
register_descriptor(openrouter.descriptor())

__all__ = [
    "ProviderBranding",
    "ProviderDescriptor",
    "ProviderMetadata",
    "all_descriptors",
    "get_descriptor",
    "list_provider_ids",
    "register_descriptor",
]
