"""Provider adapters for Cadence.

Adapters translate a social platform's REST API into the DTOs defined in
``cadence_core.providers.base``.
"""

from cadence_core.providers.base import (
    ProviderAdapter,
    ProviderAPIError,
    ProviderContentItem,
    ProviderProfile,
    TokenBundle,
)

__all__ = [
    "ProviderAdapter",
    "ProviderAPIError",
    "ProviderContentItem",
    "ProviderProfile",
    "TokenBundle",
]
