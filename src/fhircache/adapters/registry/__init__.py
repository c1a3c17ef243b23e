"""Registry client adapters."""

from fhircache.adapters.registry.auth import BearerTokenAuth
from fhircache.adapters.registry.client import (
    DEFAULT_REGISTRY_URL,
    RegistryClient,
    RegistryResponse,
)


__all__ = [
    "DEFAULT_REGISTRY_URL",
    "BearerTokenAuth",
    "RegistryClient",
    "RegistryResponse",
]
