"""Platform gateways and the registry that dispatches to them."""

from .base import ProviderGateway, ProviderRequestOptions
from .meta_gateway import MetaGateway
from .registry import ProviderRegistry, build_default_registry

__all__ = [
    "MetaGateway",
    "ProviderGateway",
    "ProviderRegistry",
    "ProviderRequestOptions",
    "build_default_registry",
]
