"""Platform -> gateway registry, built once at startup."""

from typing import Dict, Iterable, Optional, Union

from ..config import AppConfig, get_config
from ..enums import Platform
from ..exceptions import UnsupportedPlatformError
from ..utils.logger import get_logger
from .base import ProviderGateway


class ProviderRegistry:
    """
    Registered gateway implementations keyed by platform.

    Platforms without a registered gateway fail closed with
    UnsupportedPlatformError.
    """

    def __init__(self, gateways: Optional[Iterable[ProviderGateway]] = None):
        self._gateways: Dict[Platform, ProviderGateway] = {}
        self.logger = get_logger()
        for gateway in gateways or ():
            self.register(gateway)

    def register(self, gateway: ProviderGateway) -> None:
        platform = Platform(gateway.platform)
        self._gateways[platform] = gateway
        self.logger.info(
            "Provider gateway registered",
            extra={"platform": platform.value, "gateway": type(gateway).__name__},
        )

    def get(self, platform: Union[Platform, str]) -> ProviderGateway:
        try:
            key = Platform(platform)
        except ValueError:
            raise UnsupportedPlatformError(str(platform)) from None
        gateway = self._gateways.get(key)
        if gateway is None:
            raise UnsupportedPlatformError(key.value)
        return gateway

    def supports(self, platform: Union[Platform, str]) -> bool:
        try:
            return Platform(platform) in self._gateways
        except ValueError:
            return False

    @property
    def platforms(self) -> frozenset:
        return frozenset(self._gateways)


def build_default_registry(config: Optional[AppConfig] = None) -> ProviderRegistry:
    """Registry with every platform that has a gateway implementation."""
    from .meta_gateway import MetaGateway

    config = config or get_config()
    return ProviderRegistry([MetaGateway(config.providers)])
