from __future__ import annotations

import logging
from typing import Callable, Dict

from .config import Config
from .errors import (
    InvalidConfigurationError,
    ProviderAlreadyRegisteredError,
    ProviderError,
    RegistryFrozenError,
    UnknownProviderError,
)
from .models.provider import Health, ProviderDescription
from .provider import TranscodingProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[Config], TranscodingProvider]


class ProviderRegistry:
    """Name to factory table, filled during startup and read-only afterwards.

    The first call to ``resolve`` freezes the table; reads never take a lock.
    """

    def __init__(self) -> None:
        self._factories: Dict[str, ProviderFactory] = {}
        self._frozen = False

    def register(self, name: str, factory: ProviderFactory) -> None:
        if self._frozen:
            raise RegistryFrozenError(f"cannot register {name!r}: providers are already being resolved")
        if name in self._factories:
            raise ProviderAlreadyRegisteredError(name)
        self._factories[name] = factory
        logger.debug("Registered provider", extra={"provider": name})

    def get_provider_factory(self, name: str) -> ProviderFactory:
        try:
            return self._factories[name]
        except KeyError:
            raise UnknownProviderError(name) from None

    def resolve(self, name: str, config: Config) -> TranscodingProvider:
        """Build the provider registered under ``name``.

        Raises:
            UnknownProviderError: nothing is registered under ``name``
            InvalidConfigurationError: the factory rejected ``config``
        """
        factory = self.get_provider_factory(name)
        self._frozen = True
        return factory(config)

    def names(self) -> list[str]:
        return sorted(self._factories)

    def list_enabled(self, config: Config) -> list[str]:
        """Names of the providers whose factory accepts ``config``."""
        enabled = []
        for name in self.names():
            try:
                self.resolve(name, config)
            except InvalidConfigurationError:
                continue
            enabled.append(name)
        return enabled

    def describe(self, name: str, config: Config) -> ProviderDescription:
        try:
            provider = self.resolve(name, config)
        except InvalidConfigurationError:
            return ProviderDescription(name=name, enabled=False)

        health = Health(ok=True)
        try:
            provider.healthcheck()
        except ProviderError as exc:
            logger.warning("Provider healthcheck failed", extra={"provider": name, "error": str(exc)})
            health = Health(ok=False, message=str(exc))

        return ProviderDescription(
            name=name,
            enabled=True,
            capabilities=provider.capabilities(),
            health=health,
        )


default_registry = ProviderRegistry()

register = default_registry.register
resolve = default_registry.resolve
get_provider_factory = default_registry.get_provider_factory


__all__ = [
    "ProviderFactory",
    "ProviderRegistry",
    "default_registry",
    "get_provider_factory",
    "register",
    "resolve",
]
