from __future__ import annotations


class ProviderError(Exception):
    """Base class for every error raised by the provider layer."""


class InvalidConfigurationError(ProviderError):
    """Required provider settings are missing or malformed."""


class UnknownProviderError(ProviderError):
    def __init__(self, name: str) -> None:
        super().__init__(f"provider not found: {name}")
        self.name = name


class ProviderAlreadyRegisteredError(ProviderError):
    def __init__(self, name: str) -> None:
        super().__init__(f"provider already registered: {name}")
        self.name = name


class RegistryFrozenError(ProviderError):
    """Raised when registering after the registry has started resolving providers."""


class BackendRequestError(ProviderError):
    """A backend call failed; the message carries the backend's own text."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderUnhealthyError(ProviderError):
    pass


class UnsupportedPresetError(ProviderError):
    """The preset uses a setting the backend cannot express."""


__all__ = [
    "BackendRequestError",
    "InvalidConfigurationError",
    "ProviderAlreadyRegisteredError",
    "ProviderError",
    "ProviderUnhealthyError",
    "RegistryFrozenError",
    "UnknownProviderError",
    "UnsupportedPresetError",
]
