"""Exception hierarchy shared by the replay pipeline."""

from __future__ import annotations


class ReplayError(RuntimeError):
    """Base class for replayer failures."""


class SourceError(ReplayError):
    """Raised when the record source cannot be opened or read."""


class ConfigError(ReplayError):
    """Raised when required configuration is missing or invalid."""


class RegistryError(ReplayError):
    """Raised when the schema registry rejects a request or is unreachable."""


class EncodingError(ReplayError):
    """Raised when a payload does not conform to the registered schema."""


class PublishError(ReplayError):
    """Raised when the sink is used before it has been started."""


__all__ = [
    "ReplayError",
    "SourceError",
    "ConfigError",
    "RegistryError",
    "EncodingError",
    "PublishError",
]
