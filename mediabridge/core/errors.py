"""Exceptions for sync runs."""


class MediaBridgeError(Exception):
    """Base exception for mediabridge errors."""
    pass


class ConfigurationError(MediaBridgeError):
    """Raised when configuration is invalid or missing."""
    pass


class CatalogError(MediaBridgeError):
    """Raised when a catalog call fails (network, non-2xx, adapter error)."""

    def __init__(self, message: str, service: str = "catalog"):
        super().__init__(message)
        self.service = service


class SyncCancelled(MediaBridgeError):
    """Raised at a checkpoint when a run has been cancelled."""
    pass
