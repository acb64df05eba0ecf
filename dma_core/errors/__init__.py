# =============================================================================
# dma_core/errors/__init__.py
# Centralized Error Handling for the DM App core
# =============================================================================

from .exceptions import (
    DMAError,
    StorageUnavailable,
    RemoteFetchFailed,
    InvalidScope,
    AmbiguousLatestEntry,
    OfflineWriteRejected,
    PermissionDenied,
)

from .handlers import handle_error

__all__ = [
    # Exceptions
    "DMAError",
    "StorageUnavailable",
    "RemoteFetchFailed",
    "InvalidScope",
    "AmbiguousLatestEntry",
    "OfflineWriteRejected",
    "PermissionDenied",
    # Handlers
    "handle_error",
]
