# =============================================================================
# dma_core/errors/exceptions.py
# Custom Exception Hierarchy for the DM App core
# =============================================================================

from typing import Optional, Dict, Any


class DMAError(Exception):
    """
    Base exception for all DM App core errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "CACHE_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "DMA_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# STORAGE EXCEPTIONS
# =============================================================================

class StorageUnavailable(DMAError):
    """Raised when the local offline store cannot be opened, read or written"""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        path: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection
        if path:
            details["path"] = path

        super().__init__(
            message=message,
            code="CACHE_001",
            details=details,
            **kwargs,
        )


class RemoteFetchFailed(DMAError):
    """Raised when a call to the remote store fails while online"""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="REMOTE_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# STATUS RESOLUTION EXCEPTIONS
# =============================================================================

class InvalidScope(DMAError):
    """Raised when status resolution is asked to use log data without an active event"""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            code="STATUS_001",
            details=kwargs.pop("details", {}),
            recoverable=False,
            **kwargs,
        )


class AmbiguousLatestEntry(DMAError):
    """Raised in strict mode when two winning log rows share a timestamp"""

    def __init__(
        self,
        message: str,
        entity_id: Optional[str] = None,
        timestamp: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if entity_id:
            details["entity_id"] = entity_id
        if timestamp:
            details["timestamp"] = timestamp

        super().__init__(
            message=message,
            code="STATUS_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# OPERATION GUARDS
# =============================================================================

class OfflineWriteRejected(DMAError):
    """Raised when a write is attempted while the device is offline"""

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="OFFLINE_001",
            details=details,
            **kwargs,
        )


class PermissionDenied(DMAError):
    """Raised when the current user's role does not allow an operation"""

    def __init__(
        self,
        message: str,
        role: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if role:
            details["role"] = role
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="AUTH_001",
            details=details,
            **kwargs,
        )

