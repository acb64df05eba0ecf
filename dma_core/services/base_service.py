# =============================================================================
# dma_core/services/base_service.py
# Base Service Class and Result Container
# =============================================================================

from __future__ import annotations
from abc import ABC
from typing import Optional, Dict, Any, Callable
from dataclasses import dataclass

from dma_core.logging import get_logger, LogContext
from dma_core.errors import handle_error, DMAError, InvalidScope


@dataclass
class ServiceResult:
    """
    What every service operation returns to a page.

    A failed result still carries ``data`` (usually an empty list) so the
    page can render an empty table next to the message.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def __bool__(self) -> bool:
        return self.success

    @property
    def message(self) -> Optional[str]:
        """Error text, or the warning attached to a successful result."""
        if not self.success:
            return self.error
        return (self.metadata or {}).get("warning")

    @classmethod
    def ok(cls, data: Any = None, metadata: Dict[str, Any] = None) -> ServiceResult:
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = "UNKNOWN",
        metadata: Dict[str, Any] = None,
        data: Any = None,
    ) -> ServiceResult:
        return cls(success=False, data=data, error=error, error_code=error_code, metadata=metadata)

    @classmethod
    def from_exception(cls, e: Exception, data: Any = None) -> ServiceResult:
        """Failed result carrying a core error's code and details."""
        if isinstance(e, DMAError):
            return cls.fail(e.message, e.code, metadata=e.details, data=data)
        return cls.fail(str(e), "EXCEPTION", data=data)


class BaseService(ABC):
    """
    Shared plumbing for services: a per-class logger and error conversion.

    Usage:
        class ResidentService(BaseService):
            def load(self, ctx) -> ServiceResult:
                return self.safe_execute("Loading residents", self._load, ctx, default=[])
    """

    def __init__(self, show_user_messages: bool = True):
        """
        Args:
            show_user_messages: Surface handled errors through Streamlit
        """
        self.logger = get_logger(self.__class__.__name__)
        self.show_user_messages = show_user_messages

    def log_operation(self, operation: str, **fields) -> LogContext:
        return LogContext(self.logger, operation, **fields)

    def safe_execute(
        self,
        operation: str,
        func: Callable[..., Any],
        *args,
        default: Any = None,
        **kwargs
    ) -> ServiceResult:
        """
        Run ``func`` and wrap its outcome in a ServiceResult.

        A ServiceResult returned by ``func`` is passed through unchanged.
        Core errors are handed to handle_error and become failed results
        carrying ``default``. InvalidScope means the caller broke a
        precondition and is re-raised.
        """
        with self.log_operation(operation):
            try:
                outcome = func(*args, **kwargs)
            except InvalidScope:
                raise
            except DMAError as e:
                handle_error(e, show_user_message=self.show_user_messages)
                return ServiceResult.from_exception(e, data=default)
            except Exception as e:
                self.logger.error(f"{operation} failed: {e}", exc_info=True)
                return ServiceResult.from_exception(e, data=default)

        if isinstance(outcome, ServiceResult):
            return outcome
        return ServiceResult.ok(outcome)
