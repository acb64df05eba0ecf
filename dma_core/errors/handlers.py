# =============================================================================
# dma_core/errors/handlers.py
# Error Handling Utilities for the DM App core
# =============================================================================

from __future__ import annotations
import traceback
from typing import Optional
import streamlit as st

from dma_core.logging import get_logger
from .exceptions import DMAError

logger = get_logger(__name__)


def handle_error(
    error: Exception,
    show_user_message: bool = True,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Centralized error handling function.

    Recoverable errors (storage unavailable, remote fetch failed, offline
    write rejected) are shown as a warning the user can retry from; anything
    else is shown as an error.

    Args:
        error: The exception to handle
        show_user_message: Whether to display the message via Streamlit
        log_error: Whether to log the error
        user_message: Custom message to show user (uses error message if None)
    """
    if isinstance(error, DMAError):
        message = user_message or error.message
        code = error.code
        details = error.details
        recoverable = error.recoverable
    else:
        message = user_message or str(error)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}
        recoverable = False

    if log_error:
        if recoverable:
            logger.warning(f"[{code}] {message}", extra={"details": details})
        else:
            logger.error(
                f"[{code}] {message}",
                extra={"details": details},
                exc_info=True,
            )

    if show_user_message:
        if recoverable:
            st.warning(f"{message}")
        else:
            st.error(f"Critical Error: {message}. Please contact support.")
