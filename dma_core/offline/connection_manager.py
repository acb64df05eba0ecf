# =============================================================================
# dma_core/offline/connection_manager.py
# Connectivity Flag and Change Notification
# =============================================================================
"""
ConnectionManager - Holds the "is currently online" flag.

Features:
- Flag toggled by platform online/offline signals
- Event callbacks for status changes
- Optional explicit probe of the configured Supabase host
"""

from __future__ import annotations
import os
import socket
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional
from urllib.parse import urlparse
import logging

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.ONLINE
    last_change: Optional[datetime] = None
    last_online: Optional[datetime] = None
    error_message: Optional[str] = None


class ConnectionManager:
    """
    Connectivity flag sampled at the start of each load operation.

    Usage:
        manager = ConnectionManager()
        manager.set_offline()           # platform "offline" signal
        ctx = AppContext.from_connection(user, manager)
    """

    CONNECTION_TIMEOUT = 5          # Timeout for probe connections (seconds)

    def __init__(self, online: bool = True):
        status = ConnectionStatus.ONLINE if online else ConnectionStatus.OFFLINE
        self._state = ConnectionState(
            status=status,
            last_online=datetime.now() if online else None,
        )
        self._callbacks: List[Callable[[ConnectionState], None]] = []
        self._lock = threading.Lock()

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        return self._state.status == ConnectionStatus.OFFLINE

    def set_online(self) -> None:
        """Platform reported connectivity."""
        self._set_status(ConnectionStatus.ONLINE)

    def set_offline(self) -> None:
        """Platform reported loss of connectivity."""
        self._set_status(ConnectionStatus.OFFLINE)

    def _set_status(self, status: ConnectionStatus, error: Optional[str] = None) -> None:
        with self._lock:
            old_status = self._state.status
            self._state.status = status
            self._state.error_message = error
            if status == ConnectionStatus.ONLINE:
                self._state.last_online = datetime.now()
            changed = old_status != status
            if changed:
                self._state.last_change = datetime.now()

        if changed:
            logger.info(f"Connection status changed: {old_status.value} -> {status.value}")
            self._notify_callbacks()

    def check_connection(self, url: Optional[str] = None) -> ConnectionState:
        """
        Probe the Supabase host once and update the flag.

        Args:
            url: Supabase project URL (defaults to SUPABASE_URL)

        Returns:
            Updated ConnectionState
        """
        url = url or os.getenv("SUPABASE_URL", "")
        parsed = urlparse(url)
        host = parsed.hostname
        if not host:
            logger.debug("No Supabase URL configured, connectivity flag left unchanged")
            return self._state

        port = parsed.port or (443 if parsed.scheme != "http" else 80)
        try:
            with socket.create_connection((host, port), timeout=self.CONNECTION_TIMEOUT):
                pass
        except OSError as e:
            logger.debug(f"Supabase probe failed: {e}")
            self._set_status(ConnectionStatus.OFFLINE, error=str(e))
        else:
            self._set_status(ConnectionStatus.ONLINE)

        return self._state

    def register_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """
        Register a callback for connection status changes.

        Args:
            callback: Function called with ConnectionState when status changes
        """
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        """Notify all registered callbacks of status change."""
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "is_online": self.is_online,
            "last_change": self._state.last_change.isoformat() if self._state.last_change else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "error": self._state.error_message,
        }
