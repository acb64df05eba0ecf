# =============================================================================
# dma_core/state/context.py
# Explicit Per-Operation Application Context
# =============================================================================

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dma_core.data.models import User
from dma_core.offline.connection_manager import ConnectionManager

WRITER_ROLES = ("admin", "encoder")


@dataclass(frozen=True)
class AppContext:
    """
    What an operation needs to know about the caller, read once at its start.

    Attributes:
        user: Signed-in user (None before login)
        is_online: Connectivity flag sampled for this operation
        location_data: Municipality -> barangays, for scope pickers
    """
    user: Optional[User] = None
    is_online: bool = True
    location_data: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_connection(
        cls,
        user: Optional[User],
        manager: ConnectionManager,
        location_data: Optional[Dict[str, List[str]]] = None,
    ) -> AppContext:
        """Sample the connectivity flag once for a new operation."""
        return cls(user=user, is_online=manager.is_online, location_data=location_data or {})

    @property
    def role(self) -> Optional[str]:
        return self.user.role if self.user else None

    @property
    def can_record_status(self) -> bool:
        return self.role in WRITER_ROLES

    def knows_municipality(self, municipality: str) -> bool:
        """True when no location table is loaded or it lists the municipality."""
        return not self.location_data or municipality in self.location_data
