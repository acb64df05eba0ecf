# =============================================================================
# dma_core/data/__init__.py
# Records and Remote Store Access
# =============================================================================

from dma_core.data.models import (
    CacheInfo,
    DisasterEvent,
    EvacuationCenter,
    Resident,
    ResolvedEntity,
    StatusLogEntry,
    StatusUpdate,
    StatusValue,
    User,
)

__all__ = [
    "CacheInfo",
    "DisasterEvent",
    "EvacuationCenter",
    "Resident",
    "ResolvedEntity",
    "StatusLogEntry",
    "StatusUpdate",
    "StatusValue",
    "User",
]
