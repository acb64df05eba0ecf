# =============================================================================
# dma_core/offline/__init__.py
# Offline Support for the DM App core
# =============================================================================
"""
Offline Support Module

A field user can keep reading residents and evacuation centers without
connectivity. Offline mode is read-only: the local cache is a snapshot of one
municipality, replaced wholesale by "download for offline use" and removed by
"clear cache".

Architecture:
------------
┌──────────────────────────────────────────────────────────┐
│                  OfflineDataService                      │
│        (dma_core.services - pages use this only)         │
└──────────────────────────────────────────────────────────┘
               │                           │
               ▼                           ▼
    ┌──────────────────┐        ┌────────────────────┐
    │ ConnectionMgr    │        │  LocalObjectCache  │
    │ (online flag)    │        │  (SQLite snapshot) │
    └──────────────────┘        └────────────────────┘
"""

from dma_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
)

from dma_core.offline.local_cache import (
    CACHE_INFO_KEY,
    EVAC_CENTERS,
    METADATA,
    RESIDENTS,
    LocalObjectCache,
)

__all__ = [
    # Connection Management
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    # Local Cache
    "LocalObjectCache",
    "RESIDENTS",
    "EVAC_CENTERS",
    "METADATA",
    "CACHE_INFO_KEY",
]
