# =============================================================================
# dma_core/services/__init__.py
# Service Layer for the DM App core
# Separates data access and status rules from UI presentation
# =============================================================================
"""
Service Layer for the DM App core

Pages call these services instead of talking to Supabase or the offline
cache directly. Every operation returns a ServiceResult; storage and remote
failures come back as failed results instead of exceptions.

Usage Example:
-------------
    from dma_core.services import build_offline_data_service
    from dma_core.state import AppContext

    service = build_offline_data_service()
    ctx = AppContext.from_connection(user, connection_manager, location_data)

    # Dashboard for one municipality
    result = service.load_dashboard(ctx, municipality="Daraga")
    if result.success:
        snapshot = result.data
        evacuated = snapshot.members("Evacuated")

    # Snapshot for offline use
    service.download_for_offline(ctx, "Daraga")
"""

from .base_service import BaseService, ServiceResult
from .offline_data_service import (
    DashboardSnapshot,
    OfflineDataService,
    build_offline_data_service,
)

__all__ = [
    # Base
    "BaseService",
    "ServiceResult",
    # Offline data
    "DashboardSnapshot",
    "OfflineDataService",
    "build_offline_data_service",
]
