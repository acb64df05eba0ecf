# =============================================================================
# dma_core/status/__init__.py
# Status Resolution for the DM App core
# =============================================================================
"""
Status resolution: turns the append-only status log into one current status
per resident for the active disaster event.

Usage:
------
from dma_core.status import resolve, filter_by_scope

residents = filter_by_scope(all_residents, municipality="Daraga")
result = resolve(residents, log, active_event.id, evac_centers=centers)
print(result.counts)
"""

from dma_core.status.resolution import (
    EvacCenterStat,
    ResolutionResult,
    build_evac_center_stats,
    latest_entries,
    resolve,
)

from dma_core.status.scope import (
    family_members,
    filter_by_scope,
    find_by_id,
    search_residents,
    with_status,
)

__all__ = [
    # Resolution
    "EvacCenterStat",
    "ResolutionResult",
    "build_evac_center_stats",
    "latest_entries",
    "resolve",
    # Scope and views
    "family_members",
    "filter_by_scope",
    "find_by_id",
    "search_residents",
    "with_status",
]
