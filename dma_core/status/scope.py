# =============================================================================
# dma_core/status/scope.py
# Organizational Scope Filtering and Resolved Views
# =============================================================================

from __future__ import annotations
from typing import Iterable, List, Optional

from dma_core.data.models import Resident, ResolvedEntity
from dma_core.status.resolution import ResolutionResult

ALL = "all"


def _is_unfiltered(value: Optional[str]) -> bool:
    return value is None or value == "" or value == ALL


def filter_by_scope(
    residents: Iterable[Resident],
    municipality: Optional[str] = None,
    barangay: Optional[str] = None,
) -> List[Resident]:
    """
    Narrow residents to a municipality and/or barangay.

    ``None``, ``""`` and ``"all"`` disable a filter. Matching is exact.
    """
    selected = list(residents)
    if not _is_unfiltered(municipality):
        selected = [r for r in selected if r.municipality == municipality]
    if not _is_unfiltered(barangay):
        selected = [r for r in selected if r.barangay == barangay]
    return selected


def with_status(
    entities: Iterable[Resident],
    result: Optional[ResolutionResult],
) -> List[ResolvedEntity]:
    """
    Pair each entity with its resolved status.

    Without a result (offline, or no active event) the status is None,
    meaning "not available" rather than "Unknown".
    """
    if result is None:
        return [ResolvedEntity(entity) for entity in entities]

    centers = result.evac_center_of()
    return [
        ResolvedEntity(entity, result.status_of(entity.id), centers.get(entity.id))
        for entity in entities
    ]


def family_members(residents: Iterable[Resident], resident: Resident) -> List[Resident]:
    """Everyone sharing the resident's head of family, or just the resident."""
    if not resident.head_of_family_name:
        return [resident]
    return [r for r in residents if r.head_of_family_name == resident.head_of_family_name]


def search_residents(
    residents: Iterable[Resident],
    term: str,
    min_length: int = 2,
) -> List[Resident]:
    """Case-insensitive substring search on "first last"."""
    term = (term or "").strip().lower()
    if len(term) < min_length:
        return []
    return [r for r in residents if term in f"{r.first_name} {r.last_name}".lower()]


def find_by_id(residents: Iterable[Resident], resident_id: str) -> Optional[Resident]:
    """Look up a scanned resident id."""
    resident_id = str(resident_id).strip()
    return next((r for r in residents if r.id == resident_id), None)
