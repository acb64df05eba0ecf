# =============================================================================
# dma_core/status/resolution.py
# Status Resolution Engine - latest-wins reduction over the status log
# =============================================================================
"""
Derive one current status per resident from the append-only status log.

The log is filtered to the active disaster event, grouped by resident and
reduced to the most recent row (latest-wins). Residents without a row in the
active event resolve to ``Unknown``. The resident set is expected to be
already narrowed to the wanted municipality/barangay; this module does no
geographic filtering.

Ordering of rows for latest-wins: ``timestamp``, then the server ``log_id``,
then the position of the row in the supplied log. The last row wins.
"""

from __future__ import annotations
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
import logging

import pandas as pd

from dma_core.data.models import EvacuationCenter, StatusLogEntry, StatusValue
from dma_core.errors import AmbiguousLatestEntry, InvalidScope

logger = logging.getLogger(__name__)


LOG_COLUMNS = ["entity_id", "status", "event_id", "timestamp", "evac_center_id", "log_id", "position"]


@dataclass(frozen=True)
class EvacCenterStat:
    """Occupancy of one evacuation center for the active event."""
    center_id: str
    name: str
    occupancy: int
    capacity: int

    @property
    def ratio(self) -> float:
        # Zero capacity with occupants is treated as saturated
        if self.capacity <= 0:
            return math.inf if self.occupancy > 0 else 0.0
        return self.occupancy / self.capacity


@dataclass
class ResolutionResult:
    """Current status per resident plus the aggregates built from it."""
    event_id: Optional[str]
    current_status: Dict[str, StatusValue]
    counts: Dict[StatusValue, int]
    status_groups: Dict[StatusValue, List[str]]
    evac_center_groups: Dict[str, List[str]]
    evac_center_stats: List[EvacCenterStat] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.current_status)

    def status_of(self, entity_id: str) -> Optional[StatusValue]:
        return self.current_status.get(str(entity_id))

    def members(self, status: Union[StatusValue, str, None] = None) -> List[str]:
        """Resident ids in a status bucket, or every resolved resident when ``status`` is None."""
        if status is None:
            return list(self.current_status)
        return list(self.status_groups[StatusValue(status)])

    def evac_center_of(self) -> Dict[str, str]:
        """Map resident id to the evacuation center they are checked into."""
        return {
            entity_id: center_id
            for center_id, members in self.evac_center_groups.items()
            for entity_id in members
        }


def _entity_id(entity: Any) -> str:
    if isinstance(entity, str):
        return entity
    if isinstance(entity, Mapping):
        return str(entity["id"])
    return str(entity.id)


def _unique_ids(entities: Iterable[Any]) -> List[str]:
    ids = []
    seen = set()
    for entity in entities:
        entity_id = _entity_id(entity)
        if entity_id in seen:
            logger.warning(f"Duplicate entity id {entity_id} ignored during status resolution")
            continue
        seen.add(entity_id)
        ids.append(entity_id)
    return ids


def _empty_winners() -> pd.DataFrame:
    return pd.DataFrame(columns=["entity_id", "status", "evac_center_id"])


def latest_entries(
    entries: List[StatusLogEntry],
    active_event_id: str,
    entity_ids: Optional[Iterable[str]] = None,
    strict: bool = False,
) -> pd.DataFrame:
    """
    Reduce the log to one winning row per resident for the active event.

    Args:
        entries: Status log rows, any order
        active_event_id: Event whose rows are considered
        entity_ids: Restrict to these residents (None keeps every resident)
        strict: Raise AmbiguousLatestEntry when the winning timestamp is shared

    Returns:
        DataFrame with columns entity_id, status, evac_center_id
    """
    if not entries:
        return _empty_winners()

    log = pd.DataFrame(
        [
            (e.entity_id, e.status.value, e.event_id, e.timestamp, e.evac_center_id, e.log_id, i)
            for i, e in enumerate(entries)
        ],
        columns=LOG_COLUMNS,
    )

    mask = log["event_id"] == str(active_event_id)
    if entity_ids is not None:
        mask &= log["entity_id"].isin(set(entity_ids))
    log = log[mask]
    if log.empty:
        return _empty_winners()

    log = log.assign(
        timestamp=pd.to_datetime(log["timestamp"], utc=True),
        log_id=pd.to_numeric(log["log_id"], errors="coerce"),
    )
    log = log.sort_values(["timestamp", "log_id", "position"], kind="mergesort", na_position="first")

    latest_ts = log.groupby("entity_id")["timestamp"].transform("max")
    tied = log[log["timestamp"] == latest_ts].groupby("entity_id").size()
    tied = tied[tied > 1]
    if not tied.empty:
        entity_id = str(tied.index[0])
        timestamp = str(latest_ts[log["entity_id"] == entity_id].iloc[0])
        if strict:
            raise AmbiguousLatestEntry(
                f"{len(tied)} resident(s) have several latest status rows with the same timestamp",
                entity_id=entity_id,
                timestamp=timestamp,
            )
        logger.warning(
            f"{len(tied)} resident(s) have tied latest status rows "
            f"(e.g. {entity_id} at {timestamp}); the later log row wins"
        )

    winners = log.drop_duplicates("entity_id", keep="last")
    return winners[["entity_id", "status", "evac_center_id"]].reset_index(drop=True)


def resolve(
    entities: Iterable[Any],
    log: Optional[Iterable[StatusLogEntry]],
    active_event_id: Optional[str],
    evac_centers: Optional[Iterable[Any]] = None,
    *,
    strict: bool = False,
) -> ResolutionResult:
    """
    Resolve the current status of every entity.

    Args:
        entities: Residents (objects with ``id``, mappings or plain ids), already scope-filtered
        log: Status log rows, or None when no log is available (offline)
        active_event_id: Active disaster event id
        evac_centers: Evacuation centers used for occupancy stats (optional)
        strict: Raise AmbiguousLatestEntry on tied latest rows instead of logging

    Returns:
        ResolutionResult

    Raises:
        InvalidScope: log rows were supplied without an active event id
    """
    entity_ids = _unique_ids(entities)
    entries = None if log is None else list(log)

    if entries and not active_event_id:
        raise InvalidScope(
            "Cannot resolve status log entries without an active disaster event",
            details={"entries": len(entries)},
        )

    if entries:
        winners = latest_entries(entries, active_event_id, entity_ids, strict=strict)
    else:
        winners = _empty_winners()

    frame = pd.DataFrame({"entity_id": pd.Series(entity_ids, dtype=object)})
    frame = frame.merge(winners, on="entity_id", how="left")
    frame["status"] = frame["status"].fillna(StatusValue.UNKNOWN.value)

    current_status = {
        entity_id: StatusValue(status)
        for entity_id, status in zip(frame["entity_id"], frame["status"])
    }

    value_counts = frame["status"].value_counts()
    counts = {s: int(value_counts.get(s.value, 0)) for s in StatusValue}
    status_groups = {
        s: frame.loc[frame["status"] == s.value, "entity_id"].tolist()
        for s in StatusValue
    }

    evacuated = frame[
        (frame["status"] == StatusValue.EVACUATED.value) & frame["evac_center_id"].notna()
    ]
    if evacuated.empty:
        evac_center_groups: Dict[str, List[str]] = {}
    else:
        evac_center_groups = {
            str(center_id): group["entity_id"].tolist()
            for center_id, group in evacuated.groupby("evac_center_id", sort=False)
        }

    stats = build_evac_center_stats(evac_center_groups, evac_centers) if evac_centers is not None else []

    nonzero = {s.value: n for s, n in counts.items() if n}
    logger.debug(f"Resolved {len(entity_ids)} residents for event {active_event_id}: {nonzero}")

    return ResolutionResult(
        event_id=str(active_event_id) if active_event_id else None,
        current_status=current_status,
        counts=counts,
        status_groups=status_groups,
        evac_center_groups=evac_center_groups,
        evac_center_stats=stats,
    )


def build_evac_center_stats(
    evac_center_groups: Mapping[str, List[str]],
    evac_centers: Iterable[Any],
) -> List[EvacCenterStat]:
    """
    Join occupancy with the center capacity table.

    Centers with no capacity and no occupants are left out. Sorted by
    occupancy ratio descending, then name, then id.
    """
    stats = []
    known = set()
    for center in evac_centers:
        if isinstance(center, Mapping):
            center = EvacuationCenter.from_record(dict(center))
        known.add(center.id)
        occupancy = len(evac_center_groups.get(center.id, []))
        capacity = int(center.capacity or 0)
        if capacity <= 0 and occupancy == 0:
            continue
        stats.append(EvacCenterStat(center.id, center.name, occupancy, capacity))

    orphans = set(evac_center_groups) - known
    if orphans:
        logger.info(f"Evacuees checked into unknown centers left out of stats: {sorted(orphans)}")

    stats.sort(key=lambda s: (-s.ratio, s.name or "", s.center_id))
    return stats
