# =============================================================================
# dma_core/services/offline_data_service.py
# Offline Data Service - Single API for Online/Offline Reads and Status Writes
# =============================================================================
"""
OfflineDataService - what the pages call to read residents, centers and the
dashboard, whether or not the device is online.

Online:  reads go to Supabase; status is resolved from the live log.
Offline: reads come from the local snapshot; status is not available
         (residents show no status, the dashboard counts everyone Unknown).

Writes (status updates) are online only. The only thing written to the
local cache is the "download for offline use" snapshot.

Usage:
------
from dma_core.services import build_offline_data_service
from dma_core.state import AppContext

service = build_offline_data_service()
ctx = AppContext.from_connection(user, connection_manager, location_data)

result = service.load_dashboard(ctx, municipality="Daraga")
if result:
    snapshot = result.data
    print(snapshot.result.counts)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from dma_core.data.models import (
    CacheInfo,
    DisasterEvent,
    EvacuationCenter,
    Resident,
    ResolvedEntity,
    StatusUpdate,
    StatusValue,
)
from dma_core.data.supabase_client import RemoteStore, get_cached_supabase_client
from dma_core.errors import DMAError, OfflineWriteRejected, PermissionDenied
from dma_core.offline.local_cache import (
    CACHE_INFO_KEY,
    EVAC_CENTERS,
    RESIDENTS,
    LocalObjectCache,
)
from dma_core.services.base_service import BaseService, ServiceResult
from dma_core.state.context import AppContext
from dma_core.status import filter_by_scope, resolve, with_status
from dma_core.status.resolution import ResolutionResult

OFFLINE_WARNING = "You are offline. Showing cached data from your last download."

SOURCE_REMOTE = "remote"
SOURCE_CACHE = "cache"


def _by_name(residents: Iterable[Resident]) -> List[Resident]:
    return sorted(residents, key=lambda r: (r.last_name or "", r.first_name or "", r.id))


@dataclass
class DashboardSnapshot:
    """Everything the dashboard shows for one scope."""
    event: Optional[DisasterEvent]
    residents: List[Resident]
    result: ResolutionResult
    source: str = SOURCE_REMOTE
    cache_info: Optional[CacheInfo] = None
    _index: Optional[Dict[str, Resident]] = field(default=None, init=False, repr=False, compare=False)

    @property
    def total(self) -> int:
        return self.result.total

    def members(self, status: Union[StatusValue, str, None] = None) -> List[ResolvedEntity]:
        """
        Drill-down for a status card.

        Args:
            status: Status bucket, or None for the whole affected population

        Returns:
            Residents ordered by last name, paired with their status
        """
        if self._index is None:
            self._index = {r.id: r for r in self.residents}
        ids = self.result.members(status)
        residents = [self._index[i] for i in ids if i in self._index]
        return with_status(_by_name(residents), self.result)


class OfflineDataService(BaseService):
    """
    Reads and writes for the disaster management pages.

    Storage and remote failures are logged, shown to the user and returned
    as failed results with empty data; they never crash a page.
    """

    def __init__(
        self,
        remote: RemoteStore,
        cache: LocalObjectCache,
        show_user_messages: bool = True,
    ):
        super().__init__(show_user_messages=show_user_messages)
        self.remote = remote
        self.cache = cache

    # =========================================================================
    # OFFLINE SNAPSHOT
    # =========================================================================

    def download_for_offline(self, ctx: AppContext, municipality: str) -> ServiceResult:
        """
        Cache a municipality's residents and every evacuation center.

        The previous snapshot is replaced only after both fetches succeed.
        """
        if not municipality or not ctx.knows_municipality(municipality):
            return ServiceResult.fail(
                "Please select a valid municipality to download.",
                error_code="INVALID_MUNICIPALITY",
            )

        def _download() -> CacheInfo:
            if not ctx.is_online:
                raise OfflineWriteRejected(
                    "You must be online to download data for offline use.",
                    operation="download_for_offline",
                )
            residents = self.remote.fetch_entities(municipality=municipality)
            centers = self.remote.fetch_evac_centers()

            info = CacheInfo(municipality, datetime.now().isoformat(timespec="seconds"))
            self.cache.put_collections(
                {
                    RESIDENTS: [r.to_record() for r in residents],
                    EVAC_CENTERS: [c.to_record() for c in centers],
                },
                metadata={CACHE_INFO_KEY: info.to_record()},
            )
            self.logger.info(
                f"Downloaded {len(residents)} residents and {len(centers)} centers for {municipality}"
            )
            return info

        return self.safe_execute(f"Downloading offline data for {municipality}", _download)

    def get_cache_info(self) -> ServiceResult:
        """Provenance of the current snapshot (data is None when nothing is cached)."""

        def _info() -> ServiceResult:
            record = self.cache.get_metadata(CACHE_INFO_KEY)
            info = CacheInfo.from_record(record) if record else None
            return ServiceResult.ok(
                info,
                metadata={
                    RESIDENTS: self.cache.count(RESIDENTS),
                    EVAC_CENTERS: self.cache.count(EVAC_CENTERS),
                },
            )

        return self.safe_execute("Reading offline cache info", _info)

    def clear_offline_data(self) -> ServiceResult:
        """Remove the snapshot and its provenance."""
        return self.safe_execute("Clearing offline data", self.cache.clear_all)

    def _cached_residents(self) -> List[Resident]:
        return _by_name(Resident.from_record(r) for r in self.cache.get_collection(RESIDENTS))

    def _cached_centers(self) -> List[EvacuationCenter]:
        centers = [EvacuationCenter.from_record(r) for r in self.cache.get_collection(EVAC_CENTERS)]
        return sorted(centers, key=lambda c: (c.name or "", c.id))

    def _cache_metadata(self) -> Dict[str, Any]:
        record = self.cache.get_metadata(CACHE_INFO_KEY)
        return {
            "source": SOURCE_CACHE,
            "warning": OFFLINE_WARNING,
            "cache_info": CacheInfo.from_record(record) if record else None,
        }

    # =========================================================================
    # READS
    # =========================================================================

    def load_residents(self, ctx: AppContext) -> ServiceResult:
        """
        Resident list with current status.

        Online without an active event, and offline, statuses are None.
        """

        def _load() -> ServiceResult:
            if not ctx.is_online:
                return ServiceResult.ok(with_status(self._cached_residents(), None), self._cache_metadata())

            residents = self.remote.fetch_entities()
            event = self.remote.fetch_active_event()
            result = None
            if event is not None:
                log = self.remote.fetch_status_log(event.id)
                result = resolve(residents, log, event.id)
            return ServiceResult.ok(
                with_status(residents, result),
                metadata={"source": SOURCE_REMOTE, "event": event},
            )

        return self.safe_execute("Loading residents", _load, default=[])

    def load_evac_centers(self, ctx: AppContext) -> ServiceResult:
        """Evacuation centers from Supabase, or the snapshot when offline."""

        def _load() -> ServiceResult:
            if not ctx.is_online:
                return ServiceResult.ok(self._cached_centers(), self._cache_metadata())
            return ServiceResult.ok(self.remote.fetch_evac_centers(), metadata={"source": SOURCE_REMOTE})

        return self.safe_execute("Loading evacuation centers", _load, default=[])

    def load_dashboard(
        self,
        ctx: AppContext,
        municipality: Optional[str] = None,
        barangay: Optional[str] = None,
    ) -> ServiceResult:
        """
        Status counts and evacuation center occupancy for a scope.

        Args:
            ctx: Operation context
            municipality: Municipality filter ("all"/None for every one)
            barangay: Barangay filter ("all"/None for every one)

        Returns:
            ServiceResult with a DashboardSnapshot
        """

        def _load() -> ServiceResult:
            if not ctx.is_online:
                residents = filter_by_scope(self._cached_residents(), municipality, barangay)
                centers = self._cached_centers()
                metadata = self._cache_metadata()
                snapshot = DashboardSnapshot(
                    event=None,
                    residents=residents,
                    result=resolve(residents, None, None, centers),
                    source=SOURCE_CACHE,
                    cache_info=metadata["cache_info"],
                )
                return ServiceResult.ok(snapshot, metadata)

            event = self.remote.fetch_active_event()
            if event is None:
                return ServiceResult.fail(
                    "No active disaster event. Status monitoring is paused.",
                    error_code="NO_ACTIVE_EVENT",
                )

            residents = self.remote.fetch_entities(municipality, barangay)
            ids = [r.id for r in residents]
            log = self.remote.fetch_status_log(event.id, ids) if ids else []
            centers = self.remote.fetch_evac_centers()
            snapshot = DashboardSnapshot(
                event=event,
                residents=residents,
                result=resolve(residents, log, event.id, centers),
            )
            return ServiceResult.ok(snapshot, metadata={"source": SOURCE_REMOTE})

        scope = " / ".join(s for s in (municipality, barangay) if s) or "all"
        empty = DashboardSnapshot(
            event=None,
            residents=[],
            result=resolve([], None, None),
            source=SOURCE_REMOTE if ctx.is_online else SOURCE_CACHE,
        )
        return self.safe_execute(f"Loading dashboard ({scope})", _load, default=empty)

    # =========================================================================
    # WRITES
    # =========================================================================

    def record_status_update(
        self,
        ctx: AppContext,
        resident_ids: Sequence[str],
        status: Union[StatusValue, str],
        evac_center_id: Optional[str] = None,
    ) -> ServiceResult:
        """
        Append one status log row per resident for the active event.

        Args:
            ctx: Operation context (must be online, user must not be a viewer)
            resident_ids: Residents to update (e.g. a whole family)
            status: New status; Unknown cannot be recorded
            evac_center_id: Kept only when the status is Evacuated

        Returns:
            ServiceResult with the number of rows appended
        """

        def _record() -> int:
            if not ctx.is_online:
                raise OfflineWriteRejected(
                    "Status updates are disabled while offline.",
                    operation="record_status_update",
                )
            if not ctx.can_record_status:
                raise PermissionDenied(
                    "Your role cannot update resident status.",
                    role=ctx.role,
                    operation="record_status_update",
                )

            ids = list(dict.fromkeys(str(i) for i in resident_ids))
            if not ids:
                raise DMAError("Please select at least one resident to update.", code="NO_RESIDENTS")
            try:
                value = StatusValue(status)
            except ValueError:
                value = None
            if value is None or value not in StatusValue.recordable():
                raise DMAError(
                    f"'{status}' is not a status that can be recorded.",
                    code="INVALID_STATUS",
                    details={"status": str(status)},
                )

            event = self.remote.fetch_active_event()
            if event is None:
                raise DMAError(
                    "No active disaster event. Status updates are disabled.",
                    code="NO_ACTIVE_EVENT",
                )

            updates = [StatusUpdate(i, value, event.id, evac_center_id) for i in ids]
            return self.remote.append_status_log(updates)

        return self.safe_execute("Recording status update", _record)


def build_offline_data_service(
    cache_path: Optional[Path] = None,
    show_user_messages: bool = True,
) -> OfflineDataService:
    """
    Wire the service from configuration.

    A missing Supabase configuration still gives a working service for
    offline reads; remote calls then fail with RemoteFetchFailed.
    """
    return OfflineDataService(
        remote=RemoteStore(get_cached_supabase_client()),
        cache=LocalObjectCache(cache_path),
        show_user_messages=show_user_messages,
    )
