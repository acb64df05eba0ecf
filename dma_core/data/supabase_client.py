# =============================================================================
# dma_core/data/supabase_client.py
# Supabase Client Configuration and Remote Store Reads/Writes
# =============================================================================

from __future__ import annotations
import os
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence
import logging

import streamlit as st
from supabase import Client, create_client

from dma_core.data.models import (
    DisasterEvent,
    EvacuationCenter,
    Resident,
    StatusLogEntry,
    StatusUpdate,
)
from dma_core.errors import RemoteFetchFailed

logger = logging.getLogger(__name__)


RESIDENTS_TABLE = "residents"
EVAC_CENTERS_TABLE = "evacuation_centers"
EVENTS_TABLE = "events"
STATUS_LOG_TABLE = "resident_status_log"


def _read_credentials() -> tuple:
    """
    Read Supabase credentials.

    Looks in .streamlit/secrets.toml first:
        [supabase]
        url = "https://your-project.supabase.co"
        key = "your-anon-key"

    and falls back to the SUPABASE_URL / SUPABASE_KEY environment variables.
    """
    try:
        section = st.secrets["supabase"]
        return section["url"], section["key"]
    except Exception as e:
        logger.debug(f"Supabase secrets not available, using environment: {e}")
    return os.getenv("SUPABASE_URL"), os.getenv("SUPABASE_KEY")


def get_supabase_client() -> Optional[Client]:
    """
    Initialize and return a Supabase client.

    Returns:
        Supabase client instance or None if not configured
    """
    url, key = _read_credentials()
    if not url or not key:
        logger.warning("Supabase credentials not found; remote store unavailable")
        return None

    try:
        return create_client(url, key)
    except Exception as e:
        logger.error(f"Failed to initialize Supabase client: {e}")
        return None


@st.cache_resource(ttl=3600)  # Cache for 1 hour, then refresh
def get_cached_supabase_client() -> Optional[Client]:
    """Get cached Supabase client (reused across sessions)."""
    return get_supabase_client()


def _chunks(values: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class RemoteStore:
    """
    Reads and appends against the hosted database.

    Every failure is raised as RemoteFetchFailed; nothing is retried here.
    """

    PAGE_SIZE = 1000    # Supabase returns at most 1000 rows per request
    IN_CHUNK = 200      # ids per "in" filter, keeps request URLs short

    def __init__(self, client: Optional[Client] = None):
        """
        Args:
            client: Supabase client (None means not configured)
        """
        self.client = client

    def is_connected(self) -> bool:
        """Check if Supabase client is available."""
        return self.client is not None

    def _require_client(self, table: str, operation: str) -> Client:
        if self.client is None:
            raise RemoteFetchFailed(
                "Remote store is not configured",
                table=table,
                operation=operation,
            )
        return self.client

    def _fetch_all(
        self,
        table: str,
        columns: str = "*",
        apply: Optional[Callable[[Any], Any]] = None,
        order_by: Sequence[str] = (),
    ) -> List[Dict[str, Any]]:
        """
        Fetch ALL matching rows, paging past the 1000 row limit.

        Args:
            table: Table name
            columns: Select expression
            apply: Adds filters to the query builder
            order_by: Columns to order by (ascending)

        Returns:
            List of row dicts
        """
        client = self._require_client(table, "select")
        all_data: List[Dict[str, Any]] = []
        offset = 0

        try:
            while True:
                query = client.table(table).select(columns)
                if apply is not None:
                    query = apply(query)
                for column in order_by:
                    query = query.order(column)

                response = query.range(offset, offset + self.PAGE_SIZE - 1).execute()
                batch = response.data or []
                all_data.extend(batch)

                # Fewer than a full page means we've reached the end
                if len(batch) < self.PAGE_SIZE:
                    break
                offset += self.PAGE_SIZE
        except Exception as e:
            raise RemoteFetchFailed(
                f"Error fetching data from {table}: {e}",
                table=table,
                operation="select",
            ) from e

        logger.debug(f"Fetched {len(all_data)} rows from {table}")
        return all_data

    # =========================================================================
    # READS
    # =========================================================================

    def fetch_active_event(self) -> Optional[DisasterEvent]:
        """The event currently marked Active, or None."""
        client = self._require_client(EVENTS_TABLE, "select")
        try:
            response = (
                client.table(EVENTS_TABLE)
                .select("*")
                .eq("status", "Active")
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise RemoteFetchFailed(
                f"Error fetching active event: {e}",
                table=EVENTS_TABLE,
                operation="select",
            ) from e

        if not response.data:
            logger.info("No active events found")
            return None
        return DisasterEvent.from_record(response.data[0])

    def fetch_entities(
        self,
        municipality: Optional[str] = None,
        barangay: Optional[str] = None,
    ) -> List[Resident]:
        """Residents in scope, ordered by last name."""

        def scope(query):
            if municipality and municipality != "all":
                query = query.eq("municipality", municipality)
            if barangay and barangay != "all":
                query = query.eq("barangay", barangay)
            return query

        rows = self._fetch_all(RESIDENTS_TABLE, apply=scope, order_by=("last_name", "id"))
        return [Resident.from_record(row) for row in rows]

    def fetch_status_log(
        self,
        event_id: str,
        entity_ids: Optional[Sequence[str]] = None,
    ) -> List[StatusLogEntry]:
        """
        Status log rows for an event, optionally limited to some residents.

        Args:
            event_id: Disaster event id
            entity_ids: Resident ids (None fetches the whole event)

        Returns:
            Rows ordered by timestamp, then id, within each request
        """
        columns = "id, resident_id, status, event_id, timestamp, evac_center_id"
        order = ("timestamp", "id")

        if entity_ids is None:
            rows = self._fetch_all(
                STATUS_LOG_TABLE,
                columns=columns,
                apply=lambda q: q.eq("event_id", event_id),
                order_by=order,
            )
        else:
            rows = []
            ids = list(dict.fromkeys(str(i) for i in entity_ids))
            for chunk in _chunks(ids, self.IN_CHUNK):
                rows.extend(self._fetch_all(
                    STATUS_LOG_TABLE,
                    columns=columns,
                    apply=lambda q, chunk=chunk: q.eq("event_id", event_id).in_("resident_id", list(chunk)),
                    order_by=order,
                ))

        return [StatusLogEntry.from_record(row) for row in rows]

    def fetch_evac_centers(self) -> List[EvacuationCenter]:
        """All evacuation centers."""
        rows = self._fetch_all(EVAC_CENTERS_TABLE, order_by=("name",))
        return [EvacuationCenter.from_record(row) for row in rows]

    # =========================================================================
    # WRITES
    # =========================================================================

    def append_status_log(self, updates: Sequence[StatusUpdate]) -> int:
        """
        Append status rows (bulk insert).

        Args:
            updates: Rows to append

        Returns:
            Number of rows appended
        """
        if not updates:
            return 0

        client = self._require_client(STATUS_LOG_TABLE, "insert")
        records = [u.to_record() for u in updates]
        try:
            client.table(STATUS_LOG_TABLE).insert(records).execute()
        except Exception as e:
            raise RemoteFetchFailed(
                f"Error updating status: {e}",
                table=STATUS_LOG_TABLE,
                operation="insert",
            ) from e

        logger.info(f"Appended {len(records)} status log rows")
        return len(records)
