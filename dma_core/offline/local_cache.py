# =============================================================================
# dma_core/offline/local_cache.py
# Local SQLite Object Cache for Offline Operations
# =============================================================================
"""
LocalObjectCache - SQLite-backed mirror of server records for offline use.

Features:
- Named collections (residents, evac_centers) stored as JSON blobs keyed by id
- Single-row key/value metadata table
- Whole-collection replace in one transaction (clear then bulk insert)
- Thread-safe operations
"""

from __future__ import annotations
import json
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging

import pandas as pd
import numpy as np

from dma_core.errors import StorageUnavailable

logger = logging.getLogger(__name__)


RESIDENTS = "residents"
EVAC_CENTERS = "evac_centers"
METADATA = "metadata"

CACHE_INFO_KEY = "cacheInfo"


def _json_default(value: Any) -> Any:
    """Serialize values json cannot handle natively."""
    if isinstance(value, (datetime, pd.Timestamp)):
        return value.isoformat()
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    if isinstance(value, np.bool_):
        return bool(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class LocalObjectCache:
    """
    Durable client-side mirror of selected entity collections.

    The cache is a read-only snapshot: records are only ever written by a
    full replace of a collection.
    """

    # Default database location
    DEFAULT_DB_PATH = Path(__file__).parent.parent.parent / "local_data" / "dma_offline.db"

    COLLECTIONS = (RESIDENTS, EVAC_CENTERS)

    SCHEMA = {
        RESIDENTS: """
            CREATE TABLE IF NOT EXISTS residents (
                id TEXT PRIMARY KEY,
                data_json TEXT NOT NULL,
                cached_at TEXT NOT NULL
            )
        """,
        EVAC_CENTERS: """
            CREATE TABLE IF NOT EXISTS evac_centers (
                id TEXT PRIMARY KEY,
                data_json TEXT NOT NULL,
                cached_at TEXT NOT NULL
            )
        """,
        METADATA: """
            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT NOT NULL
            )
        """,
    }

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize local cache. Nothing is opened until first use.

        Args:
            db_path: Path to SQLite database file. Defaults to DMA_CACHE_PATH
                or local_data/dma_offline.db.
        """
        env_path = os.getenv("DMA_CACHE_PATH")
        self.db_path = Path(db_path or env_path or self.DEFAULT_DB_PATH)
        self._local = threading.local()
        self._write_lock = threading.RLock()
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection, creating the schema on first use."""
        if getattr(self._local, "connection", None) is None:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=10)
                conn.row_factory = sqlite3.Row
                self._ensure_schema(conn)
            except (sqlite3.Error, OSError) as e:
                raise StorageUnavailable(
                    f"Offline store could not be opened: {e}",
                    path=str(self.db_path),
                ) from e
            self._local.connection = conn
        return self._local.connection

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        if self._initialized:
            return
        for table_name, schema in self.SCHEMA.items():
            conn.execute(schema)
            logger.debug(f"Created/verified table: {table_name}")
        conn.commit()
        self._initialized = True
        logger.info(f"Offline cache initialized at: {self.db_path}")

    @contextmanager
    def transaction(self, collection: Optional[str] = None):
        """Context manager for a write transaction; storage failures become StorageUnavailable."""
        with self._write_lock:
            conn = self._get_connection()
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.commit()
            except (sqlite3.Error, OSError) as e:
                conn.rollback()
                raise StorageUnavailable(
                    f"Offline store write failed: {e}",
                    collection=collection,
                    path=str(self.db_path),
                ) from e
            except Exception:
                conn.rollback()
                raise

    def _check_collection(self, name: str) -> None:
        if name not in self.COLLECTIONS:
            raise ValueError(
                f"Unknown collection '{name}'. Expected one of {', '.join(self.COLLECTIONS)}"
            )

    @staticmethod
    def _prepare_rows(name: str, records: Iterable[Mapping[str, Any]]) -> List[tuple]:
        now = datetime.now().isoformat()
        rows = []
        for record in records:
            record_id = record.get("id")
            if record_id is None or record_id == "":
                raise ValueError(f"Record without 'id' cannot be cached in '{name}'")
            rows.append((str(record_id), json.dumps(dict(record), default=_json_default), now))
        return rows

    # =========================================================================
    # COLLECTIONS
    # =========================================================================

    def put_collection(self, name: str, records: Iterable[Mapping[str, Any]]) -> int:
        """
        Replace the entire named collection with ``records``.

        Args:
            name: Collection name (residents, evac_centers)
            records: Records keyed by their ``id`` field

        Returns:
            Number of records stored
        """
        return self.put_collections({name: records})[name]

    def put_collections(
        self,
        snapshot: Mapping[str, Iterable[Mapping[str, Any]]],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, int]:
        """
        Replace several collections in one transaction.

        Readers never observe a partially cleared or partially populated
        collection: the old contents stay visible until commit.

        Args:
            snapshot: Collection name -> records
            metadata: Metadata keys written in the same transaction

        Returns:
            Collection name -> number of records stored
        """
        prepared = {}
        for name, records in snapshot.items():
            self._check_collection(name)
            prepared[name] = self._prepare_rows(name, records)
        meta_rows = [
            (key, json.dumps(value, default=_json_default), datetime.now().isoformat())
            for key, value in (metadata or {}).items()
        ]

        label = ",".join(prepared)
        with self.transaction(label) as conn:
            for name, rows in prepared.items():
                conn.execute(f"DELETE FROM {name}")
                # INSERT OR REPLACE: duplicate ids in one batch keep the last record
                conn.executemany(
                    f"INSERT OR REPLACE INTO {name} (id, data_json, cached_at) VALUES (?, ?, ?)",
                    rows,
                )
            if meta_rows:
                conn.executemany(
                    "INSERT OR REPLACE INTO metadata (key, value, updated_at) VALUES (?, ?, ?)",
                    meta_rows,
                )

        counts = {name: len(rows) for name, rows in prepared.items()}
        logger.info(f"Cached collections: {counts}")
        return counts

    def get_collection(self, name: str) -> List[Dict[str, Any]]:
        """Return every record in the collection, or an empty list if never populated."""
        self._check_collection(name)
        try:
            conn = self._get_connection()
            rows = conn.execute(f"SELECT data_json FROM {name}").fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailable(
                f"Offline store read failed: {e}",
                collection=name,
                path=str(self.db_path),
            ) from e
        return [json.loads(row["data_json"]) for row in rows]

    def count(self, name: str) -> int:
        """Number of records in a collection."""
        self._check_collection(name)
        try:
            row = self._get_connection().execute(f"SELECT COUNT(*) AS n FROM {name}").fetchone()
        except sqlite3.Error as e:
            raise StorageUnavailable(
                f"Offline store read failed: {e}",
                collection=name,
                path=str(self.db_path),
            ) from e
        return row["n"]

    # =========================================================================
    # METADATA
    # =========================================================================

    def get_metadata(self, key: str, default: Any = None) -> Any:
        """Get a metadata value, or ``default`` when absent."""
        try:
            row = self._get_connection().execute(
                "SELECT value FROM metadata WHERE key = ?",
                [key],
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageUnavailable(
                f"Offline store read failed: {e}",
                collection=METADATA,
                path=str(self.db_path),
            ) from e
        if row is None:
            return default
        return json.loads(row["value"])

    def set_metadata(self, key: str, value: Any) -> None:
        """Set a metadata value."""
        value_json = json.dumps(value, default=_json_default)
        with self.transaction(METADATA) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO metadata (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                [key, value_json, datetime.now().isoformat()],
            )

    # =========================================================================
    # RESET
    # =========================================================================

    def clear_all(self) -> None:
        """Empty every managed collection and the metadata table atomically."""
        with self.transaction("all") as conn:
            for name in self.COLLECTIONS:
                conn.execute(f"DELETE FROM {name}")
            conn.execute("DELETE FROM metadata")
        logger.info("Offline cache cleared")

    def close(self) -> None:
        """Close this thread's database connection."""
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            conn.close()
            self._local.connection = None
