# =============================================================================
# dma_core/data/models.py
# Record Types for Residents, Evacuation Centers, Events and the Status Log
# =============================================================================
"""
Typed records exchanged between the remote store, the offline cache and the
status resolution engine.

Entities (residents, evacuation centers) never carry a status. Status is
always derived from the append-only ``resident_status_log`` and exposed
through the read-only ``ResolvedEntity`` view.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd


class StatusValue(str, Enum):
    """Resident status values."""
    SAFE = "Safe"
    EVACUATED = "Evacuated"
    INJURED = "Injured"
    MISSING = "Missing"
    DECEASED = "Deceased"
    UNKNOWN = "Unknown"         # Synthesized default, never written to the log

    @classmethod
    def recordable(cls) -> List[StatusValue]:
        """Statuses that may be written to the status log."""
        return [s for s in cls if s is not cls.UNKNOWN]


def coerce_timestamp(value: Any) -> datetime:
    """Parse an ISO string or datetime into a timezone-aware UTC datetime."""
    if value is None or value == "":
        raise ValueError("Status log entry has no timestamp")
    ts = pd.Timestamp(value)
    if pd.isna(ts):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    else:
        ts = ts.tz_convert("UTC")
    return ts.to_pydatetime()


def _split_record(cls, record: Dict[str, Any]) -> tuple:
    """Split a raw row into known dataclass fields and leftover columns."""
    known = {f.name for f in fields(cls) if f.name != "extra"}
    values = {k: v for k, v in record.items() if k in known}
    extra = {k: v for k, v in record.items() if k not in known}
    return values, extra


@dataclass
class Resident:
    """Registered resident. Identity is ``id``; everything else is descriptive."""
    id: str
    first_name: str = ""
    last_name: str = ""
    municipality: str = ""
    barangay: str = ""
    dob: Optional[str] = None
    age: Optional[int] = None
    sex: Optional[str] = None
    purok: Optional[str] = None
    street: Optional[str] = None
    is_pwd: Optional[bool] = None
    head_of_family_name: Optional[str] = None
    is_head_of_family: Optional[bool] = None
    qr_code_url: Optional[str] = None
    created_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Resident:
        values, extra = _split_record(cls, record)
        # Rows from the status RPC may carry a derived status; it is not part of the entity
        extra.pop("status", None)
        values["id"] = str(values["id"])
        return cls(**values, extra=extra)

    def to_record(self) -> Dict[str, Any]:
        record = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "extra"}
        record.update(self.extra)
        return record


@dataclass
class EvacuationCenter:
    """Evacuation center with a fixed capacity."""
    id: str
    name: str = ""
    barangay: str = ""
    capacity: int = 0
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> EvacuationCenter:
        values, extra = _split_record(cls, record)
        # Occupancy is derived from the status log, never trusted from the row
        extra.pop("occupancy", None)
        values["id"] = str(values["id"])
        values["capacity"] = int(values.get("capacity") or 0)
        values["name"] = values.get("name") or ""
        return cls(**values, extra=extra)

    def to_record(self) -> Dict[str, Any]:
        record = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "extra"}
        record.update(self.extra)
        return record


@dataclass
class DisasterEvent:
    """Disaster event. Only one event is expected to be ``Active`` at a time."""
    id: str
    name: str = ""
    type: str = "Other"
    status: str = "Monitoring"
    description: Optional[str] = None
    affected_locations: Dict[str, List[str]] = field(default_factory=dict)
    created_at: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == "Active"

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> DisasterEvent:
        values, _ = _split_record(cls, record)
        values["id"] = str(values["id"])
        values["affected_locations"] = values.get("affected_locations") or {}
        return cls(**values)


@dataclass(frozen=True)
class StatusLogEntry:
    """
    One append-only status fact for a resident within a disaster event.

    ``log_id`` is the server-assigned sequence number (absent for entries
    not yet written).
    """
    entity_id: str
    status: StatusValue
    event_id: str
    timestamp: datetime
    evac_center_id: Optional[str] = None
    log_id: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "status", StatusValue(self.status))
        object.__setattr__(self, "timestamp", coerce_timestamp(self.timestamp))
        object.__setattr__(self, "entity_id", str(self.entity_id))
        object.__setattr__(self, "event_id", str(self.event_id))
        # Blank center ids from forms mean "no center"
        center = self.evac_center_id
        object.__setattr__(self, "evac_center_id", str(center) if center not in (None, "") else None)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> StatusLogEntry:
        """Build from a ``resident_status_log`` row."""
        return cls(
            entity_id=record["resident_id"],
            status=record["status"],
            event_id=record["event_id"],
            timestamp=record["timestamp"],
            evac_center_id=record.get("evac_center_id") or None,
            log_id=record.get("id"),
        )


@dataclass(frozen=True)
class StatusUpdate:
    """A status log row about to be appended; the server stamps ``timestamp`` and ``id``."""
    entity_id: str
    status: StatusValue
    event_id: str
    evac_center_id: Optional[str] = None

    def __post_init__(self):
        status = StatusValue(self.status)
        if status is StatusValue.UNKNOWN:
            raise ValueError("'Unknown' is a derived status and cannot be recorded")
        object.__setattr__(self, "status", status)
        # Only evacuees are tied to a center
        if status is not StatusValue.EVACUATED:
            object.__setattr__(self, "evac_center_id", None)

    def to_record(self) -> Dict[str, Any]:
        return {
            "resident_id": str(self.entity_id),
            "status": self.status.value,
            "event_id": str(self.event_id),
            "evac_center_id": self.evac_center_id or None,
        }


@dataclass(frozen=True)
class ResolvedEntity:
    """
    Read-only view of an entity together with its derived status.

    ``status`` is ``None`` when status is not available (offline, or no
    active event). Attribute access falls through to the wrapped entity.
    """
    entity: Any
    status: Optional[StatusValue] = None
    evac_center_id: Optional[str] = None

    def __getattr__(self, name: str) -> Any:
        if name == "entity":
            raise AttributeError(name)
        return getattr(self.entity, name)


@dataclass(frozen=True)
class CacheInfo:
    """Provenance of the offline snapshot."""
    municipality: str
    timestamp: str

    def to_record(self) -> Dict[str, str]:
        return {"municipality": self.municipality, "timestamp": self.timestamp}

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> CacheInfo:
        return cls(municipality=record["municipality"], timestamp=record["timestamp"])


@dataclass(frozen=True)
class User:
    """Signed-in user."""
    id: str
    role: str = "viewer"        # admin | encoder | viewer
    email: Optional[str] = None
    assigned_area: Optional[str] = None
