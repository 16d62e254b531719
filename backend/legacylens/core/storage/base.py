"""
Record store interface
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..records import is_terminal, ScanStatus
from ..error_handling.exceptions import ScanRecordImmutableException, ValidationException

IMMUTABLE_FIELDS = ("id", "repoUrl", "createdAt")
VALID_STATUSES = {status.value for status in ScanStatus}

_shared_locks: Dict[str, threading.Lock] = {}
_registry_lock = threading.Lock()


def shared_lock(key: str) -> threading.Lock:
    """One lock per persisted location, shared by every store instance in the process"""
    with _registry_lock:
        if key not in _shared_locks:
            _shared_locks[key] = threading.Lock()
        return _shared_locks[key]


class RecordStore(ABC):
    """
    Keyed storage for scan records

    Every operation is one serialized read-modify-write of the persisted
    representation. ``update`` is a shallow merge; use ``append_logs`` to
    extend the log sequence so concurrent appends are never lost.
    Records whose status is terminal reject further mutation.
    """

    backend: str = "base"

    @abstractmethod
    async def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Raises DuplicateScanException if the id exists"""

    @abstractmethod
    async def get(self, scan_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def update(self, scan_id: str, **fields: Any) -> Dict[str, Any]:
        """Raises ScanNotFoundException if the id is absent"""

    @abstractmethod
    async def append_logs(self, scan_id: str, logs: List[Dict[str, Any]]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def delete(self, scan_id: str) -> bool:
        """True if a record was removed"""

    @abstractmethod
    async def list_ids(self) -> List[str]:
        ...

    async def get_status(self) -> Dict[str, Any]:
        ids = await self.list_ids()
        return {"backend": self.backend, "records": len(ids)}


def apply_update(record: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    """Shallow-merge fields into a record, enforcing the lifecycle rules"""
    scan_id = record["id"]
    if is_terminal(record["status"]):
        raise ScanRecordImmutableException(scan_id, record["status"])

    for name in IMMUTABLE_FIELDS:
        if name in fields and fields[name] != record.get(name):
            raise ValidationException(f"Field '{name}' of scan '{scan_id}' cannot be modified")

    status = fields.get("status")
    if status is not None and status not in VALID_STATUSES:
        raise ValidationException(f"Unknown scan status '{status}'")

    merged = dict(record)
    merged.update(fields)
    return merged


def apply_append(record: Dict[str, Any], logs: List[Dict[str, Any]]) -> Dict[str, Any]:
    if is_terminal(record["status"]):
        raise ScanRecordImmutableException(record["id"], record["status"])

    merged = dict(record)
    merged["logs"] = list(record.get("logs", [])) + [dict(entry) for entry in logs]
    return merged
