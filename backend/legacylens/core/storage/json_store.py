"""
Scan records kept in a single JSON file

Every operation takes the file's lock, reads the whole document, applies its
change and writes the document back atomically (temp file, fsync,
os.replace). The blocking part runs in the default executor, so the lock is
never held across an await and never blocks the event loop.
"""

import asyncio
import copy
import json
import os
import tempfile
from typing import Any, Callable, Dict, List, Optional

from .base import RecordStore, apply_update, apply_append, shared_lock
from ..error_handling.exceptions import (
    DuplicateScanException, ScanNotFoundException, StorageException, ValidationException
)
from ..logging.structured_logger import get_logger, EventType

logger = get_logger(__name__)


class JsonFileRecordStore(RecordStore):

    backend = "json"

    def __init__(self, path: str):
        self.path = os.path.abspath(path)
        self.lock = shared_lock(self.path)

    # Sync helpers, always called with self.lock held

    def _read_all(self) -> Dict[str, Dict[str, Any]]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(
                f"Scan store at {self.path} is unreadable, resetting to empty",
                event_type=EventType.STORE_OPERATION,
                metadata={"error": str(e)}
            )
            self._write_all({})
            return {}

        if not isinstance(data, dict):
            logger.warning(
                f"Scan store at {self.path} does not hold an object, resetting to empty",
                event_type=EventType.STORE_OPERATION
            )
            self._write_all({})
            return {}
        return data

    def _write_all(self, data: Dict[str, Dict[str, Any]]):
        directory = os.path.dirname(self.path)
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(prefix=".scans-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _transact(self, operation: Callable[[Dict[str, Dict[str, Any]]], Any]) -> Any:
        with self.lock:
            return operation(self._read_all())

    async def _run(self, operation: Callable[[Dict[str, Dict[str, Any]]], Any], name: str) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._transact, operation)
        except OSError as e:
            raise StorageException(f"Scan store {name} failed: {e}", cause=e) from e

    # RecordStore

    async def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        scan_id = record.get("id")
        if not scan_id:
            raise ValidationException("Scan record needs an id")

        def operation(data):
            if scan_id in data:
                raise DuplicateScanException(scan_id)
            data[scan_id] = copy.deepcopy(record)
            self._write_all(data)
            return copy.deepcopy(data[scan_id])

        created = await self._run(operation, "create")
        logger.debug(f"Created scan record {scan_id}", event_type=EventType.STORE_OPERATION)
        return created

    async def get(self, scan_id: str) -> Optional[Dict[str, Any]]:
        def operation(data):
            record = data.get(scan_id)
            return copy.deepcopy(record) if record is not None else None

        return await self._run(operation, "get")

    async def update(self, scan_id: str, **fields: Any) -> Dict[str, Any]:
        def operation(data):
            if scan_id not in data:
                raise ScanNotFoundException(scan_id)
            data[scan_id] = apply_update(data[scan_id], copy.deepcopy(fields))
            self._write_all(data)
            return copy.deepcopy(data[scan_id])

        return await self._run(operation, "update")

    async def append_logs(self, scan_id: str, logs: List[Dict[str, Any]]) -> Dict[str, Any]:
        def operation(data):
            if scan_id not in data:
                raise ScanNotFoundException(scan_id)
            data[scan_id] = apply_append(data[scan_id], logs)
            self._write_all(data)
            return copy.deepcopy(data[scan_id])

        return await self._run(operation, "append_logs")

    async def delete(self, scan_id: str) -> bool:
        def operation(data):
            if scan_id not in data:
                return False
            del data[scan_id]
            self._write_all(data)
            return True

        deleted = await self._run(operation, "delete")
        if deleted:
            logger.info(f"Deleted scan record {scan_id}", event_type=EventType.STORE_OPERATION)
        return deleted

    async def list_ids(self) -> List[str]:
        return await self._run(lambda data: list(data.keys()), "list_ids")
