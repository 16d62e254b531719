"""
Scan records in a SQL table (SQLAlchemy)
"""

import asyncio
import copy
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .base import RecordStore, apply_update, apply_append, shared_lock
from ...database import create_db_engine, create_session_factory, init_db
from ...models.scan import ScanRecordRow
from ..error_handling.exceptions import DuplicateScanException, ScanNotFoundException, StorageException
from ..logging.structured_logger import get_logger, EventType

logger = get_logger(__name__)


class SqlRecordStore(RecordStore):
    """
    One transaction per operation, serialized by a lock shared per database URL

    The lock keeps read-modify-write cycles ordered even on SQLite, which
    has no row-level locking to fall back on.
    """

    backend = "sql"

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = create_db_engine(database_url)
        self.session_factory = create_session_factory(self.engine)
        self.lock = shared_lock(database_url)
        init_db(self.engine)

    @contextmanager
    def _session(self):
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def _transact(self, operation: Callable) -> Any:
        with self.lock, self._session() as session:
            return operation(session)

    async def _run(self, operation: Callable, name: str) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._transact, operation)
        except SQLAlchemyError as e:
            raise StorageException(f"Scan store {name} failed: {e}", cause=e) from e

    def _require(self, session, scan_id: str) -> ScanRecordRow:
        row = session.get(ScanRecordRow, scan_id)
        if row is None:
            raise ScanNotFoundException(scan_id)
        return row

    async def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        scan_id = record["id"]

        def operation(session):
            if session.get(ScanRecordRow, scan_id) is not None:
                raise DuplicateScanException(scan_id)
            row = ScanRecordRow.from_record(copy.deepcopy(record))
            session.add(row)
            return row.to_record()

        created = await self._run(operation, "create")
        logger.debug(f"Created scan record {scan_id}", event_type=EventType.STORE_OPERATION)
        return created

    async def get(self, scan_id: str) -> Optional[Dict[str, Any]]:
        def operation(session):
            row = session.get(ScanRecordRow, scan_id)
            return copy.deepcopy(row.to_record()) if row is not None else None

        return await self._run(operation, "get")

    async def update(self, scan_id: str, **fields: Any) -> Dict[str, Any]:
        def operation(session):
            row = self._require(session, scan_id)
            merged = apply_update(row.to_record(), copy.deepcopy(fields))
            row.apply_record(merged)
            return copy.deepcopy(merged)

        return await self._run(operation, "update")

    async def append_logs(self, scan_id: str, logs: List[Dict[str, Any]]) -> Dict[str, Any]:
        def operation(session):
            row = self._require(session, scan_id)
            merged = apply_append(row.to_record(), logs)
            row.apply_record(merged)
            return copy.deepcopy(merged)

        return await self._run(operation, "append_logs")

    async def delete(self, scan_id: str) -> bool:
        def operation(session):
            row = session.get(ScanRecordRow, scan_id)
            if row is None:
                return False
            session.delete(row)
            return True

        deleted = await self._run(operation, "delete")
        if deleted:
            logger.info(f"Deleted scan record {scan_id}", event_type=EventType.STORE_OPERATION)
        return deleted

    async def list_ids(self) -> List[str]:
        def operation(session):
            return [row_id for (row_id,) in session.query(ScanRecordRow.id).order_by(ScanRecordRow.created_at)]

        return await self._run(operation, "list_ids")

    def close(self):
        self.engine.dispose()
