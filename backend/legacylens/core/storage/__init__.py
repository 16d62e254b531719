"""
Record store backends
"""

import os

from .base import RecordStore
from .json_store import JsonFileRecordStore
from .sql_store import SqlRecordStore


def create_record_store(settings) -> RecordStore:
    """Build the store selected by ``record_store_backend``"""
    backend = settings.record_store_backend.lower()
    if backend == "json":
        return JsonFileRecordStore(os.path.join(settings.data_dir, settings.scans_file))
    if backend == "sql":
        return SqlRecordStore(settings.database_url)
    raise ValueError(f"Unknown record store backend '{settings.record_store_backend}'")


__all__ = ["RecordStore", "JsonFileRecordStore", "SqlRecordStore", "create_record_store"]
