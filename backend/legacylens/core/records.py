"""
Persisted scan record shape

Records are plain dicts with camelCase keys so the JSON file, the SQL row
and the HTTP body all share one representation.
"""

import time
from enum import Enum
from typing import Dict, Any


class ScanStatus(str, Enum):
    SCANNING = "scanning"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {ScanStatus.COMPLETED.value, ScanStatus.FAILED.value}

QUEUED_MESSAGE = "Scan queued, starting soon..."


def now_ms() -> int:
    return int(time.time() * 1000)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def empty_stats() -> Dict[str, Any]:
    return {
        "totalFiles": 0,
        "totalLines": 0,
        "languages": [],
        "frameworks": [],
        "criticalCount": 0,
        "highCount": 0,
        "mediumCount": 0,
        "lowCount": 0,
        "totalMinutes": 0,
        "totalHours": 0.0,
        "byCategory": {
            "security": 0,
            "reliability": 0,
            "maintainability": 0,
        },
    }


def new_scan_record(scan_id: str, repo_url: str) -> Dict[str, Any]:
    """Initial record written by Submit before the pipeline starts"""
    created_at = now_ms()
    return {
        "id": scan_id,
        "repoUrl": repo_url,
        "status": ScanStatus.SCANNING.value,
        "findings": [],
        "stats": empty_stats(),
        "logs": [
            {"timestamp": created_at, "phase": "plan", "message": QUEUED_MESSAGE}
        ],
        "createdAt": created_at,
    }
