"""
Socket.IO event definitions
"""

from enum import Enum
from typing import Dict, Any, Optional
from datetime import datetime

from pydantic import BaseModel, Field


class SocketEventType(Enum):
    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"

    SCAN_LOG = "scan_log"
    SCAN_COMPLETED = "scan_completed"
    SCAN_FAILED = "scan_failed"

    ERROR = "error"


class ScanEvent(BaseModel):
    event_type: SocketEventType
    scan_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "scan_id": self.scan_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat()
        }

    @classmethod
    def from_progress(cls, scan_id: str, event: Dict[str, Any]) -> "ScanEvent":
        """Map a progress channel event onto a Socket.IO event"""
        kind = event.get("type")
        if kind == "log":
            return cls(event_type=SocketEventType.SCAN_LOG, scan_id=scan_id, data=event["log"])
        if kind == "complete":
            event_type = (
                SocketEventType.SCAN_COMPLETED if event.get("status") == "completed"
                else SocketEventType.SCAN_FAILED
            )
            data = {key: value for key, value in event.items() if key != "type"}
            return cls(event_type=event_type, scan_id=scan_id, data=data)
        return cls(event_type=SocketEventType.ERROR, scan_id=scan_id, data=dict(event))
