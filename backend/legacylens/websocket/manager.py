"""
Socket.IO connection manager for live scan updates
"""

import asyncio
from typing import Any, Dict, Optional, Set

import socketio

from .events import ScanEvent, SocketEventType
from ..config import settings
from ..core.progress.broker import ProgressBroker
from ..core.logging.structured_logger import get_logger, EventType

logger = get_logger(__name__)


class WebSocketManager:
    """
    Tracks which clients follow which scan and forwards progress events

    Progress events are queued by a broker listener and emitted by a pump
    task, so a slow socket never holds up the pipeline that published them.
    """

    def __init__(self, cors_allowed_origins: Any = "*", queue_size: int = 1000):
        self.sio = socketio.AsyncServer(
            async_mode='asgi',
            cors_allowed_origins=cors_allowed_origins,
            logger=False,
            engineio_logger=False
        )

        self.active_connections: Dict[str, Set[str]] = {}  # scan_id -> sids
        self.session_to_scans: Dict[str, Set[str]] = {}    # sid -> scan_ids
        self.all_sessions: Set[str] = set()

        self.queue_size = queue_size
        self.outbox: Optional[asyncio.Queue] = None
        self.pump_task: Optional[asyncio.Task] = None
        self.broker: Optional[ProgressBroker] = None
        self.dropped_events = 0

        self._setup_handlers()

    def _setup_handlers(self):

        @self.sio.event
        async def connect(sid, environ):
            logger.info(f"Socket client connected: {sid}", event_type=EventType.PROGRESS)
            self.all_sessions.add(sid)
            self.session_to_scans[sid] = set()

            await self.sio.emit(
                SocketEventType.CONNECTED.value,
                {'message': 'Connected to LegacyLens live updates', 'sid': sid},
                to=sid
            )
            return True

        @self.sio.event
        async def disconnect(sid):
            logger.info(f"Socket client disconnected: {sid}", event_type=EventType.PROGRESS)
            self.remove_session(sid)

        @self.sio.event
        async def subscribe_scan(sid, data):
            scan_id = (data or {}).get('scan_id')
            if not scan_id:
                await self.sio.emit(SocketEventType.ERROR.value, {'message': 'scan_id required'}, to=sid)
                return

            self.add_subscription(sid, scan_id)
            await self.sio.emit(
                SocketEventType.SUBSCRIBED.value,
                {'scan_id': scan_id, 'message': f'Subscribed to scan {scan_id}'},
                to=sid
            )

        @self.sio.event
        async def unsubscribe_scan(sid, data):
            scan_id = (data or {}).get('scan_id')
            if not scan_id:
                return

            self.remove_subscription(sid, scan_id)
            await self.sio.emit(SocketEventType.UNSUBSCRIBED.value, {'scan_id': scan_id}, to=sid)

    def add_subscription(self, sid: str, scan_id: str):
        self.active_connections.setdefault(scan_id, set()).add(sid)
        self.session_to_scans.setdefault(sid, set()).add(scan_id)

    def remove_subscription(self, sid: str, scan_id: str):
        if scan_id in self.active_connections:
            self.active_connections[scan_id].discard(sid)
            if not self.active_connections[scan_id]:
                del self.active_connections[scan_id]
        if sid in self.session_to_scans:
            self.session_to_scans[sid].discard(scan_id)

    def remove_session(self, sid: str):
        self.all_sessions.discard(sid)
        for scan_id in list(self.session_to_scans.get(sid, ())):
            self.remove_subscription(sid, scan_id)
        self.session_to_scans.pop(sid, None)

    # Progress channel bridge

    def attach(self, broker: ProgressBroker):
        if self.broker is broker:
            return
        if self.broker is not None:
            self.broker.remove_listener(self.on_progress)
        self.broker = broker
        broker.add_listener(self.on_progress)

    def detach(self):
        if self.broker is not None:
            self.broker.remove_listener(self.on_progress)
            self.broker = None

    def on_progress(self, scan_id: str, event: Dict[str, Any]):
        """Broker listener: queue the event if anyone follows this scan"""
        if self.outbox is None or scan_id not in self.active_connections:
            return
        if self.outbox.full():
            self.outbox.get_nowait()
            self.dropped_events += 1
        self.outbox.put_nowait(ScanEvent.from_progress(scan_id, event))

    async def start(self):
        if self.pump_task is not None and not self.pump_task.done():
            return
        self.outbox = asyncio.Queue(maxsize=self.queue_size)
        self.pump_task = asyncio.get_running_loop().create_task(self._pump())

    async def stop(self):
        if self.pump_task is not None:
            self.pump_task.cancel()
            try:
                await self.pump_task
            except asyncio.CancelledError:
                pass
        self.pump_task = None
        self.outbox = None

    async def _pump(self):
        while True:
            event = await self.outbox.get()
            try:
                await self.broadcast_scan_event(event)
            except Exception as e:
                logger.warning(f"Failed to emit {event.event_type.value} for scan {event.scan_id}",
                               error=e, event_type=EventType.PROGRESS)

    async def broadcast_scan_event(self, event: ScanEvent):
        subscribers = list(self.active_connections.get(event.scan_id, ()))
        for sid in subscribers:
            await self.sio.emit(event.event_type.value, event.to_dict(), to=sid)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_connections": len(self.all_sessions),
            "active_scans": len(self.active_connections),
            "connections_per_scan": {
                scan_id: len(sessions)
                for scan_id, sessions in self.active_connections.items()
            },
            "dropped_events": self.dropped_events
        }


# Global WebSocket manager instance
ws_manager = WebSocketManager(
    cors_allowed_origins=settings.backend_cors_origins,
    queue_size=settings.progress_queue_size
)
