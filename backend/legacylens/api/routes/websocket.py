"""
Socket.IO statistics
"""

from fastapi import APIRouter

from ...websocket.manager import ws_manager

router = APIRouter()


@router.get("/connections")
async def get_websocket_connections():
    """Current Socket.IO connection statistics"""
    return ws_manager.get_stats()
