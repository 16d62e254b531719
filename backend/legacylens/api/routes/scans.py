"""
API routes for repository scans
"""
import json

from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import StreamingResponse

from ..deps import get_scan_service
from ...core.error_handling.exceptions import InvalidRepositoryUrlException
from ...core.pipeline.service import ScanService
from ...core.logging.structured_logger import get_logger, EventType
from ...schemas.scan import ScanCreate, ScanSubmitted, ScanList, ScanRecord, ScanDeleted

logger = get_logger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def sse_message(event) -> str:
    return f"data: {json.dumps(event)}\n\n"


@router.post("", response_model=ScanSubmitted, status_code=202)
async def create_scan(scan_data: ScanCreate, service: ScanService = Depends(get_scan_service)):
    """
    Start a scan; returns as soon as the record exists
    """
    try:
        scan_id = await service.submit(scan_data.repoUrl)
    except InvalidRepositoryUrlException as e:
        raise HTTPException(status_code=400, detail=e.message)

    return ScanSubmitted(
        scanId=scan_id,
        statusUrl=f"/api/scans/{scan_id}",
        streamUrl=f"/api/scans/{scan_id}/stream",
    )


@router.get("", response_model=ScanList)
async def list_scans(service: ScanService = Depends(get_scan_service)):
    scan_ids = await service.list_ids()
    return ScanList(scanIds=scan_ids, total=len(scan_ids))


@router.get("/{scan_id}", response_model=ScanRecord)
async def get_scan(scan_id: str, service: ScanService = Depends(get_scan_service)):
    record = await service.get_record(scan_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Scan not found")
    return record


@router.get("/{scan_id}/stream")
async def stream_scan(scan_id: str, service: ScanService = Depends(get_scan_service)):
    """
    Server-sent events: connected, then log events, then one complete event
    """
    async def event_stream():
        logger.debug(f"SSE client connected for scan {scan_id}", event_type=EventType.PROGRESS)
        yield sse_message({"type": "connected", "scanId": scan_id})

        progress = service.stream_progress(scan_id)
        try:
            async for event in progress:
                yield sse_message(event)
        finally:
            await progress.aclose()
            logger.debug(f"SSE stream closed for scan {scan_id}", event_type=EventType.PROGRESS)

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.delete("/{scan_id}", response_model=ScanDeleted)
async def delete_scan(scan_id: str, service: ScanService = Depends(get_scan_service)):
    if not await service.delete_record(scan_id):
        raise HTTPException(status_code=404, detail="Scan not found")

    logger.info(f"Deleted scan {scan_id}", event_type=EventType.STORE_OPERATION)
    return ScanDeleted(scanId=scan_id)
