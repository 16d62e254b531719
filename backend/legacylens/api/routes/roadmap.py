"""
Markdown roadmap download
"""
from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import Response

from ..deps import get_scan_service
from ...core.pipeline.service import ScanService
from ...core.records import ScanStatus
from ...core.roadmap import generate_roadmap, roadmap_filename
from ...core.logging.structured_logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/{scan_id}")
async def download_roadmap(scan_id: str, service: ScanService = Depends(get_scan_service)):
    record = await service.get_record(scan_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Scan not found")

    if record["status"] != ScanStatus.COMPLETED.value:
        message = (
            "Scan is still in progress. Please wait for completion."
            if record["status"] == ScanStatus.SCANNING.value
            else "Scan failed. No roadmap available."
        )
        raise HTTPException(status_code=409, detail=message)

    markdown = generate_roadmap(record)
    logger.info(f"Roadmap generated for scan {scan_id}: {len(markdown)} characters")

    return Response(
        content=markdown,
        media_type="text/markdown; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{roadmap_filename(record)}"'},
    )
