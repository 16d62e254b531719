from fastapi import Request

from ..core.pipeline.service import ScanService


def get_scan_service(request: Request) -> ScanService:
    return request.app.state.scan_service
