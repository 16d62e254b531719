import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import socketio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .api.routes import scans, roadmap, websocket
from .core.cache.cache_manager import cache_manager
from .core.error_handling.exceptions import LegacyLensException, http_status_for
from .core.error_handling.error_handler import global_error_handler
from .core.logging.structured_logger import (
    get_logger, configure_logging, set_request_id, EventType
)
from .core.pipeline.service import ScanService, build_scan_service
from .core.resilience.circuit_breaker import circuit_breaker_manager
from .core.resilience.rate_limiter import rate_limiter_manager
from .websocket.manager import ws_manager

logger = get_logger(__name__)

VERSION = "1.0.0"


def create_app(scan_service: Optional[ScanService] = None) -> FastAPI:
    configure_logging(settings.log_level)
    service = scan_service or build_scan_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.redis_enabled:
            await cache_manager.initialize()
        ws_manager.attach(service.broker)
        await ws_manager.start()
        logger.info(f"{settings.app_name} API started", event_type=EventType.SYSTEM_EVENT)

        yield

        # In-flight scans run to completion before shutdown
        await service.wait_for_idle()
        await ws_manager.stop()
        ws_manager.detach()
        await cache_manager.close()
        logger.info(f"{settings.app_name} API stopped", event_type=EventType.SYSTEM_EVENT)

    app = FastAPI(
        title="LegacyLens",
        description="Scans GitHub repositories for technical debt and builds a refactoring roadmap",
        version=VERSION,
        lifespan=lifespan
    )
    app.state.scan_service = service

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.backend_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id_value = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        set_request_id(request_id_value)
        start_time = time.time()

        response = await call_next(request)

        logger.api_response(request.method, request.url.path, response.status_code,
                            (time.time() - start_time) * 1000)
        response.headers["X-Request-ID"] = request_id_value
        return response

    # Include routers
    app.include_router(scans.router, prefix="/api/scans", tags=["scans"])
    app.include_router(roadmap.router, prefix="/api/roadmap", tags=["roadmap"])
    app.include_router(websocket.router, prefix="/api/websocket", tags=["websocket"])

    @app.get("/")
    async def root():
        return {"message": "LegacyLens API", "status": "running"}

    @app.get("/health")
    async def health_check():
        """Store, cache and resilience status"""
        try:
            store_status = await service.store.get_status()
            status = "healthy"
        except LegacyLensException as e:
            store_status = {"backend": service.store.backend, "error": e.message}
            status = "degraded"

        return {
            "status": status,
            "version": VERSION,
            "timestamp": datetime.utcnow().isoformat(),
            "store": store_status,
            "cache": await cache_manager.get_cache_stats(),
            "scans": service.get_stats(),
            "progress": service.broker.get_stats(),
            "circuit_breakers": circuit_breaker_manager.get_all_metrics(),
            "rate_limiters": rate_limiter_manager.get_all_metrics(),
            "error_handlers": global_error_handler.get_all_metrics(),
        }

    @app.exception_handler(LegacyLensException)
    async def legacylens_exception_handler(request: Request, exc: LegacyLensException):
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}",
                       event_type=EventType.ERROR_OCCURRED)
        return JSONResponse(status_code=http_status_for(exc), content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}", error=exc,
                     event_type=EventType.ERROR_OCCURRED)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error occurred"}
        )

    return app


app = create_app()

# Create Socket.IO app
# Run with: uvicorn legacylens.main:socket_app --port 8000
socket_app = socketio.ASGIApp(ws_manager.sio, app)

__all__ = ['app', 'socket_app', 'create_app']
