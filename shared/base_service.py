"""
FastAPI service shell shared by Assistant Bridge services.

Every service gets request correlation, Prometheus metrics, ``/health`` and
``/metrics`` routes and a JSON error body for ``BridgeException``.
"""

import logging
import os
import time
from typing import Dict, List, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from shared.config import BridgeSettings, get_settings
from shared.errors import BridgeException
from shared.logging import clear_context, configure_logging, get_logger, set_request_id, to_logging_level
from shared.metrics import get_metrics_collector


REQUEST_ID_HEADER = "X-Request-ID"


class BaseService:
    """Base service class with common functionality."""

    version = "1.0.0"

    def __init__(
        self,
        service_name: str,
        settings: Optional[BridgeSettings] = None,
        cors_origins: Optional[List[str]] = None,
    ):
        self.service_name = service_name
        self.settings = settings or get_settings()
        self.cors_origins = cors_origins if cors_origins is not None else ["http://localhost:3000"]
        self._start_time = time.time()

        configure_logging(service_name, self.settings.log_level)
        self.logger = get_logger(service_name)
        # Per-instance registry.
        self.metrics = get_metrics_collector(service_name, registry=CollectorRegistry())

        self.app = FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Assistant Bridge - {self.service_name.title()} Service",
            version=self.version,
            docs_url=None if self.settings.is_production else "/docs",
            redoc_url=None if self.settings.is_production else "/redoc",
        )
        self._setup_middleware()
        self._setup_routes()
        self._setup_exception_handlers()

    def _setup_middleware(self):
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=self.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @self.app.middleware("http")
        async def correlate_and_time(request: Request, call_next):
            started = time.time()
            request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
            try:
                response = await call_next(request)
            finally:
                clear_context()

            duration = time.time() - started
            response.headers[REQUEST_ID_HEADER] = request_id
            self.metrics.record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=response.status_code,
                duration=duration
            )
            self.logger.info(
                "HTTP request",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2)
            )
            return response

    def _setup_routes(self):
        """Set up /health and /metrics."""

        @self.app.get("/health")
        async def health_check():
            try:
                dependencies = await self._check_dependencies()
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)}
                )

            status = "degraded" if "error" in dependencies.values() else "ok"
            self.metrics.record_health_check(status)
            return {
                "service": self.service_name,
                "status": status,
                "uptime_seconds": round(time.time() - self._start_time, 3),
                "dependencies": dependencies,
                "version": self.version,
                "commit": os.getenv("GIT_COMMIT", "unknown")
            }

        @self.app.get("/metrics")
        async def metrics_endpoint():
            return Response(
                content=generate_latest(self.metrics.registry),
                media_type=CONTENT_TYPE_LATEST
            )

    def _setup_exception_handlers(self):

        @self.app.exception_handler(BridgeException)
        async def bridge_exception_handler(request: Request, exc: BridgeException):
            log = self.logger.error if exc.status_code >= 500 else self.logger.warning
            log("Request failed", code=exc.code, message=exc.message, details=exc.details)
            self.metrics.record_error(exc.code)
            return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())

        @self.app.exception_handler(Exception)
        async def unhandled_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content={"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}
            )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Dependency name -> "ok" / "error" / other state. Override in subclasses."""
        return {}

    def run(self):
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.settings.host,
            port=self.settings.port,
            log_level=logging.getLevelName(to_logging_level(self.settings.log_level)).lower()
        )
