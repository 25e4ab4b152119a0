"""
FastAPI service shell for the Player Cache service.

Provides request correlation, request metrics, liveness/readiness/metrics
endpoints, error translation and a lifespan that subclasses hook into.
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from shared.config import ServiceConfig
from shared.errors import ErrorResponse, PlayerCacheError
from shared.logging import clear_context, configure_logging, get_logger, get_request_id, set_request_id
from shared.metrics import MetricsCollector, get_metrics_collector

VERSION = "1.0.0"


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, config: ServiceConfig, metrics: Optional[MetricsCollector] = None):
        self.config = config
        self.service_name = config.service_name
        configure_logging(self.service_name, config.log_level, config.log_format)

        self.logger = get_logger(f"{self.service_name}.service")
        self.metrics = metrics or get_metrics_collector(self.service_name)
        self._start_time = time.time()

        self.app = FastAPI(
            title="Player Cache Service",
            description="Caching proxy for the chess federation member API",
            version=VERSION,
            docs_url="/docs" if config.env == "local" else None,
            redoc_url=None,
            lifespan=self._lifespan,
        )
        self._setup_middleware()
        self._setup_exception_handlers()
        self._setup_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.startup()
        self.logger.info("Service started", addr=self.config.server_addr)
        try:
            yield
        finally:
            self.logger.info("Service shutting down")
            await self.shutdown()
            self.logger.info("Service stopped")

    async def startup(self) -> None:
        """Acquire external resources. Override in subclasses."""

    async def shutdown(self) -> None:
        """Release external resources. Override in subclasses."""

    async def _check_dependencies(self) -> Dict[str, str]:
        """Map each dependency to ``ok`` or ``error``. Override in subclasses."""
        return {}

    def _setup_middleware(self):
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "OPTIONS"],
            allow_headers=["*"],
        )

        @self.app.middleware("http")
        async def request_context(request: Request, call_next):
            request_id = set_request_id(request.headers.get("X-Request-ID"))
            start_time = time.perf_counter()
            try:
                response = await call_next(request)
            finally:
                clear_context()
            duration = time.perf_counter() - start_time

            # Label by route template so player ids don't explode cardinality
            route = request.scope.get("route")
            endpoint = getattr(route, "path", "unmatched")
            self.metrics.record_http_request(request.method, endpoint, response.status_code, duration)

            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
                request_id=request_id,
            )
            response.headers["X-Request-ID"] = request_id
            return response

    def _setup_exception_handlers(self):
        @self.app.exception_handler(PlayerCacheError)
        async def player_cache_error_handler(request: Request, exc: PlayerCacheError):
            log = self.logger.error if exc.status_code >= 500 else self.logger.warning
            log(
                "Request failed",
                code=exc.code,
                message=exc.message,
                details=exc.details,
                path=request.url.path,
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())

        @self.app.exception_handler(Exception)
        async def unhandled_error_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            body = ErrorResponse(trace_id=get_request_id(), code="INTERNAL_ERROR", message="Internal server error")
            return JSONResponse(status_code=500, content=body.model_dump())

    def _setup_routes(self):
        @self.app.get("/health")
        async def health():
            """Liveness: the process is up."""
            self.metrics.record_health_check("ok")
            return {
                "service": self.service_name,
                "status": "ok",
                "uptime_seconds": round(time.time() - self._start_time, 3),
                "version": VERSION,
                "commit": os.getenv("GIT_COMMIT", "unknown"),
            }

        @self.app.get("/ready")
        async def ready():
            """Readiness: every dependency answers."""
            dependencies = await self._check_dependencies()
            is_ready = all(status == "ok" for status in dependencies.values())
            self.metrics.record_health_check("ok" if is_ready else "error")
            return JSONResponse(
                status_code=200 if is_ready else 503,
                content={
                    "service": self.service_name,
                    "status": "ready" if is_ready else "not ready",
                    "dependencies": dependencies,
                },
            )

        @self.app.get("/metrics")
        async def metrics():
            return Response(content=generate_latest(self.metrics.registry), media_type=CONTENT_TYPE_LATEST)

    def run(self):
        """Serve with uvicorn until SIGINT/SIGTERM, then drain for the grace period."""
        import uvicorn

        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
            timeout_graceful_shutdown=int(self.config.shutdown_grace_seconds),
        )
