"""
Tender listing service.
"""

from typing import Optional

from fastapi import Query, Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import StoreQueryError, ValidationError

from .caching import CacheStore, CacheWarmer, RESOURCES, cache_prefix, create_cache_store
from .models import ApiResponse, CacheInvalidationResult
from .monitoring import RequestMonitor
from .persistence import TenderRepository
from .tenders import TenderQueryService


SERVICE_NAME = "tenders"
SERVICE_PORT = 8080


def wants_cache_bypass(request: Request) -> bool:
    """A request skips the cache read on ``x-cache-bypass: 1``, ``?refresh=1`` or a no-cache header."""
    if request.headers.get("x-cache-bypass") == "1":
        return True
    if request.query_params.get("refresh") == "1":
        return True
    cache_control = request.headers.get("cache-control", "").lower()
    return "no-cache" in cache_control or "no-store" in cache_control


class TenderService(BaseService):
    """Tender listing service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        repository=None,
        cache_store: Optional[CacheStore] = None,
    ):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config)

        self.repository = repository or TenderRepository(
            self.config.postgres_dsn,
            min_size=self.config.postgres_min_pool,
            max_size=self.config.postgres_max_pool,
            command_timeout=self.config.postgres_command_timeout,
        )
        self.cache = cache_store or create_cache_store(self.config)
        self.monitor = RequestMonitor.from_config(self.config, metrics=self.metrics)
        self.warmer = CacheWarmer(self.cache, enabled=self.config.cache_warming, metrics=self.metrics)
        self.tenders = TenderQueryService(self.repository, self.cache, self.warmer, self.monitor, self.config)

        @self.app.on_event("startup")
        async def _startup():
            await self.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.stop()

        self._setup_tender_routes()

        self.app.state.tender_service = self

    def _setup_tender_routes(self):
        """Set up tender-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Tender listing API",
                "version": "1.0.0",
                "endpoints": [
                    "/api/tenders",
                    "/api/tenders/search",
                    "/api/tenders/{code}",
                    "/api/stats",
                    "/api/lpse",
                    "/api/monitoring",
                ],
            }

        @self.app.get("/api/tenders")
        async def list_tenders(request: Request):
            """Paginated, filtered tender listing."""
            result = await self.tenders.list_tenders(dict(request.query_params), wants_cache_bypass(request))
            return JSONResponse(content=result.payload, headers=result.headers())

        @self.app.get("/api/tenders/search")
        async def search_suggestions(request: Request, q: Optional[str] = Query(None)):
            """Typeahead suggestions, at most ten."""
            bypass = wants_cache_bypass(request) or request.query_params.get("nocache") == "1"
            result = await self.tenders.suggest(q, bypass)
            return JSONResponse(content=result.payload, headers=result.headers())

        @self.app.get("/api/tenders/{code}")
        async def get_tender(code: str, request: Request):
            """Single tender with its authority and detail record."""
            result = await self.tenders.get_tender(code, wants_cache_bypass(request))
            return JSONResponse(content=result.payload, headers=result.headers())

        @self.app.get("/api/stats")
        async def get_stats(request: Request):
            """Aggregate statistics."""
            result = await self.tenders.get_stats(wants_cache_bypass(request))
            return JSONResponse(content=result.payload, headers=result.headers())

        @self.app.get("/api/lpse")
        async def list_lpse(request: Request):
            """Issuing authorities ordered by name."""
            result = await self.tenders.list_lpse(wants_cache_bypass(request))
            return JSONResponse(content=result.payload, headers=result.headers())

        @self.app.get("/api/monitoring")
        async def monitoring_snapshot():
            """Per-route timings, cache hit rates, query and error counts."""
            return JSONResponse(
                content=ApiResponse(data=self.monitor.snapshot()).to_payload(),
                headers={"Cache-Control": "no-store"},
            )

        @self.app.delete("/api/cache/{resource}")
        async def invalidate_cache(resource: str):
            """Drop every cached entry of one resource."""
            if resource not in RESOURCES:
                raise ValidationError(
                    f"Unknown cache resource: {resource}",
                    details={"allowed": list(RESOURCES)},
                )
            prefix = cache_prefix(resource)
            deleted = await self.cache.delete_by_prefix(prefix)
            self.warmer.reset()
            self.logger.info("Cache invalidated", resource=resource, prefix=prefix, deleted=deleted)
            result = CacheInvalidationResult(resource=resource, prefix=prefix, deleted=deleted)
            return ApiResponse(data=result.model_dump()).to_payload()

    async def _check_dependencies(self):
        """Check tender service dependencies."""
        redis_status = await self.cache.health_check()
        return {
            "postgres": await self.repository.health_check(),
            "redis": "degraded" if redis_status == "error" else redis_status,
        }

    async def start(self):
        """Start tender service components."""
        try:
            await self.repository.start()
        except StoreQueryError:
            # Requests fail with 500 until the store becomes reachable
            self.logger.warning("Relational store unavailable at startup")
        self.logger.info("Tender service components started", cache_available=self.cache.available)

    async def stop(self):
        """Stop tender service components."""
        await self.warmer.drain()
        await self.cache.close()
        await self.repository.stop()
        self.logger.info("Tender service components stopped")


def create_app(config: Optional[ServiceConfig] = None, repository=None, cache_store: Optional[CacheStore] = None):
    """Create tender service application."""
    service = TenderService(config=config, repository=repository, cache_store=cache_store)
    return service.app


if __name__ == "__main__":
    service = TenderService()
    service.run()
