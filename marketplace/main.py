# marketplace/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .catalog import catalog_router
from .catalog.cache import QueryCache
from .catalog.gateway import CatalogGateway
from .catalog.links import LinkGenerator
from .catalog.store import CatalogService
from .config import Settings, get_settings


logger = logging.getLogger(__name__)


def build_service(settings: Settings) -> CatalogService:
    gateway = CatalogGateway.from_settings(settings)
    cache = QueryCache(
        max_entries=settings.cache_max_entries,
        default_ttl=settings.cache_ttl_seconds,
    )
    return CatalogService(
        gateway,
        cache,
        links=LinkGenerator(resource=settings.gateway_resource),
        max_page_size=settings.max_page_size,
        default_page_size=settings.default_page_size,
        featured_limit=settings.featured_limit,
    )


def create_app(settings: Optional[Settings] = None, service: Optional[CatalogService] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = service is None
        app.state.catalog_service = service or build_service(settings)
        logger.info("Catalogue gateway at %s/%s", settings.gateway_url, settings.gateway_resource)
        try:
            yield
        finally:
            if owned:
                await app.state.catalog_service.gateway.aclose()

    app = FastAPI(
        title="Marketplace catalogue",
        description=(
            "Filtered, paginated catalogue of marketplace listings with "
            "permission-aware action links."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.get("/")
    def health_check():
        return {"status": "ok"}

    app.include_router(catalog_router)
    return app


app = create_app()
