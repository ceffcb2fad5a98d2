"""
Route definitions for the catalogue API.

Endpoints under /api/catalog:
- GET  /items            : filtered, paginated items with per-user links
- GET  /items/{item_id}  : one item with per-user links
- GET  /cache/stats      : query cache counters

The caller's identity is resolved outside this service. Deployments
override ``get_user_context`` (``app.dependency_overrides``) with a
dependency that returns the authenticated ``UserContext``; by default
every request is anonymous.
"""

from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from .errors import FilterValidationError, GatewayError
from .schemas import (
    BiomeFilter,
    CatalogPage,
    DirectionFilter,
    EnrichedItem,
    FilterState,
    PriceRange,
    SortField,
    UserContext,
    VerificationFilter,
)
from .store import CatalogService


router = APIRouter(prefix="/api/catalog", tags=["catalog"])


def get_catalog_service(request: Request) -> CatalogService:
    return request.app.state.catalog_service


def get_user_context() -> UserContext:
    return UserContext.anonymous()


@router.get("/items", response_model=CatalogPage)
async def list_items(
    q: Optional[str] = Query(default=None, description="Search in item names"),
    category: Optional[str] = Query(default=None, description="Filter by category"),
    biome: Optional[BiomeFilter] = Query(default=None, description="Filter by shop biome"),
    direction: Optional[DirectionFilter] = Query(default=None, description="Filter by direction from spawn"),
    min_price: Optional[float] = Query(default=None, description="Lowest price, inclusive"),
    max_price: Optional[float] = Query(default=None, description="Highest price, inclusive"),
    verification: Optional[VerificationFilter] = Query(default=None, description="Verification state"),
    sort: Optional[SortField] = Query(default=None, description="Sort order"),
    page: int = Query(default=1, ge=1, description="Current page (1-indexed)"),
    page_size: Optional[int] = Query(default=None, ge=1, description="Page size, defaults to the configured size"),
    featured: bool = Query(default=False, description="Also return the featured items"),
    service: CatalogService = Depends(get_catalog_service),
    user: UserContext = Depends(get_user_context),
) -> CatalogPage:
    """
    Returns a page of catalogue items.

    A gateway outage is reported in the body (``ok=false``,
    ``degraded=true``) with a 200 status so clients render an explicit
    "unavailable" state; invalid filters and page sizes above the
    configured maximum are a 400 naming the field.
    """
    price_range = None
    if min_price is not None or max_price is not None:
        price_range = PriceRange(min=min_price, max=max_price)
    filters = FilterState(
        search=q,
        category=category,
        biome=biome,
        direction=direction,
        price_range=price_range,
        verification=verification,
        sort_by=sort,
    )
    try:
        return await service.load_catalog(
            filters, page=page, page_size=page_size, user=user, include_featured=featured
        )
    except FilterValidationError as exc:
        raise HTTPException(status_code=400, detail={"field": exc.field, "message": exc.message})


@router.get("/items/{item_id}", response_model=EnrichedItem)
async def get_item(
    item_id: str,
    service: CatalogService = Depends(get_catalog_service),
    user: UserContext = Depends(get_user_context),
) -> EnrichedItem:
    try:
        item = await service.load_item(item_id, user)
    except GatewayError as exc:
        raise HTTPException(status_code=502, detail=exc.message)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


@router.get("/cache/stats")
def cache_stats(service: CatalogService = Depends(get_catalog_service)) -> Dict[str, int]:
    return service.cache.stats()
