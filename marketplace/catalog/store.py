"""
Catalogue assembly: filtered, paginated, link-enriched item pages.

``CatalogService.load_catalog()`` is the single entry point used by
the router. A request goes through these steps:

1. the filters are validated and translated into a gateway query;
2. the query cache is consulted, a hit skips the gateway entirely;
3. on a miss the narrow summary of every matching row is fetched and
   run through the local predicate; the page is a slice of that list,
   and only the records on the page are fetched in full;
4. totals and statistics come from the same filtered summary the page
   was sliced from, so the numbers shown can never disagree;
5. links are generated for the current caller. They are never cached.

On request the page also carries the featured listings: the highest
priced items whose price confidence is not low, whatever the filters.
They come from their own gateway read and cache entry.

When the gateway fails the service returns an empty page flagged with
``ok=False`` and ``degraded=True`` rather than raising or making up
placeholder items. The same holds when only the featured read fails:
nothing is backfilled from the regular results.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .cache import QueryCache, make_key
from .errors import FilterValidationError, GatewayError
from .filters import GatewayQuery, build_query, featured_query
from .gateway import CatalogGateway
from .links import LinkGenerator
from .schemas import (
    CatalogPage,
    CatalogStats,
    CategoryCount,
    EnrichedItem,
    FilterState,
    Item,
    Pagination,
    UserContext,
)


logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200
FEATURED_LIMIT = 6
TOP_ITEMS_PER_CATEGORY = 2
FEATURED_KEY = "catalog:featured"


@dataclass(frozen=True)
class CatalogSnapshot:
    """What gets cached for one query: user-independent data only."""

    total_items: int
    stats: CatalogStats
    items: Tuple[Item, ...]


def _row_id(row: Mapping[str, Any]) -> str:
    value = row.get("id")
    return "" if value is None else str(value)


def compute_stats(rows: List[Mapping[str, Any]]) -> CatalogStats:
    """Aggregate the filtered summary rows.

    Parameters
    ----------
    rows : List[Mapping[str, Any]]
        The filtered rows (at least ``category`` and ``owner_shop_name``).

    Returns
    -------
    CatalogStats
        Item count, distinct shop count and the category breakdown,
        sorted by descending count then name.
    """
    shops = {str(r.get("owner_shop_name")) for r in rows if r.get("owner_shop_name")}
    counts = Counter(str(r.get("category") or "") for r in rows)
    counts.pop("", None)
    categories = [
        CategoryCount(name=name, count=count)
        for name, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]
    return CatalogStats(
        total_items=len(rows),
        active_shops=len(shops),
        category_count=len(categories),
        categories=categories,
    )


class CatalogService:
    """Compose the gateway, cache and link generator into catalogue pages."""

    def __init__(
        self,
        gateway: CatalogGateway,
        cache: QueryCache,
        links: Optional[LinkGenerator] = None,
        max_page_size: int = MAX_PAGE_SIZE,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        featured_limit: int = FEATURED_LIMIT,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.links = links or LinkGenerator(resource=getattr(gateway, "resource", "public_items"))
        self.max_page_size = max_page_size
        self.default_page_size = min(default_page_size, max_page_size)
        self.featured_limit = featured_limit

    def _check_paging(self, page: int, page_size: int) -> None:
        if not isinstance(page, int) or page < 1:
            raise FilterValidationError("page", "must be an integer >= 1")
        if not isinstance(page_size, int) or page_size < 1:
            raise FilterValidationError("page_size", "must be an integer >= 1")
        if page_size > self.max_page_size:
            raise FilterValidationError("page_size", f"must be <= {self.max_page_size}")

    async def _fetch_snapshot(self, query: GatewayQuery, page: int, page_size: int) -> CatalogSnapshot:
        summary = query.filter_rows(await self.gateway.fetch_summary(query))
        addressable = [row for row in summary if _row_id(row)]
        if len(addressable) != len(summary):
            logger.warning("Skipping %d catalogue rows without an id", len(summary) - len(addressable))
        summary = addressable

        start = (page - 1) * page_size
        page_ids = [_row_id(row) for row in summary[start:start + page_size]]
        page_rows: Dict[str, Mapping[str, Any]] = {}
        if page_ids:
            for row in await self.gateway.fetch_page(query, page_ids):
                if query.matches(row):
                    page_rows[_row_id(row)] = row

        missing = [i for i in page_ids if i not in page_rows]
        if missing:
            # Rows changed between the two reads; drop them everywhere.
            logger.warning("%d catalogue rows vanished between summary and page reads", len(missing))
            gone = set(missing)
            summary = [row for row in summary if _row_id(row) not in gone]

        stats = compute_stats(summary)
        items = tuple(Item.from_row(page_rows[i]) for i in page_ids if i in page_rows)
        return CatalogSnapshot(total_items=stats.total_items, stats=stats, items=items)

    async def _fetch_featured(self) -> Tuple[Item, ...]:
        query = featured_query()
        rows = query.filter_rows(await self.gateway.fetch_featured(query, self.featured_limit))
        rows = [row for row in rows if _row_id(row)]
        return tuple(Item.from_row(row) for row in rows[: self.featured_limit])

    def _assemble(
        self,
        snapshot: CatalogSnapshot,
        page: int,
        page_size: int,
        user: UserContext,
        featured: Tuple[Item, ...] = (),
    ) -> CatalogPage:
        total_pages = math.ceil(snapshot.total_items / page_size)
        items: List[EnrichedItem] = [self.links.enrich(item, user) for item in snapshot.items]
        categories = [
            category.model_copy(
                update={"top_items": [i for i in items if i.category == category.name][:TOP_ITEMS_PER_CATEGORY]}
            )
            for category in snapshot.stats.categories
        ]
        return CatalogPage(
            items=items,
            featured=[self.links.enrich(item, user) for item in featured],
            pagination=Pagination(
                current_page=page,
                total_pages=total_pages,
                total_items=snapshot.total_items,
                page_size=page_size,
            ),
            stats=snapshot.stats.model_copy(update={"categories": categories}),
            ok=True,
            degraded=False,
        )

    async def load_catalog(
        self,
        filters: Optional[FilterState] = None,
        page: int = 1,
        page_size: Optional[int] = None,
        user: Optional[UserContext] = None,
        include_featured: bool = False,
    ) -> CatalogPage:
        """Load one page of the filtered catalogue for ``user``.

        ``page_size`` defaults to ``default_page_size``. With
        ``include_featured`` the page also lists the featured items; if
        that read fails the whole page is degraded.

        Raises
        ------
        FilterValidationError
            For invalid filters, page or page size. Nothing is sent to
            the gateway in that case.
        """
        filters = filters or FilterState()
        user = user or UserContext.anonymous()
        if page_size is None:
            page_size = self.default_page_size
        self._check_paging(page, page_size)
        query = build_query(filters)

        key = make_key(filters, page, page_size)
        snapshot: Optional[CatalogSnapshot] = self.cache.get(key)
        featured: Optional[Tuple[Item, ...]] = self.cache.get(FEATURED_KEY) if include_featured else ()
        fresh_snapshot = snapshot is None
        fresh_featured = featured is None
        if snapshot is not None:
            logger.debug("Catalogue cache hit for %s", key)
        try:
            if snapshot is None:
                logger.debug("Catalogue cache miss for %s (facets: %s)", key, query.facets)
                snapshot = await self._fetch_snapshot(query, page, page_size)
            if featured is None:
                featured = await self._fetch_featured()
        except GatewayError as exc:
            logger.error("Catalogue degraded, gateway failed: %s", exc.message)
            return CatalogPage.degraded_result(page, page_size, exc.message)

        # Only complete results reach the cache.
        if fresh_snapshot:
            self.cache.set(key, snapshot)
        if fresh_featured:
            self.cache.set(FEATURED_KEY, featured)

        return self._assemble(snapshot, page, page_size, user, featured)

    async def load_item(self, item_id: str, user: Optional[UserContext] = None) -> Optional[EnrichedItem]:
        """Fetch a single item by id; gateway errors propagate."""
        row = await self.gateway.fetch_item(item_id)
        if row is None:
            return None
        return self.links.enrich(Item.from_row(row), user or UserContext.anonymous())
