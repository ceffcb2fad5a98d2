"""Shared fixtures and fakes for the catalogue tests."""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

import pytest

from marketplace.catalog.cache import QueryCache
from marketplace.catalog.errors import GatewayError
from marketplace.catalog.filters import GatewayQuery
from marketplace.catalog.store import CatalogService


ROWS: List[Dict[str, Any]] = [
    {"id": "item_001", "name": "Diamond Sword", "category": "tools", "price_diamonds": 45,
     "stock_quantity": 3, "owner_id": "steve", "owner_shop_name": "Diamond Deluxe",
     "biome": "jungle", "direction": "north", "warp_command": "/warp diamondsword",
     "last_verified": "2026-10-01T12:00:00Z", "verified_by": "alex", "confidence_level": "high"},
    {"id": "item_002", "name": "Golden Apple", "category": "food", "price_diamonds": 12,
     "stock_quantity": 20, "owner_id": "steve", "owner_shop_name": "Diamond Deluxe",
     "biome": "jungle", "direction": "east", "warp_command": "/warp apples",
     "last_verified": None},
    {"id": "item_003", "name": "Netherite Sword", "category": "tools", "price_diamonds": 108,
     "stock_quantity": 1, "owner_id": "notch", "owner_shop_name": "Netherite Emporium",
     "biome": "nether", "direction": "south", "warp_command": "/warp netherite",
     "last_verified": "2026-09-20T08:30:00Z", "verified_by": "steve", "confidence_level": "medium"},
    {"id": "item_004", "name": "Elytra", "category": "tools", "price_diamonds": 207,
     "stock_quantity": 1, "owner_id": "notch", "owner_shop_name": "Netherite Emporium",
     "biome": "end", "direction": "west", "warp_command": "/warp elytra",
     "last_verified": None, "confidence_level": "low"},
    {"id": "item_005", "name": "Mending Book", "category": "misc", "price_diamonds": 45,
     "stock_quantity": 3, "owner_id": "elf", "owner_shop_name": "Enchanted Emporium",
     "biome": "plains", "direction": "north", "warp_command": "/warp books",
     "last_verified": "2026-10-10T18:00:00Z", "verified_by": "alex"},
    {"id": "item_006", "name": "Oak Log", "category": "blocks", "price_diamonds": 1,
     "stock_quantity": 640, "owner_id": "rook", "owner_shop_name": "Redstone Rook",
     "biome": "plains", "direction": "spawn", "warp_command": None,
     "last_verified": None},
    {"id": "item_007", "name": "Jungle Sapling", "category": "blocks", "price_diamonds": 10,
     "stock_quantity": 64, "owner_id": "rook", "owner_shop_name": "Redstone Rook",
     "biome": "jungle", "direction": "west", "warp_command": "/warp jungle",
     "last_verified": "2026-10-12T09:15:00Z", "verified_by": "rook"},
    {"id": "item_008", "name": "Diamond Pickaxe", "category": "tools", "price_diamonds": 50,
     "stock_quantity": 2, "owner_id": "steve", "owner_shop_name": "Diamond Deluxe",
     "biome": "jungle", "direction": "north", "warp_command": "/warp diamondsword",
     "last_verified": "2026-10-02T10:00:00Z", "verified_by": "alex"},
    {"id": "item_009", "name": "Totem of Undying", "category": "misc", "price_diamonds": 90,
     "stock_quantity": 3, "owner_id": "elf", "owner_shop_name": "Enchanted Emporium",
     "biome": "desert", "direction": "east", "warp_command": "/warp totem",
     "last_verified": None, "confidence_level": "high"},
    {"id": "item_010", "name": "Cocoa Beans", "category": "food", "price_diamonds": 51,
     "stock_quantity": 128, "owner_id": "rook", "owner_shop_name": "Redstone Rook",
     "biome": "jungle", "direction": "south", "warp_command": None,
     "last_verified": "2026-10-05T07:45:00Z", "verified_by": "rook"},
    {"id": "item_011", "name": "Prismarine", "category": "blocks", "price_diamonds": 9,
     "stock_quantity": 256, "owner_id": "elf", "owner_shop_name": "Enchanted Emporium",
     "biome": "ocean", "direction": "east", "warp_command": "/warp ocean",
     "last_verified": None},
    {"id": "item_012", "name": "Melon Slice", "category": "food", "price_diamonds": 2,
     "stock_quantity": 300, "owner_id": "steve", "owner_shop_name": "Diamond Deluxe",
     "biome": "jungle", "direction": "spawn", "warp_command": None,
     "last_verified": None},
]


def _sort_key(row: Dict[str, Any]):
    return (-float(row.get("price_diamonds") or 0), str(row.get("id")))


class FakeGateway:
    """In-memory stand-in for :class:`CatalogGateway`.

    By default it filters like a well-behaved gateway; with ``lax=True``
    it ignores every filter so the local predicate has to do the work.
    """

    resource = "public_items"

    def __init__(
        self,
        rows: Optional[List[Dict[str, Any]]] = None,
        *,
        lax: bool = False,
        delay: float = 0.0,
    ) -> None:
        self.rows = [dict(r) for r in (ROWS if rows is None else rows)]
        self.lax = lax
        self.delay = delay
        self.fail: Optional[GatewayError] = None
        self.calls: List[str] = []
        self.closed = False

    async def _pause(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)

    def _matching(self, query: GatewayQuery) -> List[Dict[str, Any]]:
        rows = self.rows if self.lax else [r for r in self.rows if query.matches(r)]
        return sorted(rows, key=_sort_key)

    async def fetch_summary(self, query: GatewayQuery) -> List[Dict[str, Any]]:
        self.calls.append("summary")
        await self._pause()
        if self.fail is not None:
            raise self.fail
        fields = query.summary_fields
        return [{f: r.get(f) for f in fields if f in r} for r in self._matching(query)]

    async def fetch_page(self, query: GatewayQuery, ids: Sequence[str]) -> List[Dict[str, Any]]:
        self.calls.append("page")
        await self._pause()
        if self.fail is not None:
            raise self.fail
        wanted = set(ids)
        return [dict(r) for r in self._matching(query) if r["id"] in wanted]

    async def fetch_featured(self, query: GatewayQuery, limit: int) -> List[Dict[str, Any]]:
        self.calls.append("featured")
        await self._pause()
        if self.fail is not None:
            raise self.fail
        return [dict(r) for r in self._matching(query)][:limit]

    async def fetch_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append("item")
        if self.fail is not None:
            raise self.fail
        for row in self.rows:
            if row["id"] == item_id:
                return dict(row)
        return None

    async def aclose(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> QueryCache:
    return QueryCache(max_entries=32, default_ttl=30.0, clock=clock)


@pytest.fixture
def service(gateway: FakeGateway, cache: QueryCache) -> CatalogService:
    return CatalogService(gateway, cache)
