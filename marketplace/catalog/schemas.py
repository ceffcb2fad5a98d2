"""
Pydantic schema definitions for the catalog module.

``Item`` mirrors one flat record of the ``public_items`` view exposed by
the data gateway, with the location and verification columns folded
into nested descriptors. ``EnrichedItem`` adds the per-caller ``links``
mapping produced by :mod:`marketplace.catalog.links`. ``FilterState``
is a closed model: unknown keys and unknown enum values are rejected
instead of being silently ignored. ``CatalogPage`` bundles a page of
enriched items with pagination metadata, aggregate statistics and the
``ok``/``degraded`` flags that let clients tell a gateway outage apart
from a legitimately empty search.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Literal


logger = logging.getLogger(__name__)

Biome = Literal["jungle", "desert", "ocean", "mountains", "plains", "nether", "end"]
Direction = Literal["north", "south", "east", "west", "spawn"]
ConfidenceLevel = Literal["low", "medium", "high"]

BiomeFilter = Literal["any", "jungle", "desert", "ocean", "mountains", "plains", "nether", "end"]
DirectionFilter = Literal["any", "north", "south", "east", "west", "spawn"]
VerificationFilter = Literal["any", "verified", "unverified"]
SortField = Literal["price_desc", "price_asc", "name_asc", "recent", "verified_first"]

BIOMES = frozenset(["jungle", "desert", "ocean", "mountains", "plains", "nether", "end"])
DIRECTIONS = frozenset(["north", "south", "east", "west", "spawn"])
CONFIDENCE_LEVELS = frozenset(["low", "medium", "high"])


class Capability(str, Enum):
    """Capability tokens granted to a user by the authentication layer."""

    EDIT_OWN_LISTINGS = "EDIT_OWN_LISTINGS"
    SUBMIT_PRICE_DATA = "SUBMIT_PRICE_DATA"
    VERIFY_PRICES = "VERIFY_PRICES"


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: int
    z: int


class Location(BaseModel):
    """Where a shop sits in the world and how to get there."""

    model_config = ConfigDict(frozen=True)

    biome: Optional[Biome] = None
    direction: Optional[Direction] = None
    warp_command: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class Verification(BaseModel):
    """Last time somebody confirmed the listed price was still correct."""

    model_config = ConfigDict(frozen=True)

    last_verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    confidence_level: ConfidenceLevel = "medium"


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _as_float(value: Any) -> float:
    try:
        return float(value) if value not in (None, "") else 0.0
    except (TypeError, ValueError):
        return 0.0


def _as_int(value: Any) -> int:
    try:
        return int(value) if value not in (None, "") else 0
    except (TypeError, ValueError):
        return 0


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _pick(value: Any, allowed: FrozenSet[str]) -> Optional[str]:
    text = _as_str(value).strip().lower()
    return text if text in allowed else None


class Item(BaseModel):
    """A raw catalogue record, as returned by the data gateway.

    Instances are immutable: the engine wraps them, it never edits
    them. Use :meth:`from_row` to build one from a gateway row, which
    tolerates missing or mistyped columns by falling back to safe
    defaults (zero price, zero stock, empty strings).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    description: str = ""
    category: str = ""
    price: float = 0.0
    stock_quantity: int = 0
    owner_id: Optional[str] = None
    shop_name: Optional[str] = None
    server_name: Optional[str] = None
    trading_unit: str = "per_item"
    location: Optional[Location] = None
    verification: Optional[Verification] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Item":
        item_id = _as_str(row.get("id"))
        if not item_id or row.get("price_diamonds") is None:
            logger.warning("Malformed catalogue row %r, using defaults", item_id or row)

        location: Optional[Location] = None
        biome = _pick(row.get("biome"), BIOMES)
        direction = _pick(row.get("direction"), DIRECTIONS)
        warp = row.get("warp_command") or None
        if biome or direction or warp:
            coordinates = None
            if row.get("coordinates_x") is not None and row.get("coordinates_z") is not None:
                coordinates = Coordinates(
                    x=_as_int(row.get("coordinates_x")),
                    z=_as_int(row.get("coordinates_z")),
                )
            location = Location(
                biome=biome,
                direction=direction,
                warp_command=_as_str(warp) or None,
                coordinates=coordinates,
            )

        verification: Optional[Verification] = None
        if row.get("last_verified") is not None:
            verification = Verification(
                last_verified_at=_as_datetime(row.get("last_verified")),
                verified_by=_as_str(row.get("verified_by")) or None,
                confidence_level=_pick(row.get("confidence_level"), CONFIDENCE_LEVELS) or "medium",
            )

        return cls(
            id=item_id,
            name=_as_str(row.get("name")),
            description=_as_str(row.get("description")),
            category=_as_str(row.get("category")),
            price=_as_float(row.get("price_diamonds")),
            stock_quantity=_as_int(row.get("stock_quantity")),
            owner_id=_as_str(row.get("owner_id")) or None,
            shop_name=_as_str(row.get("owner_shop_name")) or None,
            server_name=_as_str(row.get("server_name")) or None,
            trading_unit=_as_str(row.get("trading_unit"), "per_item") or "per_item",
            location=location,
            verification=verification,
        )


class LinkDescriptor(BaseModel):
    """One action a client may take on an item."""

    model_config = ConfigDict(frozen=True)

    href: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "GET"
    title: str = ""
    requires_auth: bool = False
    # Capability the caller needed for this link, when one was required.
    permission: Optional[Capability] = None


class EnrichedItem(Item):
    """An ``Item`` decorated with the links available to the caller."""

    price_display: str = ""
    links: Dict[str, LinkDescriptor] = Field(default_factory=dict)


class PriceRange(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    min: Optional[float] = None
    max: Optional[float] = None


class FilterState(BaseModel):
    """Facet values for one catalogue query.

    Every field is optional; an absent field imposes no constraint.
    ``"any"`` is accepted for the enumerated facets and behaves like an
    absent value, although the two produce distinct cache keys.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    search: Optional[str] = None
    category: Optional[str] = None
    biome: Optional[BiomeFilter] = None
    direction: Optional[DirectionFilter] = None
    price_range: Optional[PriceRange] = Field(default=None, alias="priceRange")
    verification: Optional[VerificationFilter] = None
    sort_by: Optional[SortField] = Field(default=None, alias="sortBy")


class UserContext(BaseModel):
    """Identity snapshot handed over by the authentication layer."""

    model_config = ConfigDict(frozen=True)

    is_authenticated: bool = False
    username: Optional[str] = None
    permissions: FrozenSet[Capability] = frozenset()
    owned_item_ids: FrozenSet[str] = frozenset()

    @classmethod
    def anonymous(cls) -> "UserContext":
        return cls()

    def can(self, capability: Capability) -> bool:
        return self.is_authenticated and capability in self.permissions

    def owns(self, item_id: str) -> bool:
        return self.is_authenticated and item_id in self.owned_item_ids


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    page_size: int


class CategoryCount(BaseModel):
    name: str
    count: int
    # A few items of this category taken from the current page.
    top_items: List[EnrichedItem] = Field(default_factory=list)


class CatalogStats(BaseModel):
    """Aggregates over the complete filtered set, not just the page."""

    total_items: int = 0
    active_shops: int = 0
    category_count: int = 0
    categories: List[CategoryCount] = Field(default_factory=list)


class CatalogPage(BaseModel):
    """A wrapper for paginated results returned from ``/items``.

    ``ok`` is ``False`` and ``degraded`` is ``True`` when the data
    gateway could not be reached; ``error`` then says why. An empty but
    successful search has ``ok=True`` and no error. ``featured`` is only
    filled when the caller asked for it.
    """

    items: List[EnrichedItem] = Field(default_factory=list)
    featured: List[EnrichedItem] = Field(default_factory=list)
    pagination: Pagination
    stats: CatalogStats = Field(default_factory=CatalogStats)
    ok: bool = True
    degraded: bool = False
    error: Optional[str] = None

    @classmethod
    def degraded_result(cls, page: int, page_size: int, error: str) -> "CatalogPage":
        return cls(
            items=[],
            pagination=Pagination(
                current_page=page,
                total_pages=0,
                total_items=0,
                page_size=page_size,
            ),
            stats=CatalogStats(),
            ok=False,
            degraded=True,
            error=error,
        )
