"""
Translate a ``FilterState`` into a data gateway query.

The gateway speaks the PostgREST dialect: ``column=eq.value``,
``column=gte.value``, ``column=ilike.*value*``, ``order=column.dir``.
Search, category, biome, direction and price range are pushed to the
gateway. Verification is always evaluated locally on the rows that
come back, because "verified" is defined on the verification
descriptor rather than on a single comparable column.

The local predicate re-checks every active facet, not only the local
ones, so rows a lax gateway lets through are still dropped. All facets
are combined with AND.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from .errors import FilterValidationError
from .schemas import FilterState


logger = logging.getLogger(__name__)

Row = Mapping[str, Any]
Predicate = Callable[[Row], bool]

# Always projected by summary queries: identity plus the stats columns.
BASE_SUMMARY_FIELDS: Tuple[str, ...] = ("id", "category", "owner_shop_name")

ORDERINGS: Dict[str, str] = {
    "price_desc": "price_diamonds.desc",
    "price_asc": "price_diamonds.asc",
    "name_asc": "name.asc",
    "recent": "created_at.desc",
    "verified_first": "last_verified.desc.nullslast",
}
DEFAULT_ORDERING = "price_desc"
TIE_BREAKER = "id.asc"


@dataclass(frozen=True)
class GatewayQuery:
    """Gateway parameters plus the local predicate for one filter set."""

    params: Tuple[Tuple[str, str], ...] = ()
    order: str = f"{ORDERINGS[DEFAULT_ORDERING]},{TIE_BREAKER}"
    # Columns the local predicate needs to see on each row.
    required_fields: Tuple[str, ...] = ()
    checks: Tuple[Tuple[str, Predicate], ...] = field(default=(), compare=False)

    @property
    def summary_fields(self) -> Tuple[str, ...]:
        fields = list(BASE_SUMMARY_FIELDS)
        for name in self.required_fields:
            if name not in fields:
                fields.append(name)
        return tuple(fields)

    @property
    def facets(self) -> List[str]:
        return [name for name, _ in self.checks]

    def matches(self, row: Row) -> bool:
        return all(check(row) for _, check in self.checks)

    def filter_rows(self, rows: List[Row]) -> List[Row]:
        kept = [row for row in rows if self.matches(row)]
        if len(kept) != len(rows):
            logger.debug("Local predicate dropped %d of %d rows", len(rows) - len(kept), len(rows))
        return kept


def parse_filters(raw: Optional[Mapping[str, Any]]) -> FilterState:
    """Build a ``FilterState`` from loosely typed input.

    Both ``price_range`` and ``priceRange`` spellings are accepted.
    Unknown keys and unknown enum values raise
    ``FilterValidationError`` naming the offending field.
    """
    if raw is None:
        return FilterState()
    try:
        return FilterState.model_validate(dict(raw))
    except ValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(part) for part in first.get("loc", ())) or "filters"
        raise FilterValidationError(loc, first.get("msg", "invalid value")) from exc


def _norm(s: Optional[str]) -> str:
    return (s or "").strip().lower()


def _price_of(row: Row) -> float:
    try:
        return float(row.get("price_diamonds") or 0.0)
    except (TypeError, ValueError):
        return 0.0


def _check_bound(name: str, value: Optional[float]) -> None:
    if value is None:
        return
    if not math.isfinite(value):
        raise FilterValidationError(f"price_range.{name}", "must be a finite number")
    if value < 0:
        raise FilterValidationError(f"price_range.{name}", "must not be negative")


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else repr(float(value))


def build_query(filters: Optional[FilterState]) -> GatewayQuery:
    """Translate ``filters`` into a :class:`GatewayQuery`.

    Raises
    ------
    FilterValidationError
        When the search term is blank, or the price range is inverted,
        negative or not finite.
    """
    filters = filters or FilterState()
    params: List[Tuple[str, str]] = []
    required: List[str] = []
    checks: List[Tuple[str, Predicate]] = []

    # Free text search: lenient substring match on the item name.
    if filters.search is not None:
        # '*' and '%' are wildcards for the gateway, never part of a term.
        term = filters.search.strip().replace("*", "").replace("%", "").strip()
        if not term:
            raise FilterValidationError("search", "must not be blank")
        params.append(("name", f"ilike.*{term}*"))
        required.append("name")
        needle = term.lower()
        checks.append(("search", lambda row: needle in _norm(row.get("name"))))

    category = (filters.category or "").strip()
    if category and category.lower() != "any":
        params.append(("category", f"eq.{category}"))
        checks.append(("category", lambda row: (row.get("category") or "") == category))

    if filters.biome and filters.biome != "any":
        biome = filters.biome
        params.append(("biome", f"eq.{biome}"))
        required.append("biome")
        checks.append(("biome", lambda row: _norm(row.get("biome")) == biome))

    if filters.direction and filters.direction != "any":
        direction = filters.direction
        params.append(("direction", f"eq.{direction}"))
        required.append("direction")
        checks.append(("direction", lambda row: _norm(row.get("direction")) == direction))

    price_range = filters.price_range
    if price_range is not None and (price_range.min is not None or price_range.max is not None):
        low, high = price_range.min, price_range.max
        _check_bound("min", low)
        _check_bound("max", high)
        if low is not None and high is not None and low > high:
            raise FilterValidationError("price_range", f"min ({low}) is greater than max ({high})")
        if low is not None:
            params.append(("price_diamonds", f"gte.{_format_number(low)}"))
        if high is not None:
            params.append(("price_diamonds", f"lte.{_format_number(high)}"))
        required.append("price_diamonds")

        def in_range(row: Row, low: Optional[float] = low, high: Optional[float] = high) -> bool:
            price = _price_of(row)
            if low is not None and price < low:
                return False
            if high is not None and price > high:
                return False
            return True

        checks.append(("price_range", in_range))

    # Evaluated locally only; "unverified" and "any" are no constraint.
    if filters.verification == "verified":
        required.append("last_verified")
        checks.append(("verification", lambda row: row.get("last_verified") is not None))

    ordering = ORDERINGS[filters.sort_by or DEFAULT_ORDERING]
    return GatewayQuery(
        params=tuple(params),
        order=f"{ordering},{TIE_BREAKER}",
        required_fields=tuple(required),
        checks=tuple(checks),
    )


def matches(row: Row, filters: Optional[FilterState]) -> bool:
    """Return ``True`` when ``row`` satisfies every facet in ``filters``."""
    return build_query(filters).matches(row)


def featured_query() -> GatewayQuery:
    """The highest priced listings whose price confidence is not low.

    Rows without a confidence level are excluded as well, the same way
    the gateway's ``not.eq.low`` comparison drops NULLs.
    """
    return GatewayQuery(
        params=(("confidence_level", "not.eq.low"),),
        order=f"{ORDERINGS['price_desc']},{TIE_BREAKER}",
        required_fields=("confidence_level",),
        checks=(
            ("confidence", lambda row: _norm(row.get("confidence_level")) not in ("", "low")),
        ),
    )
