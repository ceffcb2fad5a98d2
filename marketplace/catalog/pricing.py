"""
Human-readable prices for the diamond economy.

Prices are stored in diamonds per trading unit. Cheap listings read
better as "N items per diamond", expensive ones as diamond blocks
(9 diamonds each), and bulk units are shown as a per-diamond rate.
"""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict


ITEMS_PER_STACK = 64
STACKS_PER_SHULKER = 27
DIAMONDS_PER_BLOCK = 9

UNIT_NAMES = {
    "per_item": ("item", "items"),
    "per_stack": ("stack", "stacks"),
    "per_shulker": ("shulker", "shulkers"),
}


class PriceDisplay(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    icon: str
    short_text: str
    full_text: str


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _num(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _plural(word: str, count: float) -> str:
    return word if count == 1 else f"{word}s"


def _unit_name(trading_unit: str, quantity: int = 1) -> str:
    singular, plural = UNIT_NAMES.get(trading_unit, ("unit", "units"))
    return singular if quantity == 1 else plural


def _diamonds(count: int, suffix: str, full_suffix: str = "") -> PriceDisplay:
    text = f"{count} {_plural('diamond', count)} {suffix}"
    return PriceDisplay(
        text=text,
        icon="diamonds",
        short_text=f"{count}dia" if suffix == "per item" else f"{count}dia/{suffix.split()[-1]}",
        full_text=text + full_suffix,
    )


def format_price(price: float, trading_unit: str = "per_item") -> PriceDisplay:
    """Render ``price`` (diamonds per ``trading_unit``) for display.

    >>> format_price(5).text
    '5 diamonds per item'
    >>> format_price(45).text
    '5 diamond blocks per item'
    >>> format_price(0.25, "per_stack").text
    '4 stacks per diamond'
    """
    price = float(price)

    if price == 0:
        return PriceDisplay(text="Open to offers", icon="offer", short_text="Make offer", full_text="Open to offers")
    if price < 0:
        return PriceDisplay(
            text="Free",
            icon="free",
            short_text="Free",
            full_text=f"Free {_unit_name(trading_unit)}",
        )

    if trading_unit == "per_shulker":
        per_diamond = _round_half_up(STACKS_PER_SHULKER * ITEMS_PER_STACK / price)
        return PriceDisplay(
            text=f"{per_diamond} items per diamond",
            icon="items",
            short_text=f"{per_diamond}/dia",
            full_text=f"{per_diamond} items per diamond (from shulker pricing)",
        )

    if trading_unit == "per_stack":
        if price >= 1:
            return _diamonds(_round_half_up(price), "per stack", f" ({ITEMS_PER_STACK} items)")
        stacks = _round_half_up(1 / price)
        text = f"{stacks} {_plural('stack', stacks)} per diamond"
        return PriceDisplay(text=text, icon="stacks", short_text=f"{stacks}stacks/dia", full_text=text)

    if trading_unit == "per_item":
        if price < 0.5:
            per_diamond = _round_half_up(1 / price)
            text = f"{per_diamond} items per diamond"
            return PriceDisplay(text=text, icon="items", short_text=f"{per_diamond}/dia", full_text=text)
        if price < 10:
            return _diamonds(_round_half_up(price), "per item")
        blocks = _round_half_up(price / DIAMONDS_PER_BLOCK * 10) / 10
        text = f"{_num(blocks)} {_plural('diamond block', blocks)} per item"
        return PriceDisplay(text=text, icon="blocks", short_text=f"{_num(blocks)}DB", full_text=text)

    # Unknown trading unit.
    return _diamonds(_round_half_up(price), "per unit")
