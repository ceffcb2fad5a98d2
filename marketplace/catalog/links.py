"""
Permission-aware action links for catalogue items.

Each item is decorated with the actions the current caller may take.
A link that the caller may not use is left out entirely: clients treat
the presence of a key as permission and never need to know the access
rules themselves. Every descriptor names its HTTP method and whether
authentication is required, so a UI can prompt for login up front.

Rules:

* ``self``: always present.
* ``copyWarp``: present when the item has a warp command; no login needed.
* ``edit`` / ``updateStock``: authenticated owners of the item only.
* ``reportPrice``: any authenticated user.
* ``verify``: authenticated users holding ``VERIFY_PRICES``.
"""

from __future__ import annotations

from typing import Dict

from .pricing import format_price
from .schemas import Capability, EnrichedItem, Item, LinkDescriptor, UserContext


class LinkGenerator:
    """Build the ``links`` mapping for an item and a caller."""

    def __init__(
        self,
        data_base: str = "/api/data",
        api_base: str = "/api",
        resource: str = "public_items",
    ) -> None:
        self.data_base = data_base.rstrip("/")
        self.api_base = api_base.rstrip("/")
        self.resource = resource.strip("/")

    def generate_links(self, item: Item, user: UserContext) -> Dict[str, LinkDescriptor]:
        links: Dict[str, LinkDescriptor] = {
            "self": LinkDescriptor(
                href=f"{self.data_base}/{self.resource}?id=eq.{item.id}",
                method="GET",
                title="View listing",
            ),
        }

        if item.location is not None and item.location.warp_command:
            links["copyWarp"] = LinkDescriptor(
                href=f"{self.api_base}/v1/warp/copy",
                method="POST",
                title="Copy warp command",
            )

        if not user.is_authenticated:
            return links

        if user.owns(item.id):
            links["edit"] = LinkDescriptor(
                href=f"{self.api_base}/internal/items/{item.id}",
                method="PUT",
                title="Edit listing",
                requires_auth=True,
            )
            links["updateStock"] = LinkDescriptor(
                href=f"{self.api_base}/internal/items/{item.id}/stock",
                method="PATCH",
                title="Update stock",
                requires_auth=True,
            )

        links["reportPrice"] = LinkDescriptor(
            href=f"{self.api_base}/v1/reports/price",
            method="POST",
            title="Report price change",
            requires_auth=True,
        )

        if user.can(Capability.VERIFY_PRICES):
            links["verify"] = LinkDescriptor(
                href=f"{self.api_base}/v1/items/{item.id}/verify",
                method="PATCH",
                title="Verify current price",
                requires_auth=True,
                permission=Capability.VERIFY_PRICES,
            )

        return links

    def enrich(self, item: Item, user: UserContext) -> EnrichedItem:
        return EnrichedItem(
            **item.model_dump(),
            price_display=format_price(item.price, item.trading_unit).text,
            links=self.generate_links(item, user),
        )
