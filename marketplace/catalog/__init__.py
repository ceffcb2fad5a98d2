"""
Catalog package for the marketplace.

Loads pages of catalogue items from the data gateway, narrows them by
facet (search, category, biome, direction, price range, verification),
caches repeated queries and decorates every item with the actions the
current caller is allowed to take.
"""

from .router import router as catalog_router  # noqa: F401
from .store import CatalogService  # noqa: F401
