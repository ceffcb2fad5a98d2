"""
Client for the data gateway that fronts the catalogue database.

The gateway is a PostgREST-style HTTP service: a ``GET`` on
``{base_url}/{resource}`` with filter, ordering and projection
parameters returns a bare JSON array of flat records. This module only
knows how to issue those reads. It exposes three calls used by the
catalogue service:

* ``fetch_summary()``: the filtered id list with the narrow set of
  columns needed for totals, statistics and the local predicate.

* ``fetch_page()``: full records for a handful of ids.

* ``fetch_item()``: one full record by id.

* ``fetch_featured()``: the top few records of a fixed query.

Every transport problem is mapped onto :class:`GatewayError`. Server
errors, rate limiting and connection failures are retried with an
exponential backoff before giving up.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from ..config import Settings
from .errors import GatewayError
from .filters import GatewayQuery


logger = logging.getLogger(__name__)

Params = Sequence[Tuple[str, str]]


def build_async_client(settings: Optional[Settings] = None) -> httpx.AsyncClient:
    """Create the ``httpx.AsyncClient`` used to talk to the gateway."""
    settings = settings or Settings()
    return httpx.AsyncClient(
        base_url=settings.gateway_url.rstrip("/"),
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        headers={
            "User-Agent": settings.user_agent,
            "Accept": "application/json",
        },
    )


def _quote_in_value(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class CatalogGateway:
    """Read-only access to the catalogue resource of the data gateway."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        resource: str = "public_items",
        max_retries: int = 2,
        retry_backoff: float = 0.25,
    ) -> None:
        self._client = client
        self.resource = resource.strip("/")
        self.max_retries = max(0, int(max_retries))
        self.retry_backoff = max(0.0, float(retry_backoff))

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "CatalogGateway":
        return cls(
            client or build_async_client(settings),
            resource=settings.gateway_resource,
            max_retries=settings.gateway_max_retries,
            retry_backoff=settings.gateway_retry_backoff,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, params: Params) -> List[Dict[str, Any]]:
        """Perform one GET and return the decoded JSON array."""
        path = f"/{self.resource}"
        try:
            response = await self._client.get(path, params=list(params))
        except httpx.HTTPError as exc:
            logger.error("Error fetching %s: %s", path, exc)
            raise GatewayError(f"gateway unreachable: {exc}", url=path) from exc

        url = str(response.request.url)
        if not response.is_success:
            logger.warning("Gateway request to %s returned status %s", url, response.status_code)
            raise GatewayError(
                f"gateway returned status {response.status_code}",
                status=response.status_code,
                url=url,
            )
        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Gateway response from %s is not JSON", url)
            raise GatewayError("gateway returned invalid JSON", status=response.status_code, url=url) from exc
        if not isinstance(data, list):
            raise GatewayError("gateway response is not a JSON array", status=response.status_code, url=url)
        return [row for row in data if isinstance(row, dict)]

    async def fetch_rows(self, params: Params) -> List[Dict[str, Any]]:
        """GET with retries on transient failures."""
        attempt = 0
        while True:
            try:
                return await self._get_json(params)
            except GatewayError as exc:
                if not exc.retryable or attempt >= self.max_retries:
                    raise
                delay = self.retry_backoff * (2 ** attempt)
                attempt += 1
                logger.warning(
                    "Retrying gateway request (%d/%d) in %.2fs: %s",
                    attempt,
                    self.max_retries,
                    delay,
                    exc.message,
                )
                await asyncio.sleep(delay)

    async def fetch_summary(self, query: GatewayQuery) -> List[Dict[str, Any]]:
        """Every matching row, projected onto ``query.summary_fields``."""
        params: List[Tuple[str, str]] = [("select", ",".join(query.summary_fields))]
        params.extend(query.params)
        params.append(("order", query.order))
        return await self.fetch_rows(params)

    async def fetch_page(self, query: GatewayQuery, ids: Sequence[str]) -> List[Dict[str, Any]]:
        """Full records for ``ids``; order follows ``query.order``."""
        if not ids:
            return []
        params: List[Tuple[str, str]] = [
            ("select", "*"),
            ("id", "in.(" + ",".join(_quote_in_value(i) for i in ids) + ")"),
            ("order", query.order),
            ("limit", str(len(ids))),
        ]
        return await self.fetch_rows(params)

    async def fetch_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        rows = await self.fetch_rows([("select", "*"), ("id", f"eq.{item_id}"), ("limit", "1")])
        return rows[0] if rows else None

    async def fetch_featured(self, query: GatewayQuery, limit: int) -> List[Dict[str, Any]]:
        params: List[Tuple[str, str]] = [("select", "*")]
        params.extend(query.params)
        params.append(("order", query.order))
        params.append(("limit", str(limit)))
        return await self.fetch_rows(params)
