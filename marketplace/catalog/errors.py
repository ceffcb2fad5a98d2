"""
Error types raised by the catalogue engine.

Validation errors are raised before anything is sent to the data
gateway and carry the name of the offending field so that the router
can turn them into a 400 response. Gateway errors wrap every transport
problem (connection refused, timeouts, non-2xx status, bodies that are
not a JSON array) so that callers never see raw ``httpx`` exceptions.
"""

from typing import Optional


class CatalogError(Exception):
    """Base class for catalogue errors."""


class FilterValidationError(CatalogError):
    """A filter, page or page size value was rejected."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class GatewayError(CatalogError):
    """The data gateway could not be reached or returned garbage."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.url = url

    @property
    def retryable(self) -> bool:
        # No status means the request never got a response.
        if self.status is None:
            return True
        return self.status >= 500 or self.status == 429
