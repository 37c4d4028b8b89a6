"""Transport interface.

The delivery queue depends on this narrow contract so that the HTTP layer is:
- swappable (httpx, an in-process ASGI app, a test stub)
- mockable (deterministic failure injection in tests)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

from amp_sdk.core.errors import UnsupportedOperationError


class Transport(ABC):
    """Posts JSON bodies to the ingestion API."""

    @abstractmethod
    async def post(self, url: str, body: Mapping[str, Any], headers: Mapping[str, str]) -> dict[str, Any]:
        """POST ``body`` as JSON and return the parsed response body.

        Implementations enforce their own request timeout and raise
        ``DeliveryError`` on network failures and non-2xx responses.
        """
        raise NotImplementedError

    async def get(self, url: str, headers: Mapping[str, str] | None = None) -> dict[str, Any]:
        """GET ``url`` and return the parsed JSON body.

        Optional: only ``AMP.health`` uses it. Transports that cannot GET keep this default.

        Raises:
            UnsupportedOperationError: Always, unless overridden.
        """
        raise UnsupportedOperationError(f'{type(self).__name__} does not support GET requests')
