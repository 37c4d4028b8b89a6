"""httpx-based transport for the ingestion API."""

from __future__ import annotations

from typing import Any, Mapping

import httpx

from amp_sdk.constants import DEFAULT_TIMEOUT_MS, SDK_NAME, SDK_VERSION
from amp_sdk.core.errors import DeliveryError
from amp_sdk.transport.base import Transport

base_headers = {
    'Content-Type': 'application/json',
    'User-Agent': f'{SDK_NAME}/{SDK_VERSION}',
}


class HttpxTransport(Transport):
    """Send telemetry with ``httpx.AsyncClient``."""

    def __init__(self, timeout_ms: int = DEFAULT_TIMEOUT_MS, client: httpx.AsyncClient | None = None) -> None:
        """Create an HTTP transport.

        Args:
            timeout_ms: Per-request timeout in milliseconds.
            client: Optional injected httpx client for testing / transport control.
                Without one, a short-lived client is opened per request.
        """
        self._timeout = timeout_ms / 1000.0
        self._client = client

    async def post(self, url: str, body: Mapping[str, Any], headers: Mapping[str, str]) -> dict[str, Any]:
        request_headers = {**base_headers, **headers}

        if self._client is not None:
            return await self._send(self._client, 'POST', url, headers=request_headers, json=dict(body))

        async with httpx.AsyncClient() as client:
            return await self._send(client, 'POST', url, headers=request_headers, json=dict(body))

    async def get(self, url: str, headers: Mapping[str, str] | None = None) -> dict[str, Any]:
        request_headers = {**base_headers, **(headers or {})}

        if self._client is not None:
            return await self._send(self._client, 'GET', url, headers=request_headers)

        async with httpx.AsyncClient() as client:
            return await self._send(client, 'GET', url, headers=request_headers)

    async def _send(self, client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = await client.request(method, url, timeout=self._timeout, **kwargs)
        except httpx.TimeoutException as exc:
            raise DeliveryError(f'Request timed out after {self._timeout:g}s: {url}') from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f'Request failed: {exc}') from exc

        if not resp.is_success:
            body = _safe_json(resp)
            message = body.get('message') if isinstance(body, dict) else None
            raise DeliveryError(
                message if isinstance(message, str) and message else f'HTTP {resp.status_code}',
                status_code=resp.status_code,
                body=body,
            )

        body = _safe_json(resp)
        return body if isinstance(body, dict) else {}


def _safe_json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None
