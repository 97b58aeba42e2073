"""
Transport - HTTP access to a CouchDB server.

The database layer only needs a narrow interface: issue a request for a
server-relative path and get back the status code and decoded JSON body.
HttpTransport provides it on top of httpx.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import httpx

from .types import QueryParams, TransportError

__all__ = ["HttpTransport", "Response", "Transport"]

logger = logging.getLogger(__name__)

Response = tuple[int, Any]


class Transport(Protocol):
    """Interface the database layer uses to talk to the server."""

    async def get(self, path: str, params: QueryParams | None = None) -> Response: ...

    async def head(self, path: str) -> Response: ...

    async def post(
        self,
        path: str,
        body: Any,
        params: QueryParams | None = None,
    ) -> Response: ...

    async def put(
        self,
        path: str,
        body: Any,
        params: QueryParams | None = None,
    ) -> Response: ...

    async def delete(self, path: str, params: QueryParams | None = None) -> Response: ...

    async def close(self) -> None: ...


def _encode_params(params: QueryParams | None) -> dict[str, str] | None:
    """CouchDB expects JSON encoded query parameter values (``true``, ``"key"``)."""
    if not params:
        return None
    return {
        key: value if isinstance(value, str) else json.dumps(value)
        for key, value in params.items()
        if value is not None
    }


def _decode(response: httpx.Response) -> Any:
    """Decode a JSON body; an empty body is None, anything else must be JSON."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise TransportError(
            f"{response.request.method} {response.url.path} returned a non-JSON body",
            response.status_code,
        ) from e


class HttpTransport:
    """
    Transport backed by an ``httpx.AsyncClient``.

    Example:
        transport = HttpTransport("http://localhost:5984", timeout=10.0)
        status, body = await transport.get("mydb/some-id")
        await transport.close()
    """

    __slots__ = ("_base_url", "_client")

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        **client_options: Any,
    ) -> None:
        """
        Initialize the transport.

        Args:
            base_url: URL of the CouchDB server.
            timeout: Default timeout for requests in seconds.
            **client_options: Extra keyword arguments for ``httpx.AsyncClient``.
        """
        self._base_url = base_url.rstrip("/") + "/"
        headers = {"Accept": "application/json"}
        headers.update(client_options.pop("headers", None) or {})
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            headers=headers,
            **client_options,
        )

    @property
    def base_url(self) -> str:
        """Get the server URL."""
        return self._base_url

    async def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: QueryParams | None = None,
    ) -> Response:
        kwargs: dict[str, Any] = {"params": _encode_params(params)}
        if body is not None:
            kwargs["json"] = body

        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        logger.debug("%s %s -> %s", method, path, response.status_code)
        return response.status_code, _decode(response)

    async def get(self, path: str, params: QueryParams | None = None) -> Response:
        return await self._request("GET", path, params=params)

    async def head(self, path: str) -> Response:
        status, _ = await self._request("HEAD", path)
        return status, None

    async def post(
        self,
        path: str,
        body: Any,
        params: QueryParams | None = None,
    ) -> Response:
        return await self._request("POST", path, body=body, params=params)

    async def put(
        self,
        path: str,
        body: Any,
        params: QueryParams | None = None,
    ) -> Response:
        return await self._request("PUT", path, body=body, params=params)

    async def delete(self, path: str, params: QueryParams | None = None) -> Response:
        return await self._request("DELETE", path, params=params)

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    def __repr__(self) -> str:
        return f"HttpTransport({self._base_url!r})"
