"""
CouchClient - CouchDB client.

Holds the connection to a CouchDB server and hands out Database handles
backed by a shared Transport.
"""

from __future__ import annotations

import os
from types import TracebackType
from typing import Any

import httpx

from .database import Database
from .transport import HttpTransport, Transport
from .types import ConnectionError, CouchError

__all__ = ["CouchClient"]

DEFAULT_URL = "http://localhost:5984"


class CouchClient:
    """
    CouchDB client.

    Databases can be accessed using either attribute access or subscript
    notation.

    Example:
        # Create client
        client = CouchClient("http://localhost:5984")
        await client.connect()

        # Access databases
        db = client["myapp"]
        db = client.myapp

        # List databases
        names = await client.list_database_names()

        # Close connection
        await client.close()

        # Or use as async context manager
        async with CouchClient("http://localhost:5984") as client:
            db = client["myapp"]
            ...
    """

    __slots__ = ("_uri", "_transport", "_connected", "_databases", "_options")

    def __init__(
        self,
        uri: str | None = None,
        **options: Any,
    ) -> None:
        """
        Initialize the CouchDB client.

        Args:
            uri: Server URL (e.g., "http://localhost:5984").
                 If not provided, uses COUCH_URL environment variable.
            **options: Additional connection options.
                - timeout: Default timeout for requests (default: 30.0).
                - transport: Transport to use instead of an HttpTransport.
                - Anything else is passed on to ``httpx.AsyncClient``.
        """
        self._uri = uri or os.environ.get("COUCH_URL", DEFAULT_URL)
        self._transport: Transport | None = None
        self._connected = False
        self._databases: dict[str, Database] = {}
        self._options = options

    @property
    def uri(self) -> str:
        """Get the server URL."""
        return self._uri

    @property
    def is_connected(self) -> bool:
        """Check if the client is connected."""
        return self._connected

    async def connect(self) -> CouchClient:
        """
        Connect to the CouchDB server.

        Returns:
            Self for chaining.

        Raises:
            ConnectionError: If the transport cannot be created.
        """
        if self._connected:
            return self

        options = dict(self._options)
        transport = options.pop("transport", None)
        if transport is None:
            timeout = options.pop("timeout", 30.0)
            try:
                transport = HttpTransport(self._uri, timeout=timeout, **options)
            except (TypeError, ValueError, httpx.InvalidURL) as e:
                raise ConnectionError(f"Failed to connect to {self._uri}: {e}") from e

        self._transport = transport
        self._connected = True
        return self

    async def close(self) -> None:
        """Close the connection."""
        if self._transport is not None:
            await self._transport.close()
            self._transport = None
        self._connected = False
        self._databases.clear()

    def _ensure_connected(self) -> Transport:
        """Ensure the client is connected."""
        if not self._connected or self._transport is None:
            raise CouchError("Client is not connected. Call connect() first.")
        return self._transport

    def __getitem__(self, name: str) -> Database:
        """
        Get a database by name using subscript notation.

        Args:
            name: Database name.

        Returns:
            Database instance.

        Example:
            db = client["myapp"]
        """
        transport = self._ensure_connected()

        if name not in self._databases:
            self._databases[name] = Database(transport, self, name)
        return self._databases[name]

    def __getattr__(self, name: str) -> Database:
        """
        Get a database by name using attribute access.

        Example:
            db = client.myapp
        """
        if name.startswith("_"):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

        return self[name]

    def get_database(self, name: str) -> Database:
        """Get a database by name."""
        return self[name]

    async def list_database_names(self) -> list[str]:
        """
        List user database names.

        Returns:
            Database names, without system databases such as ``_users``.
        """
        transport = self._ensure_connected()

        status, body = await transport.get("_all_dbs")
        if status != 200 or not isinstance(body, list):
            return []
        return [name for name in body if not name.startswith("_")]

    async def create_database(self, name: str) -> Database:
        """
        Create a database unless it already exists.

        Args:
            name: Database name.

        Returns:
            The Database instance.

        Raises:
            CouchError: If the server refuses to create the database.
        """
        transport = self._ensure_connected()

        status, body = await transport.put(name, None)
        if status not in (201, 202, 412):
            message = body.get("error") if isinstance(body, dict) else None
            raise CouchError(message or "unspecified error", status)
        return self[name]

    async def drop_database(self, name: str) -> bool:
        """
        Drop a database.

        Args:
            name: Name of the database to drop.

        Returns:
            True if the database was deleted.
        """
        transport = self._ensure_connected()

        status, _ = await transport.delete(name)
        self._databases.pop(name, None)
        return status in (200, 202)

    async def server_info(self) -> dict[str, Any]:
        """
        Get server information.

        Returns:
            Server info dict (version, vendor, ...).
        """
        transport = self._ensure_connected()

        status, body = await transport.get("")
        return body if status == 200 and isinstance(body, dict) else {}

    async def __aenter__(self) -> CouchClient:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        status = "connected" if self._connected else "disconnected"
        return f"CouchClient({self._uri!r}, {status})"
