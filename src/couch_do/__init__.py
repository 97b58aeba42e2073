"""
couch-do - Async CouchDB client.

This package provides an async client for CouchDB with support for:
- Document reads and revision-checked writes (create, save, upsert, remove)
- Mango queries with design documents filtered out
- Bookmark-driven batch iteration with backpressure
- Bulk reads and writes

Example usage:
    from couch_do import CouchClient, FindQuery

    async def main():
        # Connect to CouchDB
        client = CouchClient("http://localhost:5984")
        await client.connect()

        db = await client.create_database("myapp")

        # Create and update documents
        doc = await db.create({"name": "Alice", "status": "active"})
        doc.merge({"status": "vip"})
        doc = await db.save(doc)

        # Insert or update by id
        await db.upsert({"_id": "bob", "name": "Bob"})

        # Query
        batch = await db.find(FindQuery(selector={"status": "vip"}))
        for doc in batch:
            print(doc["name"])

        # Iterate over large result sets
        async with db.iterate(FindQuery.find_all(), batch_size=500) as cursor:
            async for batch in cursor:
                print(len(batch))

        # Delete
        await db.remove(doc)

        await client.close()

    import asyncio
    asyncio.run(main())
"""

from __future__ import annotations

__version__ = "0.1.0"

from .client import CouchClient
from .cursor import BatchCursor
from .database import Database
from .document import Document, DocumentCollection, merge
from .transport import HttpTransport, Transport
from .types import (
    ConflictError,
    ConnectionError,
    CouchError,
    DocumentCreatedResult,
    FindQuery,
    InvalidResponseError,
    NotFoundError,
    QueryError,
    TransportError,
    WriteError,
)

__all__ = [
    # Main classes
    "CouchClient",
    "Database",
    "BatchCursor",
    "HttpTransport",
    "Transport",
    # Documents and queries
    "Document",
    "DocumentCollection",
    "DocumentCreatedResult",
    "FindQuery",
    "merge",
    # Exceptions
    "CouchError",
    "ConnectionError",
    "TransportError",
    "NotFoundError",
    "WriteError",
    "ConflictError",
    "InvalidResponseError",
    "QueryError",
    # Version
    "__version__",
]
