"""
Database - CouchDB database operations.

Provides document reads and writes guarded by revisions, Mango queries
and bookmark-driven batch iteration over a Transport.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Mapping
from urllib.parse import quote

from .cursor import DEFAULT_BATCH_SIZE, BatchCursor
from .document import Document, DocumentCollection, is_design_id
from .types import (
    ConflictError,
    CouchError,
    DocumentCreatedResult,
    DocumentIds,
    FindQuery,
    InvalidResponseError,
    NotFoundError,
    QueryError,
    RawDocument,
    TransportError,
    WriteError,
)

if TYPE_CHECKING:
    from .client import CouchClient
    from .transport import Transport

__all__ = ["Database"]

logger = logging.getLogger(__name__)

UNSPECIFIED_ERROR = "unspecified error"

# Placeholder the server sends instead of a usable bookmark.
NIL_BOOKMARK = "nil"


def _error_message(body: Any) -> str:
    if isinstance(body, Mapping) and body.get("error"):
        return str(body["error"])
    return UNSPECIFIED_ERROR


def _write_error(status: int, body: Any) -> WriteError:
    """Wrap a rejected write, keeping the server's status and message verbatim."""
    message = _error_message(body)
    if status == 409:
        return ConflictError(message, status)
    return WriteError(message, status)


def _check_status(status: int, body: Any) -> None:
    if 200 <= status < 300:
        return
    if status == 404:
        raise NotFoundError(_error_message(body), status)
    raise CouchError(_error_message(body), status)


class Database:
    """
    A CouchDB database.

    The handle holds only the database name and the transport, so it can
    be shared freely between concurrent tasks.

    Example:
        db = client["myapp"]

        doc = await db.create({"name": "Alice"})
        doc.merge({"status": "vip"})
        doc = await db.save(doc)

        batch = await db.find(FindQuery(selector={"status": "vip"}))
        async for batch in db.iterate(FindQuery.find_all(), batch_size=500):
            ...

        await db.remove(doc)
    """

    __slots__ = ("_transport", "_client", "_name")

    def __init__(
        self,
        transport: Transport,
        client: CouchClient | None,
        name: str,
    ) -> None:
        """
        Initialize a database.

        Args:
            transport: The transport used for requests.
            client: Parent CouchClient instance.
            name: Database name.
        """
        self._transport = transport
        self._client = client
        self._name = name

    @property
    def name(self) -> str:
        """Get the database name."""
        return self._name

    @property
    def client(self) -> CouchClient | None:
        """Get the parent client."""
        return self._client

    def _document_path(self, doc_id: str) -> str:
        if doc_id.startswith("_design/"):
            return f"{self._name}/_design/{quote(doc_id[len('_design/'):], safe='')}"
        return f"{self._name}/{quote(doc_id, safe='')}"

    async def exists(self, doc_id: str) -> bool:
        """
        Check if a document exists.

        Args:
            doc_id: Document id.

        Returns:
            True if the server knows the document, False otherwise
            (including when the request itself fails).
        """
        try:
            status, _ = await self._transport.head(self._document_path(doc_id))
        except TransportError as e:
            logger.warning("HEAD %s/%s failed: %s", self._name, doc_id, e)
            return False
        return status in (200, 304)

    async def get(self, doc_id: str) -> Document:
        """
        Get a single document.

        Args:
            doc_id: Document id.

        Returns:
            The current version of the document.

        Raises:
            NotFoundError: If the document does not exist.
            CouchError: If the server rejects the request.
        """
        status, body = await self._transport.get(self._document_path(doc_id))
        _check_status(status, body)
        return Document(body)

    async def get_bulk(self, ids: DocumentIds) -> DocumentCollection:
        """
        Get several documents in one request.

        Args:
            ids: Ids of the documents to fetch. Unknown ids are skipped.

        Returns:
            DocumentCollection with the documents found.
        """
        status, body = await self._transport.post(
            f"{self._name}/_all_docs",
            {"keys": list(ids)},
            {"include_docs": True},
        )
        _check_status(status, body)
        return DocumentCollection.from_all_docs(body)

    async def get_all(self, **params: Any) -> DocumentCollection:
        """
        Get every document in the database in one request.

        Prefer iterate() or get_all_batched() for large databases.

        Args:
            **params: ``_all_docs`` options (limit, skip, startkey, ...).

        Returns:
            DocumentCollection without design documents.
        """
        options = dict(params)
        options["include_docs"] = True
        status, body = await self._transport.post(f"{self._name}/_all_docs", options)
        _check_status(status, body)
        return DocumentCollection.from_all_docs(body)

    async def bulk_docs(self, docs: list[RawDocument | Document]) -> list[DocumentCreatedResult]:
        """
        Write several documents in one request.

        Documents without ``_rev`` are created, documents with ``_id`` and
        ``_rev`` are updated, and ``"_deleted": true`` deletes them. Each
        document succeeds or fails on its own.

        Args:
            docs: Documents to write.

        Returns:
            One DocumentCreatedResult per document, in order.
        """
        raw = [doc.get_data() if isinstance(doc, Document) else dict(doc) for doc in docs]
        status, body = await self._transport.post(f"{self._name}/_bulk_docs", {"docs": raw})
        if not 200 <= status < 300:
            raise _write_error(status, body)
        return [DocumentCreatedResult.from_json(item) for item in body or []]

    async def create(self, raw_doc: RawDocument | Document) -> Document:
        """
        Create a document.

        The server assigns the id unless the document proposes one.

        Args:
            raw_doc: The document to create.

        Returns:
            The submitted document stamped with its id and first revision.

        Raises:
            ConflictError: If a document with the same id already exists.
            WriteError: If the server rejects the document.
            InvalidResponseError: If the reply lacks the id or revision.
        """
        doc = Document(raw_doc)
        status, body = await self._transport.post(self._name, doc.get_data())
        result = DocumentCreatedResult.from_json(body if isinstance(body, Mapping) else None)

        if result.ok is not True:
            raise _write_error(status, body)
        if not result.id:
            raise InvalidResponseError("invalid id", status)
        if not result.rev:
            raise InvalidResponseError("invalid rev", status)

        logger.debug("Created %s/%s at %s", self._name, result.id, result.rev)
        return doc.with_id(result.id).with_rev(result.rev)

    async def save(self, doc: RawDocument | Document) -> Document:
        """
        Save a document under its id.

        With a revision the server updates the document, or rejects the
        write if the revision is stale. Without one it creates the document
        under the given id.

        Args:
            doc: The document to save. Must carry an id.

        Returns:
            The submitted document stamped with the new revision.

        Raises:
            ValueError: If the document has no id.
            ConflictError: If the revision is stale or the id is taken.
            WriteError: If the server rejects the write.
            InvalidResponseError: If the reply lacks the new revision.
        """
        doc = Document(doc)
        if not doc.id:
            raise ValueError("Document requires an _id to be saved")

        status, body = await self._transport.put(self._document_path(doc.id), doc.get_data())
        result = DocumentCreatedResult.from_json(body if isinstance(body, Mapping) else None)

        if result.ok is not True:
            raise _write_error(status, body)
        if not result.rev:
            raise InvalidResponseError("invalid rev", status)

        logger.debug("Saved %s/%s at %s", self._name, doc.id, result.rev)
        return doc.with_rev(result.rev)

    async def upsert(self, doc: RawDocument | Document) -> Document:
        """
        Update a document if it exists, otherwise create it.

        Always fetches the current version first, so save() is cheaper when
        the revision is already known.

        Args:
            doc: The document to write. Must carry an id.

        Returns:
            The written document with its new revision.

        Raises:
            ValueError: If the document has no id.
            WriteError: If the save is rejected.
            CouchError: If fetching the current version fails for any
                reason other than the document being absent.
        """
        doc = Document(doc)
        if not doc.id:
            raise ValueError("Document requires an _id to be upserted")

        try:
            current = await self.get(doc.id)
        except NotFoundError:
            return await self.save(doc)

        return await self.save(current.merge(doc))

    async def remove(self, doc: RawDocument | Document) -> bool:
        """
        Delete a document.

        Args:
            doc: The currently known version, carrying both id and revision.

        Returns:
            True if the server deleted the document, False on any failure.
        """
        doc = Document(doc)
        if not doc.id or not doc.rev:
            logger.warning("Cannot remove document without both _id and _rev: %r", doc)
            return False

        try:
            status, body = await self._transport.delete(
                self._document_path(doc.id),
                {"rev": doc.rev},
            )
        except TransportError as e:
            logger.warning("Removing %s/%s failed: %s", self._name, doc.id, e)
            return False

        if status in (200, 304):
            return True
        logger.warning(
            "Removing %s/%s rejected with %s: %s",
            self._name,
            doc.id,
            status,
            _error_message(body),
        )
        return False

    async def find(self, query: FindQuery) -> DocumentCollection:
        """
        Run a Mango query.

        Design documents are never part of the result.

        Args:
            query: The query to run.

        Returns:
            One batch of results, with a bookmark when more may follow.

        Raises:
            QueryError: If the server answers with an error payload or
                with something other than a JSON object.
            TransportError: If the request fails or the reply is not JSON.
        """
        status, body = await self._transport.post(f"{self._name}/_find", query.to_json())
        if body is None:
            body = {}
        if not isinstance(body, Mapping):
            raise QueryError(UNSPECIFIED_ERROR, status)
        if body.get("error"):
            raise QueryError(str(body["error"]), status)
        if not 200 <= status < 300:
            raise QueryError(UNSPECIFIED_ERROR, status)

        docs = body.get("docs")
        if not docs:
            return DocumentCollection()

        rows = [Document(doc) for doc in docs if not is_design_id(doc.get("_id", ""))]

        bookmark = body.get("bookmark") or None
        if bookmark == NIL_BOOKMARK:
            bookmark = None

        return DocumentCollection(rows, bookmark=bookmark)

    async def find_batched(
        self,
        query: FindQuery,
        queue: asyncio.Queue[DocumentCollection],
        batch_size: int = 0,
        max_results: int = 0,
    ) -> int:
        """
        Run a query page by page, following bookmarks.

        Each batch is put on ``queue``; when the queue is bounded and full
        this waits until the consumer takes a batch. A ``max_results`` is
        rounded up to whole batches.

        Args:
            query: The query to run. It is not modified.
            queue: Queue receiving each DocumentCollection.
            batch_size: Documents per page; 0 means 1000.
            max_results: Stop once this many documents were delivered;
                0 means no limit.

        Returns:
            Number of documents delivered.

        Raises:
            QueryError: If a page fails. Batches already delivered stay
                on the queue.
        """
        limit = batch_size if batch_size > 0 else DEFAULT_BATCH_SIZE
        base = query.with_limit(limit)
        bookmark: str | None = None
        results = 0

        while True:
            batch = await self.find(base.with_bookmark(bookmark))

            if batch.total_rows == 0:
                break

            # A repeated bookmark means the server cannot move any further.
            if batch.bookmark is not None and batch.bookmark == bookmark:
                logger.debug("Bookmark repeated by %s/_find, stopping", self._name)
                break

            results += batch.total_rows
            await queue.put(batch)

            if batch.bookmark is None:
                break
            bookmark = batch.bookmark

            if max_results > 0 and results >= max_results:
                break

        return results

    async def get_all_batched(
        self,
        queue: asyncio.Queue[DocumentCollection],
        batch_size: int = 0,
        max_results: int = 0,
    ) -> int:
        """
        Page through every document in the database.

        Same as ``find_batched(FindQuery.find_all(), ...)``.
        """
        return await self.find_batched(FindQuery.find_all(), queue, batch_size, max_results)

    def iterate(
        self,
        query: FindQuery,
        batch_size: int = 0,
        max_results: int = 0,
        max_pending: int = 1,
    ) -> BatchCursor:
        """
        Iterate over the batches of a query.

        Args:
            query: The query to run.
            batch_size: Documents per page; 0 means 1000.
            max_results: Stop once this many documents were delivered;
                0 means no limit.
            max_pending: Batches fetched ahead of the consumer.

        Returns:
            BatchCursor yielding DocumentCollection batches.

        Example:
            async with db.iterate(FindQuery.find_all(), batch_size=100) as cursor:
                async for batch in cursor:
                    for doc in batch:
                        print(doc.id)
            print(cursor.total)
        """
        return BatchCursor(self, query, batch_size, max_results, max_pending)

    def __repr__(self) -> str:
        return f"Database({self._name!r})"
