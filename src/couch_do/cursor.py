"""
Cursor - Async iteration over paginated query results.

BatchCursor runs a bookmark-driven query in a background task and hands
the batches to the consumer through a bounded queue, so the next page is
only fetched once the consumer has room for it.
"""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType
from typing import TYPE_CHECKING, AsyncIterator

if TYPE_CHECKING:
    from .database import Database
    from .document import Document, DocumentCollection
    from .types import FindQuery

__all__ = ["BatchCursor", "DEFAULT_BATCH_SIZE"]

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000

# Put on the queue by the producer once it has finished, successfully or not.
_DONE = object()


class BatchCursor:
    """
    Async iterator over the batches of a query.

    The producer fetches one page at a time and suspends while
    ``max_pending`` batches are waiting to be consumed. Leaving the loop
    early is safe as long as the cursor is closed, which ``async with``
    does for you.

    Example:
        async with db.iterate(query, batch_size=100) as cursor:
            async for batch in cursor:
                process(batch)
        print(cursor.total)
    """

    __slots__ = (
        "_database",
        "_query",
        "_batch_size",
        "_max_results",
        "_queue",
        "_task",
        "_total",
        "_error",
        "_exhausted",
    )

    def __init__(
        self,
        database: Database,
        query: FindQuery,
        batch_size: int = 0,
        max_results: int = 0,
        max_pending: int = 1,
    ) -> None:
        """
        Initialize a cursor.

        Args:
            database: Database to query.
            query: The query to run.
            batch_size: Documents per page; 0 means 1000.
            max_results: Stop once this many documents were delivered;
                0 means no limit.
            max_pending: Capacity of the queue between producer and consumer.
        """
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")

        self._database = database
        self._query = query
        self._batch_size = batch_size
        self._max_results = max_results
        self._queue: asyncio.Queue[object] = asyncio.Queue(max_pending)
        self._task: asyncio.Task[None] | None = None
        self._total: int | None = None
        self._error: BaseException | None = None
        self._exhausted = False

    @property
    def total(self) -> int | None:
        """Documents delivered by a completed run, None until then."""
        return self._total

    @property
    def alive(self) -> bool:
        """Check if the cursor can still yield batches."""
        return not self._exhausted

    async def _produce(self) -> None:
        try:
            self._total = await self._database.find_batched(
                self._query,
                self._queue,  # type: ignore[arg-type]
                self._batch_size,
                self._max_results,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Batch iteration on %s aborted: %r", self._database.name, e)
            self._error = e
        await self._queue.put(_DONE)

    def _start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._produce())

    def __aiter__(self) -> AsyncIterator[DocumentCollection]:
        """Return async iterator."""
        return self

    async def __anext__(self) -> DocumentCollection:
        """
        Get the next batch.

        Returns:
            The next DocumentCollection.

        Raises:
            CouchError: If fetching a page failed. Batches fetched before
                the failure have already been returned.
            StopAsyncIteration: When all batches have been returned.
        """
        if self._exhausted:
            raise StopAsyncIteration

        self._start()
        item = await self._queue.get()

        if item is _DONE:
            self._exhausted = True
            assert self._task is not None
            await self._task
            if self._error is not None:
                error, self._error = self._error, None
                raise error
            raise StopAsyncIteration

        return item  # type: ignore[return-value]

    async def next(self) -> DocumentCollection:
        """Get the next batch."""
        return await self.__anext__()

    async def to_list(self) -> list[Document]:
        """
        Drain the cursor into a flat list of documents.

        Returns:
            Every document of every remaining batch.
        """
        documents: list[Document] = []
        async for batch in self:
            documents.extend(batch.rows)
        return documents

    async def close(self) -> None:
        """Stop the producer and discard pending batches."""
        self._exhausted = True
        task, self._task = self._task, None
        if task is None or task.done():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def aclose(self) -> None:
        await self.close()

    async def __aenter__(self) -> BatchCursor:
        """Async context manager entry."""
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
        state = "exhausted" if self._exhausted else "alive"
        return f"BatchCursor({self._database.name!r}, {state})"
