"""
Type definitions for couch-do SDK.

Provides the Mango query type, write result types and the exception
hierarchy shared by the client, database and cursor modules.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Sequence


@dataclass
class FindQuery:
    """
    A Mango query for the ``_find`` endpoint.

    Attributes:
        selector: Mango selector used to match documents.
        fields: Fields to return (projection).
        sort: Sort specification, e.g. ``[{"name": "asc"}]``.
        limit: Maximum number of documents per response.
        skip: Number of matches to skip.
        use_index: Design document (or [design document, index name]) to use.
        bookmark: Continuation token from a previous response.
        execution_stats: Include execution statistics in the response.
        r: Read quorum.
        update: Update the index before returning results.
        stable: Use the same set of shards for every request.
    """

    selector: dict[str, Any] = field(default_factory=dict)
    fields: list[str] | None = None
    sort: list[Any] | None = None
    limit: int | None = None
    skip: int | None = None
    use_index: str | list[str] | None = None
    bookmark: str | None = None
    execution_stats: bool | None = None
    r: int | None = None
    update: bool | None = None
    stable: bool | None = None

    @classmethod
    def find_all(cls) -> FindQuery:
        """Query matching every document in the database."""
        return cls(selector={"_id": {"$ne": None}})

    def with_bookmark(self, bookmark: str | None) -> FindQuery:
        """Return a copy of this query resuming from ``bookmark``."""
        return replace(copy.deepcopy(self), bookmark=bookmark)

    def with_limit(self, limit: int | None) -> FindQuery:
        """Return a copy of this query with a different page size."""
        return replace(copy.deepcopy(self), limit=limit)

    def to_json(self) -> dict[str, Any]:
        """Build the request body, leaving out unset options."""
        body: dict[str, Any] = {"selector": self.selector}
        optional = {
            "fields": self.fields,
            "sort": self.sort,
            "limit": self.limit,
            "skip": self.skip,
            "use_index": self.use_index,
            "bookmark": self.bookmark,
            "execution_stats": self.execution_stats,
            "r": self.r,
            "update": self.update,
            "stable": self.stable,
        }
        body.update({key: value for key, value in optional.items() if value is not None})
        return body


@dataclass
class DocumentCreatedResult:
    """
    Per-document reply of a write or bulk write.

    Attributes:
        id: The document id.
        rev: The new revision, if the write succeeded.
        ok: Whether the write succeeded.
        error: Error code returned by the server.
        reason: Human readable error description.
    """

    id: str | None = None
    rev: str | None = None
    ok: bool | None = None
    error: str | None = None
    reason: str | None = None

    @classmethod
    def from_json(cls, data: Mapping[str, Any] | None) -> DocumentCreatedResult:
        """Build a result from a server reply, ignoring unknown keys."""
        data = data or {}
        return cls(
            id=data.get("id"),
            rev=data.get("rev"),
            ok=data.get("ok"),
            error=data.get("error"),
            reason=data.get("reason"),
        )


# Type aliases for clarity
RawDocument = Mapping[str, Any]
QueryParams = Mapping[str, Any]
DocumentIds = Sequence[str]


class CouchError(Exception):
    """Base exception for CouchDB operations."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, status={self.status!r})"


class ConnectionError(CouchError):
    """Error raised when the client cannot connect to CouchDB."""

    pass


class TransportError(CouchError):
    """Error raised when a request fails before a response is received."""

    pass


class NotFoundError(CouchError):
    """Error raised when a document does not exist."""

    pass


class WriteError(CouchError):
    """Error raised when the server rejects a write."""

    pass


class ConflictError(WriteError):
    """Error raised when a write carries a stale revision or a duplicate id."""

    pass


class InvalidResponseError(CouchError):
    """Error raised when a successful write reply lacks an id or revision."""

    pass


class QueryError(CouchError):
    """
    Error raised when the find endpoint returns an error payload.

    ``status`` is the HTTP status of the response and ``message`` the
    body's ``error`` field. The two can disagree (a 200 carrying an error).
    """

    pass
