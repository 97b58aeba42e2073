"""
Document - Versioned JSON records and result batches.

A Document is a JSON object plus the two fields CouchDB manages: ``_id``
and ``_rev``. A DocumentCollection is one batch of documents returned by
a query, with an optional bookmark for fetching the next batch.
"""

from __future__ import annotations

import copy
from typing import Any, Iterator, KeysView, Mapping, Sequence

__all__ = ["Document", "DocumentCollection", "is_design_id", "merge"]

ID_FIELD = "_id"
REV_FIELD = "_rev"

# Ids with this prefix belong to design and other system documents.
RESERVED_PREFIX = "_"


def is_design_id(doc_id: str) -> bool:
    """Check whether an id refers to a design or system document."""
    return doc_id.startswith(RESERVED_PREFIX)


class Document:
    """
    A JSON document with identity and revision.

    Example:
        doc = Document({"_id": "john", "first_name": "John"})
        doc.merge({"last_name": "Doe"})
        doc.id        # "john"
        doc.rev       # "" until the document has been written
        doc["last_name"]
    """

    __slots__ = ("_id", "_rev", "_doc")

    def __init__(self, data: Mapping[str, Any] | Document | None = None) -> None:
        """
        Initialize a document.

        Args:
            data: The raw JSON object, optionally carrying ``_id`` and ``_rev``.

        Raises:
            TypeError: If data is not a mapping.
        """
        if isinstance(data, Document):
            data = data.get_data()
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise TypeError(f"Document requires a JSON object, got {type(data).__name__}")

        body = copy.deepcopy(dict(data))
        self._id: str = body.pop(ID_FIELD, None) or ""
        self._rev: str = body.pop(REV_FIELD, None) or ""
        self._doc: dict[str, Any] = body

    @property
    def id(self) -> str:
        """Get the document id, or an empty string when unassigned."""
        return self._id

    @property
    def rev(self) -> str:
        """Get the current revision, or an empty string when never written."""
        return self._rev

    @property
    def data(self) -> dict[str, Any]:
        """Get the document body without ``_id`` and ``_rev``."""
        return self._doc

    def get_data(self) -> dict[str, Any]:
        """
        Get the full JSON object as sent to the server.

        Returns:
            A copy of the body with ``_id`` and ``_rev`` set when known.
        """
        value = copy.deepcopy(self._doc)
        if self._id:
            value[ID_FIELD] = self._id
        if self._rev:
            value[REV_FIELD] = self._rev
        return value

    def merge(self, patch: Mapping[str, Any] | Document) -> Document:
        """
        Overlay the fields of ``patch`` onto this document.

        Overlapping keys take the value from ``patch``. The id is never
        changed; the revision only changes when ``patch`` carries one.

        Args:
            patch: Fields to apply.

        Returns:
            Self for chaining.
        """
        if isinstance(patch, Document):
            patch = patch.get_data()

        for key, value in patch.items():
            if key == ID_FIELD:
                continue
            if key == REV_FIELD:
                if value:
                    self._rev = value
                continue
            self._doc[key] = copy.deepcopy(value)
        return self

    def with_rev(self, rev: str) -> Document:
        """Return a copy of this document stamped with a new revision."""
        doc = Document(self)
        doc._rev = rev
        return doc

    def with_id(self, doc_id: str) -> Document:
        """Return a copy of this document carrying ``doc_id``."""
        doc = Document(self)
        doc._id = doc_id
        return doc

    def get(self, key: str, default: Any = None) -> Any:
        """Get a field of the document body."""
        return self._doc.get(key, default)

    def keys(self) -> KeysView[str]:
        """Get the field names of the document body."""
        return self._doc.keys()

    def __getitem__(self, key: str) -> Any:
        return self._doc[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if key in (ID_FIELD, REV_FIELD):
            raise KeyError(f"{key} is managed by the server")
        self._doc[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._doc

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Document):
            return NotImplemented
        return self.get_data() == other.get_data()

    def __repr__(self) -> str:
        return f"Document(id={self._id!r}, rev={self._rev!r})"


def merge(base: Mapping[str, Any] | Document, patch: Mapping[str, Any] | Document) -> Document:
    """
    Merge ``patch`` into a copy of ``base``.

    Args:
        base: The current version of the document.
        patch: Fields to overlay.

    Returns:
        A new Document; ``base`` is left untouched.
    """
    return Document(base).merge(patch)


class DocumentCollection:
    """
    One batch of query results.

    ``total_rows`` counts the documents in this batch; zero means the
    query is exhausted, whether or not a bookmark was returned.
    """

    __slots__ = ("rows", "total_rows", "offset", "bookmark")

    def __init__(
        self,
        rows: Sequence[Document] | None = None,
        bookmark: str | None = None,
        offset: int = 0,
    ) -> None:
        self.rows: list[Document] = list(rows or [])
        self.total_rows: int = len(self.rows)
        self.offset = offset
        self.bookmark = bookmark

    @classmethod
    def from_all_docs(cls, data: Mapping[str, Any] | None) -> DocumentCollection:
        """
        Build a collection from an ``_all_docs`` reply.

        Rows without a document (unknown keys, deleted documents) and
        design documents are left out.
        """
        data = data or {}
        rows = []
        for row in data.get("rows") or []:
            doc = row.get("doc")
            if not doc or is_design_id(row.get("id", "")):
                continue
            rows.append(Document(doc))
        return cls(rows, offset=data.get("offset") or 0)

    def get_data(self) -> list[dict[str, Any]]:
        """Get the raw JSON objects of every document in the batch."""
        return [doc.get_data() for doc in self.rows]

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Document]:
        return iter(self.rows)

    def __getitem__(self, index: int) -> Document:
        return self.rows[index]

    def __repr__(self) -> str:
        return f"DocumentCollection(total_rows={self.total_rows}, bookmark={self.bookmark!r})"
