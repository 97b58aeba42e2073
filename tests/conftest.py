"""
Pytest fixtures for couch-do tests.

Provides an in-memory transport that speaks enough of the CouchDB HTTP
API for the client, database and cursor tests to run without a server.
"""

from __future__ import annotations

import copy
import uuid
from typing import Any, Mapping
from urllib.parse import unquote

import pytest

NOT_FOUND = {"error": "not_found", "reason": "missing"}
NO_DB = {"error": "not_found", "reason": "Database does not exist."}
CONFLICT = {"error": "conflict", "reason": "Document update conflict."}

DEFAULT_FIND_LIMIT = 25


def new_rev(previous: str | None = None) -> str:
    """Next revision after ``previous``."""
    generation = int(previous.split("-", 1)[0]) + 1 if previous else 1
    return f"{generation}-{uuid.uuid4().hex}"


class MockTransport:
    """In-memory CouchDB server behind the Transport interface."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self.requests: list[tuple[str, str]] = []
        self.find_bodies: list[dict[str, Any]] = []
        self.closed = False

    # Helpers for tests

    def seed(self, database: str, docs: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Store documents directly, assigning first revisions."""
        data = self._data.setdefault(database, {})
        stored = []
        for doc in docs:
            doc = copy.deepcopy(doc)
            doc.setdefault("_id", uuid.uuid4().hex)
            doc["_rev"] = new_rev()
            data[doc["_id"]] = doc
            stored.append(copy.deepcopy(doc))
        return stored

    def stored(self, database: str, doc_id: str) -> dict[str, Any] | None:
        doc = self._data.get(database, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def count(self, method: str, suffix: str = "") -> int:
        return sum(1 for m, p in self.requests if m == method and p.endswith(suffix))

    # Transport interface

    async def get(self, path: str, params: Mapping[str, Any] | None = None) -> tuple[int, Any]:
        self.requests.append(("GET", path))
        if path == "":
            return 200, {"couchdb": "Welcome", "version": "3.3.3"}
        if path == "_all_dbs":
            return 200, ["_replicator", "_users", *sorted(self._data)]

        database, doc_id = self._split(path)
        if database not in self._data:
            return 404, NO_DB
        if not doc_id:
            return 200, {"db_name": database, "doc_count": len(self._data[database])}
        doc = self._data[database].get(doc_id)
        if doc is None:
            return 404, NOT_FOUND
        return 200, copy.deepcopy(doc)

    async def head(self, path: str) -> tuple[int, Any]:
        status, _ = await self.get(path)
        self.requests[-1] = ("HEAD", path)
        return status, None

    async def post(
        self,
        path: str,
        body: Any,
        params: Mapping[str, Any] | None = None,
    ) -> tuple[int, Any]:
        self.requests.append(("POST", path))
        database, rest = self._split(path)
        if database not in self._data:
            return 404, NO_DB

        if rest == "":
            return self._write(database, body, create_only=True)
        if rest == "_find":
            self.find_bodies.append(copy.deepcopy(body))
            return self._find(database, body)
        if rest == "_all_docs":
            include_docs = bool((params or {}).get("include_docs") or body.get("include_docs"))
            return self._all_docs(database, body.get("keys"), include_docs)
        if rest == "_bulk_docs":
            results = []
            for doc in body["docs"]:
                status, reply = self._write(database, doc)
                if status >= 400:
                    reply = {"id": doc.get("_id"), **reply}
                results.append(reply)
            return 201, results
        return 400, {"error": "bad_request", "reason": f"unknown endpoint {rest}"}

    async def put(
        self,
        path: str,
        body: Any,
        params: Mapping[str, Any] | None = None,
    ) -> tuple[int, Any]:
        self.requests.append(("PUT", path))
        database, doc_id = self._split(path)

        if not doc_id:
            if database in self._data:
                return 412, {"error": "file_exists", "reason": "The database could not be created."}
            self._data[database] = {}
            return 201, {"ok": True}

        if database not in self._data:
            return 404, NO_DB
        doc = dict(body)
        doc["_id"] = doc_id
        return self._write(database, doc)

    async def delete(self, path: str, params: Mapping[str, Any] | None = None) -> tuple[int, Any]:
        self.requests.append(("DELETE", path))
        database, doc_id = self._split(path)

        if database not in self._data:
            return 404, NO_DB
        if not doc_id:
            del self._data[database]
            return 200, {"ok": True}

        current = self._data[database].get(doc_id)
        if current is None:
            return 404, NOT_FOUND
        if (params or {}).get("rev") != current["_rev"]:
            return 409, CONFLICT
        del self._data[database][doc_id]
        return 200, {"ok": True, "id": doc_id, "rev": new_rev(current["_rev"])}

    async def close(self) -> None:
        self.closed = True

    # Server behaviour

    def _split(self, path: str) -> tuple[str, str]:
        database, _, rest = path.partition("/")
        return unquote(database), unquote(rest)

    def _write(
        self,
        database: str,
        doc: dict[str, Any],
        create_only: bool = False,
    ) -> tuple[int, dict[str, Any]]:
        data = self._data[database]
        doc = copy.deepcopy(doc)
        doc_id = doc.get("_id") or uuid.uuid4().hex
        current = data.get(doc_id)

        if doc.get("_deleted"):
            if current is None:
                return 404, NOT_FOUND
            if doc.get("_rev") != current["_rev"]:
                return 409, CONFLICT
            del data[doc_id]
            return 201, {"ok": True, "id": doc_id, "rev": new_rev(current["_rev"])}

        if current is not None:
            if create_only or doc.get("_rev") != current["_rev"]:
                return 409, CONFLICT
        elif doc.get("_rev"):
            return 409, CONFLICT

        doc["_id"] = doc_id
        doc["_rev"] = new_rev(current["_rev"] if current else None)
        data[doc_id] = doc
        return 201, {"ok": True, "id": doc_id, "rev": doc["_rev"]}

    def _find(self, database: str, body: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        selector = body.get("selector")
        if not isinstance(selector, dict):
            return 400, {"error": "bad_request", "reason": "Missing required key: selector"}

        bookmark = body.get("bookmark")
        start = 0
        if bookmark is not None:
            if not bookmark.startswith("page-"):
                return 400, {"error": "invalid_bookmark", "reason": "Invalid bookmark value"}
            start = int(bookmark[len("page-"):])

        limit = body.get("limit") or DEFAULT_FIND_LIMIT
        matched = [
            doc
            for _, doc in sorted(self._data[database].items())
            if self._matches(doc, selector)
        ]
        page = matched[start : start + limit]

        fields = body.get("fields")
        if fields:
            page = [{k: v for k, v in doc.items() if k in fields} for doc in page]

        next_bookmark = f"page-{start + len(page)}" if page else "nil"
        return 200, {"docs": copy.deepcopy(page), "bookmark": next_bookmark}

    def _all_docs(
        self,
        database: str,
        keys: list[str] | None,
        include_docs: bool,
    ) -> tuple[int, dict[str, Any]]:
        data = self._data[database]
        rows = []
        for key in keys if keys is not None else sorted(data):
            doc = data.get(key)
            if doc is None:
                rows.append({"key": key, "error": "not_found"})
                continue
            row = {"id": key, "key": key, "value": {"rev": doc["_rev"]}}
            if include_docs:
                row["doc"] = copy.deepcopy(doc)
            rows.append(row)
        return 200, {"total_rows": len(data), "offset": 0, "rows": rows}

    def _matches(self, doc: dict[str, Any], selector: dict[str, Any]) -> bool:
        """Check if document matches a Mango selector."""
        for key, value in selector.items():
            if key == "$and":
                if not all(self._matches(doc, s) for s in value):
                    return False
                continue
            if key == "$or":
                if not any(self._matches(doc, s) for s in value):
                    return False
                continue

            doc_value = doc.get(key)

            if isinstance(value, dict):
                for op, op_value in value.items():
                    if op == "$eq":
                        if doc_value != op_value:
                            return False
                    elif op == "$ne":
                        if doc_value == op_value:
                            return False
                    elif op == "$gt":
                        if doc_value is None or doc_value <= op_value:
                            return False
                    elif op == "$gte":
                        if doc_value is None or doc_value < op_value:
                            return False
                    elif op == "$lt":
                        if doc_value is None or doc_value >= op_value:
                            return False
                    elif op == "$in":
                        if doc_value not in op_value:
                            return False
                    elif op == "$exists":
                        if bool(op_value) != (key in doc):
                            return False
            elif doc_value != value:
                return False

        return True


@pytest.fixture
def transport() -> MockTransport:
    """Create an in-memory transport."""
    return MockTransport()


@pytest.fixture
async def client(transport: MockTransport):
    """Create a connected CouchClient."""
    from couch_do import CouchClient

    client = CouchClient("http://test.couch.do:5984", transport=transport)
    await client.connect()
    return client


@pytest.fixture
async def database(client):
    """Create a database."""
    return await client.create_database("testdb")


@pytest.fixture
def seed_docs(database, transport: MockTransport):
    """Store ``count`` numbered documents in the test database."""

    def seed(count: int, **fields: Any) -> list[dict[str, Any]]:
        docs = [{"_id": f"doc-{i:04d}", "n": i, **fields} for i in range(count)]
        return transport.seed(database.name, docs)

    return seed
