"""In-memory document store adapter."""

import asyncio
import json
import uuid
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from typing import Any

from couchlog.core.documents import DESIGN_NAME, VIEW_NAME
from couchlog.core.exceptions import ConflictError, NotFoundError, StoreError
from couchlog.core.models import LOG_RESOURCE, StreamOffset

# A view map function: document -> (key, value) pairs.
MapFunction = Callable[[dict[str, Any]], Iterable[tuple[Any, Any]]]


def map_logs_by_timestamp(doc: dict[str, Any]) -> Iterable[tuple[Any, Any]]:
    """Python counterpart of the ``byTimestamp`` JavaScript map function."""
    if doc.get("resource") == LOG_RESOURCE:
        yield doc["params"]["timestamp"], doc


class InMemoryChangeFeed:
    """Continuous change feed over an InMemoryDocumentStore."""

    def __init__(
        self, store: "InMemoryDocumentStore", since: int, include_docs: bool
    ) -> None:
        self._store = store
        self._position = since
        self._include_docs = include_docs
        self._stopped = False

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[dict[str, Any]]:
        while not self._stopped:
            pending = self._store._changes_after(self._position)
            if not pending:
                async with self._store._changed:
                    await self._store._changed.wait_for(
                        lambda: self._stopped
                        or bool(self._store._changes_after(self._position))
                    )
                continue
            for change in pending:
                if self._stopped:
                    return
                self._position = change["seq"]
                change = dict(change)
                if not self._include_docs:
                    change.pop("doc", None)
                yield change

    async def stop(self) -> None:
        self._stopped = True
        async with self._store._changed:
            self._store._changed.notify_all()


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStorePort.

    Keeps documents in a dict and changes in a list, with integer update
    sequences. Documents are copied through JSON on the way in, so anything
    that would not survive the wire fails here too. Views are evaluated with
    Python map functions; the log view is registered by default.
    Suitable for testing and local development without a CouchDB server.
    """

    def __init__(self, db_name: str = "winston", exists: bool = True) -> None:
        self.db_name = db_name
        self._exists = exists
        self._docs: dict[str, dict[str, Any]] = {}
        self._changes: list[dict[str, Any]] = []
        self._seq = 0
        self._changed = asyncio.Condition()
        self._views: dict[tuple[str, str], MapFunction] = {
            (DESIGN_NAME, VIEW_NAME): map_logs_by_timestamp
        }

    def register_view(self, design: str, view: str, map_fn: MapFunction) -> None:
        """Register the Python map function evaluating design/view."""
        self._views[(design, view)] = map_fn

    @property
    def documents(self) -> list[dict[str, Any]]:
        """Copies of all stored documents, in insertion order."""
        return [json.loads(json.dumps(doc)) for doc in self._docs.values()]

    def _require_db(self) -> None:
        if not self._exists:
            raise NotFoundError(
                "Database does not exist.",
                status_code=404,
                reason="not_found",
                context={"db": self.db_name},
            )

    async def _record_change(
        self, doc_id: str, rev: str, doc: dict[str, Any], deleted: bool = False
    ) -> None:
        self._seq += 1
        change: dict[str, Any] = {
            "seq": self._seq,
            "id": doc_id,
            "changes": [{"rev": rev}],
            "doc": doc,
        }
        if deleted:
            change["deleted"] = True
        self._changes.append(change)
        async with self._changed:
            self._changed.notify_all()

    def _changes_after(self, since: int) -> list[dict[str, Any]]:
        return [c for c in self._changes if c["seq"] > since]

    async def insert(self, document: Mapping[str, Any]) -> dict[str, Any]:
        self._require_db()
        doc: dict[str, Any] = json.loads(json.dumps(document))
        doc_id = doc.get("_id") or uuid.uuid4().hex
        if doc_id in self._docs:
            raise ConflictError(
                "Document update conflict.",
                status_code=409,
                reason="conflict",
                context={"id": doc_id},
            )
        rev = f"1-{uuid.uuid4().hex}"
        doc["_id"], doc["_rev"] = doc_id, rev
        self._docs[doc_id] = doc
        await self._record_change(doc_id, rev, json.loads(json.dumps(doc)))
        return {"ok": True, "id": doc_id, "rev": rev}

    async def delete(self, doc_id: str) -> dict[str, Any]:
        """Delete a document, recording a ``deleted`` change."""
        self._require_db()
        if doc_id not in self._docs:
            raise NotFoundError(
                "missing", status_code=404, reason="not_found", context={"id": doc_id}
            )
        del self._docs[doc_id]
        rev = f"2-{uuid.uuid4().hex}"
        await self._record_change(
            doc_id, rev, {"_id": doc_id, "_rev": rev, "_deleted": True}, deleted=True
        )
        return {"ok": True, "id": doc_id, "rev": rev}

    async def get(self, doc_id: str) -> dict[str, Any]:
        self._require_db()
        doc = self._docs.get(doc_id)
        if doc is None:
            raise NotFoundError(
                "missing", status_code=404, reason="not_found", context={"id": doc_id}
            )
        return json.loads(json.dumps(doc))

    async def info(self) -> dict[str, Any]:
        self._require_db()
        return {
            "db_name": self.db_name,
            "doc_count": len(self._docs),
            "update_seq": self._seq,
        }

    async def create(self) -> None:
        if self._exists:
            raise StoreError(
                "The database could not be created, the file already exists.",
                status_code=412,
                reason="file_exists",
                context={"db": self.db_name},
            )
        self._exists = True

    async def view(
        self, design: str, view: str, params: Mapping[str, Any]
    ) -> list[dict[str, Any]]:
        """Evaluate a view with CouchDB key range semantics.

        Supports ``startkey``, ``endkey`` (both inclusive), ``descending``,
        ``skip`` and ``limit``. The design document must exist.
        """
        self._require_db()
        design_doc = self._docs.get(f"_design/{design}")
        map_fn = self._views.get((design, view))
        if design_doc is None or view not in design_doc.get("views", {}) or not map_fn:
            raise NotFoundError(
                "missing_named_view",
                status_code=404,
                reason="not_found",
                context={"design": design, "view": view},
            )

        rows = [
            {"id": doc_id, "key": key, "value": value}
            for doc_id, doc in self._docs.items()
            if not doc_id.startswith("_design/")
            for key, value in map_fn(json.loads(json.dumps(doc)))
        ]
        descending = bool(params.get("descending"))
        rows.sort(key=lambda r: (r["key"], r["id"]), reverse=descending)

        startkey = params.get("startkey")
        endkey = params.get("endkey")
        if descending:
            rows = [
                r
                for r in rows
                if (startkey is None or r["key"] <= startkey)
                and (endkey is None or r["key"] >= endkey)
            ]
        else:
            rows = [
                r
                for r in rows
                if (startkey is None or r["key"] >= startkey)
                and (endkey is None or r["key"] <= endkey)
            ]

        skip = int(params.get("skip") or 0)
        rows = rows[skip:]
        if params.get("limit") is not None:
            rows = rows[: int(params["limit"])]
        return rows

    def follow(
        self,
        since: StreamOffset = 0,
        *,
        include_docs: bool = True,
        style: str = "main_only",
        descending: bool = False,
    ) -> InMemoryChangeFeed:
        return InMemoryChangeFeed(self, int(since), include_docs)
