"""Port interfaces for document store adapters.

These protocols define the contracts that store adapters must implement.
The transport depends only on these interfaces, not on a concrete driver.
"""

from collections.abc import AsyncIterator, Mapping
from typing import Any, Protocol, runtime_checkable

from couchlog.core.models import StreamOffset


@runtime_checkable
class ChangeFeedPort(Protocol):
    """A continuous subscription to document changes.

    Iterating yields one change notification per document revision, in
    update sequence order, as a dict with ``seq``, ``id``, optional
    ``deleted`` and, when requested, ``doc``. Iteration raises on feed
    failure and ends once ``stop`` has been called.
    """

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]: ...

    async def stop(self) -> None:
        """Stop the feed and release its connection."""
        ...


@runtime_checkable
class DocumentStorePort(Protocol):
    """Port for the document database holding log documents.

    Adapters implementing this protocol raise couchlog.core.exceptions
    errors: NotFoundError for a missing database or document, ConflictError
    for revision conflicts, StoreError for other rejections and
    StoreConnectionError when the store is unreachable.
    Examples: CouchDBClient, InMemoryDocumentStore.
    """

    async def insert(self, document: Mapping[str, Any]) -> dict[str, Any]:
        """Create a document. Returns the store's ``{id, rev}`` acknowledgement."""
        ...

    async def get(self, doc_id: str) -> dict[str, Any]:
        """Fetch a document by id."""
        ...

    async def info(self) -> dict[str, Any]:
        """Fetch database information, including ``update_seq``."""
        ...

    async def create(self) -> None:
        """Create the database."""
        ...

    async def view(
        self, design: str, view: str, params: Mapping[str, Any]
    ) -> list[dict[str, Any]]:
        """Query a view. Returns the result rows (``{id, key, value}``)."""
        ...

    def follow(
        self,
        since: StreamOffset = 0,
        *,
        include_docs: bool = True,
        style: str = "main_only",
        descending: bool = False,
    ) -> ChangeFeedPort:
        """Open a continuous change feed starting after ``since``."""
        ...
