"""CouchDB logging transport.

Composes the write path, view provisioning, query translation and change
stream behind one object. The store client is built lazily from the
connection options the first time it is needed.
"""

import asyncio
import logging
from collections.abc import Mapping
from types import TracebackType
from typing import Any

from couchlog.adapters.storage.couchdb import CouchDBClient
from couchlog.config import CouchDBTransportOptions
from couchlog.core.documents import (
    DEFAULT_LEVEL,
    DESIGN_NAME,
    VIEW_NAME,
    build_log_document,
)
from couchlog.core.events import EventEmitter, Handler
from couchlog.core.exceptions import CouchlogError
from couchlog.core.models import LogEvent, QueryOptions, StreamOptions
from couchlog.core.ports import DocumentStorePort
from couchlog.core.provisioning import IndexProvisioner
from couchlog.core.query import (
    build_view_params,
    normalize_query,
    project_fields,
    unwrap_rows,
)
from couchlog.stream import LogStream

logger = logging.getLogger(__name__)


def _has_running_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class CouchDBTransport:
    """Logging transport persisting log events as CouchDB documents.

    Emits ``error`` (exception) when a write fails and ``logged``
    (level, message) shortly after a write succeeds.

    Example:
        ```python
        transport = CouchDBTransport(host="localhost", db="logs")
        await transport.log("info", "hello world", {"user": 42})
        recent = await transport.query({"rows": 5})
        ```
    """

    def __init__(
        self,
        options: CouchDBTransportOptions | None = None,
        *,
        store: DocumentStorePort | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the transport.

        Args:
            options: Resolved options. Built from kwargs when omitted.
            store: Pre-built document store. When omitted a CouchDBClient is
                created on first use.
            **kwargs: Loose options passed to CouchDBTransportOptions.from_options.
        """
        self.options = options or CouchDBTransportOptions.from_options(**kwargs)
        self.name = self.options.name
        self.silent = self.options.silent
        self.events = EventEmitter()
        self._client = store
        self._owns_client = store is None
        self._provisioner = IndexProvisioner(
            lambda: self.client, self.options.provisioning_policy
        )

    @property
    def provisioner(self) -> IndexProvisioner:
        return self._provisioner

    @property
    def client(self) -> DocumentStorePort:
        return self._ensure_client()

    def _ensure_client(self) -> DocumentStorePort:
        """Build the store client on first use and start view provisioning."""
        if self._client is None:
            self._client = CouchDBClient(
                self.options.url,
                self.options.db,
                auth=self.options.auth,
                verify=self.options.secure,
                timeout=self.options.timeout,
            )
            logger.debug("Connected transport %r to %s", self.name, self.options.url)
        if not self._provisioner.attempted and _has_running_loop():
            self._provisioner.start()
        return self._client

    def on(self, event: str, handler: Handler | None = None) -> Any:
        return self.events.on(event, handler)

    async def ensure_view(self) -> None:
        """Ensure the database and the log view exist."""
        await self._provisioner.ensure()

    async def log(self, level: str | None, message: str, meta: Any = None) -> bool:
        """Persist one log event.

        Args:
            level: Log level. Falls back to "info" when empty.
            message: The log message.
            meta: Optional metadata; see build_log_params.

        Returns:
            True once the store acknowledged the write, or at once when silent.

        Raises:
            CouchlogError: If the store rejected the write. The error is also
                emitted as an ``error`` event.
        """
        if self.silent:
            return True
        level = level or DEFAULT_LEVEL

        document = build_log_document(level, message, meta)
        try:
            await self.client.insert(document.to_dict())
        except CouchlogError as e:
            self.events.emit("error", e)
            raise

        asyncio.get_running_loop().call_soon(
            self.events.emit, "logged", level, message
        )
        return True

    async def log_event(self, event: LogEvent | Mapping[str, Any]) -> bool:
        """Persist a log event given in object form."""
        if isinstance(event, Mapping):
            event = LogEvent(
                level=event.get("level") or DEFAULT_LEVEL,
                message=event.get("message", ""),
                meta=event.get("meta"),
            )
        return await self.log(event.level, event.message, event.meta)

    async def query(
        self, options: QueryOptions | Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Query previously written logs.

        Returns:
            The params of each matching log document, projected onto
            ``fields`` when given.

        Raises:
            QueryError: If options are invalid.
            ProvisioningError: If the view could not be ensured.
            CouchlogError: If the view query failed.
        """
        normalized = normalize_query(options)
        await self._provisioner.ensure()
        rows = await self.client.view(
            DESIGN_NAME, VIEW_NAME, build_view_params(normalized)
        )
        return project_fields(unwrap_rows(rows), normalized.fields)

    def stream(
        self, options: StreamOptions | Mapping[str, Any] | None = None
    ) -> LogStream:
        """Open a live stream of newly written logs.

        Returns immediately; the change feed is connected in the background.
        Must be called with a running event loop.
        """
        return LogStream(self.client, options).open()

    async def close(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client and isinstance(self._client, CouchDBClient):
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "CouchDBTransport":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
