"""Python logging handler adapter for couchlog.

This adapter bridges Python's standard library logging module to the
CouchDB transport, so ordinary ``logger.info(...)`` calls end up as log
documents in CouchDB.
"""

import asyncio
import concurrent.futures
import logging
import threading
import traceback
from collections.abc import Callable
from typing import Any

from couchlog.transport import CouchDBTransport

# Standard LogRecord attributes that should not be treated as extra fields
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)


# Callable returning ambient attributes (request id, tenant...) merged into meta
ContextProvider = Callable[[], dict[str, Any]]

# Default attributes to extract from LogRecord
_DEFAULT_INCLUDE_ATTRS = ["module", "funcName", "lineno", "pathname"]

# couchlog's own diagnostics must not be written back through the handler.
_INTERNAL_LOGGER = "couchlog"


class CouchDBHandler(logging.Handler):
    """Logging handler that writes log records through a CouchDBTransport.

    Writes run on a private event loop thread so ``emit`` never blocks on
    the network. Call ``flush`` to wait for pending writes.

    Example:
        ```python
        from couchlog import CouchDBHandler

        handler = CouchDBHandler(host="localhost", db="logs")
        logging.getLogger().addHandler(handler)
        ```
    """

    def __init__(
        self,
        transport: CouchDBTransport | None = None,
        include_attrs: list[str] | None = None,
        context_provider: ContextProvider | None = None,
        level: int = logging.NOTSET,
        flush_timeout: float = 10.0,
        **options: Any,
    ) -> None:
        """Initialize the handler.

        Args:
            transport: Transport to write through. Built from options if omitted.
            include_attrs: List of LogRecord attributes to include. Defaults to
                ["module", "funcName", "lineno", "pathname"].
            context_provider: Optional callable whose attributes are merged into
                every record's metadata. Extra fields override them.
            level: Minimum level handled.
            flush_timeout: Seconds flush() and close() wait for pending writes.
            **options: Transport options used when transport is omitted.
        """
        super().__init__(level)
        self.transport = transport or CouchDBTransport(**options)
        self.flush_timeout = flush_timeout
        self._include_attrs = include_attrs or _DEFAULT_INCLUDE_ATTRS
        self._context_provider = context_provider
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._loop_lock = threading.Lock()
        self._pending: set[concurrent.futures.Future[None]] = set()
        self._pending_lock = threading.Lock()

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._loop_lock:
            if self._loop is None:
                self._loop = asyncio.new_event_loop()
                self._thread = threading.Thread(
                    target=self._loop.run_forever,
                    name="couchlog-handler",
                    daemon=True,
                )
                self._thread.start()
            return self._loop

    def build_meta(self, record: logging.LogRecord) -> dict[str, Any]:
        """Collect metadata for a record: selected attributes, extras, exception."""
        attr_mapping: dict[str, Any] = {
            "module": record.name,
            "funcName": record.funcName or "",
            "lineno": record.lineno,
            "pathname": record.pathname,
        }
        meta: dict[str, Any] = {
            key: attr_mapping[key] for key in self._include_attrs if key in attr_mapping
        }

        if self._context_provider is not None:
            meta.update(self._context_provider())

        for key, value in record.__dict__.items():
            if key not in _STANDARD_LOGRECORD_ATTRS:
                meta[key] = value

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            if exc_type is not None:
                meta["exc_type"] = exc_type.__name__
            if exc_value is not None:
                meta["exc_message"] = str(exc_value)
            if exc_tb is not None:
                meta["exc_traceback"] = "".join(
                    traceback.format_exception(exc_type, exc_value, exc_tb)
                )
        return meta

    def emit(self, record: logging.LogRecord) -> None:
        """Schedule a write of the log record.

        Args:
            record: The log record to emit.
        """
        if record.name == _INTERNAL_LOGGER or record.name.startswith(
            _INTERNAL_LOGGER + "."
        ):
            return
        try:
            level = record.levelname.lower()
            message = record.getMessage()
            meta = self.build_meta(record)
            future = asyncio.run_coroutine_threadsafe(
                self._write(record, level, message, meta), self._ensure_loop()
            )
        except Exception:
            self.handleError(record)
            return
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: "concurrent.futures.Future[None]") -> None:
        with self._pending_lock:
            self._pending.discard(future)

    async def _write(
        self, record: logging.LogRecord, level: str, message: str, meta: Any
    ) -> None:
        try:
            await self.transport.log(level, message, meta)
        except Exception:
            self.handleError(record)

    def flush(self) -> None:
        """Wait for pending writes, up to flush_timeout seconds."""
        with self._pending_lock:
            pending = list(self._pending)
        if pending:
            concurrent.futures.wait(pending, timeout=self.flush_timeout)

    def close(self) -> None:
        """Flush, close the transport and stop the loop thread."""
        try:
            self.flush()
            with self._loop_lock:
                loop, thread = self._loop, self._thread
                self._loop = self._thread = None
            if loop is not None:
                closing = asyncio.run_coroutine_threadsafe(
                    self.transport.close(), loop
                )
                try:
                    closing.result(timeout=self.flush_timeout)
                finally:
                    loop.call_soon_threadsafe(loop.stop)
                    if thread is not None:
                        thread.join(timeout=self.flush_timeout)
                    loop.close()
        finally:
            super().close()
