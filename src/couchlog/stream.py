"""Live tail of newly written log documents."""

import asyncio
import logging
from collections.abc import Mapping
from types import TracebackType
from typing import Any

from couchlog.core.events import EventEmitter, Handler
from couchlog.core.exceptions import CouchlogError, FeedError
from couchlog.core.models import StreamOffset, StreamOptions
from couchlog.core.ports import ChangeFeedPort, DocumentStorePort

logger = logging.getLogger(__name__)

_END = object()


def normalize_stream_options(
    options: StreamOptions | Mapping[str, Any] | None,
) -> StreamOptions:
    if options is None:
        return StreamOptions()
    if isinstance(options, Mapping):
        options = StreamOptions(start=options.get("start"))
    if options.start == -1:
        return StreamOptions(start=None)
    return options


class LogStream:
    """Cancelable stream of log documents read from the store's change feed.

    Emits ``log`` with each new document's params and ``error`` when the
    feed fails. A failed stream stays inert: it does not reconnect.
    Also usable as an async iterator of params and as an async context
    manager that destroys the stream on exit.

    Example:
        ```python
        stream = transport.stream()
        stream.on("log", print)
        ...
        stream.destroy()
        ```
    """

    def __init__(
        self,
        store: DocumentStorePort,
        options: StreamOptions | Mapping[str, Any] | None = None,
    ) -> None:
        self._store = store
        self.offset: StreamOffset | None = normalize_stream_options(options).start
        self.live = True
        self.events = EventEmitter()
        self._feed: ChangeFeedPort | None = None
        self._task: asyncio.Task[None] | None = None
        self._queue: asyncio.Queue[Any] | None = None

    def on(self, event: str, handler: Handler | None = None) -> Any:
        return self.events.on(event, handler)

    def open(self) -> "LogStream":
        """Start following the store in the background. Returns self."""
        if self._task is None and self.live:
            self._task = asyncio.ensure_future(self._run())
        return self

    async def _resolve_offset(self) -> StreamOffset:
        if self.offset is not None:
            return self.offset
        info = await self._store.info()
        return info.get("update_seq") or 0

    async def _run(self) -> None:
        try:
            self.offset = await self._resolve_offset()
            if not self.live:
                return
            self._feed = self._store.follow(
                self.offset, include_docs=True, style="main_only", descending=False
            )
            async for change in self._feed:
                if not self.live:
                    break
                self.offset = change.get("seq", self.offset)
                if change.get("deleted"):
                    continue
                doc = change.get("doc")
                if not isinstance(doc, Mapping):
                    continue
                params = doc.get("params")
                if not isinstance(params, Mapping):
                    continue
                self._deliver(dict(params))
        except Exception as e:
            if isinstance(e, CouchlogError) and (
                self._feed is None or isinstance(e, FeedError)
            ):
                error: CouchlogError = e
            else:
                error = FeedError(f"Change feed failed: {e}", original_error=e)
            self._fail(error)
        finally:
            await self._stop_feed()
            self.live = False
            self._push(_END)

    def _deliver(self, params: dict[str, Any]) -> None:
        if not self.live:
            return
        self.events.emit("log", params)
        self._push(params)

    def _fail(self, error: CouchlogError) -> None:
        if not self.live:
            return
        self.live = False
        self.events.emit("error", error)
        self._push(error)

    def _push(self, item: Any) -> None:
        if self._queue is not None:
            self._queue.put_nowait(item)

    async def _stop_feed(self) -> None:
        feed, self._feed = self._feed, None
        if feed is None:
            return
        try:
            await feed.stop()
        except Exception:
            logger.debug("Ignoring failure while stopping change feed", exc_info=True)

    def destroy(self) -> None:
        """Stop the stream. Idempotent; no ``log`` is emitted afterwards."""
        was_live, self.live = self.live, False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if was_live:
            self._push(_END)

    async def aclose(self) -> None:
        """Destroy the stream and wait for the feed to be released."""
        self.destroy()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    def __aiter__(self) -> "LogStream":
        if self._queue is None:
            self._queue = asyncio.Queue()
            if not self.live:
                self._queue.put_nowait(_END)
        return self

    async def __anext__(self) -> dict[str, Any]:
        if self._queue is None:
            self.__aiter__()
        assert self._queue is not None
        item = await self._queue.get()
        if item is _END:
            self._queue.put_nowait(_END)
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            self._queue.put_nowait(_END)
            raise item
        return item

    async def __aenter__(self) -> "LogStream":
        return self.open()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
