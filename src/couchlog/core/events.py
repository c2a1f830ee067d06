"""Observer registry for transport and stream notifications.

Handlers are called synchronously, in registration order, by ``emit``.
A failing handler is logged and does not stop delivery to the others.
"""

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class EventEmitter:
    """Named-event observer registry.

    Example:
        ```python
        events = EventEmitter()
        events.on("logged", lambda level, message: print(level, message))
        events.emit("logged", "info", "hello")
        ```
    """

    def __init__(self) -> None:
        self._handlers: defaultdict[str, list[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler | None = None) -> Any:
        """Register handler for event and return it.

        Called without a handler, returns a decorator that registers the
        decorated function.
        """
        if handler is None:
            return lambda func: self.on(event, func)
        if not callable(handler):
            raise TypeError("handler must be callable")
        self._handlers[event].append(handler)
        return handler

    def off(self, event: str, handler: Handler) -> None:
        """Unregister handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def listeners(self, event: str) -> list[Handler]:
        return list(self._handlers.get(event, ()))

    def emit(self, event: str, *args: Any) -> int:
        """Deliver args to every handler of event.

        Returns:
            The number of handlers that were called.
        """
        handlers = self.listeners(event)
        if not handlers and event == "error" and args:
            logger.error("Unhandled couchlog error: %s", args[0])
        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.exception("Handler for %r event failed", event)
        return len(handlers)
