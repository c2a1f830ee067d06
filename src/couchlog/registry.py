"""Explicit registry of transport factories.

Host applications create a registry at startup and register the transports
they want; nothing is attached to shared module state on import.
"""

from collections.abc import Callable
from typing import Any

from couchlog.transport import CouchDBTransport

TransportFactory = Callable[..., Any]


class TransportRegistry:
    """Maps transport names to factories.

    Example:
        ```python
        registry = TransportRegistry()
        register_transport(registry)
        transport = registry.create("couchdb", host="localhost")
        ```
    """

    def __init__(self) -> None:
        self._factories: dict[str, TransportFactory] = {}

    def register(self, name: str, factory: TransportFactory) -> TransportFactory:
        """Register factory under name.

        Raises:
            TypeError: If factory is not callable.
            ValueError: If name is already registered.
        """
        if not callable(factory):
            raise TypeError("factory must be callable")
        if name in self._factories:
            raise ValueError(f"Transport {name!r} is already registered")
        self._factories[name] = factory
        return factory

    def lookup(self, name: str) -> TransportFactory | None:
        return self._factories.get(name)

    def create(self, name: str, **options: Any) -> Any:
        """Build a transport by name.

        Raises:
            KeyError: If no transport is registered under name.
        """
        factory = self.lookup(name)
        if factory is None:
            raise KeyError(f"No transport registered as {name!r}")
        return factory(**options)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def names(self) -> list[str]:
        return sorted(self._factories)


def register_transport(
    registry: TransportRegistry, name: str = "couchdb"
) -> type[CouchDBTransport]:
    """Register CouchDBTransport in registry and return it."""
    registry.register(name, CouchDBTransport)
    return CouchDBTransport
