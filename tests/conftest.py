"""Shared test fixtures for all test modules."""

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from couchlog.adapters.storage.couchdb import CouchDBClient
from couchlog.adapters.storage.in_memory import InMemoryDocumentStore
from couchlog.config import CouchDBTransportOptions
from couchlog.core.provisioning import ProvisioningPolicy
from couchlog.transport import CouchDBTransport
from tests.helpers import SpyStore


@pytest.fixture
def memory_store() -> InMemoryDocumentStore:
    """Empty in-memory store whose database already exists."""
    return InMemoryDocumentStore("logs")


@pytest.fixture
def spy_store(memory_store: InMemoryDocumentStore) -> SpyStore:
    """Call-recording wrapper around memory_store."""
    return SpyStore(memory_store)


@pytest.fixture
def transport_factory(
    memory_store: InMemoryDocumentStore,
) -> Callable[..., CouchDBTransport]:
    """Factory building transports over memory_store.

    Usage:
        def test_something(transport_factory):
            transport = transport_factory(silent=True)
    """

    def _make(store: Any = None, **options: Any) -> CouchDBTransport:
        options.setdefault("db", "logs")
        return CouchDBTransport(
            CouchDBTransportOptions.from_options(**options),
            store=store if store is not None else memory_store,
        )

    return _make


@pytest.fixture
def transport(
    transport_factory: Callable[..., CouchDBTransport],
) -> CouchDBTransport:
    """Transport over an in-memory store with the AWAIT provisioning policy."""
    return transport_factory(provisioning_policy=ProvisioningPolicy.AWAIT)


@pytest.fixture
def couchdb_client_factory() -> Callable[..., CouchDBClient]:
    """Factory building a CouchDBClient backed by an httpx.MockTransport.

    Usage:
        def test_something(couchdb_client_factory):
            client = couchdb_client_factory(lambda request: httpx.Response(200, json={}))
    """

    def _make(
        handler: Callable[[httpx.Request], httpx.Response], **kwargs: Any
    ) -> CouchDBClient:
        return CouchDBClient(
            "http://couch.test:5984",
            "logs",
            transport=httpx.MockTransport(handler),
            **kwargs,
        )

    return _make


@pytest.fixture
def recorded_requests() -> list[httpx.Request]:
    """List collecting requests seen by a mock handler."""
    return []
