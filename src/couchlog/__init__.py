"""couchlog - CouchDB logging transport.

Writes structured log events to CouchDB, queries them by time range through
a lazily provisioned view, and tails new ones from the change feed.
"""

from couchlog.adapters.logging import CouchDBHandler
from couchlog.adapters.storage import CouchDBClient, InMemoryDocumentStore
from couchlog.config import CouchDBTransportOptions
from couchlog.core.exceptions import (
    ConflictError,
    CouchlogError,
    FeedError,
    NotFoundError,
    ProvisioningError,
    QueryError,
    StoreConnectionError,
    StoreError,
)
from couchlog.core.models import LogEvent, QueryOptions, StreamOptions
from couchlog.core.provisioning import ProvisioningPolicy, ProvisioningState
from couchlog.registry import TransportRegistry, register_transport
from couchlog.stream import LogStream
from couchlog.transport import CouchDBTransport

__all__ = [
    "ConflictError",
    "CouchDBClient",
    "CouchDBHandler",
    "CouchDBTransport",
    "CouchDBTransportOptions",
    "CouchlogError",
    "FeedError",
    "InMemoryDocumentStore",
    "LogEvent",
    "LogStream",
    "NotFoundError",
    "ProvisioningError",
    "ProvisioningPolicy",
    "ProvisioningState",
    "QueryError",
    "QueryOptions",
    "StoreConnectionError",
    "StoreError",
    "StreamOptions",
    "TransportRegistry",
    "register_transport",
]
