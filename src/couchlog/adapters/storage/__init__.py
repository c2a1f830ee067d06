"""Document store adapters implementing core ports."""

from couchlog.adapters.storage.couchdb import CouchDBChangeFeed, CouchDBClient
from couchlog.adapters.storage.in_memory import (
    InMemoryChangeFeed,
    InMemoryDocumentStore,
)

__all__ = [
    "CouchDBChangeFeed",
    "CouchDBClient",
    "InMemoryChangeFeed",
    "InMemoryDocumentStore",
]
