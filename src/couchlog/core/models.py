"""Core domain models for log transport data."""

from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

# Update sequence issued by the store: integers on CouchDB 1.x,
# opaque strings on 2.x and later.
StreamOffset = int | str

Order = Literal["asc", "desc"]

LOG_RESOURCE = "log"


@dataclass(frozen=True)
class LogEvent:
    """A log call as received from the logging front-end.

    Attributes:
        level: Log level name (e.g. info, error).
        message: The log message.
        meta: Arbitrary structured metadata. May be a mapping, a primitive,
            None, or a structure that references itself.
    """

    level: str
    message: str
    meta: Any = None


@dataclass(frozen=True)
class QueryOptions:
    """Abstract query over previously written logs.

    Attributes:
        rows: Maximum number of documents to return.
        start: Number of matching documents to skip.
        order: "asc" for oldest first, "desc" for newest first.
        from_: Lower bound of the time window (inclusive).
        until: Upper bound of the time window (inclusive).
        fields: If set, only these keys are kept in each result.
    """

    rows: int | None = None
    start: int | None = None
    order: Order | None = None
    from_: datetime | None = None
    until: datetime | None = None
    fields: Collection[str] | None = None


@dataclass(frozen=True)
class StreamOptions:
    """Options for tailing the log database.

    Attributes:
        start: Update sequence to resume from. None or -1 starts at the
            store's current tip so only new documents are seen.
    """

    start: StreamOffset | None = None


@dataclass
class LogDocument:
    """A log document as persisted in the store."""

    params: dict[str, Any] = field(default_factory=dict)
    resource: str = LOG_RESOURCE

    def to_dict(self) -> dict[str, Any]:
        return {"resource": self.resource, "params": self.params}
