"""Builders for the documents couchlog writes to the store."""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from couchlog.core.decycle import decycle
from couchlog.core.models import LOG_RESOURCE, LogDocument

DEFAULT_LEVEL = "info"

DESIGN_NAME = "Logs"
DESIGN_DOC_ID = f"_design/{DESIGN_NAME}"
VIEW_NAME = "byTimestamp"

# Evaluated by CouchDB's JavaScript query server.
_BY_TIMESTAMP_MAP = """function (doc) {
  if (doc.resource === 'log') {
    emit(doc.params.timestamp, doc);
  }
}"""


def format_timestamp(value: datetime) -> str:
    """Format a datetime as a UTC RFC 3339 string with millisecond precision.

    All timestamps share this fixed width format so that CouchDB's string
    collation of view keys matches chronological order. Naive datetimes
    are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_log_params(
    level: str | None,
    message: str,
    meta: Any = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build the ``params`` payload of a log document.

    Metadata is decycled and shallow-copied into a fresh dict. Mappings
    contribute their keys directly; any other non-None value is kept under
    ``meta``. The ``timestamp``, ``message`` and ``level`` keys are always
    set here and overwrite whatever the metadata carried.
    """
    snapshot = decycle(meta)
    if snapshot is None:
        params: dict[str, Any] = {}
    elif isinstance(snapshot, Mapping):
        params = dict(snapshot)
    else:
        params = {"meta": snapshot}

    params["timestamp"] = format_timestamp(now or utcnow())
    params["message"] = message
    params["level"] = level or DEFAULT_LEVEL
    return params


def build_log_document(
    level: str | None,
    message: str,
    meta: Any = None,
    now: datetime | None = None,
) -> LogDocument:
    return LogDocument(
        params=build_log_params(level, message, meta, now), resource=LOG_RESOURCE
    )


def build_design_document() -> dict[str, Any]:
    """Return the design document holding the time-ordered log view."""
    return {
        "_id": DESIGN_DOC_ID,
        "language": "javascript",
        "views": {VIEW_NAME: {"map": _BY_TIMESTAMP_MAP}},
    }
