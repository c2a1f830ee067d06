"""Translate abstract log queries into CouchDB view queries.

The ``byTimestamp`` view is keyed by the RFC 3339 timestamp string of each
log document. A time window therefore maps onto a key range. When rows are
requested newest first the view is read backwards, which swaps the roles of
CouchDB's ``startkey`` and ``endkey``: the range starts at ``until`` and
ends at ``from``.
"""

from collections.abc import Collection, Iterable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

from couchlog.core.documents import format_timestamp, utcnow
from couchlog.core.exceptions import QueryError
from couchlog.core.models import QueryOptions

DEFAULT_ROWS = 10
DEFAULT_ORDER = "desc"
DEFAULT_WINDOW = timedelta(hours=24)

VALID_ORDERS = {"asc", "desc"}


def _coerce_datetime(value: Any, name: str) -> datetime:
    """Coerce a datetime, ISO-8601 string or Unix timestamp (seconds)."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise QueryError(f"Invalid {name!r} value: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as e:
            raise QueryError(f"Invalid {name!r} value: {value!r}", e) from e
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise QueryError(f"Invalid {name!r} value: {value!r}")


def _coerce_int(value: Any, name: str, minimum: int) -> int:
    if isinstance(value, bool):
        raise QueryError(f"Invalid {name!r} value: {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise QueryError(f"Invalid {name!r} value: {value!r}", e) from e
    if number < minimum:
        raise QueryError(f"{name!r} must be >= {minimum}, got {number}")
    return number


def _coerce_fields(value: Any) -> frozenset[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return frozenset(f.strip() for f in value.split(",") if f.strip())
    if isinstance(value, Iterable):
        return frozenset(str(f) for f in value)
    raise QueryError(f"Invalid 'fields' value: {value!r}")


def _from_mapping(options: Mapping[str, Any]) -> QueryOptions:
    """Build QueryOptions from a loosely typed mapping.

    Accepts ``limit`` as an alias of ``rows`` and both ``from`` and
    ``from_`` for the lower bound.
    """
    return QueryOptions(
        rows=options.get("rows", options.get("limit")),
        start=options.get("start"),
        order=options.get("order"),
        from_=options.get("from", options.get("from_")),
        until=options.get("until"),
        fields=options.get("fields"),
    )


def normalize_query(
    options: QueryOptions | Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> QueryOptions:
    """Apply defaults and coerce option types.

    Defaults: 10 rows, no skip, newest first, and a window covering the
    24 hours up to now.

    Args:
        options: Query options as a QueryOptions, a mapping, or None.
        now: Reference time for the default window. Defaults to current time.

    Returns:
        A fully populated QueryOptions.

    Raises:
        QueryError: If an option has an invalid value.
    """
    if options is None:
        options = QueryOptions()
    elif isinstance(options, Mapping):
        options = _from_mapping(options)

    rows = DEFAULT_ROWS if not options.rows else _coerce_int(options.rows, "rows", 1)
    start = 0 if not options.start else _coerce_int(options.start, "start", 0)

    order = (options.order or DEFAULT_ORDER).lower()
    if order not in VALID_ORDERS:
        raise QueryError(f"Invalid 'order' value: {options.order!r}")

    until = (
        _coerce_datetime(options.until, "until")
        if options.until is not None
        else (now or utcnow())
    )
    from_ = (
        _coerce_datetime(options.from_, "from")
        if options.from_ is not None
        else until - DEFAULT_WINDOW
    )

    return QueryOptions(
        rows=rows,
        start=start,
        order=order,  # type: ignore[arg-type]
        from_=from_,
        until=until,
        fields=_coerce_fields(options.fields),
    )


def build_view_params(options: QueryOptions) -> dict[str, Any]:
    """Map query options onto CouchDB view query parameters.

    A missing ``from_`` or ``until`` leaves that side of the key range open.
    """
    params: dict[str, Any] = {}
    if options.rows:
        params["limit"] = options.rows
    if options.start:
        params["skip"] = options.start

    from_key = format_timestamp(options.from_) if options.from_ else None
    until_key = format_timestamp(options.until) if options.until else None

    if options.order == "desc":
        params["descending"] = True
        if from_key is not None:
            params["endkey"] = from_key
        if until_key is not None:
            params["startkey"] = until_key
    else:
        if from_key is not None:
            params["startkey"] = from_key
        if until_key is not None:
            params["endkey"] = until_key
    return params


def unwrap_rows(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Extract the ``params`` payload of each view row's document."""
    docs = []
    for row in rows:
        value = row.get("value")
        if isinstance(value, Mapping) and isinstance(value.get("params"), Mapping):
            docs.append(dict(value["params"]))
    return docs


def project_fields(
    docs: Iterable[Mapping[str, Any]], fields: Collection[str] | None
) -> list[dict[str, Any]]:
    """Return new dicts keeping only the keys listed in fields.

    With no fields every document is returned as a copy.
    """
    if fields is None:
        return [dict(doc) for doc in docs]
    wanted = set(fields)
    return [{k: v for k, v in doc.items() if k in wanted} for doc in docs]
