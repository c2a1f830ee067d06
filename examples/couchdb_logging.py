"""Example writing, querying and tailing logs in CouchDB.

Run with:
    python -m examples.couchdb_logging

Connection settings come from the environment:
    COUCHLOG_HOST      - server host, with or without scheme (default localhost)
    COUCHLOG_PORT      - server port (default 5984)
    COUCHLOG_DB        - database name (default winston)
    COUCHLOG_USER      - optional user name
    COUCHLOG_PASSWORD  - optional password

The database and the `_design/Logs` view are created on first use.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

from couchlog import (
    CouchDBTransport,
    CouchDBTransportOptions,
    QueryOptions,
    TransportRegistry,
    register_transport,
)


def print_log(params: dict[str, Any]) -> None:
    print(f"[stream] {params['timestamp']} {params['level']}: {params['message']}")


async def main() -> None:
    registry = TransportRegistry()
    register_transport(registry)
    options = CouchDBTransportOptions.from_env()

    transport: CouchDBTransport = registry.create("couchdb", options=options)
    async with transport:
        transport.on("error", lambda error: print(f"write failed: {error}"))

        # Tail logs written from now on
        async with transport.stream() as stream:
            stream.on("log", print_log)
            await asyncio.sleep(0.5)

            await transport.log("info", "service started", {"version": "1.2.3"})
            await transport.log("warn", "cache miss ratio high", {"ratio": 0.42})
            await transport.log_event(
                {"level": "error", "message": "payment declined", "meta": {"id": 7}}
            )
            await asyncio.sleep(0.5)

        # Newest first, last hour, selected fields only
        now = datetime.now(timezone.utc)
        recent = await transport.query(
            QueryOptions(
                rows=5,
                from_=now - timedelta(hours=1),
                until=now,
                fields=frozenset({"timestamp", "level", "message"}),
            )
        )
        for params in recent:
            print(f"[query] {params}")


if __name__ == "__main__":
    asyncio.run(main())
