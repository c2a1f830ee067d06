"""CouchDB HTTP adapter built on httpx.

Talks to a single database of a CouchDB server through its HTTP API and
maps transport failures and error responses onto couchlog exceptions.
"""

import json
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any
from urllib.parse import quote

import httpx

from couchlog.core.exceptions import (
    ConflictError,
    NotFoundError,
    StoreConnectionError,
    StoreError,
)
from couchlog.core.models import StreamOffset

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_HEARTBEAT_MS = 30_000

# View parameters CouchDB expects as JSON values.
_JSON_VIEW_PARAMS = frozenset(
    {"key", "keys", "startkey", "endkey", "start_key", "end_key"}
)


def _doc_path(doc_id: str) -> str:
    """Quote a document id for use in a URL path.

    Design document ids keep their ``_design/`` prefix unescaped.
    """
    if doc_id.startswith("_design/"):
        return "_design/" + quote(doc_id[len("_design/") :], safe="")
    return quote(doc_id, safe="")


def _encode_query_params(params: Mapping[str, Any]) -> dict[str, str]:
    encoded: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if key in _JSON_VIEW_PARAMS:
            encoded[key] = json.dumps(value)
        elif isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        else:
            encoded[key] = str(value)
    return encoded


def map_response_error(
    response: httpx.Response, operation: str, db: str
) -> StoreError:
    """Map a CouchDB error response onto a StoreError subclass.

    Args:
        response: The error response. Its body must already be read.
        operation: Short description of the failed request.
        db: Database name, for error context.
    """
    reason = None
    detail = response.reason_phrase
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, Mapping):
        reason = body.get("error")
        detail = body.get("reason") or detail

    message = f"{operation} on {db} failed with {response.status_code}: {detail}"
    context = {"db": db, "operation": operation}
    if response.status_code == 404:
        return NotFoundError(message, response.status_code, reason, context=context)
    if response.status_code == 409:
        return ConflictError(message, response.status_code, reason, context=context)
    return StoreError(message, response.status_code, reason, context=context)


class CouchDBChangeFeed:
    """Continuous ``_changes`` feed read line by line from a streaming response.

    Empty lines are heartbeats and are skipped. A ``last_seq`` line means the
    server closed the feed and ends iteration.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        path: str,
        params: dict[str, str],
        db: str,
    ) -> None:
        self._http = http
        self._path = path
        self._params = params
        self._db = db
        self._response: httpx.Response | None = None
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[dict[str, Any]]:
        # Continuous feeds stay open indefinitely; only the read timeout is lifted.
        timeout = self._http.timeout
        try:
            async with self._http.stream(
                "GET",
                self._path,
                params=self._params,
                timeout=httpx.Timeout(
                    timeout.connect,
                    read=None,
                    write=timeout.write,
                    pool=timeout.pool,
                ),
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise map_response_error(response, "_changes", self._db)
                self._response = response
                logger.debug(
                    "Following %s since %s", self._db, self._params.get("since")
                )
                async for line in response.aiter_lines():
                    if self._stopped:
                        return
                    if not line.strip():
                        continue
                    change = json.loads(line)
                    if "seq" not in change and "last_seq" in change:
                        return
                    yield change
        except (httpx.TransportError, httpx.StreamError) as e:
            if self._stopped:
                return
            raise StoreConnectionError(
                f"Change feed on {self._db} failed: {e}",
                original_error=e,
                context={"db": self._db},
            ) from e
        except json.JSONDecodeError as e:
            raise StoreError(
                f"Malformed change notification from {self._db}",
                original_error=e,
                context={"db": self._db},
            ) from e

    async def stop(self) -> None:
        self._stopped = True
        if self._response is not None:
            await self._response.aclose()


class CouchDBClient:
    """CouchDB implementation of DocumentStorePort.

    Example:
        ```python
        client = CouchDBClient("http://localhost:5984", "logs", auth=("admin", "secret"))
        await client.insert({"resource": "log", "params": {...}})
        await client.aclose()
        ```
    """

    def __init__(
        self,
        url: str,
        db: str,
        auth: tuple[str, str] | None = None,
        verify: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
        heartbeat_ms: int = DEFAULT_HEARTBEAT_MS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            url: Server base URL including scheme and port.
            db: Database name.
            auth: Optional (username, password) for HTTP basic auth.
            verify: Whether to verify TLS certificates.
            timeout: Request timeout in seconds.
            heartbeat_ms: Heartbeat interval requested for change feeds.
            transport: Optional httpx transport (e.g. httpx.MockTransport).
        """
        self.url = url
        self.db = db
        self._heartbeat_ms = heartbeat_ms
        self._db_path = "/" + quote(db, safe="")
        self._http = httpx.AsyncClient(
            base_url=url,
            auth=auth,
            verify=verify,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def _request(
        self, method: str, path: str, operation: str, **kwargs: Any
    ) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise StoreConnectionError(
                f"{operation} on {self.db} failed: {e}",
                original_error=e,
                context={"db": self.db, "url": self.url},
            ) from e
        except httpx.RequestError as e:
            # Decoding failures and redirect loops: the server was reached.
            raise StoreError(
                f"{operation} on {self.db} failed: {e}",
                original_error=e,
                context={"db": self.db, "url": self.url},
            ) from e
        if response.is_error:
            raise map_response_error(response, operation, self.db)
        try:
            return response.json()
        except ValueError as e:
            raise StoreError(
                f"{operation} on {self.db} returned a non-JSON body",
                status_code=response.status_code,
                original_error=e,
                context={"db": self.db, "operation": operation},
            ) from e

    async def insert(self, document: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request("POST", self._db_path, "insert", json=document)

    async def get(self, doc_id: str) -> dict[str, Any]:
        return await self._request(
            "GET", f"{self._db_path}/{_doc_path(doc_id)}", "get"
        )

    async def info(self) -> dict[str, Any]:
        return await self._request("GET", self._db_path, "info")

    async def create(self) -> None:
        await self._request("PUT", self._db_path, "create")

    async def view(
        self, design: str, view: str, params: Mapping[str, Any]
    ) -> list[dict[str, Any]]:
        path = (
            f"{self._db_path}/_design/{quote(design, safe='')}"
            f"/_view/{quote(view, safe='')}"
        )
        body = await self._request(
            "GET", path, "view", params=_encode_query_params(params)
        )
        return list(body.get("rows", []))

    def follow(
        self,
        since: StreamOffset = 0,
        *,
        include_docs: bool = True,
        style: str = "main_only",
        descending: bool = False,
    ) -> CouchDBChangeFeed:
        params = _encode_query_params(
            {
                "feed": "continuous",
                "since": since,
                "include_docs": include_docs,
                "style": style,
                "descending": descending,
                "heartbeat": self._heartbeat_ms,
            }
        )
        return CouchDBChangeFeed(
            self._http, f"{self._db_path}/_changes", params, self.db
        )

    async def aclose(self) -> None:
        await self._http.aclose()
