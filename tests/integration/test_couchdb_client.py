"""Integration tests for CouchDBClient against a mocked CouchDB HTTP API."""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from couchlog.adapters.storage.couchdb import CouchDBClient
from couchlog.core.exceptions import (
    ConflictError,
    NotFoundError,
    StoreConnectionError,
    StoreError,
)

pytestmark = [pytest.mark.storage, pytest.mark.tier(2)]

ClientFactory = Callable[..., CouchDBClient]


def _recording(
    requests: list[httpx.Request], response: httpx.Response
) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return response

    return handler


class TestCouchDBClientRequests:
    """Tests for the requests CouchDBClient sends."""

    async def test_insert_posts_document_to_database(
        self,
        couchdb_client_factory: ClientFactory,
        recorded_requests: list[httpx.Request],
    ) -> None:
        client = couchdb_client_factory(
            _recording(
                recorded_requests,
                httpx.Response(201, json={"ok": True, "id": "a", "rev": "1-x"}),
            )
        )

        result = await client.insert({"resource": "log", "params": {"m": 1}})

        request = recorded_requests[0]
        assert request.method == "POST"
        assert request.url.path == "/logs"
        assert json.loads(request.content) == {"resource": "log", "params": {"m": 1}}
        assert result["id"] == "a"
        await client.aclose()

    async def test_get_keeps_design_prefix_unescaped(
        self,
        couchdb_client_factory: ClientFactory,
        recorded_requests: list[httpx.Request],
    ) -> None:
        client = couchdb_client_factory(
            _recording(recorded_requests, httpx.Response(200, json={"_id": "x"}))
        )

        await client.get("_design/Logs")
        await client.get("a/b")

        assert recorded_requests[0].url.raw_path == b"/logs/_design/Logs"
        assert recorded_requests[1].url.raw_path == b"/logs/a%2Fb"
        await client.aclose()

    async def test_info_and_create(
        self,
        couchdb_client_factory: ClientFactory,
        recorded_requests: list[httpx.Request],
    ) -> None:
        client = couchdb_client_factory(
            _recording(recorded_requests, httpx.Response(200, json={"ok": True}))
        )

        await client.info()
        await client.create()

        assert [(r.method, r.url.path) for r in recorded_requests] == [
            ("GET", "/logs"),
            ("PUT", "/logs"),
        ]
        await client.aclose()

    @pytest.mark.tra("Query.Range.Descending")
    async def test_view_encodes_keys_as_json(
        self,
        couchdb_client_factory: ClientFactory,
        recorded_requests: list[httpx.Request],
    ) -> None:
        rows = [{"id": "a", "key": "k", "value": {"params": {}}}]
        client = couchdb_client_factory(
            _recording(recorded_requests, httpx.Response(200, json={"rows": rows}))
        )

        result = await client.view(
            "Logs",
            "byTimestamp",
            {
                "limit": 10,
                "descending": True,
                "startkey": "2024-01-02T00:00:00.000Z",
                "endkey": "2024-01-01T00:00:00.000Z",
                "skip": None,
            },
        )

        request = recorded_requests[0]
        assert request.url.path == "/logs/_design/Logs/_view/byTimestamp"
        assert dict(request.url.params) == {
            "limit": "10",
            "descending": "true",
            "startkey": '"2024-01-02T00:00:00.000Z"',
            "endkey": '"2024-01-01T00:00:00.000Z"',
        }
        assert result == rows
        await client.aclose()

    async def test_basic_auth_header(
        self,
        couchdb_client_factory: ClientFactory,
        recorded_requests: list[httpx.Request],
    ) -> None:
        client = couchdb_client_factory(
            _recording(recorded_requests, httpx.Response(200, json={})),
            auth=("admin", "secret"),
        )

        await client.info()

        assert recorded_requests[0].headers["authorization"].startswith("Basic ")
        await client.aclose()


class TestCouchDBClientErrors:
    """Tests for mapping CouchDB failures onto couchlog exceptions."""

    @pytest.mark.parametrize(
        ("status", "body", "expected"),
        [
            (404, {"error": "not_found", "reason": "missing"}, NotFoundError),
            (409, {"error": "conflict", "reason": "update conflict"}, ConflictError),
            (401, {"error": "unauthorized", "reason": "denied"}, StoreError),
        ],
    )
    async def test_error_responses_are_mapped(
        self,
        couchdb_client_factory: ClientFactory,
        status: int,
        body: dict[str, Any],
        expected: type[StoreError],
    ) -> None:
        client = couchdb_client_factory(lambda request: httpx.Response(status, json=body))

        with pytest.raises(expected) as exc_info:
            await client.get("doc")

        assert exc_info.value.status_code == status
        assert exc_info.value.reason == body["error"]
        assert body["reason"] in str(exc_info.value)
        await client.aclose()

    async def test_non_json_error_body(
        self, couchdb_client_factory: ClientFactory
    ) -> None:
        client = couchdb_client_factory(
            lambda request: httpx.Response(500, text="<html>boom</html>")
        )

        with pytest.raises(StoreError) as exc_info:
            await client.info()

        assert exc_info.value.status_code == 500
        assert exc_info.value.reason is None
        await client.aclose()

    async def test_connection_failure_is_store_connection_error(
        self, couchdb_client_factory: ClientFactory
    ) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = couchdb_client_factory(refuse)

        with pytest.raises(StoreConnectionError) as exc_info:
            await client.insert({"resource": "log"})

        assert isinstance(exc_info.value.original_error, httpx.ConnectError)
        await client.aclose()

    @pytest.mark.parametrize(
        "error_type", [httpx.DecodingError, httpx.TooManyRedirects]
    )
    async def test_other_request_errors_are_store_errors(
        self,
        couchdb_client_factory: ClientFactory,
        error_type: type[httpx.RequestError],
    ) -> None:
        def fail(request: httpx.Request) -> httpx.Response:
            raise error_type("request failed", request=request)

        client = couchdb_client_factory(fail)

        with pytest.raises(StoreError) as exc_info:
            await client.insert({"resource": "log"})

        assert not isinstance(exc_info.value, StoreConnectionError)
        assert isinstance(exc_info.value.original_error, error_type)
        await client.aclose()

    async def test_non_json_success_body_is_store_error(
        self, couchdb_client_factory: ClientFactory
    ) -> None:
        client = couchdb_client_factory(
            lambda request: httpx.Response(201, text="<html>proxy page</html>")
        )

        with pytest.raises(StoreError, match="non-JSON") as exc_info:
            await client.insert({"resource": "log"})

        assert exc_info.value.status_code == 201
        await client.aclose()


class TestCouchDBChangeFeed:
    """Tests for the continuous _changes feed."""

    async def test_follow_reads_changes_until_last_seq(
        self,
        couchdb_client_factory: ClientFactory,
        recorded_requests: list[httpx.Request],
    ) -> None:
        lines = [
            json.dumps({"seq": 5, "id": "a", "doc": {"params": {"m": 1}}}),
            "",
            json.dumps({"seq": 6, "id": "b", "deleted": True}),
            json.dumps({"last_seq": 6}),
            json.dumps({"seq": 7, "id": "never"}),
        ]
        client = couchdb_client_factory(
            _recording(
                recorded_requests,
                httpx.Response(200, content="\n".join(lines).encode() + b"\n"),
            )
        )

        changes = [change async for change in client.follow(4)]

        assert [c["seq"] for c in changes] == [5, 6]
        params = recorded_requests[0].url.params
        assert recorded_requests[0].url.path == "/logs/_changes"
        assert params["feed"] == "continuous"
        assert params["since"] == "4"
        assert params["include_docs"] == "true"
        assert params["style"] == "main_only"
        assert params["descending"] == "false"
        assert params["heartbeat"] == "30000"
        await client.aclose()

    async def test_error_response_is_mapped(
        self, couchdb_client_factory: ClientFactory
    ) -> None:
        client = couchdb_client_factory(
            lambda request: httpx.Response(
                404, json={"error": "not_found", "reason": "Database does not exist."}
            )
        )

        with pytest.raises(NotFoundError):
            async for _ in client.follow(0):
                pass
        await client.aclose()

    async def test_connection_failure_is_store_connection_error(
        self, couchdb_client_factory: ClientFactory
    ) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = couchdb_client_factory(refuse)

        with pytest.raises(StoreConnectionError):
            async for _ in client.follow(0):
                pass
        await client.aclose()

    async def test_malformed_line_is_store_error(
        self, couchdb_client_factory: ClientFactory
    ) -> None:
        client = couchdb_client_factory(
            lambda request: httpx.Response(200, content=b"{not json\n")
        )

        with pytest.raises(StoreError, match="Malformed"):
            async for _ in client.follow(0):
                pass
        await client.aclose()
