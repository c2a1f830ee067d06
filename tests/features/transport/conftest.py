"""BDD step definitions for transport end-to-end scenarios."""

import asyncio
from collections.abc import Iterator

import pytest
from pytest_bdd import given, parsers, then, when
from tests.features.transport.steps_helpers import TransportScenarioContext
from tests.helpers import SpyStore, wait_for

from couchlog.adapters.storage.in_memory import InMemoryDocumentStore
from couchlog.core.documents import DESIGN_DOC_ID
from couchlog.core.provisioning import ProvisioningPolicy
from couchlog.transport import CouchDBTransport


@pytest.fixture
def ctx() -> Iterator[TransportScenarioContext]:
    """Fresh scenario context for each test."""
    context = TransportScenarioContext()
    yield context
    context.close()


def _messages(text: str) -> list[str]:
    return [part.strip() for part in text.split(",")]


def _write(ctx: TransportScenarioContext, message: str, **meta: str) -> None:
    assert ctx.transport is not None
    ctx.run(ctx.transport.log("info", message, meta or None))


# === Background Steps ===
@given("an empty log database")
def step_empty_database(ctx: TransportScenarioContext) -> None:
    ctx.store = SpyStore(InMemoryDocumentStore("logs"))


@given("a missing log database")
def step_missing_database(ctx: TransportScenarioContext) -> None:
    ctx.store = SpyStore(InMemoryDocumentStore("logs", exists=False))


# === Transport Steps ===
@given("a transport for the database")
def step_transport(ctx: TransportScenarioContext) -> None:
    ctx.transport = CouchDBTransport(
        store=ctx.store, db="logs", provisioning_policy=ProvisioningPolicy.AWAIT
    )


@given("a silent transport for the database")
def step_silent_transport(ctx: TransportScenarioContext) -> None:
    ctx.transport = CouchDBTransport(store=ctx.store, db="logs", silent=True)


@given(parsers.parse('"{message}" has been logged'))
def step_has_been_logged(ctx: TransportScenarioContext, message: str) -> None:
    _write(ctx, message)


@when(parsers.parse('"{message}" is logged at level "{level}"'))
def step_log_at_level(ctx: TransportScenarioContext, message: str, level: str) -> None:
    assert ctx.transport is not None
    ctx.run(ctx.transport.log(level, message))


@when(parsers.parse('"{message}" is logged for user "{user}"'))
def step_log_for_user(ctx: TransportScenarioContext, message: str, user: str) -> None:
    _write(ctx, message, user=user)


@when(parsers.parse('"{message}" is logged with empty metadata'))
def step_log_empty_meta(ctx: TransportScenarioContext, message: str) -> None:
    assert ctx.transport is not None
    ctx.run(ctx.transport.log("info", message, {}))


@when("a moment passes")
def step_moment_passes(ctx: TransportScenarioContext) -> None:
    ctx.run(asyncio.sleep(0.005))


# === Query Steps ===
@when("the logs are queried")
def step_query(ctx: TransportScenarioContext) -> None:
    assert ctx.transport is not None
    ctx.results = ctx.run(ctx.transport.query())


@when("the latest log is queried")
def step_query_latest(ctx: TransportScenarioContext) -> None:
    assert ctx.transport is not None
    ctx.results = ctx.run(ctx.transport.query({"rows": 1}))


@when(parsers.parse('the logs are queried for fields "{fields}"'))
def step_query_fields(ctx: TransportScenarioContext, fields: str) -> None:
    assert ctx.transport is not None
    ctx.results = ctx.run(ctx.transport.query({"fields": fields}))


@then(parsers.parse('the query returns "{messages}"'))
def step_query_returns(ctx: TransportScenarioContext, messages: str) -> None:
    assert [r["message"] for r in ctx.results] == _messages(messages)


@then("the query returns nothing")
def step_query_returns_nothing(ctx: TransportScenarioContext) -> None:
    assert ctx.results == []


@then(parsers.parse('every result has only the fields "{fields}"'))
def step_result_fields(ctx: TransportScenarioContext, fields: str) -> None:
    assert ctx.results
    for result in ctx.results:
        assert set(result) == set(_messages(fields))


@then("the log view exists")
def step_view_exists(ctx: TransportScenarioContext) -> None:
    assert ctx.run(ctx.store.get(DESIGN_DOC_ID))["_id"] == DESIGN_DOC_ID


@then("the database received no calls")
def step_no_calls(ctx: TransportScenarioContext) -> None:
    assert ctx.store.calls == []


# === Stream Steps ===
@given("a stream is opened")
@when("a stream is opened")
def step_open_stream(ctx: TransportScenarioContext) -> None:
    assert ctx.transport is not None

    async def open_stream() -> None:
        ctx.stream = ctx.transport.stream()
        ctx.stream.on("log", ctx.streamed.append)
        await wait_for(lambda: ctx.stream.offset is not None)
        await asyncio.sleep(0)

    ctx.run(open_stream())


@when("the stream is destroyed twice")
def step_destroy_stream(ctx: TransportScenarioContext) -> None:
    assert ctx.stream is not None
    ctx.stream.destroy()
    ctx.stream.destroy()


@then(parsers.parse('the stream delivers "{message}" only'))
def step_stream_delivers(ctx: TransportScenarioContext, message: str) -> None:
    ctx.run(wait_for(lambda: bool(ctx.streamed)))
    ctx.run(asyncio.sleep(0.02))
    assert [p["message"] for p in ctx.streamed] == [message]


@then("the stream delivers nothing")
def step_stream_delivers_nothing(ctx: TransportScenarioContext) -> None:
    ctx.run(asyncio.sleep(0.02))
    assert ctx.streamed == []
