"""
tests/test_transport.py

Unit tests for the HTTP and object store transports.
HTTP calls go through httpx.MockTransport; object store calls use an
in-memory obstore store.
"""

import json

import httpx
import pytest
from obstore.store import MemoryStore

from geospider.config.settings import RuntimeConfig, StorageConfig
from geospider.errors import ConfigurationError, TransportFailure
from geospider.sync.transport import (
    HttpTransport,
    ObjectStoreTransport,
    batch_object_name,
    build_transport,
)
from tests.fixtures import TEST_SERVER_URL, build_config, build_sample, test_logger

PAYLOAD = {"locations": [build_sample().to_wire()]}


def http_transport(handler) -> HttpTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpTransport(logger=test_logger, client=client)


@pytest.mark.asyncio
async def test_http_success_posts_json_payload() -> None:
    received = {}

    def handler(request: httpx.Request) -> httpx.Response:
        received["method"] = request.method
        received["url"] = str(request.url)
        received["body"] = json.loads(request.content)
        return httpx.Response(201)

    transport = http_transport(handler)

    assert await transport.send(TEST_SERVER_URL, PAYLOAD) is True
    assert received == {"method": "POST", "url": TEST_SERVER_URL, "body": PAYLOAD}


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 500, 503])
async def test_http_error_status_is_not_delivered(status: int) -> None:
    transport = http_transport(lambda request: httpx.Response(status))

    assert await transport.send(TEST_SERVER_URL, PAYLOAD) is False


@pytest.mark.asyncio
async def test_http_connection_error_raises_transport_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = http_transport(handler)

    with pytest.raises(TransportFailure, match="connection refused"):
        await transport.send(TEST_SERVER_URL, PAYLOAD)


@pytest.mark.asyncio
async def test_http_transport_does_not_close_injected_client() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))

    async with HttpTransport(logger=test_logger, client=client):
        pass

    assert not client.is_closed
    await client.aclose()


@pytest.mark.asyncio
async def test_object_store_writes_one_object_per_batch() -> None:
    endpoint = "s3://bucket/locations"
    memory = MemoryStore()
    transport = ObjectStoreTransport(StorageConfig(), test_logger)
    transport.stores[endpoint] = memory

    assert await transport.send(endpoint, PAYLOAD) is True

    name = batch_object_name(PAYLOAD["locations"])
    result = await memory.get_async(name)
    assert json.loads(bytes(await result.bytes_async())) == PAYLOAD


@pytest.mark.asyncio
async def test_object_store_skips_empty_batches() -> None:
    transport = ObjectStoreTransport(StorageConfig(), test_logger)

    assert await transport.send("s3://bucket/locations", {"locations": []}) is True
    assert transport.stores == {}


@pytest.mark.asyncio
async def test_object_store_rejects_unknown_scheme() -> None:
    transport = ObjectStoreTransport(StorageConfig(), test_logger)

    with pytest.raises(ConfigurationError):
        await transport.send("ftp://host/locations", PAYLOAD)


def test_batch_object_name_uses_first_and_last_timestamps() -> None:
    locations = [{"timestamp": 100}, {"timestamp": 160}, {"timestamp": 220}]
    assert batch_object_name(locations) == "batch_100_220_3.json"


def test_build_transport_selects_by_scheme() -> None:
    http = build_transport(build_config(), None, test_logger)
    s3 = build_transport(build_config(server_url="s3://bucket/prefix"), None, test_logger)

    assert isinstance(http, HttpTransport)
    assert isinstance(s3, ObjectStoreTransport)


def test_build_transport_rejects_unsupported_scheme() -> None:
    config = RuntimeConfig.model_construct(server_url="ftp://host/upload")

    with pytest.raises(ConfigurationError, match="ftp"):
        build_transport(config, None, test_logger)
