"""
Integration tests for the fetch flow over the real JSON-RPC transport.

The Sui full node is replaced by ``httpx.MockTransport``; everything above
the socket (transport, retrying client, cache, orchestrator, HTTP service)
runs unmodified.
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from service_abi.app.config import AbiServiceConfig
from service_abi.app.fetcher.cache import ResultCache
from service_abi.app.fetcher.orchestrator import create_abi_fetcher
from service_abi.app.fetcher.transport import JsonRpcError, SuiRpcTransport
from service_abi.app.main import create_app
from shared.errors import MoveModuleNotFoundError, PackageNotFoundError, RpcRateLimitedError
from shared.metrics import MetricsCollector
from shared.test_helpers import TestDataFactory


RPC_URL = "https://fullnode.mainnet.sui.io"


class FakeFullNode:
    """Scripted JSON-RPC node.

    ``http_failures`` holds status codes returned, one per request, before
    the node starts answering normally.
    """

    def __init__(self, package_id="0xdee9", module_names=("clob", "clob_v2")):
        self.package_id = package_id
        self.module_names = list(module_names)
        self.http_failures = []
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(payload)

        if self.http_failures:
            return httpx.Response(self.http_failures.pop(0), text="slow down")

        method, params = payload["method"], payload["params"]
        if method == "sui_getNormalizedMoveModule":
            package_id, module_name = params
            if package_id != self.package_id or module_name not in self.module_names:
                return self._error(payload, -32602, f"Module {module_name} not found in package {package_id}")
            return self._result(payload, TestDataFactory.normalized_module(package_id, module_name))

        if method == "sui_getObject":
            object_id, options = params
            assert options == {"showContent": True}
            if object_id != self.package_id:
                return self._result(payload, {"error": {"code": "notExists", "object_id": object_id}})
            return self._result(payload, TestDataFactory.package_object(object_id, self.module_names))

        return self._error(payload, -32601, f"Method not found: {method}")

    @staticmethod
    def _result(payload, result):
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})

    @staticmethod
    def _error(payload, code, message):
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "error": {"code": code, "message": message}})

    def methods(self):
        return [r["method"] for r in self.requests]


@pytest.fixture
def node():
    return FakeFullNode()


@pytest.fixture
def config(monkeypatch):
    monkeypatch.delenv("ABI_RPC_URL", raising=False)
    return AbiServiceConfig(
        network="mainnet",
        retry_max_attempts=3,
        retry_base_delay=0.0,
        cache_cleanup_interval=0,
    )


def build_fetcher(node, config, metrics=None):
    transport = SuiRpcTransport(RPC_URL, http_transport=httpx.MockTransport(node))
    return create_abi_fetcher(config, transport=transport, cache=ResultCache(ttl=600, max_entries=50), metrics=metrics)


class TestSuiRpcTransport:
    """Test the JSON-RPC envelope."""

    @pytest.mark.asyncio
    async def test_request_envelope(self, node):
        """Test method, params and incrementing ids are sent."""
        transport = SuiRpcTransport(RPC_URL, http_transport=httpx.MockTransport(node))

        await transport.get_normalized_move_module("0xdee9", "clob_v2")
        await transport.get_object("0xdee9")

        assert node.requests[0]["jsonrpc"] == "2.0"
        assert node.requests[0]["params"] == ["0xdee9", "clob_v2"]
        assert node.requests[1]["params"] == ["0xdee9", {"showContent": True}]
        assert node.requests[1]["id"] > node.requests[0]["id"]

    @pytest.mark.asyncio
    async def test_json_rpc_error_raised(self, node):
        """Test an error member becomes JsonRpcError."""
        transport = SuiRpcTransport(RPC_URL, http_transport=httpx.MockTransport(node))

        with pytest.raises(JsonRpcError) as exc_info:
            await transport.get_normalized_move_module("0xdee9", "nope")

        assert exc_info.value.code == -32602
        assert "not found" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_http_error_status_raised(self, node):
        """Test non-2xx responses raise httpx.HTTPStatusError."""
        node.http_failures = [503]
        transport = SuiRpcTransport(RPC_URL, http_transport=httpx.MockTransport(node))

        with pytest.raises(httpx.HTTPStatusError):
            await transport.get_object("0xdee9")


class TestAbiFetchFlow:
    """End-to-end fetch flow against a fake full node."""

    @pytest.mark.asyncio
    async def test_fetch_module_end_to_end(self, node, config):
        """Test interface and source are fetched once then served from cache."""
        fetcher = build_fetcher(node, config)

        module = await fetcher.fetch_module("0xdee9", "clob_v2")
        again = await fetcher.fetch_module("0xdee9", "clob_v2")

        assert again is module
        assert node.methods() == ["sui_getNormalizedMoveModule", "sui_getObject"]
        assert module.source_code == TestDataFactory.disassembled_source("clob_v2")
        assert fetcher.cache.has("mainnet:0xdee9::clob_v2")

    @pytest.mark.asyncio
    async def test_rate_limit_then_success(self, node, config):
        """Test an HTTP 429 is classified, retried and recovered from."""
        metrics = MetricsCollector("abi")
        node.http_failures = [429]
        fetcher = build_fetcher(node, config, metrics=metrics)

        module = await fetcher.fetch_module("0xdee9", "clob_v2", include_source=False)

        assert module.module_name == "clob_v2"
        assert node.methods() == ["sui_getNormalizedMoveModule", "sui_getNormalizedMoveModule"]
        assert metrics.get_sample(
            "rpc_retries_total",
            operation="get_normalized_interface",
            error_code="RPC_RATE_LIMIT",
        ) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self, node, config):
        """Test persistent 429s surface as RpcRateLimitedError after max attempts."""
        node.http_failures = [429, 429, 429]
        fetcher = build_fetcher(node, config)

        with pytest.raises(RpcRateLimitedError) as exc_info:
            await fetcher.fetch_module("0xdee9", "clob_v2")

        assert exc_info.value.endpoint == RPC_URL
        assert len(node.requests) == 3

    @pytest.mark.asyncio
    async def test_missing_module(self, node, config):
        """Test a JSON-RPC 'not found' error is classified as module not found."""
        fetcher = build_fetcher(node, config.model_copy(update={"retry_not_found": False}))

        with pytest.raises(MoveModuleNotFoundError):
            await fetcher.fetch_module("0xdee9", "clob_v9")

        assert len(node.requests) == 1

    @pytest.mark.asyncio
    async def test_missing_package(self, node, config):
        """Test an unknown package id is PackageNotFoundError."""
        fetcher = build_fetcher(node, config)

        with pytest.raises(PackageNotFoundError):
            await fetcher.fetch_package("0xbeef")

        assert await fetcher.package_exists("0xbeef") is False

    @pytest.mark.asyncio
    async def test_fetch_package(self, node, config):
        """Test a whole package fetch returns every module in listing order."""
        node.module_names = ["book", "clob", "clob_v2"]
        fetcher = build_fetcher(node, config)

        modules = await fetcher.fetch_package("0xdee9")

        assert [m.module_name for m in modules] == ["book", "clob", "clob_v2"]
        assert all(m.source_status.available for m in modules)


class TestAbiServiceFlow:
    """HTTP service over the real transport."""

    def test_module_route_with_retry(self, node, config):
        """Test a transient upstream failure is invisible to the HTTP caller."""
        node.http_failures = [429]
        app = create_app(config=config, fetcher=build_fetcher(node, config))

        with TestClient(app) as client:
            response = client.get("/packages/0xdee9/modules/clob")

        assert response.status_code == 200
        assert response.json()["normalized_interface"]["name"] == "clob"

    def test_module_route_rate_limited(self, node, config):
        """Test exhausted retries map to 429 over HTTP."""
        node.http_failures = [429, 429, 429]
        app = create_app(config=config, fetcher=build_fetcher(node, config))

        with TestClient(app) as client:
            response = client.get("/packages/0xdee9/modules/clob")

        assert response.status_code == 429
        assert response.json()["details"] == {"endpoint": RPC_URL}
