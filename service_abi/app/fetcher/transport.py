"""
JSON-RPC transport for a Sui full node.

The transport only moves bytes: it neither retries nor classifies. Failures
surface as ``httpx`` exceptions or ``JsonRpcError`` with the node's own
message, and ``RetryingRpcClient`` turns those into classified errors.
"""

import itertools
from typing import Any, Dict, List, Optional, Protocol

import httpx

from shared.logging import get_logger


class RpcTransport(Protocol):
    """Read-only capability the retrying client depends on."""

    async def get_normalized_move_module(self, package_id: str, module_name: str) -> Dict[str, Any]:
        ...

    async def get_object(self, object_id: str, show_content: bool = True) -> Dict[str, Any]:
        ...


class JsonRpcError(Exception):
    """Error object returned in a JSON-RPC response."""

    def __init__(self, code: Optional[int], message: str, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(message)


class SuiRpcTransport:
    """Minimal async JSON-RPC 2.0 client for the Sui read API."""

    def __init__(self,
                 rpc_url: str,
                 timeout: float = 30.0,
                 http_transport: Optional[httpx.AsyncBaseTransport] = None):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._http_transport = http_transport
        self._ids = itertools.count(1)
        self.logger = get_logger("abi.transport")

    async def get_normalized_move_module(self, package_id: str, module_name: str) -> Dict[str, Any]:
        return await self.call("sui_getNormalizedMoveModule", [package_id, module_name])

    async def get_object(self, object_id: str, show_content: bool = True) -> Dict[str, Any]:
        return await self.call("sui_getObject", [object_id, {"showContent": show_content}])

    async def call(self, method: str, params: List[Any]) -> Any:
        """Issue one JSON-RPC request and return its ``result``."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._http_transport) as client:
            response = await client.post(self.rpc_url, json=payload)

        response.raise_for_status()
        body = response.json()

        error = body.get("error")
        if error:
            self.logger.debug("JSON-RPC error", method=method, code=error.get("code"), message=error.get("message"))
            raise JsonRpcError(error.get("code"), error.get("message", "unknown JSON-RPC error"), error.get("data"))

        return body.get("result")
