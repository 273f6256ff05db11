"""
Resilient fetch-and-cache subsystem for Move module interfaces.

- validation: syntactic checks on package ids, module names, networks
- cache: TTL and capacity bounded result cache
- transport: JSON-RPC client for a Sui full node (no retries)
- rpc_client: retrying client that classifies failures
- orchestrator: validate, consult cache, fetch, store
"""

from .cache import CacheEntry, ResultCache, sweep_periodically
from .models import NETWORK_URLS, FetchedModule, SourceStatus
from .orchestrator import AbiFetcher, create_abi_fetcher
from .rpc_client import RetryingRpcClient, classify_error, default_retry_policy
from .transport import JsonRpcError, RpcTransport, SuiRpcTransport
from .validation import (
    parse_package_input,
    validate_module_name,
    validate_network,
    validate_package_id,
)

__all__ = [
    "AbiFetcher",
    "CacheEntry",
    "FetchedModule",
    "JsonRpcError",
    "NETWORK_URLS",
    "ResultCache",
    "RetryingRpcClient",
    "RpcTransport",
    "SourceStatus",
    "SuiRpcTransport",
    "classify_error",
    "create_abi_fetcher",
    "default_retry_policy",
    "parse_package_input",
    "sweep_periodically",
    "validate_module_name",
    "validate_network",
    "validate_package_id",
]
