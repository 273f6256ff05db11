"""
Retrying RPC client for Sui package and module reads.

All operations are idempotent reads, so any classified failure may be
retried without double-apply risk. ``classify_error`` is the only place that
looks at free-text error messages.
"""

import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, TYPE_CHECKING

from shared.errors import (
    ClassifiedError,
    ConnectionFailedError,
    MoveModuleNotFoundError,
    PackageNotFoundError,
    RpcRateLimitedError,
    RpcTimeoutError,
    TRANSIENT_ERRORS,
)
from shared.logging import get_logger
from shared.retry import RetryPolicy, call_with_retry

from .transport import RpcTransport

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


NOT_FOUND_MARKERS = ("not found", "does not exist")
RATE_LIMIT_MARKERS = ("rate limit", "429")
TIMEOUT_MARKERS = ("timeout", "timed out", "etimedout")


def classify_error(error: BaseException,
                   *,
                   endpoint: str,
                   network: str,
                   package_id: str,
                   module_name: Optional[str] = None,
                   timeout_ms: int = 30000) -> ClassifiedError:
    """Translate a transport failure into the closed error taxonomy.

    The exception type name is part of the inspected text, so ``httpx``
    timeouts with an empty message still classify as timeouts.
    """
    if isinstance(error, ClassifiedError):
        return error

    text = f"{type(error).__name__}: {error}".lower()

    if any(marker in text for marker in NOT_FOUND_MARKERS):
        if module_name is not None:
            return MoveModuleNotFoundError(package_id, module_name, network)
        return PackageNotFoundError(package_id, network)

    if any(marker in text for marker in RATE_LIMIT_MARKERS):
        return RpcRateLimitedError(endpoint)

    if any(marker in text for marker in TIMEOUT_MARKERS):
        return RpcTimeoutError(endpoint, timeout_ms)

    return ConnectionFailedError(endpoint, str(error) or type(error).__name__)


def default_retry_policy(max_attempts: int = 4,
                         base_delay: float = 1.0,
                         max_delay: float = 10.0,
                         exponential_base: float = 2.0,
                         jitter: bool = False,
                         retry_not_found: bool = True) -> RetryPolicy:
    """Policy for RPC reads.

    With ``retry_not_found`` every classified error is retried; without it
    only the transient subset is, and "not found" fails on the first attempt.
    """
    return RetryPolicy(
        max_attempts=max_attempts,
        base_delay=base_delay,
        max_delay=max_delay,
        exponential_base=exponential_base,
        jitter=jitter,
        backoff_strategy="exponential",
        retry_on=(ClassifiedError,) if retry_not_found else TRANSIENT_ERRORS,
    )


class RetryingRpcClient:
    """Wraps an ``RpcTransport`` with retries and error classification."""

    def __init__(self,
                 transport: RpcTransport,
                 network: str,
                 rpc_url: str,
                 policy: Optional[RetryPolicy] = None,
                 timeout_ms: int = 30000,
                 metrics: Optional["MetricsCollector"] = None):
        self.transport = transport
        self._network = network
        self._rpc_url = rpc_url
        self.policy = policy or default_retry_policy()
        self.timeout_ms = timeout_ms
        self.metrics = metrics
        self.logger = get_logger("abi.rpc_client")

    @property
    def network(self) -> str:
        return self._network

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    async def get_normalized_interface(self, package_id: str, module_name: str) -> Dict[str, Any]:
        """Fetch the normalized interface (functions, structs) of one module."""

        async def _request():
            return await self.transport.get_normalized_move_module(package_id, module_name)

        return await self._call("get_normalized_interface", _request, package_id, module_name)

    async def get_package_module_names(self, package_id: str) -> List[str]:
        """List the module names of a package, ``[]`` if none are reported."""
        sources = await self._call(
            "get_package_module_names",
            lambda: self._fetch_disassembled(package_id),
            package_id,
        )
        return list(sources.keys())

    async def get_disassembled_source(self, package_id: str) -> Dict[str, str]:
        """Map of module name to disassembled source for a whole package."""
        return await self._call(
            "get_disassembled_source",
            lambda: self._fetch_disassembled(package_id),
            package_id,
        )

    async def get_module_source(self, package_id: str, module_name: str) -> Optional[str]:
        sources = await self.get_disassembled_source(package_id)
        return sources.get(module_name)

    async def package_exists(self, package_id: str) -> bool:
        """True if the package lists at least one module.

        A missing package is reported as ``False``; every other classified
        error still propagates.
        """
        try:
            modules = await self.get_package_module_names(package_id)
        except PackageNotFoundError:
            return False
        return len(modules) > 0

    async def _fetch_disassembled(self, package_id: str) -> Dict[str, str]:
        package_object = await self.transport.get_object(package_id, show_content=True)

        data = (package_object or {}).get("data")
        if not data:
            raise PackageNotFoundError(package_id, self._network)

        content = data.get("content")
        if not content or content.get("dataType") != "package":
            raise PackageNotFoundError(package_id, self._network)

        disassembled = content.get("disassembled")
        if isinstance(disassembled, dict):
            return dict(disassembled)

        return {}

    async def _call(self,
                    operation: str,
                    request: Callable[[], Awaitable[Any]],
                    package_id: str,
                    module_name: Optional[str] = None) -> Any:
        """Run one read under the retry policy, classifying every failure."""

        async def _attempt():
            try:
                return await request()
            except ClassifiedError:
                raise
            except Exception as exc:
                raise classify_error(
                    exc,
                    endpoint=self._rpc_url,
                    network=self._network,
                    package_id=package_id,
                    module_name=module_name,
                    timeout_ms=self.timeout_ms,
                ) from exc

        target = f"{package_id}::{module_name}" if module_name else package_id

        def _on_retry(error: Exception, attempt: int, delay: float) -> None:
            code = getattr(error, "code", None)
            self.logger.warning(
                "Retrying RPC call",
                operation=operation,
                target=target,
                attempt=attempt,
                delay_seconds=round(delay, 3),
                error=str(error),
            )
            if self.metrics:
                self.metrics.increment_counter(
                    "rpc_retries_total",
                    operation=operation,
                    error_code=code.value if code else "UNKNOWN",
                )
            if self.policy.on_retry is not None:
                self.policy.on_retry(error, attempt, delay)

        start_time = time.time()
        try:
            return await call_with_retry(_attempt, self.policy.with_callback(_on_retry), operation=operation)
        except ClassifiedError as exc:
            if self.metrics:
                self.metrics.increment_counter(
                    "rpc_failures_total",
                    operation=operation,
                    error_code=exc.code.value,
                )
            raise
        finally:
            if self.metrics:
                self.metrics.observe_histogram(
                    "rpc_call_duration_seconds",
                    time.time() - start_time,
                    operation=operation,
                )
