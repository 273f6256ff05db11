"""
ABI fetch orchestrator.

Composes validation, the result cache and the retrying RPC client:

    validate -> cache hit? -> RPC fetch -> cache store -> caller

Whole-package fetches tolerate partial failure: a module that cannot be
fetched is logged and left out, and the call returns the rest.
"""

import asyncio
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

from shared.errors import PackageNotFoundError
from shared.logging import bind_fetch_target, get_logger, reset_fetch_target

from .cache import ResultCache
from .models import MISSING_FROM_PACKAGE, NOT_REQUESTED, FetchedModule, SourceStatus
from .rpc_client import RetryingRpcClient, default_retry_policy
from .transport import SuiRpcTransport
from .validation import validate_module_name, validate_network, validate_package_id

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from ..config import AbiServiceConfig


class AbiFetcher:
    """Validating, caching front for ``RetryingRpcClient``."""

    def __init__(self,
                 client: RetryingRpcClient,
                 cache: ResultCache[FetchedModule],
                 *,
                 use_cache: bool = True,
                 coalesce_requests: bool = False,
                 package_concurrency: int = 4,
                 metrics: Optional["MetricsCollector"] = None):
        validate_network(client.network)
        self.client = client
        self.cache = cache
        self.use_cache = use_cache
        self.coalesce_requests = coalesce_requests
        self.metrics = metrics
        self.logger = get_logger("abi.fetcher")
        self.package_concurrency = max(1, package_concurrency)
        self._pending: Dict[Tuple[str, bool], "asyncio.Task[FetchedModule]"] = {}

    @property
    def network(self) -> str:
        return self.client.network

    def cache_key(self, package_id: str, module_name: str) -> str:
        return f"{self.network}:{package_id}::{module_name}"

    async def fetch_module(self, package_id: str, module_name: str, include_source: bool = True) -> FetchedModule:
        """Fetch one module interface, from cache when possible.

        Raises ``InputValidationError`` for malformed identifiers and a
        ``ClassifiedError`` when the interface itself cannot be fetched.
        Source code is best effort and never fails the call; see
        ``FetchedModule.source_status``.
        """
        validate_package_id(package_id)
        validate_module_name(module_name)

        cache_key = self.cache_key(package_id, module_name)

        if self.use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                self.logger.debug("Module cache hit", key=cache_key)
                self._count("cache_hits_total", cache_type="abi")
                return cached
            self._count("cache_misses_total", cache_type="abi")

        if not self.coalesce_requests:
            return await self._load_module(cache_key, package_id, module_name, include_source)

        # A fetch without source must not satisfy a caller that asked for it
        pending_key = (cache_key, include_source)
        pending = self._pending.get(pending_key)
        if pending is None:
            pending = asyncio.ensure_future(
                self._load_module(cache_key, package_id, module_name, include_source)
            )
            self._pending[pending_key] = pending
            pending.add_done_callback(lambda task: self._finish_pending(pending_key, task))
        else:
            self.logger.debug("Joining in-flight module fetch", key=cache_key)

        # shield: one waiter being cancelled must not cancel the shared fetch
        return await asyncio.shield(pending)

    async def fetch_package(self, package_id: str) -> List[FetchedModule]:
        """Fetch every module of a package, skipping modules that fail.

        Only raises for an invalid package id, for a failed module listing,
        or when the package reports no modules at all.
        """
        validate_package_id(package_id)

        module_names = await self.client.get_package_module_names(package_id)
        if not module_names:
            raise PackageNotFoundError(package_id, self.network)

        # Created per call: a semaphore binds to the event loop it first waits on
        semaphore = asyncio.Semaphore(self.package_concurrency)
        outcomes = await asyncio.gather(
            *(self._fetch_package_member(semaphore, package_id, name) for name in module_names),
            return_exceptions=True,
        )

        modules: List[FetchedModule] = []
        for module_name, outcome in zip(module_names, outcomes):
            if isinstance(outcome, FetchedModule):
                modules.append(outcome)
                continue
            if not isinstance(outcome, Exception):
                raise outcome

            code = getattr(outcome, "code", None)
            self.logger.warning(
                "Skipping module that failed to fetch",
                package_id=package_id,
                module_name=module_name,
                error=str(outcome),
            )
            self._count("module_fetch_failures_total", error_code=code.value if code else type(outcome).__name__)

        self.logger.info(
            "Package fetched",
            package_id=package_id,
            requested=len(module_names),
            fetched=len(modules),
        )
        return modules

    async def list_modules(self, package_id: str) -> List[str]:
        validate_package_id(package_id)
        return await self.client.get_package_module_names(package_id)

    async def package_exists(self, package_id: str) -> bool:
        validate_package_id(package_id)
        return await self.client.package_exists(package_id)

    def clear_cache(self) -> None:
        self.cache.clear()
        self.logger.info("Module cache cleared")

    async def _fetch_package_member(self,
                                    semaphore: asyncio.Semaphore,
                                    package_id: str,
                                    module_name: str) -> FetchedModule:
        async with semaphore:
            return await self.fetch_module(package_id, module_name)

    async def _load_module(self,
                           cache_key: str,
                           package_id: str,
                           module_name: str,
                           include_source: bool) -> FetchedModule:
        token = bind_fetch_target(cache_key)
        try:
            normalized = await self.client.get_normalized_interface(package_id, module_name)

            source_code: Optional[str] = None
            source_status = NOT_REQUESTED
            if include_source:
                source_code, source_status = await self._load_source(package_id, module_name)
        finally:
            reset_fetch_target(token)

        module = FetchedModule(
            package_id=package_id,
            module_name=module_name,
            network=self.network,
            normalized_interface=normalized,
            source_code=source_code,
            source_status=source_status,
        )

        if self.use_cache:
            self.cache.set(cache_key, module)

        return module

    async def _load_source(self, package_id: str, module_name: str):
        try:
            source_code = await self.client.get_module_source(package_id, module_name)
        except Exception as exc:
            self.logger.warning(
                "Could not fetch module source",
                package_id=package_id,
                module_name=module_name,
                error=str(exc),
            )
            return None, SourceStatus.unavailable(str(exc))

        if source_code is None:
            return None, MISSING_FROM_PACKAGE

        return source_code, SourceStatus.ok()

    def _finish_pending(self, pending_key: Tuple[str, bool], task: "asyncio.Task[FetchedModule]") -> None:
        self._pending.pop(pending_key, None)
        # Every waiter may have been cancelled; the outcome is still retrieved here
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.debug("Shared module fetch failed", key=pending_key[0], error=str(exc))

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter(metric_name, **labels)


def create_abi_fetcher(config: "AbiServiceConfig",
                       *,
                       transport: Optional[SuiRpcTransport] = None,
                       cache: Optional[ResultCache[FetchedModule]] = None,
                       metrics: Optional["MetricsCollector"] = None) -> AbiFetcher:
    """Wire transport, retrying client, cache and orchestrator from config."""
    rpc_url = config.resolved_rpc_url
    transport = transport or SuiRpcTransport(rpc_url, timeout=config.rpc_timeout)

    policy = default_retry_policy(
        max_attempts=config.retry_max_attempts,
        base_delay=config.retry_base_delay,
        max_delay=config.retry_max_delay,
        exponential_base=config.retry_exponential_base,
        jitter=config.retry_jitter,
        retry_not_found=config.retry_not_found,
    )

    client = RetryingRpcClient(
        transport,
        network=config.network,
        rpc_url=rpc_url,
        policy=policy,
        timeout_ms=int(config.rpc_timeout * 1000),
        metrics=metrics,
    )

    if cache is None:
        cache = ResultCache(ttl=config.cache_ttl, max_entries=config.cache_max_entries)

    return AbiFetcher(
        client,
        cache,
        coalesce_requests=config.coalesce_requests,
        package_concurrency=config.package_concurrency,
        metrics=metrics,
    )
