"""
ABI service for the Move ABI Access Layer.
"""

import asyncio
from typing import Any, Dict, Optional

from fastapi import Query

from shared.base_service import BaseService

from .config import AbiServiceConfig, get_abi_config
from .fetcher.cache import sweep_periodically
from .fetcher.orchestrator import AbiFetcher, create_abi_fetcher
from .schemas import (
    ModuleListResponse,
    ModuleResponse,
    PackageExistsResponse,
    PackageResponse,
)


class AbiService(BaseService):
    """ABI service implementation."""

    def __init__(self, config: Optional[AbiServiceConfig] = None, fetcher: Optional[AbiFetcher] = None):
        config = config or get_abi_config()
        super().__init__(config.service_name, config.port, config=config)

        self.fetcher = fetcher or create_abi_fetcher(
            config,
            metrics=self.metrics if config.enable_metrics else None,
        )
        self._sweeper: Optional[asyncio.Task] = None

        self._setup_abi_routes()

    def _setup_abi_routes(self):
        """Set up ABI-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "abi",
                "message": "Move ABI Access Layer - ABI Service",
                "version": "1.0.0",
                "network": self.fetcher.network,
                "capabilities": ["modules", "packages", "cache"]
            }

        @self.app.get("/packages/{package_id}", response_model=PackageResponse)
        async def get_package(package_id: str):
            """Fetch every module of a package; failed modules are omitted."""
            modules = await self.fetcher.fetch_package(package_id)
            return PackageResponse(
                package_id=package_id,
                network=self.fetcher.network,
                modules=[ModuleResponse.from_module(m) for m in modules],
            )

        @self.app.get("/packages/{package_id}/modules", response_model=ModuleListResponse)
        async def list_modules(package_id: str):
            """List module names of a package."""
            names = await self.fetcher.list_modules(package_id)
            return ModuleListResponse(package_id=package_id, network=self.fetcher.network, modules=names)

        @self.app.get("/packages/{package_id}/exists", response_model=PackageExistsResponse)
        async def package_exists(package_id: str):
            """Check whether a package exists on the configured network."""
            exists = await self.fetcher.package_exists(package_id)
            return PackageExistsResponse(package_id=package_id, network=self.fetcher.network, exists=exists)

        @self.app.get("/packages/{package_id}/modules/{module_name}", response_model=ModuleResponse)
        async def get_module(
            package_id: str,
            module_name: str,
            include_source: bool = Query(default=True, description="Also fetch disassembled source"),
        ):
            """Fetch one module interface."""
            module = await self.fetcher.fetch_module(package_id, module_name, include_source=include_source)
            return ModuleResponse.from_module(module)

        @self.app.delete("/cache")
        async def clear_cache():
            """Drop every cached module."""
            self.fetcher.clear_cache()
            return {"status": "cleared"}

    async def _on_startup(self) -> None:
        interval = self.config.cache_cleanup_interval
        if interval > 0:
            self._sweeper = asyncio.create_task(sweep_periodically(self.fetcher.cache, interval))
            self.logger.info("Cache sweeper started", interval_seconds=interval)

    async def _on_shutdown(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

    async def _check_dependencies(self) -> Dict[str, Any]:
        return {
            "rpc_endpoint": self.fetcher.client.rpc_url,
            "network": self.fetcher.network,
            "cache": self.fetcher.cache.stats(),
        }


def create_app(config: Optional[AbiServiceConfig] = None, fetcher: Optional[AbiFetcher] = None):
    """Create ABI service application."""
    service = AbiService(config=config, fetcher=fetcher)
    return service.app


if __name__ == "__main__":
    service = AbiService()
    service.run()
