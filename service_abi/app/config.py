"""
Configuration for the ABI service.

Every field is read from an ``ABI_``-prefixed environment variable (or
``.env``), e.g. ``ABI_NETWORK=testnet`` or ``ABI_CACHE_TTL=120``.
"""

from typing import Optional

from pydantic import Field, field_validator

from shared.config import ServiceConfig

from .fetcher.models import NETWORK_URLS


class AbiServiceConfig(ServiceConfig):
    """Settings for the fetch-and-cache subsystem and its HTTP service."""

    # Remote endpoint
    network: str = Field(default="mainnet")
    rpc_url: Optional[str] = Field(default=None)
    rpc_timeout: float = Field(default=30.0, gt=0)

    # Retry policy
    retry_max_attempts: int = Field(default=4, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=10.0, ge=0)
    retry_exponential_base: float = Field(default=2.0, ge=1)
    retry_jitter: bool = Field(default=False)
    retry_not_found: bool = Field(default=True)

    # Result cache
    cache_ttl: float = Field(default=600.0, gt=0)
    cache_max_entries: int = Field(default=50, ge=1)
    cache_cleanup_interval: float = Field(default=60.0, ge=0)

    # Orchestrator
    coalesce_requests: bool = Field(default=False)
    package_concurrency: int = Field(default=4, ge=1)

    def __init__(self, service_name: str = "abi", port: int = 8020, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)

    @field_validator("network")
    @classmethod
    def _known_network(cls, value: str) -> str:
        value = value.lower()
        if value not in NETWORK_URLS:
            raise ValueError(f"network must be one of {sorted(NETWORK_URLS)}, got {value!r}")
        return value

    @property
    def resolved_rpc_url(self) -> str:
        """Configured RPC URL, or the network's default full node."""
        return self.rpc_url or NETWORK_URLS[self.network]


def get_abi_config(**overrides) -> AbiServiceConfig:
    """Load ABI service configuration from the environment."""
    return AbiServiceConfig(**overrides)
