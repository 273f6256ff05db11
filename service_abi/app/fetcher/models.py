"""
Domain models for fetched Move modules.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


NETWORK_URLS: Dict[str, str] = {
    "mainnet": "https://fullnode.mainnet.sui.io",
    "testnet": "https://fullnode.testnet.sui.io",
    "devnet": "https://fullnode.devnet.sui.io",
}


@dataclass(frozen=True)
class SourceStatus:
    """Whether disassembled source accompanies a fetched module."""

    available: bool
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "SourceStatus":
        return cls(available=True)

    @classmethod
    def unavailable(cls, reason: str) -> "SourceStatus":
        return cls(available=False, reason=reason)


NOT_REQUESTED = SourceStatus.unavailable("not requested")
MISSING_FROM_PACKAGE = SourceStatus.unavailable("module missing from disassembled package")


@dataclass(frozen=True)
class FetchedModule:
    """A module interface as returned by the fetch orchestrator.

    Instances are shared by reference between the cache and every caller,
    so neither the instance nor ``normalized_interface`` may be mutated.
    """

    package_id: str
    module_name: str
    network: str
    normalized_interface: Dict[str, Any]
    source_code: Optional[str] = None
    source_status: SourceStatus = NOT_REQUESTED
    fetched_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def qualified_name(self) -> str:
        return f"{self.package_id}::{self.module_name}"

    @property
    def exposed_functions(self) -> Dict[str, Any]:
        return self.normalized_interface.get("exposedFunctions", {})

    @property
    def structs(self) -> Dict[str, Any]:
        return self.normalized_interface.get("structs", {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package_id": self.package_id,
            "module_name": self.module_name,
            "network": self.network,
            "normalized_interface": self.normalized_interface,
            "source_code": self.source_code,
            "source_status": {
                "available": self.source_status.available,
                "reason": self.source_status.reason,
            },
            "fetched_at": self.fetched_at,
        }
