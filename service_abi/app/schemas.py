"""
HTTP response models for the ABI service.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from .fetcher.models import FetchedModule


class SourceStatusResponse(BaseModel):
    available: bool
    reason: Optional[str] = None


class ModuleResponse(BaseModel):
    """A fetched module as served over HTTP."""
    package_id: str
    module_name: str
    network: str
    normalized_interface: Dict[str, Any]
    source_code: Optional[str] = None
    source_status: SourceStatusResponse
    fetched_at: str

    @classmethod
    def from_module(cls, module: FetchedModule) -> "ModuleResponse":
        return cls(**module.to_dict())


class PackageResponse(BaseModel):
    package_id: str
    network: str
    modules: List[ModuleResponse]


class ModuleListResponse(BaseModel):
    package_id: str
    network: str
    modules: List[str]


class PackageExistsResponse(BaseModel):
    package_id: str
    network: str
    exists: bool
