"""
Syntactic checks on caller-supplied identifiers.

These run before any cache lookup or network call, so malformed input never
reaches the RPC endpoint.
"""

import re
from typing import Optional, Tuple

from shared.errors import InputValidationError

from .models import NETWORK_URLS


PACKAGE_ID_PATTERN = re.compile(r"0x[a-fA-F0-9]+")
MODULE_NAME_PATTERN = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")


def validate_package_id(package_id: str) -> None:
    if not isinstance(package_id, str) or not PACKAGE_ID_PATTERN.fullmatch(package_id):
        raise InputValidationError.invalid_package_id(str(package_id))


def validate_module_name(module_name: str) -> None:
    if not isinstance(module_name, str) or not MODULE_NAME_PATTERN.fullmatch(module_name):
        raise InputValidationError.invalid_module_name(str(module_name))


def validate_network(network: str) -> None:
    if network not in NETWORK_URLS:
        raise InputValidationError.invalid_network(str(network))


def parse_package_input(value: str) -> Tuple[str, Optional[str]]:
    """Split ``"0x2"`` or ``"0x2::coin"`` into package id and module name.

    Only the shape is checked here; callers validate the parts.
    """
    parts = value.strip().split("::")

    if len(parts) == 1:
        return parts[0], None
    if len(parts) == 2:
        return parts[0], parts[1]

    raise InputValidationError.invalid_package_id(value)
