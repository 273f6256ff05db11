"""
Shared error handling for the Move ABI Access Layer.

The classified errors below form a closed set. They are produced only at the
RPC client boundary (see ``service_abi.app.fetcher.rpc_client.classify_error``);
everything downstream branches on ``ErrorCode`` or on the exception class.
"""

from enum import Enum
from typing import Dict, Any, Optional, Tuple, Type
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorCode(str, Enum):
    """Closed set of error tags."""

    INPUT_VALIDATION = "INPUT_VALIDATION"
    PACKAGE_NOT_FOUND = "PACKAGE_NOT_FOUND"
    MODULE_NOT_FOUND = "MODULE_NOT_FOUND"
    RPC_RATE_LIMIT = "RPC_RATE_LIMIT"
    RPC_TIMEOUT = "RPC_TIMEOUT"
    CONNECTION_FAILED = "CONNECTION_FAILED"


class ValidationKind(str, Enum):
    """Which identifier failed validation."""

    INVALID_PACKAGE_ID = "INVALID_PACKAGE_ID"
    INVALID_MODULE_NAME = "INVALID_MODULE_NAME"
    INVALID_NETWORK = "INVALID_NETWORK"


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AbiAccessException(Exception):
    """Base exception for the ABI access layer."""

    status_code = 500

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code.value,
            message=self.message,
            details=self.details
        )


class InputValidationError(AbiAccessException):
    """Caller supplied a syntactically malformed identifier. Never retried."""

    status_code = 400

    def __init__(self, kind: ValidationKind, value: str, message: str):
        self.kind = kind
        self.value = value
        super().__init__(ErrorCode.INPUT_VALIDATION, message, {"kind": kind.value, "value": value})

    @classmethod
    def invalid_package_id(cls, package_id: str) -> "InputValidationError":
        return cls(
            ValidationKind.INVALID_PACKAGE_ID,
            package_id,
            f'Invalid package ID format: "{package_id}". Expected format: 0x<hex> or 0x<hex>::<module>'
        )

    @classmethod
    def invalid_module_name(cls, module_name: str) -> "InputValidationError":
        return cls(
            ValidationKind.INVALID_MODULE_NAME,
            module_name,
            f'Invalid module name: "{module_name}". Module names must start with a letter or '
            f'underscore and contain only alphanumeric characters and underscores.'
        )

    @classmethod
    def invalid_network(cls, network: str) -> "InputValidationError":
        return cls(
            ValidationKind.INVALID_NETWORK,
            network,
            f'Invalid network: "{network}". Valid networks are: mainnet, testnet, devnet'
        )


class ClassifiedError(AbiAccessException):
    """Base for failures classified at the RPC client boundary."""

    status_code = 502


class PackageNotFoundError(ClassifiedError):
    """Package does not exist on the network."""

    status_code = 404

    def __init__(self, package_id: str, network: str):
        self.package_id = package_id
        self.network = network
        super().__init__(
            ErrorCode.PACKAGE_NOT_FOUND,
            f'Package "{package_id}" not found on {network}. Please verify the package ID and network.',
            {"package_id": package_id, "network": network}
        )


class MoveModuleNotFoundError(ClassifiedError):
    """Module does not exist inside the package."""

    status_code = 404

    def __init__(self, package_id: str, module_name: str, network: str):
        self.package_id = package_id
        self.module_name = module_name
        self.network = network
        super().__init__(
            ErrorCode.MODULE_NOT_FOUND,
            f'Module "{module_name}" not found in package "{package_id}" on {network}.',
            {"package_id": package_id, "module_name": module_name, "network": network}
        )


class RpcRateLimitedError(ClassifiedError):
    """Endpoint rejected the call with a rate limit."""

    status_code = 429

    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        super().__init__(
            ErrorCode.RPC_RATE_LIMIT,
            "RPC rate limit exceeded. Please wait before retrying or use a different RPC endpoint.",
            {"endpoint": endpoint}
        )


class RpcTimeoutError(ClassifiedError):
    """Transport timed out talking to the endpoint."""

    status_code = 504

    def __init__(self, endpoint: str, timeout_ms: int):
        self.endpoint = endpoint
        self.timeout_ms = timeout_ms
        super().__init__(
            ErrorCode.RPC_TIMEOUT,
            f"RPC request timed out after {timeout_ms}ms. Try again or use a different RPC endpoint.",
            {"endpoint": endpoint, "timeout_ms": timeout_ms}
        )


class ConnectionFailedError(ClassifiedError):
    """Any other transport or endpoint failure."""

    status_code = 502

    def __init__(self, endpoint: str, cause: str):
        self.endpoint = endpoint
        self.cause = cause
        super().__init__(
            ErrorCode.CONNECTION_FAILED,
            f"Failed to connect to RPC endpoint: {endpoint}. {cause}",
            {"endpoint": endpoint, "cause": cause}
        )


# Failures that may succeed on a later attempt.
TRANSIENT_ERRORS: Tuple[Type[ClassifiedError], ...] = (
    RpcRateLimitedError,
    RpcTimeoutError,
    ConnectionFailedError,
)
