"""Machine-readable error categories for SNAP protocol failures."""

from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """JSON-RPC 2.0 standard codes plus the SNAP protocol band."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    AGENT_NOT_FOUND = -32001
    INVALID_SIGNATURE = -32002
    PAYMENT_REQUIRED = -32003
    INSUFFICIENT_FUNDS = -32004
    UNSUPPORTED_CONTENT_TYPE = -32005
    RATE_LIMITED = -32006
    AGENT_UNAVAILABLE = -32007
    CONTEXT_NOT_FOUND = -32008
    INVALID_AGENT_ID = -32009
    REGISTRY_ERROR = -32010


class SnapError(Exception):
    """Base exception for all SNAP errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, data: Any = None):
        super().__init__(message)
        self.message = message
        self.data = data

    def to_rpc_error(self) -> dict:
        """Render as a JSON-RPC 2.0 error object."""
        error: dict[str, Any] = {"code": int(self.code), "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class ValidationError(SnapError):
    """Structurally invalid message, part, payment or task."""

    code = ErrorCode.INVALID_PARAMS


class SignatureError(SnapError):
    """Malformed signing material or a signature that does not verify."""

    code = ErrorCode.INVALID_SIGNATURE


class CanonicalizationError(SnapError):
    """Value could not be projected to canonical JSON."""

    code = ErrorCode.INVALID_PARAMS


class IdentityError(SnapError):
    """Invalid identity reference or inconsistent key material."""

    code = ErrorCode.INVALID_AGENT_ID


class IllegalTransitionError(SnapError):
    """Task transition forbidden by the lifecycle state machine."""

    code = ErrorCode.INVALID_REQUEST

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Illegal task transition: {current} -> {target}",
            data={"from": current, "to": target},
        )
        self.current = current
        self.target = target
