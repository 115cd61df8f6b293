"""SNAP protocol core for Python: signed agent messages and task lifecycle."""

from .canonicaljson import canonicalize, strip_signature
from .config import Settings
from .errors import (
    CanonicalizationError,
    ErrorCode,
    IdentityError,
    IllegalTransitionError,
    SignatureError,
    SnapError,
    ValidationError,
)
from .identity import Identity, sign, verify
from .message import MessageBuilder, MessageValidator, create_message, reply
from .signing import build_preimage, require_valid_signature, sign_message, verify_message
from .types import (
    PROTOCOL_VERSION,
    AgentID,
    Message,
    Payment,
    Task,
    TaskCreateRequest,
    TaskStatus,
    TaskUpdate,
    UserID,
)

__all__ = [
    "PROTOCOL_VERSION",
    "AgentID",
    "CanonicalizationError",
    "ErrorCode",
    "Identity",
    "IdentityError",
    "IllegalTransitionError",
    "Message",
    "MessageBuilder",
    "MessageValidator",
    "Payment",
    "Settings",
    "SignatureError",
    "SnapError",
    "Task",
    "TaskCreateRequest",
    "TaskStatus",
    "TaskUpdate",
    "UserID",
    "ValidationError",
    "build_preimage",
    "canonicalize",
    "create_message",
    "reply",
    "require_valid_signature",
    "sign",
    "sign_message",
    "strip_signature",
    "verify",
    "verify_message",
]
