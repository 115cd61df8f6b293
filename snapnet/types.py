"""Wire models for SNAP protocol objects.

All models are frozen pydantic models whose JSON field names match the wire
format (camelCase, ``from`` for the sender). ``to_wire()`` yields the plain
dict that is canonicalized, signed and handed to the transport.
"""

from __future__ import annotations

import math
import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Type, TypeVar, Union
from urllib.parse import urlparse

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .clock import format_timestamp, parse_timestamp
from .errors import SnapError, ValidationError

PROTOCOL_VERSION = "1.0"
SUPPORTED_VERSIONS = ("1.0", "1.1")
CURRENCY = "SEMNET"

_UUID4 = r"[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}"
_REALM = r"[a-z][a-z0-9-]*"
AGENT_ID_RE = re.compile(rf"^({_REALM}):agent:({_UUID4})$")
USER_ID_RE = re.compile(rf"^({_REALM}):user:({_UUID4})$")

Timestamp = Annotated[
    AwareDatetime,
    PlainSerializer(format_timestamp, return_type=str, when_used="json"),
]

M = TypeVar("M", bound=BaseModel)


def _check_url(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    parsed = urlparse(value)
    if not parsed.scheme or any(c.isspace() for c in value):
        raise ValueError(f"not a valid URL: {value!r}")
    return value


class WireModel(BaseModel):
    """Frozen protocol model.

    Freezing covers attribute assignment only. Nested dict and list fields
    (``metadata``, ``DataPart.content``, ...) are shared with the instance
    and must be treated as read-only; use ``to_wire()`` for a copy that is
    safe to modify.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict with wire field names and no null fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def parse_model(model: Type[M], data: Any) -> M:
    """Validate *data* against *model*, raising the protocol ValidationError."""
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, exclude_none=True)
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {model.__name__}: {e.error_count()} error(s)",
            data=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------
class AgentID(WireModel):
    id: str
    public_key: Optional[str] = None
    registry: Optional[str] = None

    @field_validator("id")
    @classmethod
    def _agent_pattern(cls, v: str) -> str:
        if not AGENT_ID_RE.match(v):
            raise ValueError(f"agent id must look like <realm>:agent:<uuid-v4>, got {v!r}")
        return v

    @field_validator("registry")
    @classmethod
    def _registry_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)


class UserID(WireModel):
    id: str
    public_key: Optional[str] = None
    name: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @field_validator("id")
    @classmethod
    def _user_pattern(cls, v: str) -> str:
        if not USER_ID_RE.match(v):
            raise ValueError(f"user id must look like <realm>:user:<uuid-v4>, got {v!r}")
        return v


# Agents and users share the id/publicKey projection used by signing code.
Party = Union[AgentID, UserID]


# ---------------------------------------------------------------------------
# Parts
# ---------------------------------------------------------------------------
class PartMetadata(WireModel):
    extra: Optional[dict[str, Any]] = None


class TextMetadata(PartMetadata):
    format: Optional[Literal["plain", "markdown", "html"]] = None
    language: Optional[str] = None


class DataMetadata(PartMetadata):
    format: Optional[Literal["json", "xml", "yaml"]] = None
    encoding: Optional[str] = None


class FileMetadata(PartMetadata):
    description: Optional[str] = None


class ImageMetadata(PartMetadata):
    caption: Optional[str] = None


class AudioMetadata(PartMetadata):
    title: Optional[str] = None
    artist: Optional[str] = None


class VideoMetadata(PartMetadata):
    title: Optional[str] = None
    description: Optional[str] = None


class MediaContent(WireModel):
    """Content carried by reference (``uri``) or inline (base64 ``bytes``)."""

    uri: Optional[str] = None
    inline: Optional[str] = Field(default=None, alias="bytes")
    mime_type: str

    @field_validator("uri")
    @classmethod
    def _uri_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)

    @model_validator(mode="after")
    def _uri_or_bytes(self):
        if not self.uri and not self.inline:
            raise ValueError("Either uri or bytes must be provided")
        return self


class FileContent(MediaContent):
    name: str
    size: Optional[int] = Field(default=None, ge=0)
    hash: Optional[str] = None


class ImageContent(MediaContent):
    mime_type: Literal["image/jpeg", "image/png", "image/gif", "image/webp"]
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)
    alt: Optional[str] = None


class AudioContent(MediaContent):
    mime_type: Literal["audio/mpeg", "audio/wav", "audio/ogg", "audio/webm"]
    duration: Optional[float] = Field(default=None, ge=0)
    sample_rate: Optional[int] = Field(default=None, gt=0)


class VideoContent(MediaContent):
    mime_type: Literal["video/mp4", "video/webm", "video/quicktime"]
    duration: Optional[float] = Field(default=None, ge=0)
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)
    frame_rate: Optional[float] = Field(default=None, gt=0)


class TextPart(WireModel):
    type: Literal["text"] = "text"
    content: str
    encoding: Optional[Literal["utf-8", "base64"]] = None
    metadata: Optional[TextMetadata] = None


class DataPart(WireModel):
    type: Literal["data"] = "data"
    content: dict[str, Any]
    json_schema: Optional[dict[str, Any]] = Field(default=None, alias="schema")
    metadata: Optional[DataMetadata] = None


class FilePart(WireModel):
    type: Literal["file"] = "file"
    content: FileContent
    metadata: Optional[FileMetadata] = None


class ImagePart(WireModel):
    type: Literal["image"] = "image"
    content: ImageContent
    metadata: Optional[ImageMetadata] = None


class AudioPart(WireModel):
    type: Literal["audio"] = "audio"
    content: AudioContent
    metadata: Optional[AudioMetadata] = None


class VideoPart(WireModel):
    type: Literal["video"] = "video"
    content: VideoContent
    metadata: Optional[VideoMetadata] = None


Part = Annotated[
    Union[TextPart, DataPart, FilePart, ImagePart, AudioPart, VideoPart],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------
PaymentStatus = Literal["pending", "authorized", "executed", "failed"]


class Payment(WireModel):
    amount: float = Field(gt=0)
    currency: Literal["SEMNET"] = CURRENCY
    from_: Party = Field(alias="from")
    to: Party
    reference: Optional[str] = None
    memo: Optional[str] = None
    status: Optional[PaymentStatus] = None


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------
class Message(WireModel):
    id: str = Field(min_length=1)
    version: Literal["1.0", "1.1"] = PROTOCOL_VERSION
    from_: Party = Field(alias="from")
    to: Optional[Party] = None
    # Kept as the exact wire string so re-serialization never alters the
    # signed preimage.
    timestamp: str
    parts: list[Part] = Field(min_length=1)
    context: Optional[str] = None
    payment: Optional[Payment] = None
    metadata: Optional[dict[str, Any]] = None
    signature: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _rfc3339(cls, v: str) -> str:
        dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
        if dt.tzinfo is None:
            raise ValueError("timestamp must carry a UTC offset")
        return v

    @property
    def sent_at(self) -> datetime:
        return parse_timestamp(self.timestamp)

    def without_signature(self) -> dict[str, Any]:
        """Wire dict with ``signature`` removed, the input to canonicalization."""
        wire = self.to_wire()
        wire.pop("signature", None)
        return wire

    def with_signature(self, signature: str) -> "Message":
        """New message carrying *signature*; this instance is left as is."""
        return self.model_copy(update={"signature": signature})


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------
class TaskStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
)

Priority = Literal["low", "normal", "high"]


class Task(WireModel):
    id: str = Field(min_length=1)
    status: TaskStatus
    progress: Optional[float] = Field(default=None, ge=0, le=1)
    message: Optional[str] = None
    result: Optional[Message] = None
    error: Optional[str] = None
    created_at: Timestamp
    updated_at: Timestamp
    estimated_completion: Optional[Timestamp] = None
    metadata: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def _terminal_fields(self):
        if self.status is TaskStatus.COMPLETED and self.result is None:
            raise ValueError("completed task requires a result message")
        if self.status is TaskStatus.FAILED and not self.error:
            raise ValueError("failed task requires an error description")
        if self.updated_at < self.created_at:
            raise ValueError("updatedAt precedes createdAt")
        return self

    @field_validator("metadata")
    @classmethod
    def _timeout_seconds(cls, v: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
        timeout = (v or {}).get("timeout")
        if timeout is None:
            return v
        if (
            isinstance(timeout, bool)
            or not isinstance(timeout, (int, float))
            or not math.isfinite(timeout)
            or timeout <= 0
        ):
            raise ValueError(f"metadata.timeout must be a positive number of seconds, got {timeout!r}")
        return v

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class TaskUpdate(WireModel):
    """Partial task change. Only fields explicitly set are merged."""

    status: Optional[TaskStatus] = None
    progress: Optional[float] = None
    message: Optional[str] = None
    result: Optional[Message] = None
    error: Optional[str] = None
    estimated_completion: Optional[Timestamp] = None
    metadata: Optional[dict[str, Any]] = None


class TaskCreateRequest(WireModel):
    message: Message
    callback: Optional[str] = None
    timeout: Optional[float] = Field(default=None, gt=0)
    priority: Priority = "normal"
    metadata: Optional[dict[str, Any]] = None

    @field_validator("callback")
    @classmethod
    def _callback_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)


# ---------------------------------------------------------------------------
# JSON-RPC 2.0
# ---------------------------------------------------------------------------
RPCId = Union[str, int, None]


class JSONRPCError(WireModel):
    code: int
    message: str
    data: Any = None


class JSONRPCRequest(WireModel):
    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: Optional[dict[str, Any]] = None
    id: RPCId

    def to_wire(self) -> dict[str, Any]:
        wire = super().to_wire()
        wire["id"] = self.id
        return wire


class JSONRPCResponse(WireModel):
    jsonrpc: Literal["2.0"] = "2.0"
    result: Any = None
    error: Optional[JSONRPCError] = None
    id: RPCId

    @model_validator(mode="after")
    def _result_xor_error(self):
        has_result = "result" in self.model_fields_set
        if has_result == (self.error is not None):
            raise ValueError("Response must have either result or error, not both")
        return self

    @classmethod
    def from_error(cls, exc: SnapError, id: RPCId) -> "JSONRPCResponse":
        return cls(error=JSONRPCError(**exc.to_rpc_error()), id=id)

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            wire["error"] = self.error.to_wire()
        else:
            wire["result"] = self.result
        return wire
