"""Message construction, structural validation and message utilities."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from pydantic import BaseModel

from .canonicaljson import canonicalize
from .clock import Clock, format_timestamp, utc_now
from .config import Settings
from .errors import ValidationError
from .identity import Identity, generate_message_id
from .types import (
    CURRENCY,
    PROTOCOL_VERSION,
    SUPPORTED_VERSIONS,
    DataPart,
    FilePart,
    ImagePart,
    Message,
    Party,
    Payment,
    TextPart,
    parse_model,
)

_LOG = logging.getLogger(__name__)

Sender = Union[Identity, Party, dict]


def _wire(value: Any) -> Any:
    if isinstance(value, Identity):
        return value.export_public().to_wire()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    return value


def _metadata(extra: Optional[dict] = None, **fields: Any) -> Optional[dict]:
    meta = {k: v for k, v in fields.items() if v is not None}
    if extra:
        meta["extra"] = dict(extra)
    return meta or None


def _media_content(uri, inline, mime_type, **fields: Any) -> dict:
    content: dict[str, Any] = {"mimeType": mime_type}
    if uri is not None:
        content["uri"] = uri
    if inline is not None:
        content["bytes"] = inline
    content.update({k: v for k, v in fields.items() if v is not None})
    return content


class MessageValidator:
    """Structural validator for candidate messages.

    Shape, pattern and range checks come from the pydantic wire models. The
    per-part size ceiling is advisory: oversized parts are logged, or
    rejected when ``strict_part_size`` is set.
    """

    def __init__(self, max_part_bytes: Optional[int] = None, strict_part_size: bool = False):
        self.max_part_bytes = max_part_bytes
        self.strict_part_size = strict_part_size

    @classmethod
    def from_settings(cls, settings: Settings) -> "MessageValidator":
        return cls(settings.max_part_bytes, settings.strict_part_size)

    def validate(self, candidate: Any) -> Message:
        """Return a validated Message.

        Raises:
            ValidationError: On any structural violation.
        """
        message = parse_model(Message, candidate)
        if self.max_part_bytes is not None:
            self._check_part_sizes(message)
        return message

    def _check_part_sizes(self, message: Message) -> None:
        for index, part in enumerate(message.parts):
            size = len(canonicalize(part.to_wire()))
            if size <= self.max_part_bytes:
                continue
            if self.strict_part_size:
                raise ValidationError(
                    f"Part {index} is {size} bytes, limit is {self.max_part_bytes}",
                    data={"part": index, "size": size, "limit": self.max_part_bytes},
                )
            _LOG.warning(
                "message %s part %d is %d bytes (advisory limit %d)",
                message.id, index, size, self.max_part_bytes,
            )


def default_validator() -> MessageValidator:
    """Validator configured from the current ``SNAP_*`` environment."""
    return MessageValidator.from_settings(Settings.from_env())


class MessageBuilder:
    """Accumulates message fields and validates them once in ``build()``.

    Every setter returns the builder. Part-adding calls are positional:
    their call order is the order of ``parts``.
    """

    def __init__(
        self,
        sender: Sender,
        validator: Optional[MessageValidator] = None,
        clock: Clock = utc_now,
    ):
        self._validator = validator
        self._clock = clock
        self._fields: dict[str, Any] = {"from": _wire(sender)}
        self._parts: list[dict[str, Any]] = []

    # -- envelope fields --

    def to(self, recipient: Sender) -> "MessageBuilder":
        self._fields["to"] = _wire(recipient)
        return self

    def context(self, context_id: str) -> "MessageBuilder":
        self._fields["context"] = context_id
        return self

    def payment(self, payment: Union[Payment, dict]) -> "MessageBuilder":
        self._fields["payment"] = _wire(payment)
        return self

    def metadata(self, metadata: dict[str, Any]) -> "MessageBuilder":
        """Merge *metadata* into any metadata already set."""
        self._fields["metadata"] = {**self._fields.get("metadata", {}), **metadata}
        return self

    def id(self, message_id: str) -> "MessageBuilder":
        self._fields["id"] = message_id
        return self

    def timestamp(self, timestamp: Union[str, datetime]) -> "MessageBuilder":
        if isinstance(timestamp, datetime):
            timestamp = format_timestamp(timestamp)
        self._fields["timestamp"] = timestamp
        return self

    def version(self, version: str) -> "MessageBuilder":
        self._fields["version"] = version
        return self

    # -- parts --

    def text(
        self,
        content: str,
        format: Optional[str] = None,
        language: Optional[str] = None,
        encoding: Optional[str] = None,
        extra: Optional[dict] = None,
    ) -> "MessageBuilder":
        part: dict[str, Any] = {"type": "text", "content": content}
        if encoding is not None:
            part["encoding"] = encoding
        meta = _metadata(extra, format=format, language=language)
        if meta:
            part["metadata"] = meta
        return self.part(part)

    def data(
        self,
        content: dict[str, Any],
        schema: Optional[dict[str, Any]] = None,
        format: Optional[str] = None,
        extra: Optional[dict] = None,
    ) -> "MessageBuilder":
        part: dict[str, Any] = {"type": "data", "content": content}
        if schema is not None:
            part["schema"] = schema
        meta = _metadata(extra, format=format)
        if meta:
            part["metadata"] = meta
        return self.part(part)

    def file(
        self,
        name: str,
        mime_type: str,
        uri: Optional[str] = None,
        inline: Optional[str] = None,
        size: Optional[int] = None,
        hash: Optional[str] = None,
        description: Optional[str] = None,
        extra: Optional[dict] = None,
    ) -> "MessageBuilder":
        content = _media_content(uri, inline, mime_type, name=name, size=size, hash=hash)
        return self._media("file", content, _metadata(extra, description=description))

    def image(
        self,
        mime_type: str,
        uri: Optional[str] = None,
        inline: Optional[str] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        alt: Optional[str] = None,
        caption: Optional[str] = None,
        extra: Optional[dict] = None,
    ) -> "MessageBuilder":
        content = _media_content(uri, inline, mime_type, width=width, height=height, alt=alt)
        return self._media("image", content, _metadata(extra, caption=caption))

    def audio(
        self,
        mime_type: str,
        uri: Optional[str] = None,
        inline: Optional[str] = None,
        duration: Optional[float] = None,
        sample_rate: Optional[int] = None,
        title: Optional[str] = None,
        artist: Optional[str] = None,
        extra: Optional[dict] = None,
    ) -> "MessageBuilder":
        content = _media_content(uri, inline, mime_type, duration=duration, sampleRate=sample_rate)
        return self._media("audio", content, _metadata(extra, title=title, artist=artist))

    def video(
        self,
        mime_type: str,
        uri: Optional[str] = None,
        inline: Optional[str] = None,
        duration: Optional[float] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        frame_rate: Optional[float] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        extra: Optional[dict] = None,
    ) -> "MessageBuilder":
        content = _media_content(
            uri, inline, mime_type,
            duration=duration, width=width, height=height, frameRate=frame_rate,
        )
        return self._media("video", content, _metadata(extra, title=title, description=description))

    def _media(self, kind: str, content: dict, meta: Optional[dict]) -> "MessageBuilder":
        part: dict[str, Any] = {"type": kind, "content": content}
        if meta:
            part["metadata"] = meta
        return self.part(part)

    def part(self, part: Any) -> "MessageBuilder":
        """Append a pre-built part (model or wire dict)."""
        self._parts.append(_wire(part))
        return self

    # -- finalize --

    def build(self) -> Message:
        """Validate the accumulated fields and return an unsigned Message.

        Raises:
            ValidationError: If no parts were added or any field is invalid.
        """
        if not self._parts:
            raise ValidationError("Message must have at least one part")
        candidate = {
            "id": generate_message_id(),
            "version": PROTOCOL_VERSION,
            "timestamp": format_timestamp(self._clock()),
            **self._fields,
            "parts": list(self._parts),
        }
        validator = self._validator or default_validator()
        return validator.validate(candidate)

    def build_for_signing(self) -> dict[str, Any]:
        """Built message as a wire dict without ``signature``."""
        return self.build().without_signature()


def create_message(sender: Sender, **kwargs: Any) -> MessageBuilder:
    return MessageBuilder(sender, **kwargs)


def reply(original: Message, sender: Sender, **kwargs: Any) -> MessageBuilder:
    """Seed a builder answering *original*.

    The reply goes to the original sender and stays in the original
    conversation; a message without context becomes the conversation root.
    Parts are not copied.
    """
    return (
        MessageBuilder(sender, **kwargs)
        .to(original.from_)
        .context(original.context or original.id)
        .metadata({"replyTo": original.id, "type": "reply"})
    )


def text_message(sender: Sender, content: str, to: Optional[Sender] = None) -> Message:
    builder = MessageBuilder(sender).text(content)
    if to is not None:
        builder.to(to)
    return builder.build()


def data_message(sender: Sender, content: dict[str, Any], to: Optional[Sender] = None) -> Message:
    builder = MessageBuilder(sender).data(content)
    if to is not None:
        builder.to(to)
    return builder.build()


def error_message(sender: Sender, error: str, to: Optional[Sender] = None) -> Message:
    builder = MessageBuilder(sender).text(f"Error: {error}").metadata({"type": "error"})
    if to is not None:
        builder.to(to)
    return builder.build()


def payment_request(sender: Sender, to: Sender, amount: float, description: str) -> Message:
    """Ask *to* to pay *sender*; the payer is the recipient."""
    payee = _wire(sender)
    payer = _wire(to)
    return (
        MessageBuilder(payee)
        .to(payer)
        .text(description)
        .payment({
            "amount": amount,
            "currency": CURRENCY,
            "from": payer,
            "to": payee,
            "memo": description,
            "status": "pending",
        })
        .metadata({"type": "payment-request"})
        .build()
    )


def validate_message(candidate: Any, validator: Optional[MessageValidator] = None) -> Message:
    return (validator or default_validator()).validate(candidate)


def extract_text(message: Message) -> list[str]:
    return [p.content for p in message.parts if isinstance(p, TextPart)]


def extract_data(message: Message) -> list[dict[str, Any]]:
    return [p.content for p in message.parts if isinstance(p, DataPart)]


def extract_files(message: Message) -> list[FilePart]:
    return [p for p in message.parts if isinstance(p, FilePart)]


def extract_images(message: Message) -> list[ImagePart]:
    return [p for p in message.parts if isinstance(p, ImagePart)]


def has_payment(message: Message) -> bool:
    return message.payment is not None


def payment_amount(message: Message) -> Optional[float]:
    return message.payment.amount if message.payment else None


def has_context(message: Message) -> bool:
    return bool(message.context)


def estimate_size(message: Message) -> int:
    """Approximate wire size in bytes (canonical JSON)."""
    return len(canonicalize(message.to_wire()))


def is_message_expired(
    message: Message, max_age_minutes: Optional[float] = None, clock: Clock = utc_now
) -> bool:
    """True once *message* is older than *max_age_minutes* (``SNAP_MESSAGE_MAX_AGE_MINUTES``)."""
    if max_age_minutes is None:
        max_age_minutes = Settings.from_env().message_max_age_minutes
    return clock() - message.sent_at > timedelta(minutes=max_age_minutes)


def is_snap_message(obj: Any) -> bool:
    """Cheap duck-type check; use ``validate_message`` for a full check."""
    return (
        isinstance(obj, dict)
        and isinstance(obj.get("id"), str)
        and obj.get("version") in SUPPORTED_VERSIONS
        and bool(obj.get("from"))
        and bool(obj.get("timestamp"))
        and isinstance(obj.get("parts"), list)
        and len(obj["parts"]) > 0
    )
