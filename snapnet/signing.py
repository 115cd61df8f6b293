"""Message signing and verification.

The signing preimage is the RFC 8785 canonical form of the message wire
dict with ``signature`` removed. Signing never mutates a message: it returns
a new one carrying the signature.
"""

import logging
from typing import Any, Union

from .canonicaljson import canonicalize, strip_signature
from .errors import CanonicalizationError, SignatureError
from .identity import KeyMaterial, Identity, encode_base64, verify
from .types import Message

_LOG = logging.getLogger(__name__)

MessageLike = Union[Message, dict]


def build_preimage(message: MessageLike) -> bytes:
    """Canonical bytes of *message* without its signature.

    Dicts are canonicalized as received so verification sees exactly the
    fields the sender signed.
    """
    if isinstance(message, Message):
        return canonicalize(message.without_signature())
    return canonicalize(strip_signature(message))


def sign_message(message: Message, identity: Identity) -> Message:
    """Return a copy of *message* signed by *identity*.

    Raises:
        SignatureError: If *identity* is not the message sender.
    """
    if message.from_.id != identity.id:
        raise SignatureError(
            f"Signer {identity.id} is not the message sender {message.from_.id}"
        )
    signature = encode_base64(identity.sign(build_preimage(message)))
    _LOG.debug("signed message id=%s signer=%s", message.id, identity.id)
    return message.with_signature(signature)


def _field(message: MessageLike, name: str) -> Any:
    if isinstance(message, Message):
        return message.to_wire().get(name)
    return message.get(name)


def verify_message(message: MessageLike, public_key: KeyMaterial) -> bool:
    """Verify a message signature. Never raises.

    The ``publicKey`` carried in the message's own ``from`` reference is
    never used: anyone can put a victim's id next to their own key.

    Args:
        message: A Message or its wire dict.
        public_key: The sender key (bytes or base64) as already known to the
            verifier, e.g. from a prior ``export_public()`` or a registry.

    Returns:
        True only when a signature is present and verifies.
    """
    if not isinstance(message, (Message, dict)):
        return False
    signature = _field(message, "signature")
    if not signature:
        return False
    if not public_key:
        _LOG.debug("verify rejected: no trusted sender key")
        return False
    try:
        preimage = build_preimage(message)
    except CanonicalizationError as e:
        _LOG.debug("verify rejected: %s", e)
        return False
    return verify(public_key, preimage, signature)


def require_valid_signature(message: MessageLike, public_key: KeyMaterial) -> None:
    """Verify a message signature, raising on failure.

    Raises:
        SignatureError: If the signature is missing or does not verify.
    """
    if not verify_message(message, public_key):
        message_id = _field(message, "id") if isinstance(message, (Message, dict)) else None
        raise SignatureError(
            "Signature verification failed", data={"messageId": message_id}
        )
