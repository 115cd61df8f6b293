"""Ed25519 identity management: key generation, ids, sign, verify."""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import re
import secrets
import uuid
from typing import Any, Optional, Union

import nacl.utils
from nacl.exceptions import BadSignatureError, CryptoError
from nacl.signing import SigningKey, VerifyKey
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .canonicaljson import canonicalize
from .config import Settings
from .errors import IdentityError, SignatureError
from .types import AGENT_ID_RE, USER_ID_RE, AgentID, Party, UserID

_LOG = logging.getLogger(__name__)

SEED_SIZE = 32
PUBLIC_KEY_SIZE = 32
PRIVATE_KEY_SIZE = 64
SIGNATURE_SIZE = 64

_REALM_RE = re.compile(r"^[a-z][a-z0-9-]*$")
_KINDS = ("agent", "user")
_PARTY = TypeAdapter(Party)

KeyMaterial = Union[bytes, str]


def encode_base64(data: bytes) -> str:
    """Standard base64 (RFC 4648 §4, padded)."""
    return base64.b64encode(data).decode("ascii")


def decode_base64(value: str) -> bytes:
    """Strict standard base64 decode; raises ``binascii.Error`` on bad input."""
    return base64.b64decode(value, validate=True)


def _as_bytes(value: KeyMaterial) -> bytes:
    if isinstance(value, str):
        return decode_base64(value)
    return bytes(value)


def generate_uuid() -> str:
    """Random UUID v4 drawn from libsodium's CSPRNG."""
    return str(uuid.UUID(bytes=nacl.utils.random(16), version=4))


def generate_message_id() -> str:
    return f"msg_{secrets.token_urlsafe(16)}"


def generate_context_id() -> str:
    return f"ctx_{secrets.token_urlsafe(16)}"


def generate_secure_random(length: int = 32) -> str:
    """Random base64 text of exactly *length* characters."""
    return encode_base64(nacl.utils.random(length))[:length]


def hash_content(content: Union[str, bytes]) -> str:
    """SHA-256 digest of *content*, base64 encoded."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return encode_base64(hashlib.sha256(content).digest())


def validate_agent_id(agent_id: str) -> bool:
    return bool(isinstance(agent_id, str) and AGENT_ID_RE.match(agent_id))


def validate_user_id(user_id: str) -> bool:
    return bool(isinstance(user_id, str) and USER_ID_RE.match(user_id))


def extract_uuid(identifier: str) -> Optional[str]:
    """Return the UUID portion of an agent or user id, or None."""
    if not isinstance(identifier, str):
        return None
    match = AGENT_ID_RE.match(identifier) or USER_ID_RE.match(identifier)
    return match.group(2) if match else None


def _signing_key(private_key: KeyMaterial, error_cls: type) -> SigningKey:
    """Load a SigningKey from a 64-byte secret key (seed || public) or a seed.

    The public half of a 64-byte key is re-derived from the seed and must
    match the stored suffix.
    """
    try:
        raw = _as_bytes(private_key)
    except (binascii.Error, TypeError, ValueError) as e:
        raise error_cls(f"Private key is not valid base64: {e}") from e

    if len(raw) not in (SEED_SIZE, PRIVATE_KEY_SIZE):
        raise error_cls(
            f"Invalid private key: expected {PRIVATE_KEY_SIZE} or {SEED_SIZE} bytes, got {len(raw)}"
        )
    signing_key = SigningKey(raw[:SEED_SIZE])
    if len(raw) == PRIVATE_KEY_SIZE and bytes(signing_key.verify_key) != raw[SEED_SIZE:]:
        raise error_cls("Private key public suffix does not match its seed")
    return signing_key


def sign(private_key: KeyMaterial, payload: bytes) -> bytes:
    """Detached ed25519 signature of *payload*.

    Raises:
        SignatureError: If the key material is malformed.
    """
    signing_key = _signing_key(private_key, SignatureError)
    return signing_key.sign(payload).signature


def verify(public_key: KeyMaterial, payload: bytes, signature: KeyMaterial) -> bool:
    """Check a detached ed25519 signature. Never raises.

    Keys and signatures may be raw bytes or base64 text. Malformed input of
    any kind verifies as False.
    """
    try:
        pk = _as_bytes(public_key)
        sig = _as_bytes(signature)
        if len(pk) != PUBLIC_KEY_SIZE or len(sig) != SIGNATURE_SIZE:
            _LOG.debug("verify rejected: pk=%d sig=%d bytes", len(pk), len(sig))
            return False
        VerifyKey(pk).verify(payload, sig)
        return True
    except BadSignatureError:
        _LOG.debug("verify rejected: bad signature")
        return False
    except (CryptoError, binascii.Error, TypeError, ValueError) as e:
        _LOG.debug("verify rejected: %s", e)
        return False


def parse_party(data: Any) -> Party:
    """Validate an agent or user reference.

    Raises:
        IdentityError: If the reference does not match either shape.
    """
    if isinstance(data, (AgentID, UserID)):
        return data
    try:
        return _PARTY.validate_python(data)
    except PydanticValidationError as e:
        raise IdentityError(
            f"Invalid identity reference: {e.error_count()} error(s)",
            data=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


class Identity:
    """An ed25519 signing identity bound to a namespaced agent or user id."""

    def __init__(self, reference: Party, signing_key: SigningKey):
        self._reference = reference
        self._signing_key = signing_key

    @classmethod
    def generate(cls, realm: Optional[str] = None, kind: str = "agent") -> "Identity":
        """Generate a new random keypair and ``<realm>:<kind>:<uuid-v4>`` id.

        *realm* defaults to ``SNAP_REALM`` (``snap``).
        """
        realm = realm or Settings.from_env().realm
        if not _REALM_RE.match(realm):
            raise IdentityError(f"Invalid realm: {realm!r}")
        if kind not in _KINDS:
            raise IdentityError(f"Invalid identity kind: {kind!r}")
        signing_key = SigningKey.generate()
        identifier = f"{realm}:{kind}:{generate_uuid()}"
        ref_cls = AgentID if kind == "agent" else UserID
        reference = ref_cls(id=identifier, public_key=encode_base64(bytes(signing_key.verify_key)))
        _LOG.debug("generated identity %s", identifier)
        return cls(reference, signing_key)

    @classmethod
    def from_private_key(cls, reference: Any, private_key: KeyMaterial) -> "Identity":
        """Rebuild an identity from an id reference and stored key material.

        The public key is always derived from the private key. A reference
        that advertises a different public key is rejected.

        Raises:
            IdentityError: On malformed reference or key material.
        """
        ref = parse_party(reference)
        signing_key = _signing_key(private_key, IdentityError)
        derived = encode_base64(bytes(signing_key.verify_key))
        if ref.public_key is not None and ref.public_key != derived:
            raise IdentityError(f"Public key on {ref.id} does not match private key")
        return cls(ref.model_copy(update={"public_key": derived}), signing_key)

    @property
    def id(self) -> str:
        return self._reference.id

    @property
    def public_key_bytes(self) -> bytes:
        """Raw 32-byte ed25519 public key."""
        return bytes(self._signing_key.verify_key)

    @property
    def public_key_base64(self) -> str:
        return encode_base64(self.public_key_bytes)

    @property
    def private_key_bytes(self) -> bytes:
        """64-byte secret key: 32-byte seed followed by the public key."""
        return bytes(self._signing_key) + self.public_key_bytes

    def sign(self, payload: bytes) -> bytes:
        """Sign payload bytes, returning a 64-byte ed25519 signature."""
        return self._signing_key.sign(payload).signature

    def sign_object(self, obj: Any) -> str:
        """Canonicalize *obj* and return the base64 signature over it."""
        return encode_base64(self.sign(canonicalize(obj)))

    def export_public(self) -> Party:
        """Identity reference carrying only public material."""
        return self._reference.model_copy(update={"public_key": self.public_key_base64})

    def export_private_key(self) -> str:
        """Base64 of the 64-byte secret key. Handle with care."""
        return encode_base64(self.private_key_bytes)

    def __repr__(self) -> str:
        return f"Identity(id={self.id!r})"
