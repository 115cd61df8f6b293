"""Tests for message signing, verification and tamper detection."""

import base64
import copy

import pytest

from snapnet.errors import ErrorCode, SignatureError
from snapnet.identity import Identity
from snapnet.message import MessageBuilder
from snapnet.signing import (
    build_preimage,
    require_valid_signature,
    sign_message,
    verify_message,
)
from snapnet.types import AgentID


def _flip_first_byte(signature: str) -> str:
    raw = bytearray(base64.b64decode(signature))
    raw[0] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


class TestHelloScenario:
    def test_bob_verifies_alice(self, alice, bob, hello):
        signed = sign_message(hello, alice)
        wire = signed.to_wire()
        alice_public = alice.export_public()
        assert verify_message(wire, alice_public.public_key) is True

    def test_flipped_signature_byte_fails(self, alice, hello):
        wire = sign_message(hello, alice).to_wire()
        wire["signature"] = _flip_first_byte(wire["signature"])
        assert verify_message(wire, alice.public_key_base64) is False


class TestSignMessage:
    def test_signing_returns_new_message(self, alice, hello):
        signed = sign_message(hello, alice)
        assert hello.signature is None
        assert signed.signature
        assert signed.id == hello.id
        assert len(base64.b64decode(signed.signature)) == 64

    def test_preimage_excludes_signature(self, alice, hello):
        signed = sign_message(hello, alice)
        assert build_preimage(signed) == build_preimage(hello)
        assert build_preimage(signed.to_wire()) == build_preimage(hello)
        assert b"signature" not in build_preimage(signed)

    def test_signer_must_be_sender(self, bob, hello):
        with pytest.raises(SignatureError, match="not the message sender"):
            sign_message(hello, bob)

    def test_embedded_sender_key_is_not_trusted(self, alice, validator):
        mallory = Identity.generate()
        forged_sender = {"id": alice.id, "publicKey": mallory.public_key_base64}
        forged = MessageBuilder(forged_sender, validator=validator).text("pay mallory").build()
        wire = forged.with_signature(
            base64.b64encode(mallory.sign(build_preimage(forged))).decode("ascii")
        ).to_wire()
        assert verify_message(wire, alice.public_key_base64) is False

    def test_public_key_is_required(self, alice, hello):
        signed = sign_message(hello, alice)
        with pytest.raises(TypeError):
            verify_message(signed)
        assert verify_message(signed, None) is False
        assert verify_message(signed, "") is False

    def test_verify_with_raw_key_bytes(self, alice, hello):
        signed = sign_message(hello, alice)
        assert verify_message(signed, alice.public_key_bytes) is True

    def test_wrong_key_fails(self, alice, bob, hello):
        signed = sign_message(hello, alice)
        assert verify_message(signed, bob.public_key_base64) is False

    def test_key_order_of_received_dict_irrelevant(self, alice, hello):
        wire = sign_message(hello, alice).to_wire()
        reordered = {k: wire[k] for k in reversed(list(wire))}
        assert verify_message(reordered, alice.public_key_base64) is True

    def test_signing_is_deterministic(self, alice, hello):
        assert sign_message(hello, alice).signature == sign_message(hello, alice).signature


class TestRoundTripAcrossShapes:
    def test_rich_message_round_trip(self, alice, bob, validator, clock):
        msg = (
            MessageBuilder(alice, validator=validator, clock=clock)
            .to(bob)
            .context("ctx_abc")
            .text("see attached", format="markdown", extra={"x": [1, {"b": 2, "a": 1}]})
            .data({"z": {"y": 1, "x": [3, 2, 1]}, "a": None})
            .file("a.csv", "text/csv", inline="YSxi", size=3)
            .image("image/webp", uri="https://example.com/i.webp", alt="pic")
            .audio("audio/ogg", inline="T2dn", duration=2)
            .video("video/webm", uri="https://example.com/v.webm", width=640, height=480)
            .payment({
                "amount": 3,
                "currency": "SEMNET",
                "from": bob.export_public().to_wire(),
                "to": alice.export_public().to_wire(),
                "reference": "inv-1",
            })
            .metadata({"priority": "high", "tags": ["a", "b"]})
            .build()
        )
        signed = sign_message(msg, alice)
        assert verify_message(signed.to_wire(), alice.public_key_base64) is True

    def test_user_identity_can_sign(self, validator):
        user = Identity.generate(kind="user")
        msg = MessageBuilder(user, validator=validator).text("from a human").build()
        assert verify_message(sign_message(msg, user), user.public_key_base64) is True


class TestTamperDetection:
    @pytest.mark.parametrize(
        "mutate",
        [
            lambda w: w.__setitem__("id", "msg_other"),
            lambda w: w.__setitem__("timestamp", "2030-01-01T00:00:00.000Z"),
            lambda w: w.__setitem__("version", "1.1"),
            lambda w: w.__setitem__("context", "ctx_injected"),
            lambda w: w.__setitem__("metadata", {"extra": True}),
            lambda w: w["parts"][0].__setitem__("content", "goodbye"),
            lambda w: w["parts"].append({"type": "text", "content": "p.s."}),
            lambda w: w["to"].__setitem__("publicKey", "AAAA"),
            lambda w: w.pop("to"),
        ],
    )
    def test_any_field_change_fails(self, alice, hello, mutate):
        wire = sign_message(hello, alice).to_wire()
        tampered = copy.deepcopy(wire)
        mutate(tampered)
        assert verify_message(tampered, alice.public_key_base64) is False
        assert verify_message(wire, alice.public_key_base64) is True

    def test_swapped_sender_key_fails(self, alice, bob, hello):
        wire = sign_message(hello, alice).to_wire()
        wire["from"]["publicKey"] = bob.public_key_base64
        assert verify_message(wire, alice.public_key_base64) is False


class TestVerifyNeverRaises:
    def test_unsigned_message_is_false(self, alice, hello):
        assert verify_message(hello, alice.public_key_base64) is False

    def test_sender_reference_without_key_verifies(self, validator):
        ident = Identity.generate()
        msg = MessageBuilder(AgentID(id=ident.id), validator=validator).text("x").build()
        signed = sign_message(msg, ident)
        assert verify_message(signed, ident.public_key_base64) is True

    @pytest.mark.parametrize(
        "message",
        [
            {"signature": "!!!", "from": {"publicKey": "???"}},
            {"signature": "AAAA", "from": "not-an-object"},
            {"signature": "AAAA", "from": {"publicKey": "AAAA"}, "parts": [{1, 2}]},
            "not a message",
            None,
        ],
    )
    def test_garbage_is_false(self, alice, message):
        assert verify_message(message, alice.public_key_base64) is False


class TestRequireValidSignature:
    def test_valid_passes(self, alice, hello):
        require_valid_signature(sign_message(hello, alice), alice.public_key_base64)

    def test_invalid_raises_with_protocol_code(self, alice, bob, hello):
        signed = sign_message(hello, alice)
        with pytest.raises(SignatureError) as exc:
            require_valid_signature(signed, bob.public_key_base64)
        assert exc.value.code == ErrorCode.INVALID_SIGNATURE
        assert exc.value.to_rpc_error() == {
            "code": -32002,
            "message": "Signature verification failed",
            "data": {"messageId": hello.id},
        }
