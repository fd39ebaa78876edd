import base64
import hashlib
import hmac

from classdesk.model.records import new_reference_id
from classdesk.signing import (
    BASE64, compute_signature, ct_equal, payment_message, sign_payment,
    verify_payment_signature, verify_signature,
)

SECRET = "shared-secret"


def flip_bit(hex_sig: str) -> str:
    raw = bytearray(bytes.fromhex(hex_sig))
    raw[0] ^= 0x01
    return raw.hex()


def test_payment_signature_is_hmac_of_order_pipe_payment():
    expected = hmac.new(
        SECRET.encode(), b"o1|p1", hashlib.sha256
    ).hexdigest()
    assert sign_payment(SECRET, "o1", "p1") == expected
    assert payment_message("o1", "p1") == b"o1|p1"


def test_valid_payment_signature_verifies():
    sig = sign_payment(SECRET, "o1", "p1")
    assert verify_payment_signature(SECRET, "o1", "p1", sig)


def test_single_bit_flip_is_rejected():
    sig = sign_payment(SECRET, "o1", "p1")
    assert not verify_payment_signature(SECRET, "o1", "p1", flip_bit(sig))


def test_signature_bound_to_order_and_payment():
    sig = sign_payment(SECRET, "o1", "p1")
    assert not verify_payment_signature(SECRET, "o1", "p2", sig)
    assert not verify_payment_signature(SECRET, "o2", "p1", sig)
    assert not verify_payment_signature("other", "o1", "p1", sig)


def test_empty_secret_or_signature_never_verifies():
    sig = compute_signature("", b"body")
    assert not verify_signature("", b"body", sig)
    assert not verify_signature(SECRET, b"body", "")
    assert not verify_signature(SECRET, b"body", None)


def test_base64_encoding():
    body = b'{"type":"payment.succeeded"}'
    mac = hmac.new(SECRET.encode(), body, hashlib.sha256).digest()
    expected = base64.b64encode(mac).decode()
    assert compute_signature(SECRET, body, BASE64) == expected
    assert verify_signature(SECRET, body, expected, BASE64)
    assert not verify_signature(SECRET, body, expected)


def test_reference_ids_are_unique_and_long_enough():
    ids = {new_reference_id() for _ in range(10_000)}
    assert len(ids) == 10_000
    sample = next(iter(ids))
    # 16 bytes of entropy, hex encoded
    assert len(sample) == 32
    int(sample, 16)


def test_ct_equal():
    assert ct_equal("admin", "admin")
    assert not ct_equal("admin", "admin ")
