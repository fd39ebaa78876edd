import base64
import hashlib
import hmac
from typing import Optional

HEX = "hex"
BASE64 = "base64"


def compute_signature(secret: str, message: bytes, encoding: str = HEX) -> str:
    mac = hmac.new(secret.encode(), message, hashlib.sha256).digest()
    if encoding == BASE64:
        return base64.b64encode(mac).decode()
    return mac.hex()


def verify_signature(
        secret: str, message: bytes, signature: Optional[str],
        encoding: str = HEX
) -> bool:
    """Constant-time check of an HMAC-SHA256 signature over ``message``.

    An empty secret or signature never verifies.
    """
    if not secret or not signature:
        return False
    expected = compute_signature(secret, message, encoding)
    return hmac.compare_digest(expected.encode(), signature.strip().encode())


def payment_message(order_id: str, payment_id: str) -> bytes:
    return f"{order_id}|{payment_id}".encode()


def sign_payment(secret: str, order_id: str, payment_id: str) -> str:
    return compute_signature(secret, payment_message(order_id, payment_id))


def verify_payment_signature(
        secret: str, order_id: str, payment_id: str, signature: Optional[str]
) -> bool:
    return verify_signature(
        secret, payment_message(order_id, payment_id), signature
    )


def ct_equal(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())
