import base64
import hashlib
import hmac
from typing import Optional, Union

BytesLike = Union[bytes, str]


def _as_bytes(value: BytesLike) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


'''
HMAC-SHA256 签名，返回 hex digest
   - state token 与 OAuth callback hmac 共用
'''
def sign(data: BytesLike, secret: BytesLike) -> str:
    return hmac.new(_as_bytes(secret), _as_bytes(data), hashlib.sha256).hexdigest()


# Webhook 的 X-Shopify-Hmac-Sha256 头是 base64 形式
def sign_base64(data: BytesLike, secret: BytesLike) -> str:
    digest = hmac.new(_as_bytes(secret), _as_bytes(data), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_constant_time(a: Optional[BytesLike], b: Optional[BytesLike]) -> bool:
    """
    Compare two signatures in time independent of where they first differ.

    Strings are compared as ASCII; anything that cannot be decoded, ``None``
    and length mismatches all return False instead of raising.
    """
    if a is None or b is None:
        return False
    try:
        left = a.encode("ascii") if isinstance(a, str) else bytes(a)
        right = b.encode("ascii") if isinstance(b, str) else bytes(b)
    except (UnicodeEncodeError, TypeError):
        return False

    if len(left) != len(right):
        return False

    result = 0
    for x, y in zip(left, right):
        result |= x ^ y
    return result == 0
