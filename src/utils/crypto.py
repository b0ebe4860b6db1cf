import hashlib
import hmac


def _as_bytes(value: bytes | str) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def generate_signature(body: bytes | str, secret: str) -> str:
    """HMAC-SHA256 over the exact request body bytes, hex encoded."""
    return hmac.new(
        secret.encode("utf-8"),
        _as_bytes(body),
        hashlib.sha256,
    ).hexdigest()


def verify_signature(body: bytes | str, secret: str, signature: str) -> bool:
    """Constant-time check of a signature against the raw request body."""
    expected = generate_signature(body, secret)
    return hmac.compare_digest(expected, signature)
