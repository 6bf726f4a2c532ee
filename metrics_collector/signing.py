import hashlib
import hmac

SIGNATURE_HEADER = "HashSHA256"


def sign(body: bytes, key: str) -> str:
    """Hex HMAC-SHA256 of ``body`` under ``key``."""
    return hmac.new(key.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify(body: bytes, key: str, signature: str) -> bool:
    # Header values arrive latin-1 decoded; compare as bytes so any value is safe.
    try:
        received = signature.strip().lower().encode("latin-1")
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(sign(body, key).encode("ascii"), received)
