"""Pure functions for creating and decoding HS256 bearer tokens.

No state, just encode/decode. Used by the auth dependency, the tests, and
anyone minting tokens for API clients.
"""

import hashlib
import hmac
import base64
import json
import time
from dataclasses import dataclass
from typing import Optional

ISSUER = "vaultgen"


@dataclass(frozen=True)
class TokenPayload:
    """Decoded token payload. Immutable."""
    sub: str
    exp: int


def create_token(
    subject: str,
    secret: str,
    algorithm: str = "HS256",
    expires_hours: float = 24,
    now: Optional[float] = None,
) -> str:
    """Create a signed token for *subject* (the owner id).

    Args:
        subject: Owner id the token authenticates.
        secret: HMAC signing key.
        algorithm: Only HS256 supported.
        expires_hours: Hours until expiry.
        now: Issue time as a Unix timestamp (defaults to the current time).
    """
    if algorithm != "HS256":
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    issued = time.time() if now is None else now
    payload = {
        "sub": subject,
        "iat": int(issued),
        "exp": int(issued + expires_hours * 3600),
        "iss": ISSUER,
    }

    header = {"alg": "HS256", "typ": "JWT"}
    segments = [
        _b64encode(json.dumps(header).encode()),
        _b64encode(json.dumps(payload).encode()),
    ]
    signature = hmac.new(secret.encode(), b".".join(segments), hashlib.sha256).digest()
    segments.append(_b64encode(signature))
    return b".".join(segments).decode()


def decode_token(
    token: str,
    secret: str,
    algorithm: str = "HS256",
    now: Optional[float] = None,
) -> Optional[TokenPayload]:
    """Decode and validate a token.

    Returns ``None`` on any validation failure (bad signature, expired,
    malformed, missing subject) rather than raising.
    """
    if algorithm != "HS256":
        return None
    try:
        parts = token.encode().split(b".")
        if len(parts) != 3:
            return None

        expected_sig = hmac.new(secret.encode(), parts[0] + b"." + parts[1], hashlib.sha256).digest()
        if not hmac.compare_digest(expected_sig, _b64decode(parts[2])):
            return None

        payload = json.loads(_b64decode(parts[1]))
        exp = int(payload.get("exp", 0))
        if (time.time() if now is None else now) > exp:
            return None

        subject = payload.get("sub") or ""
        if not subject:
            return None
        return TokenPayload(sub=subject, exp=exp)
    except (json.JSONDecodeError, KeyError, ValueError, TypeError, IndexError, AttributeError):
        return None


# --- base64url helpers (no padding, URL-safe) ---

def _b64encode(data: bytes) -> bytes:
    return base64.urlsafe_b64encode(data).rstrip(b"=")


def _b64decode(data: bytes) -> bytes:
    padding = 4 - len(data) % 4
    if padding != 4:
        data += b"=" * padding
    return base64.urlsafe_b64decode(data)
