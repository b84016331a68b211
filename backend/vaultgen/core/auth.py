"""Authentication dependencies.

Public interface:
    ``require_auth``    returns AuthContext or raises 401.
    ``get_token_cache`` returns the verification cache held on the app.

When ``settings.auth_enabled`` is False every request runs as
``settings.dev_owner_id`` so the development workflow needs no tokens.
Verified tokens are cached in the application's ``TTLCache``; tests can
swap it through ``app.dependency_overrides[get_token_cache]``.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from .token_factory import TokenPayload, decode_token
from .ttl_cache import TTLCache
from ..exceptions import AuthenticationError

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Authenticated caller. user_id is the owner id of jobs and content."""

    user_id: str


def build_token_cache() -> "TTLCache[TokenPayload]":
    return TTLCache(
        ttl_seconds=settings.auth_cache_ttl_seconds,
        max_entries=settings.auth_cache_max_entries,
    )


def get_token_cache(request: Request) -> Optional["TTLCache[TokenPayload]"]:
    """The verification cache created at startup (None disables caching)."""
    return getattr(request.app.state, "token_cache", None)


def verify_token(token: str, cache: Optional["TTLCache[TokenPayload]"] = None) -> TokenPayload:
    """Verify *token*, consulting and filling *cache*.

    Raises:
        AuthenticationError: Bad signature, expired or malformed token.
    """
    if cache is not None:
        cached = cache.get(token)
        if cached is not None:
            return cached

    payload = decode_token(token, settings.jwt_secret_key, settings.jwt_algorithm)
    if payload is None:
        raise AuthenticationError("Invalid or expired token")

    if cache is not None:
        # Never cache a token past its own expiry.
        cache.set(token, payload, ttl_seconds=payload.exp - time.time())
    return payload


def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    cache: Optional["TTLCache[TokenPayload]"] = Depends(get_token_cache),
) -> AuthContext:
    """Require a valid bearer token and return the caller's AuthContext."""
    if not settings.auth_enabled:
        return AuthContext(user_id=settings.dev_owner_id)

    if credentials is None:
        raise AuthenticationError("Missing authentication token")

    payload = verify_token(credentials.credentials, cache)
    return AuthContext(user_id=payload.sub)
