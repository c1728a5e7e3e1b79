"""
JWT Authentication Module for FireLog

Token types:
- Access token (JWT): 1-hour lifetime, carries the user id, email and role.
  Validated by signature only (CPU, no DB hit).
- Refresh token: 30-day lifetime, opaque, stored in refresh_tokens.
  Rotated on every use by auth_client.AuthClient.refresh_session.

Delivery:
- Authorization: Bearer <token> header (browser fetch and the token manager)

DEPENDENCIES: PyJWT
"""

import os
import secrets
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt  # PyJWT
from fastapi import Request

from responses import ApiError, UNAUTHORIZED

logger = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

# JWT signing key - MUST be set in production via environment variable.
# If not set, generates a random key (tokens invalidated on restart, fine for dev).
_default_secret = secrets.token_urlsafe(64)
JWT_SECRET = os.environ.get("FIRELOG_JWT_SECRET", _default_secret)
if JWT_SECRET == _default_secret:
    logger.warning(
        "JWT_SECRET not set in environment - using random key. "
        "Tokens will be invalidated on restart. "
        "Set FIRELOG_JWT_SECRET for persistent tokens."
    )

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_LIFETIME = timedelta(hours=1)
REFRESH_TOKEN_LIFETIME = timedelta(days=30)

# =============================================================================
# TOKEN CREATION
# =============================================================================


def create_access_token(user_id: str, email: str, role: Optional[str] = None,
                        now: Optional[datetime] = None) -> str:
    """
    Create a signed JWT access token.

    Args:
        user_id: auth_users.id (becomes the "sub" claim)
        email: User email
        role: Profile role (member, commander, admin)
        now: Issue time, defaults to the current UTC time

    Returns:
        Encoded JWT string
    """
    now = now or datetime.now(timezone.utc)

    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + ACCESS_TOKEN_LIFETIME,
    }

    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def create_refresh_token() -> str:
    """
    Generate a cryptographically secure refresh token string.

    This is NOT a JWT - it's an opaque token stored in the database.
    """
    return secrets.token_urlsafe(48)


# =============================================================================
# TOKEN VALIDATION
# =============================================================================


class TokenClaims:
    """Parsed and validated JWT claims."""

    __slots__ = ("user_id", "email", "role", "exp")

    def __init__(self, payload: dict):
        self.user_id = payload["sub"]
        self.email = payload.get("email")
        self.role = payload.get("role")
        self.exp = payload.get("exp")


def validate_access_token(token: str) -> Optional[TokenClaims]:
    """
    Validate a JWT access token by checking its signature and expiration.

    Returns:
        TokenClaims if valid, None if invalid/expired.
    """
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        return TokenClaims(payload)
    except jwt.ExpiredSignatureError:
        return None
    except (jwt.InvalidTokenError, KeyError) as e:
        logger.warning(f"Invalid JWT: {e}")
        return None


def extract_token_from_request(request) -> Optional[str]:
    """Bearer token from the Authorization header, or None."""
    auth_header = request.headers.get("authorization", "")
    if auth_header[:7].lower() == "bearer ":
        token = auth_header[7:].strip()
        return token or None
    return None


# =============================================================================
# DEPENDENCIES
# =============================================================================


class CurrentUser:
    """The caller of an authenticated request."""

    __slots__ = ("id", "email", "role", "access_token")

    def __init__(self, claims: TokenClaims, access_token: str):
        self.id = claims.user_id
        self.email = claims.email
        self.role = claims.role
        self.access_token = access_token


async def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency: 401 UNAUTHORIZED unless a valid bearer token is sent."""
    token = extract_token_from_request(request)
    if not token:
        raise ApiError(401, UNAUTHORIZED, "Authentication required")

    claims = validate_access_token(token)
    if claims is None:
        raise ApiError(401, UNAUTHORIZED, "Invalid or expired token")

    return CurrentUser(claims, token)
