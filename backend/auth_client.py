"""
Auth gateway for FireLog

Owns auth_users and refresh_tokens. Exposes provider-style operations
(sign up, sign in, refresh, sign out, recovery, admin user management) and
raises AuthApiError with provider-style messages; services/auth_service.py
maps those messages to domain error codes.

Passwords are bcrypt hashed. Access tokens are JWTs from jwt_auth.py;
refresh tokens are opaque rows rotated on every refresh.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, List, Optional

import bcrypt
from sqlalchemy.orm import Session

from jwt_auth import (
    ACCESS_TOKEN_LIFETIME,
    REFRESH_TOKEN_LIFETIME,
    create_access_token,
    create_refresh_token,
    validate_access_token,
)
from models import AuthUser, Profile, RefreshToken, ROLE_MEMBER, as_utc, utcnow

logger = logging.getLogger(__name__)

RECOVERY_TOKEN_LIFETIME = timedelta(hours=1)


class AuthApiError(Exception):
    """Error raised by the auth gateway, shaped like the hosted provider's."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


@dataclass
class AuthResponse:
    user: AuthUser
    session: Optional[dict] = None


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError as e:
        logger.error(f"Password verification error: {e}")
        return False


def _hash_recovery_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthClient:
    def __init__(self, db: Session):
        self.db = db

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def _issue_session(self, user: AuthUser, ip_address: Optional[str] = None,
                       user_agent: Optional[str] = None) -> dict:
        now = utcnow()
        role = user.profile.role if user.profile else None
        access_token = create_access_token(user.id, user.email, role, now=now)
        refresh = RefreshToken(
            user_id=user.id,
            token=create_refresh_token(),
            expires_at=now + REFRESH_TOKEN_LIFETIME,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
        )
        self.db.add(refresh)

        expires_in = int(ACCESS_TOKEN_LIFETIME.total_seconds())
        return {
            "access_token": access_token,
            "refresh_token": refresh.token,
            "expires_in": expires_in,
            "expires_at": int(now.timestamp()) + expires_in,
            "token_type": "bearer",
        }

    def sign_up(self, email: str, password: str, user_metadata: Optional[dict] = None,
                ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> AuthResponse:
        """
        Create the auth user and its profile in one transaction.

        user_metadata carries fire_department_id, first_name, last_name and role.
        """
        metadata = user_metadata or {}
        email = _normalize_email(email)

        if self.db.query(AuthUser).filter(AuthUser.email == email).first():
            raise AuthApiError("User already registered", 422)

        user = AuthUser(email=email, password_hash=hash_password(password))
        user.profile = Profile(
            fire_department_id=metadata.get("fire_department_id"),
            first_name=metadata.get("first_name"),
            last_name=metadata.get("last_name"),
            role=metadata.get("role") or ROLE_MEMBER,
        )
        self.db.add(user)
        self.db.flush()

        user.last_sign_in_at = utcnow()
        session = self._issue_session(user, ip_address, user_agent)
        self.db.commit()

        logger.info(f"Auth user created: {user.id}")
        return AuthResponse(user=user, session=session)

    def sign_in_with_password(self, email: str, password: str, ip_address: Optional[str] = None,
                              user_agent: Optional[str] = None) -> AuthResponse:
        user = self.db.query(AuthUser).filter(AuthUser.email == _normalize_email(email)).first()
        if not user or not verify_password(password, user.password_hash):
            raise AuthApiError("Invalid login credentials", 400)

        user.last_sign_in_at = utcnow()
        session = self._issue_session(user, ip_address, user_agent)
        self.db.commit()
        return AuthResponse(user=user, session=session)

    def refresh_session(self, refresh_token: str, ip_address: Optional[str] = None,
                        user_agent: Optional[str] = None) -> AuthResponse:
        """Exchange a refresh token for a new session; the old token is revoked."""
        if not refresh_token:
            raise AuthApiError("Refresh Token Not Found", 400)

        record = self.db.query(RefreshToken).filter(RefreshToken.token == refresh_token).first()
        if not record:
            raise AuthApiError("Invalid Refresh Token: Refresh Token Not Found", 400)

        now = utcnow()
        if record.revoked_at is not None:
            logger.warning(f"Revoked refresh token presented for user {record.user_id}")
            raise AuthApiError("Invalid Refresh Token: Already Used", 400)
        if as_utc(record.expires_at) < now:
            raise AuthApiError("Invalid Refresh Token: Expired", 400)

        record.revoked_at = now
        record.last_used_at = now
        session = self._issue_session(record.user, ip_address, user_agent)
        self.db.commit()
        return AuthResponse(user=record.user, session=session)

    def get_user(self, access_token: str) -> AuthUser:
        claims = validate_access_token(access_token) if access_token else None
        if claims is None:
            raise AuthApiError("invalid JWT: unable to parse or verify signature", 401)

        user = self.db.query(AuthUser).filter(AuthUser.id == claims.user_id).first()
        if not user:
            raise AuthApiError("User from sub claim in JWT does not exist", 403)
        return user

    def sign_out(self, access_token: str, refresh_token: Optional[str] = None) -> int:
        """Revoke the given refresh token, or all of the user's tokens."""
        user = self.get_user(access_token)
        return self._revoke_tokens(user.id, refresh_token)

    def sign_out_everywhere(self, user_id: str) -> int:
        return self._revoke_tokens(user_id)

    def _revoke_tokens(self, user_id: str, refresh_token: Optional[str] = None) -> int:
        query = self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked_at.is_(None),
        )
        if refresh_token:
            query = query.filter(RefreshToken.token == refresh_token)

        now = utcnow()
        records = query.all()
        for record in records:
            record.revoked_at = now
        self.db.commit()
        return len(records)

    # -------------------------------------------------------------------------
    # Passwords
    # -------------------------------------------------------------------------

    def check_password(self, user_id: str, password: str) -> bool:
        user = self.admin_get_user_by_id(user_id)
        return verify_password(password, user.password_hash)

    def update_user_password(self, user_id: str, new_password: str) -> AuthUser:
        user = self.admin_get_user_by_id(user_id)
        user.password_hash = hash_password(new_password)
        user.updated_at = utcnow()
        self.db.commit()
        return user

    def reset_password_for_email(self, email: str) -> Optional[str]:
        """
        Start password recovery. Returns the plaintext recovery token for the
        caller to mail, or None when no user has that email.
        """
        user = self.db.query(AuthUser).filter(AuthUser.email == _normalize_email(email)).first()
        if not user:
            return None
        return self._start_recovery(user)

    def _start_recovery(self, user: AuthUser) -> str:
        token = secrets.token_urlsafe(32)
        user.recovery_token_hash = _hash_recovery_token(token)
        user.recovery_sent_at = utcnow()
        self.db.commit()
        return token

    def generate_recovery_token(self, user_id: str) -> str:
        """Admin initiated recovery for a known user."""
        return self._start_recovery(self.admin_get_user_by_id(user_id))

    def verify_recovery_token(self, token: str) -> AuthUser:
        """Single use; valid for RECOVERY_TOKEN_LIFETIME after it was sent."""
        if not token:
            raise AuthApiError("Token has expired or is invalid", 403)

        user = self.db.query(AuthUser).filter(
            AuthUser.recovery_token_hash == _hash_recovery_token(token)
        ).first()
        if not user or user.recovery_sent_at is None:
            raise AuthApiError("Token has expired or is invalid", 403)

        expired = as_utc(user.recovery_sent_at) + RECOVERY_TOKEN_LIFETIME < utcnow()
        user.recovery_token_hash = None
        user.recovery_sent_at = None
        self.db.commit()

        if expired:
            raise AuthApiError("Token has expired or is invalid", 403)
        return user

    # -------------------------------------------------------------------------
    # Admin
    # -------------------------------------------------------------------------

    def admin_get_user_by_id(self, user_id: str) -> AuthUser:
        user = self.db.query(AuthUser).filter(AuthUser.id == user_id).first()
        if not user:
            raise AuthApiError("User not found", 404)
        return user

    def admin_delete_user(self, user_id: str) -> None:
        """Deletes the user; profile, refresh tokens and incidents cascade."""
        user = self.admin_get_user_by_id(user_id)
        self.db.delete(user)
        self.db.commit()
        logger.info(f"Auth user deleted: {user_id}")

    def admin_list_users(self, ids: Optional[Iterable[str]] = None) -> List[AuthUser]:
        query = self.db.query(AuthUser)
        if ids is not None:
            ids = list(ids)
            if not ids:
                return []
            query = query.filter(AuthUser.id.in_(ids))
        return query.order_by(AuthUser.created_at).all()
