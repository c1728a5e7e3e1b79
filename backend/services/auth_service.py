"""
Auth service

Orchestrates registration, login, session refresh, profile and password
operations on top of AuthClient. Provider errors (AuthApiError) are mapped
to domain ServiceError codes here; routers turn those into HTTP responses.

Usage:
    from services.auth_service import AuthService

    result = AuthService(db).login_user("jan@osp.pl", "Haslo123!")
    # {"user": {...}, "profile": {...}, "session": {...}}
"""

import logging
import secrets
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

import email_service
from auth_client import AuthApiError, AuthClient
from models import AuthUser, FireDepartment, Profile, ROLE_MEMBER, utcnow
from responses import (
    ServiceError,
    EMAIL_ALREADY_EXISTS,
    FIRE_DEPARTMENT_NOT_FOUND,
    FORBIDDEN,
    INVALID_CREDENTIALS,
    INVALID_CURRENT_PASSWORD,
    INVALID_DEPARTMENT_CODE,
    INVALID_REFRESH_TOKEN,
    INVALID_RESET_TOKEN,
    PROFILE_NOT_FOUND,
    UNAUTHORIZED,
    VALIDATION_ERROR,
)
from schemas import FireDepartmentDTO, ProfileDTO, ProfileWithDepartmentDTO, SessionDTO, UserDTO
from validation import sanitize_string, validate_password_strength

logger = logging.getLogger(__name__)


def _is_already_registered(message: str) -> bool:
    message = message.lower()
    return "already registered" in message or "already been registered" in message


def user_dto(user: AuthUser) -> dict:
    return UserDTO.model_validate(user).model_dump()


def profile_dto(profile: Profile) -> dict:
    return ProfileDTO.model_validate(profile).model_dump()


class AuthService:
    def __init__(self, db: Session, client: Optional[AuthClient] = None):
        self.db = db
        self.client = client or AuthClient(db)

    # -------------------------------------------------------------------------
    # Registration / login
    # -------------------------------------------------------------------------

    def _resolve_department(self, command: dict) -> FireDepartment:
        department_id = command.get("fire_department_id")
        if department_id:
            department = self.db.query(FireDepartment).filter(FireDepartment.id == department_id).first()
        else:
            name = (command.get("fire_department_name") or "").strip()
            department = self.db.query(FireDepartment).filter(
                func.lower(FireDepartment.name) == name.lower()
            ).first()

        if not department:
            raise ServiceError(FIRE_DEPARTMENT_NOT_FOUND, "Fire department not found")
        return department

    def register_user(self, command: dict, ip_address: Optional[str] = None,
                      user_agent: Optional[str] = None) -> dict:
        """
        command: validated register payload (see validation.validate_register_request)

        Roles above member need the department's verification code.
        """
        department = self._resolve_department(command)

        code = (command.get("department_code") or "").strip()
        code_matches = bool(department.verification_code) and secrets.compare_digest(
            code.encode("utf-8"), department.verification_code.encode("utf-8")
        )
        if department.verification_code and not code_matches:
            raise ServiceError(INVALID_DEPARTMENT_CODE, "Invalid department verification code")

        role = command.get("role") or ROLE_MEMBER
        if role != ROLE_MEMBER and not code_matches:
            raise ServiceError(FORBIDDEN, "Elevated roles require the department verification code")

        metadata = {
            "fire_department_id": department.id,
            "first_name": sanitize_string(command.get("first_name"), 100),
            "last_name": sanitize_string(command.get("last_name"), 100),
            "role": role,
        }

        try:
            auth = self.client.sign_up(command["email"], command["password"], metadata,
                                       ip_address=ip_address, user_agent=user_agent)
        except AuthApiError as e:
            if _is_already_registered(e.message):
                raise ServiceError(EMAIL_ALREADY_EXISTS, "User with this email already exists")
            raise

        logger.info(f"User registered: {auth.user.id} in department {department.id} as {role}")
        email_service.send_welcome(auth.user.email, department.name, auth.user.profile.first_name or "")

        return {
            "user": user_dto(auth.user),
            "profile": profile_dto(auth.user.profile),
            "session": SessionDTO(**auth.session).model_dump(),
        }

    def login_user(self, email: str, password: str, ip_address: Optional[str] = None,
                   user_agent: Optional[str] = None) -> dict:
        try:
            auth = self.client.sign_in_with_password(email, password, ip_address=ip_address,
                                                     user_agent=user_agent)
        except AuthApiError:
            logger.info(f"Failed login for {email.strip().lower()} from {ip_address}")
            raise ServiceError(INVALID_CREDENTIALS, "Invalid email or password")

        if not auth.user.profile:
            raise ServiceError(PROFILE_NOT_FOUND, "User profile not found")

        logger.info(f"User login: {auth.user.id}")
        return {
            "user": user_dto(auth.user),
            "profile": profile_dto(auth.user.profile),
            "session": SessionDTO(**auth.session).model_dump(),
        }

    def refresh_session(self, refresh_token: str, ip_address: Optional[str] = None,
                        user_agent: Optional[str] = None) -> dict:
        try:
            auth = self.client.refresh_session(refresh_token, ip_address=ip_address,
                                               user_agent=user_agent)
        except AuthApiError as e:
            logger.warning(f"Refresh failed: {e.message}")
            raise ServiceError(INVALID_REFRESH_TOKEN, "Invalid or expired refresh token")

        return {
            "user": user_dto(auth.user),
            "session": SessionDTO(**auth.session).model_dump(),
        }

    def logout(self, access_token: str, refresh_token: Optional[str] = None):
        try:
            self.client.sign_out(access_token, refresh_token)
        except AuthApiError:
            raise ServiceError(UNAUTHORIZED, "Invalid or expired token")

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    def get_user(self, user_id: str) -> AuthUser:
        user = self.db.query(AuthUser).filter(AuthUser.id == user_id).first()
        if not user:
            raise ServiceError(UNAUTHORIZED, "User no longer exists")
        if not user.profile:
            raise ServiceError(PROFILE_NOT_FOUND, "User profile not found")
        return user

    def get_profile(self, user_id: str) -> dict:
        user = self.get_user(user_id)
        profile = user.profile

        department = None
        if profile.fire_department:
            department = FireDepartmentDTO.model_validate(profile.fire_department.location_dict())
        data = ProfileWithDepartmentDTO(**profile_dto(profile), fire_department=department)

        return {"user": user_dto(user), "profile": data.model_dump()}

    def update_profile(self, user_id: str, first_name=None, last_name=None, fields=()) -> dict:
        """fields names which of first_name / last_name were sent (None clears)"""
        profile = self.get_user(user_id).profile
        if "first_name" in fields:
            profile.first_name = sanitize_string(first_name, 100) or None
        if "last_name" in fields:
            profile.last_name = sanitize_string(last_name, 100) or None
        profile.updated_at = utcnow()
        self.db.commit()

        logger.info(f"Profile updated: {user_id}")
        return self.get_profile(user_id)

    # -------------------------------------------------------------------------
    # Passwords
    # -------------------------------------------------------------------------

    def _check_new_password(self, password: str, field: str):
        ok, problems = validate_password_strength(password)
        if not ok:
            raise ServiceError(VALIDATION_ERROR, "Password does not meet requirements",
                               {field: "; ".join(problems)})

    def change_password(self, user_id: str, current_password: str, new_password: str):
        user = self.get_user(user_id)
        if not self.client.check_password(user.id, current_password):
            raise ServiceError(INVALID_CURRENT_PASSWORD, "Current password is incorrect")

        self._check_new_password(new_password, "new_password")
        self.client.update_user_password(user.id, new_password)
        logger.info(f"Password changed: {user.id}")

    def request_password_reset(self, email: str):
        """Never reveals whether the address is registered."""
        token = self.client.reset_password_for_email(email)
        if token is None:
            logger.info("Password reset requested for unknown email")
            return

        user = self.db.query(AuthUser).filter(AuthUser.email == email.strip().lower()).first()
        name = user.profile.first_name if user and user.profile else ""
        if not email_service.send_password_reset(user.email, token, name or ""):
            logger.error(f"Password reset email could not be sent to user {user.id}")

    def reset_password(self, token: str, new_password: str):
        self._check_new_password(new_password, "password")
        try:
            user = self.client.verify_recovery_token(token)
        except AuthApiError:
            raise ServiceError(INVALID_RESET_TOKEN, "Reset link is invalid or has expired")

        self.client.update_user_password(user.id, new_password)
        # Existing sessions end with the old password
        self.client.sign_out_everywhere(user.id)
        logger.info(f"Password reset completed: {user.id}")
