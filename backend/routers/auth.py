"""
Auth router - registration, login, sessions, profile and passwords

Every handler follows the same path: rate limit (public endpoints),
JSON body, validation, AuthService. ServiceErrors raised by the service are
rendered by the handler registered in main.py.
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from database import get_db
from jwt_auth import CurrentUser, get_current_user
from rate_limiter import (
    FORGOT_PASSWORD_LIMIT,
    LOGIN_LIMIT,
    REFRESH_LIMIT,
    REGISTER_LIMIT,
    RESET_PASSWORD_LIMIT,
    client_ip,
    enforce_rate_limit,
)
from responses import (
    ApiError,
    VALIDATION_ERROR,
    raise_if_invalid,
    read_json,
    success_response,
)
from services.auth_service import AuthService
from validation import (
    validate_change_password_request,
    validate_email,
    validate_login_request,
    validate_register_request,
    validate_update_profile_request,
)

logger = logging.getLogger(__name__)

router = APIRouter()

RESET_MESSAGE = "Jeśli konto z tym adresem email istnieje, link resetowania hasła został wysłany."


def _user_agent(request: Request):
    return request.headers.get("user-agent")


# =============================================================================
# REGISTRATION / LOGIN
# =============================================================================

@router.post("/register")
async def register(request: Request, db: Session = Depends(get_db)):
    enforce_rate_limit(request, "register", REGISTER_LIMIT)
    body = await read_json(request)
    raise_if_invalid(validate_register_request(body))

    data = AuthService(db).register_user(body, ip_address=client_ip(request),
                                         user_agent=_user_agent(request))
    return success_response(data, "Rejestracja zakończona pomyślnie", status_code=201)


@router.post("/login")
async def login(request: Request, db: Session = Depends(get_db)):
    enforce_rate_limit(request, "login", LOGIN_LIMIT)
    body = await read_json(request)
    raise_if_invalid(validate_login_request(body))

    data = AuthService(db).login_user(body["email"], body["password"], ip_address=client_ip(request),
                                      user_agent=_user_agent(request))
    return success_response(data, "Zalogowano pomyślnie")


@router.post("/logout")
async def logout(request: Request, db: Session = Depends(get_db),
                 current_user: CurrentUser = Depends(get_current_user)):
    """Body is optional; with {"refresh_token"} only that session ends."""
    refresh_token = None
    if await request.body():
        body = await read_json(request)
        if isinstance(body, dict) and isinstance(body.get("refresh_token"), str):
            refresh_token = body["refresh_token"]

    AuthService(db).logout(current_user.access_token, refresh_token)
    logger.info(f"User logout: {current_user.id}")
    return success_response(None, "Wylogowano pomyślnie")


@router.post("/refresh")
async def refresh(request: Request, db: Session = Depends(get_db)):
    enforce_rate_limit(request, "refresh", REFRESH_LIMIT)
    body = await read_json(request)
    refresh_token = body.get("refresh_token") if isinstance(body, dict) else None
    if not refresh_token or not isinstance(refresh_token, str):
        raise ApiError(400, VALIDATION_ERROR, "Refresh token is required",
                       {"refresh_token": "Refresh token is required"})

    data = AuthService(db).refresh_session(refresh_token, ip_address=client_ip(request),
                                           user_agent=_user_agent(request))
    return success_response(data, "Token odświeżony")


# =============================================================================
# PROFILE
# =============================================================================

@router.get("/profile")
async def get_profile(db: Session = Depends(get_db),
                      current_user: CurrentUser = Depends(get_current_user)):
    return success_response(AuthService(db).get_profile(current_user.id))


@router.patch("/profile")
async def update_profile(request: Request, db: Session = Depends(get_db),
                         current_user: CurrentUser = Depends(get_current_user)):
    body = await read_json(request)
    raise_if_invalid(validate_update_profile_request(body))

    data = AuthService(db).update_profile(
        current_user.id,
        first_name=body.get("first_name"),
        last_name=body.get("last_name"),
        fields=tuple(key for key in ("first_name", "last_name") if key in body),
    )
    return success_response(data, "Profil zaktualizowany")


# =============================================================================
# PASSWORDS
# =============================================================================

@router.post("/change-password")
async def change_password(request: Request, db: Session = Depends(get_db),
                          current_user: CurrentUser = Depends(get_current_user)):
    body = await read_json(request)
    raise_if_invalid(validate_change_password_request(body))

    AuthService(db).change_password(current_user.id, body["current_password"], body["new_password"])
    return success_response(None, "Hasło zostało zmienione")


@router.post("/forgot-password")
async def forgot_password(request: Request, db: Session = Depends(get_db)):
    """Same answer whether or not the address is registered."""
    enforce_rate_limit(request, "forgot-password", FORGOT_PASSWORD_LIMIT)
    body = await read_json(request)

    email = body.get("email") if isinstance(body, dict) else None
    if not email or not isinstance(email, str):
        raise ApiError(400, VALIDATION_ERROR, "Email jest wymagany", {"email": "Email is required"})
    email = email.strip().lower()
    if not validate_email(email):
        raise ApiError(400, VALIDATION_ERROR, "Nieprawidłowy format emaila", {"email": "Invalid email format"})

    AuthService(db).request_password_reset(email)
    return success_response({"message": RESET_MESSAGE}, RESET_MESSAGE)


@router.post("/reset-password")
async def reset_password(request: Request, db: Session = Depends(get_db)):
    enforce_rate_limit(request, "reset-password", RESET_PASSWORD_LIMIT)
    body = await read_json(request)
    if not isinstance(body, dict):
        raise ApiError(400, VALIDATION_ERROR, "Invalid request body")

    errors = {}
    if not body.get("token") or not isinstance(body.get("token"), str):
        errors["token"] = "Reset token is required"
    if not body.get("password") or not isinstance(body.get("password"), str):
        errors["password"] = "Password is required"
    if errors:
        raise ApiError(400, VALIDATION_ERROR, "Invalid input data", errors)

    AuthService(db).reset_password(body["token"], body["password"])
    return success_response(None, "Hasło zostało zresetowane. Możesz się zalogować.")
