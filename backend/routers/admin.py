"""
Admin router - user management for department administrators

All endpoints require a bearer token whose profile role is admin;
AdminService enforces the role and the same-department rules. The role is
checked before path ids and bodies, so non-admins always get 403.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from database import get_db
from jwt_auth import CurrentUser, get_current_user
from responses import ApiError, VALIDATION_ERROR, read_json, success_response
from services.admin_service import AdminService
from validation import validate_uuid

router = APIRouter()


def _admin_service(db: Session, current_user: CurrentUser) -> AdminService:
    service = AdminService(db)
    service.require_admin(current_user.id)
    return service


def _user_id(user_id: str) -> str:
    if not validate_uuid(user_id):
        raise ApiError(400, VALIDATION_ERROR, "Invalid user id", {"id": "Must be a valid UUID"})
    return user_id


@router.get("/users")
async def list_users(db: Session = Depends(get_db),
                     current_user: CurrentUser = Depends(get_current_user)):
    users = AdminService(db).list_users(current_user.id)
    return success_response(users, f"{len(users)} users")


@router.delete("/users/{user_id}")
async def delete_user(user_id: str, db: Session = Depends(get_db),
                      current_user: CurrentUser = Depends(get_current_user)):
    service = _admin_service(db, current_user)
    service.delete_user(current_user.id, _user_id(user_id))
    return success_response({"id": user_id}, "Użytkownik został usunięty")


@router.patch("/users/{user_id}/role")
async def change_role(user_id: str, request: Request, db: Session = Depends(get_db),
                      current_user: CurrentUser = Depends(get_current_user)):
    service = _admin_service(db, current_user)
    user_id = _user_id(user_id)

    body = await read_json(request)
    role = body.get("role") if isinstance(body, dict) else None
    if not role or not isinstance(role, str):
        raise ApiError(400, VALIDATION_ERROR, "Role is required", {"role": "Role is required"})

    data = service.change_role(current_user.id, user_id, role)
    return success_response(data, "Rola została zmieniona")


@router.post("/users/{user_id}/assign-department")
async def assign_department(user_id: str, db: Session = Depends(get_db),
                            current_user: CurrentUser = Depends(get_current_user)):
    service = _admin_service(db, current_user)
    data = service.assign_department(current_user.id, _user_id(user_id))
    return success_response(data, "Użytkownik został przypisany do jednostki")


@router.post("/users/{user_id}/reset-password")
async def send_password_reset(user_id: str, db: Session = Depends(get_db),
                              current_user: CurrentUser = Depends(get_current_user)):
    service = _admin_service(db, current_user)
    data = service.send_password_reset(current_user.id, _user_id(user_id))
    return success_response(data, "Link resetowania hasła został wysłany")


@router.get("/statistics")
async def statistics(db: Session = Depends(get_db),
                     current_user: CurrentUser = Depends(get_current_user)):
    return success_response(AdminService(db).statistics(current_user.id))
