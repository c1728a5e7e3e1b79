"""
Meldunki router - incident reports

GET    /api/meldunki                list (?department=true for the whole unit)
POST   /api/meldunki                create
PUT    /api/meldunki?id=            update (older clients)
DELETE /api/meldunki?id=            delete (older clients)
GET    /api/meldunki/{id}           detail
PATCH  /api/meldunki/{id}           update
DELETE /api/meldunki/{id}           delete
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from database import get_db
from jwt_auth import CurrentUser, get_current_user
from responses import (
    ApiError,
    VALIDATION_ERROR,
    raise_if_invalid,
    read_json,
    success_response,
)
from services.meldunki_service import DEFAULT_LIST_LIMIT, MeldunkiService
from validation import (
    validate_create_meldunek_request,
    validate_update_meldunek_request,
    validate_uuid,
)

router = APIRouter()


def _require_id(meldunek_id: Optional[str]) -> str:
    if not meldunek_id:
        raise ApiError(400, VALIDATION_ERROR, "Missing required query param: id")
    if not validate_uuid(meldunek_id):
        raise ApiError(400, VALIDATION_ERROR, "Invalid meldunek id", {"id": "Must be a valid UUID"})
    return meldunek_id


async def _update(request: Request, db: Session, current_user: CurrentUser, meldunek_id: str):
    body = await read_json(request)
    raise_if_invalid(validate_update_meldunek_request(body))
    data = MeldunkiService(db).update_meldunek(current_user.id, meldunek_id, body)
    return success_response(data, "Meldunek został zaktualizowany")


def _delete(db: Session, current_user: CurrentUser, meldunek_id: str):
    MeldunkiService(db).delete_meldunek(current_user.id, meldunek_id)
    return success_response({"id": meldunek_id}, "Meldunek został usunięty")


# =============================================================================
# COLLECTION
# =============================================================================

@router.get("")
async def list_meldunki(
    department: Optional[str] = None,
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=DEFAULT_LIST_LIMIT),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    data = MeldunkiService(db).list_meldunki(current_user.id, department=department == "true", limit=limit)
    return success_response(data, "Meldunki fetched successfully")


@router.post("")
async def create_meldunek(request: Request, db: Session = Depends(get_db),
                          current_user: CurrentUser = Depends(get_current_user)):
    body = await read_json(request)
    raise_if_invalid(validate_create_meldunek_request(body))
    data = MeldunkiService(db).create_meldunek(current_user.id, body)
    return success_response(data, "Meldunek został pomyślnie utworzony", status_code=201)


@router.put("")
async def update_meldunek_by_query(request: Request, id: Optional[str] = None,
                                   db: Session = Depends(get_db),
                                   current_user: CurrentUser = Depends(get_current_user)):
    return await _update(request, db, current_user, _require_id(id))


@router.delete("")
async def delete_meldunek_by_query(id: Optional[str] = None, db: Session = Depends(get_db),
                                   current_user: CurrentUser = Depends(get_current_user)):
    return _delete(db, current_user, _require_id(id))


# =============================================================================
# SINGLE MELDUNEK
# =============================================================================

@router.get("/{meldunek_id}")
async def get_meldunek(meldunek_id: str, db: Session = Depends(get_db),
                       current_user: CurrentUser = Depends(get_current_user)):
    data = MeldunkiService(db).get_meldunek(current_user.id, _require_id(meldunek_id))
    return success_response(data)


@router.patch("/{meldunek_id}")
async def update_meldunek(meldunek_id: str, request: Request, db: Session = Depends(get_db),
                          current_user: CurrentUser = Depends(get_current_user)):
    return await _update(request, db, current_user, _require_id(meldunek_id))


@router.delete("/{meldunek_id}")
async def delete_meldunek(meldunek_id: str, db: Session = Depends(get_db),
                          current_user: CurrentUser = Depends(get_current_user)):
    return _delete(db, current_user, _require_id(meldunek_id))
