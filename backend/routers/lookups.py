"""
Lookups router - reference hierarchy for registration forms
Province (województwo) -> County (powiat) -> FireDepartment (OSP)

Public endpoints; verification codes are never returned.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from database import get_db
from models import County, FireDepartment, Province
from responses import ApiError, NOT_FOUND, VALIDATION_ERROR, success_response
from schemas import FireDepartmentDTO
from validation import validate_uuid

router = APIRouter()


def _require_uuid(value: str, label: str) -> str:
    if not validate_uuid(value):
        raise ApiError(400, VALIDATION_ERROR, f"Invalid {label} id", {"id": "Must be a valid UUID"})
    return value


def _department_query(db: Session):
    return db.query(FireDepartment).options(
        joinedload(FireDepartment.county).joinedload(County.province)
    )


def _departments(rows) -> list:
    return [FireDepartmentDTO.model_validate(row.location_dict()).model_dump() for row in rows]


# ============================================================================
# FIRE DEPARTMENTS
# ============================================================================

@router.get("/fire-departments")
async def list_fire_departments(
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Departments with their county and province, optionally filtered by name."""
    query = _department_query(db)
    if search and search.strip():
        query = query.filter(func.lower(FireDepartment.name).contains(search.strip().lower()))

    rows = query.order_by(FireDepartment.name).limit(limit).all()
    return success_response(_departments(rows))


# ============================================================================
# PROVINCES / COUNTIES
# ============================================================================

@router.get("/provinces")
async def list_provinces(db: Session = Depends(get_db)):
    provinces = db.query(Province).order_by(Province.name).all()
    return success_response([{"id": p.id, "name": p.name} for p in provinces])


@router.get("/provinces/{province_id}/counties")
async def list_counties(province_id: str, db: Session = Depends(get_db)):
    _require_uuid(province_id, "province")
    province = db.query(Province).filter(Province.id == province_id).first()
    if not province:
        raise ApiError(404, NOT_FOUND, "Province not found")

    counties = db.query(County).filter(County.province_id == province_id).order_by(County.name).all()
    return success_response([{"id": c.id, "name": c.name, "province_id": c.province_id} for c in counties])


@router.get("/counties/{county_id}/fire-departments")
async def list_county_fire_departments(county_id: str, db: Session = Depends(get_db)):
    _require_uuid(county_id, "county")
    county = db.query(County).filter(County.id == county_id).first()
    if not county:
        raise ApiError(404, NOT_FOUND, "County not found")

    rows = _department_query(db).filter(FireDepartment.county_id == county_id).order_by(FireDepartment.name).all()
    return success_response(_departments(rows))
