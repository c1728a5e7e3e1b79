"""
Response DTOs for FireLog

Built from ORM rows with model_validate (from_attributes) and serialized
into the success envelope with model_dump.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel

from models import Incident, as_utc


# =============================================================================
# AUTH
# =============================================================================

class UserDTO(BaseModel):
    id: str
    email: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProfileDTO(BaseModel):
    id: str
    fire_department_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SessionDTO(BaseModel):
    access_token: str
    refresh_token: str
    expires_at: int         # unix seconds
    expires_in: int         # seconds
    token_type: str = "bearer"


class ProvinceDTO(BaseModel):
    id: str
    name: str


class CountyDTO(BaseModel):
    id: str
    name: str
    province: Optional[ProvinceDTO] = None


class FireDepartmentDTO(BaseModel):
    id: str
    name: str
    county: Optional[CountyDTO] = None


class ProfileWithDepartmentDTO(ProfileDTO):
    fire_department: Optional[FireDepartmentDTO] = None


# =============================================================================
# MELDUNKI
# =============================================================================

class MeldunekDTO(BaseModel):
    """
    Incident as exposed by the API.

    title / location / incident_type / additional_notes are the public names
    of incident_name / location_address / category / summary. Raw columns are
    included as well so clients can round-trip an edit form.
    """
    id: str
    user_id: str
    fire_department_id: str

    title: str
    description: str
    location: str = ""
    incident_type: Optional[str] = None         # fire, rescue, medical, other
    severity: str = "medium"
    status: str = "submitted"
    incident_date: date
    duration_minutes: Optional[int] = None
    equipment_used: Optional[List[str]] = None
    additional_notes: Optional[str] = None
    commander: Optional[str] = None
    driver: Optional[str] = None

    incident_name: str
    location_address: Optional[str] = None
    location_latitude: Optional[float] = None
    location_longitude: Optional[float] = None
    forces_and_resources: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    category: Optional[str] = None
    summary: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_incident(cls, incident: Incident) -> "MeldunekDTO":
        start = as_utc(incident.start_time)
        end = as_utc(incident.end_time)
        duration = None
        if start and end:
            duration = round((end - start).total_seconds() / 60)

        equipment = None
        if incident.forces_and_resources:
            equipment = [item.strip() for item in incident.forces_and_resources.split(",") if item.strip()]

        return cls(
            id=incident.id,
            user_id=incident.user_id,
            fire_department_id=incident.fire_department_id,
            title=incident.incident_name,
            description=incident.description,
            location=incident.location_address or "",
            incident_type=incident.category,
            incident_date=incident.incident_date,
            duration_minutes=duration,
            equipment_used=equipment,
            additional_notes=incident.summary,
            commander=incident.commander,
            driver=incident.driver,
            incident_name=incident.incident_name,
            location_address=incident.location_address,
            location_latitude=incident.location_latitude,
            location_longitude=incident.location_longitude,
            forces_and_resources=incident.forces_and_resources,
            start_time=start,
            end_time=end,
            category=incident.category,
            summary=incident.summary,
            created_at=as_utc(incident.created_at),
            updated_at=as_utc(incident.updated_at),
        )


# =============================================================================
# ADMIN
# =============================================================================

class AdminUserDTO(BaseModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    fire_department_id: Optional[str] = None
    fire_department_name: Optional[str] = None
    is_in_admin_department: bool = False
    created_at: Optional[datetime] = None
    last_sign_in_at: Optional[datetime] = None


class MostActiveUserDTO(BaseModel):
    id: str
    name: str
    incident_count: int


class StatisticsDTO(BaseModel):
    total_users: int
    active_users: int
    total_incidents: int
    incidents_this_month: int
    most_active_user: Optional[MostActiveUserDTO] = None
    department_id: str
