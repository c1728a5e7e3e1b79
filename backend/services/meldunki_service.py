"""
Meldunki (incident report) service

Visibility: a meldunek is visible to its author and to every member of the
same fire department. Changes are allowed for the author, or for a commander
or admin of the same department.
"""

import logging
import re
from typing import Optional

from sqlalchemy.orm import Session

from models import Incident, Profile, as_utc, utcnow
from responses import (
    ServiceError,
    FORBIDDEN,
    INCIDENT_NOT_FOUND,
    NO_DEPARTMENT,
    PROFILE_NOT_FOUND,
    VALIDATION_ERROR,
)
from schemas import MeldunekDTO
from validation import INCIDENT_TEXT_LIMITS, parse_date, parse_datetime, sanitize_string

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100
SUMMARY_MAX_LENGTH = 200

# Checked in order; first match wins
CATEGORY_PATTERNS = [
    ("fire", re.compile(r"pożar|pozar|ogień|ogien|płon|plon|spalon|dym|podpal|gaszen", re.IGNORECASE)),
    ("rescue", re.compile(
        r"wypad|kolizj|ratown|uwięz|uwiez|powódź|powodz|zalan|drzew|wichur|ewakuac|tonięc|tonie|poszukiw",
        re.IGNORECASE,
    )),
    ("medical", re.compile(r"medycz|reanimac|\brko\b|omdle|zasłabn|zaslabn|ranny|rannych|poszkodowan|karetk|zawał",
                           re.IGNORECASE)),
]


def categorize_incident(text: str) -> str:
    """Rule-based category: fire, rescue, medical or other."""
    for category, pattern in CATEGORY_PATTERNS:
        if pattern.search(text or ""):
            return category
    return "other"


def generate_summary(name: str, description: str, location: Optional[str] = None) -> str:
    """One line for lists; at most SUMMARY_MAX_LENGTH characters."""
    summary = f"{name.strip()}: {' '.join(description.split())}"
    if location:
        summary = f"{summary} ({location.strip()})"
    if len(summary) > SUMMARY_MAX_LENGTH:
        summary = summary[:SUMMARY_MAX_LENGTH - 3].rstrip() + "..."
    return summary


def meldunek_dto(incident: Incident) -> dict:
    return MeldunekDTO.from_incident(incident).model_dump()


class MeldunkiService:
    def __init__(self, db: Session):
        self.db = db

    def _profile(self, user_id: str) -> Profile:
        profile = self.db.query(Profile).filter(Profile.id == user_id).first()
        if not profile:
            raise ServiceError(PROFILE_NOT_FOUND, "User profile not found")
        return profile

    def _incident(self, incident_id: str) -> Incident:
        incident = self.db.query(Incident).filter(Incident.id == incident_id).first()
        if not incident:
            raise ServiceError(INCIDENT_NOT_FOUND, "Meldunek not found")
        return incident

    @staticmethod
    def _can_view(profile: Profile, incident: Incident) -> bool:
        if incident.user_id == profile.id:
            return True
        return bool(profile.fire_department_id) and incident.fire_department_id == profile.fire_department_id

    @staticmethod
    def _can_modify(profile: Profile, incident: Incident) -> bool:
        if incident.user_id == profile.id:
            return True
        return (
            profile.can_manage_incidents
            and bool(profile.fire_department_id)
            and incident.fire_department_id == profile.fire_department_id
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def list_meldunki(self, user_id: str, department: bool = False, limit: int = DEFAULT_LIST_LIMIT) -> list:
        profile = self._profile(user_id)

        query = self.db.query(Incident)
        if department and profile.fire_department_id:
            query = query.filter(Incident.fire_department_id == profile.fire_department_id)
        else:
            query = query.filter(Incident.user_id == profile.id)

        incidents = query.order_by(Incident.created_at.desc()).limit(limit).all()
        return [meldunek_dto(incident) for incident in incidents]

    def get_meldunek(self, user_id: str, incident_id: str) -> dict:
        profile = self._profile(user_id)
        incident = self._incident(incident_id)
        if not self._can_view(profile, incident):
            # Other departments' incidents do not exist as far as the caller knows
            raise ServiceError(INCIDENT_NOT_FOUND, "Meldunek not found")
        return meldunek_dto(incident)

    # -------------------------------------------------------------------------
    # Mutations (payloads are validated by the router)
    # -------------------------------------------------------------------------

    def _apply_fields(self, incident: Incident, data: dict):
        for key, (_, max_len) in INCIDENT_TEXT_LIMITS.items():
            if key in data:
                value = sanitize_string(data[key], max_len) if data[key] is not None else None
                if key in ("incident_name", "description"):
                    setattr(incident, key, value)
                else:
                    setattr(incident, key, value or None)

        if "incident_date" in data:
            incident.incident_date = parse_date(data["incident_date"])
        for key in ("location_latitude", "location_longitude"):
            if key in data:
                setattr(incident, key, data[key])
        for key in ("start_time", "end_time"):
            if key in data:
                setattr(incident, key, parse_datetime(data[key]) if data[key] else None)

    def _categorize(self, incident: Incident):
        incident.category = categorize_incident(f"{incident.incident_name} {incident.description}")
        incident.summary = generate_summary(incident.incident_name, incident.description,
                                            incident.location_address)

    @staticmethod
    def _check_times(incident: Incident):
        """end_time may not precede the effective start_time (stored or defaulted)."""
        start, end = as_utc(incident.start_time), as_utc(incident.end_time)
        if start and end and end < start:
            raise ServiceError(VALIDATION_ERROR, "Invalid input data", {
                "end_time": "Czas zakończenia nie może być wcześniejszy niż czas rozpoczęcia",
            })

    def create_meldunek(self, user_id: str, data: dict) -> dict:
        profile = self._profile(user_id)
        if not profile.fire_department_id:
            raise ServiceError(NO_DEPARTMENT, "User is not assigned to a fire department")

        now = utcnow()
        incident = Incident(
            user_id=profile.id,
            fire_department_id=profile.fire_department_id,
            created_at=now,
            updated_at=now,
        )
        self._apply_fields(incident, data)
        if incident.start_time is None:
            incident.start_time = now
        self._check_times(incident)
        self._categorize(incident)

        self.db.add(incident)
        self.db.commit()
        self.db.refresh(incident)

        logger.info(f"Meldunek created: {incident.id} by {profile.id} ({incident.category})")
        return meldunek_dto(incident)

    def update_meldunek(self, user_id: str, incident_id: str, data: dict) -> dict:
        profile = self._profile(user_id)
        incident = self._incident(incident_id)
        if not self._can_modify(profile, incident):
            raise ServiceError(FORBIDDEN, "You are not allowed to update this meldunek")

        self._apply_fields(incident, data)
        try:
            self._check_times(incident)
        except ServiceError:
            self.db.rollback()
            raise
        if {"incident_name", "description", "location_address"} & set(data):
            self._categorize(incident)
        incident.updated_at = utcnow()

        self.db.commit()
        self.db.refresh(incident)

        logger.info(f"Meldunek updated: {incident.id} by {profile.id}")
        return meldunek_dto(incident)

    def delete_meldunek(self, user_id: str, incident_id: str):
        profile = self._profile(user_id)
        incident = self._incident(incident_id)
        if not self._can_modify(profile, incident):
            raise ServiceError(FORBIDDEN, "You are not allowed to delete this meldunek")

        self.db.delete(incident)
        self.db.commit()
        logger.info(f"Meldunek deleted: {incident_id} by {profile.id}")
