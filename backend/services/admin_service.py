"""
Admin service - user management for department administrators

Every operation requires the caller's profile role to be admin. Admins act
within their own fire department and never on their own account.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

import email_service
from auth_client import AuthClient
from models import AuthUser, Incident, Profile, ROLES, as_utc, utcnow
from responses import (
    ServiceError,
    ALREADY_ASSIGNED,
    FORBIDDEN,
    NO_DEPARTMENT,
    PROFILE_NOT_FOUND,
    USER_NOT_FOUND,
    VALIDATION_ERROR,
)
from schemas import AdminUserDTO, MostActiveUserDTO, StatisticsDTO

logger = logging.getLogger(__name__)

OTHER_USERS_LIMIT = 25
ACTIVE_USER_DAYS = 30


def _admin_user_dto(profile: Profile, admin_department_id: str, user: Optional[AuthUser] = None) -> dict:
    user = user or profile.user
    return AdminUserDTO(
        id=profile.id,
        email=user.email if user else None,
        first_name=profile.first_name,
        last_name=profile.last_name,
        role=profile.role,
        fire_department_id=profile.fire_department_id,
        fire_department_name=profile.fire_department.name if profile.fire_department else None,
        is_in_admin_department=profile.fire_department_id == admin_department_id,
        created_at=as_utc(profile.created_at),
        last_sign_in_at=as_utc(user.last_sign_in_at) if user else None,
    ).model_dump()


class AdminService:
    def __init__(self, db: Session, client: Optional[AuthClient] = None):
        self.db = db
        self.client = client or AuthClient(db)

    # -------------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------------

    def require_admin(self, user_id: str) -> Profile:
        profile = self.db.query(Profile).filter(Profile.id == user_id).first()
        if not profile:
            raise ServiceError(PROFILE_NOT_FOUND, "User profile not found")
        if not profile.is_admin:
            raise ServiceError(FORBIDDEN, "Administrator role required")
        return profile

    def _require_department(self, admin: Profile) -> str:
        if not admin.fire_department_id:
            raise ServiceError(NO_DEPARTMENT, "Administrator is not assigned to a fire department")
        return admin.fire_department_id

    def _target(self, admin: Profile, user_id: str, action: str) -> Profile:
        if user_id == admin.id:
            raise ServiceError(FORBIDDEN, f"You cannot {action} your own account")
        target = self.db.query(Profile).filter(Profile.id == user_id).first()
        if not target:
            raise ServiceError(USER_NOT_FOUND, "User not found")
        return target

    def _same_department_target(self, admin: Profile, user_id: str, action: str) -> Profile:
        department_id = self._require_department(admin)
        target = self._target(admin, user_id, action)
        if target.fire_department_id != department_id:
            raise ServiceError(FORBIDDEN, "User belongs to a different fire department")
        return target

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def list_users(self, admin_id: str) -> list:
        """Own department first, then a capped number of unassigned and other users."""
        admin = self.require_admin(admin_id)
        department_id = self._require_department(admin)

        own = (
            self.db.query(Profile)
            .filter(Profile.fire_department_id == department_id)
            .order_by(Profile.created_at.desc())
            .all()
        )
        unassigned = (
            self.db.query(Profile)
            .filter(Profile.fire_department_id.is_(None))
            .order_by(Profile.created_at.desc())
            .limit(OTHER_USERS_LIMIT)
            .all()
        )
        others = (
            self.db.query(Profile)
            .filter(Profile.fire_department_id.isnot(None), Profile.fire_department_id != department_id)
            .order_by(Profile.created_at.desc())
            .limit(OTHER_USERS_LIMIT)
            .all()
        )
        profiles = own + unassigned + others
        users = {user.id: user for user in self.client.admin_list_users(p.id for p in profiles)}
        return [_admin_user_dto(profile, department_id, users.get(profile.id)) for profile in profiles]

    def change_role(self, admin_id: str, user_id: str, role: str) -> dict:
        admin = self.require_admin(admin_id)
        if role not in ROLES:
            raise ServiceError(VALIDATION_ERROR, "Invalid role",
                               {"role": 'Role must be one of "member", "commander", "admin"'})

        target = self._same_department_target(admin, user_id, "change the role of")
        previous = target.role
        target.role = role
        target.updated_at = utcnow()
        self.db.commit()

        logger.info(f"Role changed: {target.id} {previous} -> {role} by {admin.id}")
        return _admin_user_dto(target, admin.fire_department_id)

    def delete_user(self, admin_id: str, user_id: str):
        admin = self.require_admin(admin_id)
        self._same_department_target(admin, user_id, "delete")
        self.client.admin_delete_user(user_id)
        logger.info(f"User deleted: {user_id} by {admin.id}")

    def assign_department(self, admin_id: str, user_id: str) -> dict:
        admin = self.require_admin(admin_id)
        department_id = self._require_department(admin)
        target = self._target(admin, user_id, "reassign")
        if target.fire_department_id == department_id:
            raise ServiceError(ALREADY_ASSIGNED, "User is already assigned to this fire department")

        previous = target.fire_department_id
        target.fire_department_id = department_id
        target.updated_at = utcnow()
        self.db.commit()

        logger.info(f"User {target.id} moved from department {previous} to {department_id} by {admin.id}")
        return _admin_user_dto(target, department_id)

    def send_password_reset(self, admin_id: str, user_id: str) -> dict:
        admin = self.require_admin(admin_id)
        target = self._same_department_target(admin, user_id, "reset the password of")

        token = self.client.generate_recovery_token(target.id)
        sent = email_service.send_password_reset(target.user.email, token, target.first_name or "")
        logger.info(f"Admin password reset for {target.id} by {admin.id} (email sent: {sent})")
        return {"email": target.user.email, "email_sent": sent}

    def statistics(self, admin_id: str) -> dict:
        admin = self.require_admin(admin_id)
        department_id = self._require_department(admin)

        now = utcnow()
        month_start = now.date().replace(day=1)

        total_users = self.db.query(Profile).filter(Profile.fire_department_id == department_id).count()
        active_users = (
            self.db.query(Profile)
            .filter(
                Profile.fire_department_id == department_id,
                Profile.created_at >= now - timedelta(days=ACTIVE_USER_DAYS),
            )
            .count()
        )
        total_incidents = self.db.query(Incident).filter(Incident.fire_department_id == department_id).count()
        incidents_this_month = (
            self.db.query(Incident)
            .filter(Incident.fire_department_id == department_id, Incident.incident_date >= month_start)
            .count()
        )

        most_active = None
        top = (
            self.db.query(Incident.user_id, func.count(Incident.id).label("incident_count"))
            .filter(Incident.fire_department_id == department_id)
            .group_by(Incident.user_id)
            .order_by(func.count(Incident.id).desc())
            .first()
        )
        if top:
            profile = self.db.query(Profile).filter(Profile.id == top.user_id).first()
            name = profile.display_name if profile else ""
            if not name and profile and profile.user:
                name = profile.user.email
            most_active = MostActiveUserDTO(id=top.user_id, name=name or "", incident_count=top.incident_count)

        return StatisticsDTO(
            total_users=total_users,
            active_users=active_users,
            total_incidents=total_incidents,
            incidents_this_month=incidents_this_month,
            most_active_user=most_active,
            department_id=department_id,
        ).model_dump()
