"""
SQLAlchemy models for FireLog

Reference hierarchy: Province -> County -> FireDepartment.
Auth tables (auth_users, refresh_tokens) are owned by auth_client.py; every
auth user gets exactly one Profile, created in the same transaction as the user.
Incidents ("meldunki") belong to a profile and a fire department.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, Float, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from database import Base


ROLE_MEMBER = "member"
ROLE_COMMANDER = "commander"
ROLE_ADMIN = "admin"
ROLES = (ROLE_MEMBER, ROLE_COMMANDER, ROLE_ADMIN)


def new_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# REFERENCE HIERARCHY
# =============================================================================

class Province(Base):
    """Województwo"""
    __tablename__ = "provinces"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(100), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    counties = relationship("County", back_populates="province")


class County(Base):
    """Powiat"""
    __tablename__ = "counties"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(100), nullable=False)
    province_id = Column(String(36), ForeignKey("provinces.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    province = relationship("Province", back_populates="counties")
    fire_departments = relationship("FireDepartment", back_populates="county")


class FireDepartment(Base):
    """
    OSP unit.

    verification_code is handed out by the department; when set, registering
    into the department requires it.
    """
    __tablename__ = "fire_departments"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(255), nullable=False, index=True)
    county_id = Column(String(36), ForeignKey("counties.id"), nullable=False, index=True)
    verification_code = Column(String(64))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    county = relationship("County", back_populates="fire_departments")

    def location_dict(self) -> dict:
        county = self.county
        province = county.province if county else None
        return {
            "id": self.id,
            "name": self.name,
            "county": {
                "id": county.id,
                "name": county.name,
                "province": {"id": province.id, "name": province.name} if province else None,
            } if county else None,
        }


# =============================================================================
# AUTH (owned by auth_client.py)
# =============================================================================

class AuthUser(Base):
    __tablename__ = "auth_users"

    id = Column(String(36), primary_key=True, default=new_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)     # bcrypt

    # Password recovery (sha256 of the token mailed to the user)
    recovery_token_hash = Column(String(64), index=True)
    recovery_sent_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)
    last_sign_in_at = Column(DateTime(timezone=True))

    profile = relationship(
        "Profile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    refresh_tokens = relationship(
        "RefreshToken", back_populates="user", cascade="all, delete-orphan"
    )


class RefreshToken(Base):
    """
    Opaque refresh token. Rotated on every refresh; the previous token is
    revoked, never deleted, so reuse can be detected in the logs.
    """
    __tablename__ = "refresh_tokens"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(128), unique=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True))

    ip_address = Column(String(45))
    user_agent = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    last_used_at = Column(DateTime(timezone=True))

    user = relationship("AuthUser", back_populates="refresh_tokens")


# =============================================================================
# PROFILES
# =============================================================================

class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), ForeignKey("auth_users.id", ondelete="CASCADE"), primary_key=True)
    fire_department_id = Column(String(36), ForeignKey("fire_departments.id"), index=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    role = Column(String(20), nullable=False, default=ROLE_MEMBER)  # member, commander, admin

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("AuthUser", back_populates="profile")
    fire_department = relationship("FireDepartment")
    incidents = relationship("Incident", back_populates="user", cascade="all, delete-orphan")

    @property
    def display_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN

    @property
    def can_manage_incidents(self):
        """Admins and commanders may edit any incident of their own department"""
        return self.role in (ROLE_ADMIN, ROLE_COMMANDER)


# =============================================================================
# INCIDENTS (meldunki)
# =============================================================================

class Incident(Base):
    __tablename__ = "incidents"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    fire_department_id = Column(String(36), ForeignKey("fire_departments.id"), nullable=False, index=True)

    incident_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    incident_date = Column(Date, nullable=False)

    location_address = Column(String(500))
    location_latitude = Column(Float)
    location_longitude = Column(Float)

    forces_and_resources = Column(Text)     # Comma separated equipment / units
    commander = Column(String(255))
    driver = Column(String(255))

    start_time = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    end_time = Column(DateTime(timezone=True))

    # Rule-based categorization: fire, rescue, medical, other
    category = Column(String(50))
    summary = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("Profile", back_populates="incidents")
    fire_department = relationship("FireDepartment")
