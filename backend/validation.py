"""
Request validation for FireLog

Pure functions over decoded JSON bodies. Each request validator returns a
ValidationResult whose errors map field name -> message; an empty map means
the payload is valid. Single-value checks return plain booleans.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from models import ROLES

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
SPECIAL_CHAR_RE = re.compile(r'[!@#$%^&*(),.?":{}|<>]')

MAX_EMAIL_LENGTH = 255
MIN_PASSWORD_LENGTH = 8
MAX_NAME_LENGTH = 100
MAX_EQUIPMENT_ITEMS = 20
MAX_EQUIPMENT_ITEM_LENGTH = 100

# Updatable incident columns and their (min, max) lengths after trimming
INCIDENT_TEXT_LIMITS = {
    "incident_name": (3, 255),
    "description": (10, 5000),
    "location_address": (0, 500),
    "forces_and_resources": (0, 2000),
    "commander": (0, 255),
    "driver": (0, 255),
}
INCIDENT_REQUIRED = ("incident_name", "description", "incident_date")
INCIDENT_UPDATABLE = tuple(INCIDENT_TEXT_LIMITS) + (
    "incident_date", "location_latitude", "location_longitude", "start_time", "end_time",
)


@dataclass
class ValidationResult:
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors


def _invalid_body() -> ValidationResult:
    return ValidationResult({"_general": "Invalid request body"})


# =============================================================================
# SINGLE VALUE CHECKS
# =============================================================================

def validate_email(email: Any) -> bool:
    if not isinstance(email, str):
        return False
    return bool(EMAIL_RE.match(email)) and len(email) <= MAX_EMAIL_LENGTH


def validate_password_strength(password: str) -> Tuple[bool, List[str]]:
    """
    Requirements, each reported on its own:
    - at least 8 characters
    - an uppercase letter
    - a lowercase letter
    - a digit
    - a special character
    """
    errors = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append("Must be at least 8 characters")
    if not re.search(r"[A-Z]", password):
        errors.append("Must contain uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Must contain lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Must contain number")
    if not SPECIAL_CHAR_RE.search(password):
        errors.append("Must contain special character")
    return not errors, errors


def validate_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(UUID_RE.match(value))


def validate_date(value: Any) -> bool:
    """Strict YYYY-MM-DD that names a real calendar day"""
    if not isinstance(value, str) or not ISO_DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def parse_date(value: str) -> Optional[date]:
    """Accepts YYYY-MM-DD or a full ISO timestamp; returns the calendar date."""
    try:
        if ISO_DATE_RE.match(value):
            return date.fromisoformat(value)
        return parse_datetime(value).date()
    except (TypeError, ValueError, AttributeError):
        return None


def parse_datetime(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def one_year_before(today: date) -> date:
    try:
        return today.replace(year=today.year - 1)
    except ValueError:
        # 29 February
        return today.replace(year=today.year - 1, day=28)


def validate_incident_date(value: Any, today: Optional[date] = None) -> Optional[str]:
    """Returns an error message, or None when the date is acceptable."""
    if not value or not isinstance(value, str):
        return "Data zdarzenia jest wymagana"
    parsed = parse_date(value)
    if parsed is None:
        return "Nieprawidłowy format daty"
    today = today or date.today()
    if parsed > today:
        return "Data zdarzenia nie może być w przyszłości"
    if parsed < one_year_before(today):
        return "Data zdarzenia nie może być starsza niż rok"
    return None


def validate_equipment_list(equipment: Any) -> bool:
    if not isinstance(equipment, list) or len(equipment) > MAX_EQUIPMENT_ITEMS:
        return False
    return all(
        isinstance(item, str) and 0 < len(item.strip()) <= MAX_EQUIPMENT_ITEM_LENGTH
        for item in equipment
    )


def sanitize_string(value: Optional[str], max_length: int = 255) -> Optional[str]:
    """Trim, drop angle brackets and javascript: URLs, cap the length."""
    if value is None:
        return None
    cleaned = value.strip()
    cleaned = re.sub(r"[<>]", "", cleaned)
    cleaned = re.sub(r"javascript:", "", cleaned, flags=re.IGNORECASE)
    return cleaned[:max_length]


# =============================================================================
# AUTH PAYLOADS
# =============================================================================

def _check_optional_name(data: dict, key: str, label: str, errors: dict):
    if key not in data or data[key] is None:
        return
    value = data[key]
    if not isinstance(value, str):
        errors[key] = f"{label} must be a string"
    elif len(value) > MAX_NAME_LENGTH:
        errors[key] = f"{label} must not exceed {MAX_NAME_LENGTH} characters"


def validate_register_request(data: Any) -> ValidationResult:
    if not isinstance(data, dict):
        return _invalid_body()

    errors = {}

    email = data.get("email")
    if not email:
        errors["email"] = "Email is required"
    elif not validate_email(email):
        errors["email"] = "Invalid email format"

    password = data.get("password")
    if not password:
        errors["password"] = "Password is required"
    elif not isinstance(password, str):
        errors["password"] = "Password must be a string"
    else:
        ok, problems = validate_password_strength(password)
        if not ok:
            errors["password"] = "; ".join(problems)

    # Department: by id or by exact name
    department_id = data.get("fire_department_id")
    department_name = data.get("fire_department_name")
    if department_id is not None:
        if not validate_uuid(department_id):
            errors["fire_department_id"] = "Invalid fire department id"
    elif not department_name:
        errors["fire_department_name"] = "Fire department name is required"
    elif not isinstance(department_name, str):
        errors["fire_department_name"] = "Fire department name must be a string"
    elif len(department_name.strip()) < 3:
        errors["fire_department_name"] = "Fire department name must be at least 3 characters"
    elif len(department_name) > 255:
        errors["fire_department_name"] = "Fire department name must not exceed 255 characters"

    code = data.get("department_code")
    if code is not None and (not isinstance(code, str) or len(code) > 64):
        errors["department_code"] = "Invalid department code"

    _check_optional_name(data, "first_name", "First name", errors)
    _check_optional_name(data, "last_name", "Last name", errors)

    role = data.get("role")
    if role is not None and role not in ROLES:
        errors["role"] = 'Role must be one of "member", "commander", "admin"'

    return ValidationResult(errors)


def validate_login_request(data: Any) -> ValidationResult:
    if not isinstance(data, dict):
        return _invalid_body()

    errors = {}
    email = data.get("email")
    if not email or not isinstance(email, str):
        errors["email"] = "Email is required"
    elif not validate_email(email.strip()):
        errors["email"] = "Invalid email format"

    password = data.get("password")
    if not password or not isinstance(password, str):
        errors["password"] = "Password is required"

    return ValidationResult(errors)


def validate_update_profile_request(data: Any) -> ValidationResult:
    if not isinstance(data, dict):
        return _invalid_body()

    errors = {}
    _check_optional_name(data, "first_name", "First name", errors)
    _check_optional_name(data, "last_name", "Last name", errors)

    if "first_name" not in data and "last_name" not in data:
        errors["_general"] = "At least one field (first_name or last_name) must be provided"

    return ValidationResult(errors)


def validate_change_password_request(data: Any) -> ValidationResult:
    if not isinstance(data, dict):
        return _invalid_body()

    errors = {}
    if not data.get("current_password") or not isinstance(data.get("current_password"), str):
        errors["current_password"] = "Current password is required"

    new_password = data.get("new_password")
    if not new_password or not isinstance(new_password, str):
        errors["new_password"] = "New password is required"
    else:
        ok, problems = validate_password_strength(new_password)
        if not ok:
            errors["new_password"] = "; ".join(problems)

    return ValidationResult(errors)


# =============================================================================
# MELDUNKI PAYLOADS
# =============================================================================

def _check_incident_fields(data: dict, errors: dict, today: Optional[date] = None):
    """Validate whichever incident fields are present in data."""
    for key, (min_len, max_len) in INCIDENT_TEXT_LIMITS.items():
        if key not in data or data[key] is None:
            continue
        value = data[key]
        if not isinstance(value, str):
            errors[key] = "Pole musi być tekstem"
            continue
        # Limits apply to the text as it will be stored
        length = len(sanitize_string(value, len(value)))
        if length < min_len:
            errors[key] = f"Pole musi mieć co najmniej {min_len} znaki"
        elif length > max_len:
            errors[key] = f"Pole nie może mieć więcej niż {max_len} znaków"

    if "incident_date" in data:
        message = validate_incident_date(data["incident_date"], today)
        if message:
            errors["incident_date"] = message

    for key, bound in (("location_latitude", 90), ("location_longitude", 180)):
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors[key] = "Współrzędna musi być liczbą"
        elif not -bound <= value <= bound:
            errors[key] = f"Współrzędna musi mieścić się w zakresie od -{bound} do {bound}"

    times = {}
    for key in ("start_time", "end_time"):
        value = data.get(key)
        if value is None:
            continue
        parsed = parse_datetime(value) if isinstance(value, str) else None
        if parsed is None:
            errors[key] = "Nieprawidłowy format czasu"
        else:
            times[key] = parsed
    if "start_time" in times and "end_time" in times and times["end_time"] < times["start_time"]:
        errors["end_time"] = "Czas zakończenia nie może być wcześniejszy niż czas rozpoczęcia"


def validate_create_meldunek_request(data: Any, today: Optional[date] = None) -> ValidationResult:
    if not isinstance(data, dict):
        return ValidationResult({"_general": "Invalid request data"})

    errors = {}
    for key in INCIDENT_REQUIRED:
        if not data.get(key):
            errors[key] = "Pole jest wymagane"

    _check_incident_fields({k: v for k, v in data.items() if k not in errors}, errors, today)
    return ValidationResult(errors)


def validate_update_meldunek_request(data: Any, today: Optional[date] = None) -> ValidationResult:
    if not isinstance(data, dict):
        return ValidationResult({"_general": "Invalid request data"})

    errors = {}
    if not any(key in data for key in INCIDENT_UPDATABLE):
        errors["_general"] = "No valid fields to update"
        return ValidationResult(errors)

    # Required columns may be changed but not blanked
    for key in INCIDENT_REQUIRED:
        if key in data and not data[key]:
            errors[key] = "Pole nie może być puste"

    _check_incident_fields({k: v for k, v in data.items() if k not in errors}, errors, today)
    return ValidationResult(errors)
