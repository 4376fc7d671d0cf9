"""Input validation helpers for request payloads.

All helpers raise ``ValidationError`` so the HTTP layer answers 400.
"""
from __future__ import annotations

from typing import Any, Iterable

from .errors import ValidationError
from .models import AccountStatus, Permission, Role


def normalize_external_id(raw: Any) -> str:
    """Normalize and validate a login identifier (e.g. a school ID).

    Args:
        raw: Raw identifier input

    Returns:
        Lower-cased identifier

    Raises:
        ValidationError: If the identifier is invalid
    """
    if not isinstance(raw, str):
        raise ValidationError("externalId is required")
    normalized = raw.strip().lower()

    if len(normalized) < 3:
        raise ValidationError("externalId must be at least 3 characters")
    if len(normalized) > 64:
        raise ValidationError("externalId must not exceed 64 characters")
    if any(not (char.isalnum() or char in {".", "-", "_"}) for char in normalized):
        raise ValidationError("externalId may only contain letters, digits and .-_")
    if normalized[0] in {".", "-", "_"} or normalized[-1] in {".", "-", "_"}:
        raise ValidationError("externalId cannot start or end with special characters")

    return normalized


def validate_name(name: Any, field: str) -> str:
    """Validate first/last name and tenant name fields.

    Returns:
        Trimmed name
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"{field} is required")
    name = name.strip()
    if len(name) > 128:
        raise ValidationError(f"{field} exceeds maximum length")

    # Prevent injection attacks
    if any(char in name for char in "<>\"`;&|$"):
        raise ValidationError(f"{field} contains invalid characters")

    return name


def parse_id(value: Any, field: str) -> int:
    """Parse a numeric identifier (tenant, location)."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if parsed <= 0:
        raise ValidationError(f"{field} must be positive")
    return parsed


def parse_user_id(value: Any, field: str = "targetUserId") -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def parse_role(value: Any) -> Role:
    """Parse an assignable role. ADMIN is never accepted from a request."""
    try:
        role = Role(value)
    except ValueError:
        raise ValidationError("Invalid role specified. Must be MANAGER or STAFF.")
    if role is Role.ADMIN:
        raise ValidationError("Invalid role specified. Must be MANAGER or STAFF.")
    return role


def parse_status(value: Any) -> AccountStatus:
    try:
        return AccountStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown account status: {value!r}")


def parse_permissions(values: Any) -> list[Permission]:
    """Parse a permission list, dropping duplicates while keeping order."""
    if not isinstance(values, (list, tuple)):
        raise ValidationError("permissions must be a list")
    parsed: list[Permission] = []
    for value in values:
        try:
            permission = Permission(value)
        except ValueError:
            raise ValidationError(f"Unknown permission: {value!r}")
        if permission not in parsed:
            parsed.append(permission)
    return parsed


def require_fields(payload: Any, fields: Iterable[str]) -> dict:
    """Ensure a JSON body is an object containing every required field."""
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    missing = [field for field in fields if payload.get(field) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return payload


def validate_new_password(password: Any) -> str:
    """Only presence is checked; strength policy belongs to the identity provider."""
    if not isinstance(password, str) or not password:
        raise ValidationError("newPassword is required")
    if len(password) > 1024:
        raise ValidationError("newPassword exceeds maximum length")
    return password
