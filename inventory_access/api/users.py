"""Account endpoints: provisioning, role changes, credentials and status.

Every route resolves its caller with ``@require_principal`` and delegates to
``core.provisioning_service``; denials surface as ``AccessError`` and are
rendered by the application error handlers.

Architecture:
    /api/* -> require_principal -> provisioning_service -> rbac + lifecycle -> Store
"""

from __future__ import annotations
import logging

from flask import Blueprint, current_app, jsonify, request

from inventory_access.api.decorators import current_principal, require_principal
from inventory_access.core import provisioning_service
from inventory_access.core.errors import ValidationError
from inventory_access.core.validators import (
    parse_id,
    parse_permissions,
    parse_role,
    parse_status,
    parse_user_id,
    require_fields,
    validate_new_password,
)

bp = Blueprint("users", __name__, url_prefix="/api")

# Configuration
JSON_MAX_SIZE_BYTES = 65536  # 64 KB

logger = logging.getLogger(__name__)


def _store():
    return current_app.extensions["inventory_access.store"]


def _config():
    return current_app.config["APP_CONFIG"]


def json_body(*fields: str) -> dict:
    """Return the JSON object body, requiring ``fields`` to be present."""
    payload = request.get_json(silent=True)
    if payload is None:
        raise ValidationError("Request body must be valid JSON")
    return require_fields(payload, fields)


# ─────────────────────────────────────────────────────────────────────────────
# Request Validation Middleware
# ─────────────────────────────────────────────────────────────────────────────

@bp.before_request
def limit_payload_size():
    if request.content_length and request.content_length > JSON_MAX_SIZE_BYTES:
        return jsonify({"error": "PayloadTooLarge", "message": "Request payload too large"}), 413
    return None


@bp.after_request
def add_correlation_id(response):
    """Echo the correlation ID for tracing."""
    correlation_id = request.headers.get("X-Correlation-Id")
    if correlation_id:
        response.headers["X-Correlation-Id"] = correlation_id
    return response


# ─────────────────────────────────────────────────────────────────────────────
# Provisioning
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/provisionManager", methods=["POST"])
@require_principal()
def provision_manager():
    """Create a tenant's MANAGER account (ADMIN bootstrap)."""
    payload = json_body("tenantId", "firstName", "lastName", "externalId")
    result = provisioning_service.provision_manager(
        _store(),
        current_principal(),
        parse_id(payload["tenantId"], "tenantId"),
        payload["firstName"],
        payload["lastName"],
        payload["externalId"],
        password_length=_config().temp_password_length,
    )
    return jsonify({
        "temporaryCredential": result.temporary_credential,
        "principalId": result.principal_id,
    }), 201


@bp.route("/provisionUser", methods=["POST"])
@require_principal()
def provision_user():
    payload = json_body("tenantId", "firstName", "lastName", "externalId", "role")
    location_id = payload.get("locationId")
    result = provisioning_service.provision_user(
        _store(),
        current_principal(),
        parse_id(payload["tenantId"], "tenantId"),
        payload["firstName"],
        payload["lastName"],
        payload["externalId"],
        parse_role(payload["role"]),
        parse_id(location_id, "locationId") if location_id is not None else None,
        password_length=_config().temp_password_length,
    )
    return jsonify({
        "temporaryCredential": result.temporary_credential,
        "principalId": result.principal_id,
    }), 201


# ─────────────────────────────────────────────────────────────────────────────
# Roles and permissions
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/changeRole", methods=["POST"])
@require_principal()
def change_role():
    """ADMIN promotion/demotion."""
    payload = json_body("targetUserId", "newRole")
    provisioning_service.change_role(
        _store(),
        current_principal(),
        parse_user_id(payload["targetUserId"]),
        parse_role(payload["newRole"]),
    )
    return jsonify({"ok": True})


@bp.route("/changeStaffRole", methods=["POST"])
@require_principal()
def change_staff_role():
    """MANAGER promotion of a staff member."""
    payload = json_body("targetUserId", "newRole")
    provisioning_service.manager_change_staff_role(
        _store(),
        current_principal(),
        parse_user_id(payload["targetUserId"]),
        parse_role(payload["newRole"]),
    )
    return jsonify({"ok": True})


@bp.route("/setPermissions", methods=["POST"])
@require_principal()
def set_permissions():
    payload = json_body("targetUserId")
    if "permissions" not in payload:
        raise ValidationError("Missing required fields: permissions")
    granted = provisioning_service.replace_permissions(
        _store(),
        current_principal(),
        parse_user_id(payload["targetUserId"]),
        parse_permissions(payload["permissions"]),
    )
    return jsonify({"ok": True, "permissions": granted})


@bp.route("/updateUser", methods=["POST"])
@require_principal()
def update_user():
    """Edit names and, optionally, replace the full permission set in one call."""
    payload = json_body("targetUserId")
    if "externalId" in payload:
        raise ValidationError("externalId cannot be changed")
    permissions = payload.get("permissions")
    user = provisioning_service.update_principal(
        _store(),
        current_principal(),
        parse_user_id(payload["targetUserId"]),
        first_name=payload.get("firstName"),
        last_name=payload.get("lastName"),
        permissions=parse_permissions(permissions) if permissions is not None else None,
    )
    return jsonify(user)


# ─────────────────────────────────────────────────────────────────────────────
# Credentials and status
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/resetPassword", methods=["POST"])
@require_principal()
def reset_password():
    payload = json_body("targetUserId")
    temporary_credential = provisioning_service.reset_password(
        _store(),
        current_principal(),
        parse_user_id(payload["targetUserId"]),
        password_length=_config().temp_password_length,
    )
    return jsonify({"temporaryCredential": temporary_credential})


@bp.route("/setAccountStatus", methods=["POST"])
@require_principal()
def set_account_status():
    payload = json_body("targetUserId", "newStatus")
    provisioning_service.set_account_status(
        _store(),
        current_principal(),
        parse_user_id(payload["targetUserId"]),
        parse_status(payload["newStatus"]),
    )
    return jsonify({"ok": True})


@bp.route("/setPassword", methods=["POST"])
@require_principal(allow_credential_change=True)
def set_password():
    """Set the caller's own password (completes activation or a forced reset)."""
    payload = json_body("newPassword")
    provisioning_service.set_password(
        _store(),
        current_principal(),
        validate_new_password(payload["newPassword"]),
    )
    return jsonify({"ok": True})


@bp.route("/me", methods=["GET"])
@require_principal(allow_credential_change=True)
def me():
    return jsonify(provisioning_service.get_principal(_store(), current_principal()))
