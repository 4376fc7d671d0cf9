"""Tenant endpoints: creation, rename, activation and member listing."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from inventory_access.api.decorators import current_principal, require_principal
from inventory_access.api.users import json_body
from inventory_access.core import provisioning_service
from inventory_access.core.errors import ValidationError
from inventory_access.core.validators import parse_id

bp = Blueprint("tenants", __name__, url_prefix="/api")


def _store():
    return current_app.extensions["inventory_access.store"]


@bp.route("/tenants", methods=["POST"])
@require_principal()
def create_tenant():
    payload = json_body("name")
    tenant = provisioning_service.create_tenant(_store(), current_principal(), payload["name"])
    return jsonify(tenant), 201


@bp.route("/renameTenant", methods=["POST"])
@require_principal()
def rename_tenant():
    payload = json_body("tenantId", "name")
    tenant = provisioning_service.rename_tenant(
        _store(),
        current_principal(),
        parse_id(payload["tenantId"], "tenantId"),
        payload["name"],
    )
    return jsonify(tenant)


@bp.route("/setTenantStatus", methods=["POST"])
@require_principal()
def set_tenant_status():
    """Activate or deactivate a tenant; members of an inactive tenant cannot sign in."""
    payload = json_body("tenantId")
    is_active = payload.get("isActive")
    if not isinstance(is_active, bool):
        raise ValidationError("isActive must be a boolean")
    tenant = provisioning_service.set_tenant_status(
        _store(),
        current_principal(),
        parse_id(payload["tenantId"], "tenantId"),
        is_active,
        allow_manager_self_deactivation=current_app.config["APP_CONFIG"].allow_manager_tenant_deactivation,
    )
    return jsonify(tenant)


@bp.route("/tenants/<int:tenant_id>/users", methods=["GET"])
@require_principal()
def list_users(tenant_id: int):
    users = provisioning_service.list_tenant_users(_store(), current_principal(), tenant_id)
    return jsonify({"tenantId": tenant_id, "users": users})
