"""Location endpoints: create, rename, archive and list a tenant's locations."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from inventory_access.api.decorators import current_principal, require_principal
from inventory_access.api.users import json_body
from inventory_access.core import provisioning_service
from inventory_access.core.validators import parse_id

bp = Blueprint("locations", __name__, url_prefix="/api")


def _store():
    return current_app.extensions["inventory_access.store"]


@bp.route("/locations", methods=["POST"])
@require_principal()
def create_location():
    payload = json_body("tenantId", "name")
    location = provisioning_service.create_location(
        _store(),
        current_principal(),
        parse_id(payload["tenantId"], "tenantId"),
        payload["name"],
    )
    return jsonify(location), 201


@bp.route("/renameLocation", methods=["POST"])
@require_principal()
def rename_location():
    payload = json_body("locationId", "name")
    location = provisioning_service.rename_location(
        _store(),
        current_principal(),
        parse_id(payload["locationId"], "locationId"),
        payload["name"],
    )
    return jsonify(location)


@bp.route("/archiveLocation", methods=["POST"])
@require_principal()
def archive_location():
    """Archived locations stay on existing accounts but cannot be newly assigned."""
    payload = json_body("locationId")
    location = provisioning_service.archive_location(
        _store(),
        current_principal(),
        parse_id(payload["locationId"], "locationId"),
    )
    return jsonify(location)


@bp.route("/tenants/<int:tenant_id>/locations", methods=["GET"])
@require_principal()
def list_locations(tenant_id: int):
    locations = provisioning_service.list_locations(_store(), current_principal(), tenant_id)
    return jsonify({"tenantId": tenant_id, "locations": locations})
