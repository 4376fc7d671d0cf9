from unittest.mock import MagicMock

import pytest
from flask import Flask, abort

from inventory_access.api.errors import register_error_handlers
from inventory_access.core.errors import (
    ConflictError,
    CrossTenantError,
    LastManagerError,
    NotFoundError,
    StoreError,
    ValidationError,
)


@pytest.fixture()
def flask_client():
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.logger = MagicMock()

    register_error_handlers(app)

    @app.route("/denied")
    def denied():
        raise LastManagerError()

    @app.route("/cross")
    def cross():
        raise CrossTenantError()

    @app.route("/invalid")
    def invalid():
        raise ValidationError("externalId is required")

    @app.route("/missing")
    def missing():
        raise NotFoundError("User not found")

    @app.route("/conflict")
    def conflict():
        raise ConflictError()

    @app.route("/store")
    def store_failure():
        raise StoreError("connection reset by peer")

    @app.route("/crash")
    def crash():
        raise RuntimeError("boom")

    @app.route("/form/error")
    def form_error():
        abort(400, "invalid payload")

    @app.route("/unauth")
    def unauth():
        abort(401)

    with app.test_client() as client:
        yield client


@pytest.mark.parametrize(
    "path, status, reason",
    [
        ("/denied", 403, "LastManager"),
        ("/cross", 403, "CrossTenant"),
        ("/invalid", 400, "ValidationError"),
        ("/missing", 404, "NotFound"),
        ("/conflict", 409, "Conflict"),
    ],
)
def test_access_errors_render_reason(flask_client, path, status, reason):
    response = flask_client.get(path)
    assert response.status_code == status
    assert response.get_json()["error"] == reason


def test_last_manager_message(flask_client):
    payload = flask_client.get("/denied").get_json()
    assert payload["message"].startswith("Cannot demote the last manager of a tenant")


def test_store_error_hides_detail(flask_client):
    response = flask_client.get("/store")
    assert response.status_code == 500
    payload = response.get_json()
    assert payload == {"error": "StoreError", "message": "An unexpected error occurred"}
    flask_client.application.logger.error.assert_called()


def test_unexpected_exception_returns_generic_500(flask_client):
    response = flask_client.get("/crash")
    assert response.status_code == 500
    assert response.get_json() == {
        "error": "Internal Server Error",
        "message": "An unexpected error occurred",
    }
    flask_client.application.logger.error.assert_called()


def test_bad_request_keeps_description(flask_client):
    response = flask_client.get("/form/error")
    assert response.status_code == 400
    assert response.get_json() == {"error": "Bad Request", "message": "invalid payload"}


def test_unauthorized_json(flask_client):
    response = flask_client.get("/unauth")
    assert response.status_code == 401
    assert response.get_json()["error"] == "Unauthenticated"


def test_unknown_route_is_json_404(flask_client):
    response = flask_client.get("/nope")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Not Found", "message": "Resource not found"}


def test_wrong_method_is_json_405(flask_client):
    response = flask_client.post("/denied")
    assert response.status_code == 405
    assert response.get_json()["error"] == "Method Not Allowed"
