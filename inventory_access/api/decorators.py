"""
Flask decorators for bearer authentication.

Every ``/api`` route resolves its caller through ``require_principal`` and
then passes the resolved ``Principal`` explicitly into the service layer.

Security:
- RFC 6750 Bearer token in the Authorization header
- Token verification and the tenant/status gate live in ``core.identity``
- Accounts awaiting a new credential are limited to the routes that opt in
"""

import logging
from functools import wraps
from typing import Optional

from flask import current_app, g, request

from inventory_access.core import identity
from inventory_access.core.errors import AuthenticationError, PasswordChangeRequired
from inventory_access.core.lifecycle import requires_credential_change
from inventory_access.core.principal import Principal

logger = logging.getLogger(__name__)


def _bearer_token() -> Optional[str]:
    """Extract the token from ``Authorization: Bearer <token>``.

    Returns:
        The raw token, or None when the header is absent
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header:
        return None
    # The scheme name is case-insensitive (RFC 7235)
    if auth_header[:7].lower() != "bearer ":
        logger.warning("Request with invalid Authorization format: %s", auth_header[:20])
        raise AuthenticationError("Invalid Authorization header format. Expected 'Bearer <token>'")
    token = auth_header[7:].strip()
    if not token:
        raise AuthenticationError("Bearer token is empty")
    return token


def require_principal(allow_credential_change: bool = False):
    """
    Decorator resolving the caller before the route runs.

    Args:
        allow_credential_change: Admit principals in PENDING_ACTIVATION or
            FORCE_PASSWORD_RESET (only the password-setting and self routes)

    Raises:
        AuthenticationError: Missing, invalid, or gated credential (401)
        PasswordChangeRequired: Caller must set a new password first (403)

    Example:
        @bp.route("/api/me")
        @require_principal(allow_credential_change=True)
        def me():
            return jsonify(current_principal().to_dict())
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            store = current_app.extensions["inventory_access.store"]
            cfg = current_app.config["APP_CONFIG"]

            try:
                principal = identity.resolve(store, _bearer_token(), cfg)
            except AuthenticationError as exc:
                logger.warning("Authentication failed for %s: %s", request.path, exc.detail)
                raise

            if requires_credential_change(principal.account_status) and not allow_credential_change:
                raise PasswordChangeRequired()

            g.principal = principal
            return fn(*args, **kwargs)

        return wrapper
    return decorator


def current_principal() -> Principal:
    """
    Get the Principal resolved for the current request.

    Must be called after @require_principal.
    """
    principal = g.get("principal")
    if principal is None:
        raise AuthenticationError()
    return principal
