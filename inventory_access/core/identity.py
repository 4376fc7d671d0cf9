"""Identity resolution: bearer credential -> stored Principal.

Tokens are issued elsewhere (the hosted auth service); this module only
verifies them and loads the caller's current record. The role, tenant and
status always come from the store, never from token claims.

Security:
- HS256 with a shared secret, or RS256 via JWKS (cached ``PyJWKClient``)
- Expiration and, when configured, issuer and audience are enforced
- Inactive accounts and accounts of inactive tenants never resolve
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    PyJWKClientError,
)
from sqlalchemy import select

from . import credentials
from .errors import AuthenticationError
from .lifecycle import check_can_authenticate
from .models import User
from .principal import Principal
from .store import Store

logger = logging.getLogger(__name__)

# Keyed by JWKS URL so tests and multiple apps do not share keys
_jwks_clients: dict[str, PyJWKClient] = {}


def get_jwks_client(jwks_url: str) -> PyJWKClient:
    """Return a cached JWKS client (keys refreshed every hour)."""
    client = _jwks_clients.get(jwks_url)
    if client is None:
        logger.info("Initializing JWKS client for: %s", jwks_url)
        client = PyJWKClient(jwks_url, cache_keys=True, max_cached_keys=16, lifespan=3600)
        _jwks_clients[jwks_url] = client
    return client


def decode_token(token: str, cfg: Any) -> dict:
    """Validate a bearer token and return its claims.

    Raises:
        AuthenticationError: If any validation fails
    """
    if cfg.jwt_jwks_url:
        try:
            key = get_jwks_client(cfg.jwt_jwks_url).get_signing_key_from_jwt(token).key
        except (PyJWKClientError, DecodeError) as exc:
            raise AuthenticationError(f"Signing key could not be resolved: {exc}")
        algorithms = ["RS256"]
    elif cfg.jwt_secret:
        key = cfg.jwt_secret
        algorithms = ["HS256"]
    else:
        logger.error("No JWT verification key configured (JWT_SECRET or JWT_JWKS_URL)")
        raise AuthenticationError("Token verification is not configured")

    try:
        return jwt.decode(
            token,
            key,
            algorithms=algorithms,
            issuer=cfg.jwt_issuer or None,
            audience=cfg.jwt_audience or None,
            options={
                "verify_aud": bool(cfg.jwt_audience),
                "verify_iss": bool(cfg.jwt_issuer),
                "require": ["exp", "sub"],
            },
            leeway=5,
        )
    except ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except InvalidIssuerError:
        raise AuthenticationError("Invalid token issuer")
    except InvalidAudienceError:
        raise AuthenticationError("Invalid token audience")
    except InvalidSignatureError:
        raise AuthenticationError("Invalid token signature")
    except InvalidTokenError as exc:
        raise AuthenticationError(f"Invalid token: {exc}")


def _load_principal(user: Optional[User]) -> Principal:
    if user is None:
        raise AuthenticationError("Unknown principal")
    principal = Principal.from_model(user)
    tenant_active = user.tenant.is_active if user.tenant is not None else None
    check_can_authenticate(principal.account_status, tenant_active).raise_for_denial()
    return principal


def resolve(store: Store, credential: Optional[str], cfg: Any) -> Principal:
    """Resolve a bearer credential to the caller's stored Principal.

    Args:
        store: Principal store
        credential: Raw JWT (without the ``Bearer`` prefix)
        cfg: Application config carrying the JWT settings

    Raises:
        AuthenticationError: Missing, invalid, unknown, or gated caller
    """
    if not credential:
        raise AuthenticationError("Authorization header required. Use 'Authorization: Bearer <token>'")

    claims = decode_token(credential, cfg)
    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject:
        raise AuthenticationError("Token subject missing")

    with store.transaction() as session:
        return _load_principal(session.get(User, subject))


def authenticate(store: Store, external_id: str, password: str) -> Principal:
    """Verify a login identifier and password.

    The same tenant/status gate as ``resolve`` applies. A principal in
    PENDING_ACTIVATION or FORCE_PASSWORD_RESET authenticates successfully but
    may only set a new credential.
    """
    with store.transaction() as session:
        user = session.execute(
            select(User).where(User.external_id == (external_id or "").strip().lower())
        ).scalar_one_or_none()
        if user is None or not credentials.verify_password(user.password_hash, password):
            raise AuthenticationError("Invalid login credentials")
        return _load_principal(user)
