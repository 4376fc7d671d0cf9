"""Error taxonomy for the access core.

Every public operation either fully succeeds or raises one of these. The
authorization engine never raises: it returns a ``Decision`` carrying the
error it would raise, and callers decide where the denial aborts the request.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class AccessError(Exception):
    """Base exception for all access-core failures.

    Attributes:
        status: HTTP status code the error maps to
        reason: Machine-readable reason string
        detail: Human-readable message
    """

    status = 500
    reason = "Error"

    def __init__(self, detail: str = ""):
        self.detail = detail or self.__class__.__doc__.strip().splitlines()[0]
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        """Convert to JSON error response format."""
        return {"error": self.reason, "message": self.detail}


class AuthenticationError(AccessError):
    """Caller identity is missing or could not be verified."""

    status = 401
    reason = "Unauthenticated"


# ─────────────────────────────────────────────────────────────────────────────
# Authorization denials (all 403)
# ─────────────────────────────────────────────────────────────────────────────

class AuthorizationError(AccessError):
    """Caller is not allowed to perform this action."""

    status = 403
    reason = "Forbidden"


class Forbidden(AuthorizationError):
    """You are not authorized to perform this action."""


class CrossTenantError(AuthorizationError):
    """Target belongs to a different tenant."""

    reason = "CrossTenant"


class SelfActionError(AuthorizationError):
    """This action cannot be performed on your own account."""

    reason = "SelfAction"


class LastManagerError(AuthorizationError):
    """Cannot demote the last manager of a tenant. Promote another user to manager first."""

    reason = "LastManager"


class NoOpError(AuthorizationError):
    """Requested change would not modify anything."""

    reason = "NoOp"


class PasswordChangeRequired(Forbidden):
    """A new password must be set before continuing."""

    reason = "PasswordChangeRequired"


# ─────────────────────────────────────────────────────────────────────────────
# Request and state errors
# ─────────────────────────────────────────────────────────────────────────────

class ValidationError(AccessError):
    """Request payload is invalid."""

    status = 400
    reason = "ValidationError"


class NotFoundError(ValidationError):
    """Referenced record does not exist."""

    status = 404
    reason = "NotFound"


class ConflictError(AccessError):
    """Request conflicts with the current state; retry after refreshing."""

    status = 409
    reason = "Conflict"


class InvalidTransitionError(ConflictError):
    """Account status transition is not allowed."""

    reason = "InvalidTransition"


class StoreError(AccessError):
    """An unexpected error occurred."""

    status = 500
    reason = "StoreError"


# ─────────────────────────────────────────────────────────────────────────────
# Result value
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Decision:
    """Outcome of an authorization check.

    Truthy when allowed. A denied decision carries the error that explains why.
    """

    allowed: bool
    error: Optional[AuthorizationError] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, error: AuthorizationError) -> "Decision":
        return cls(False, error)

    @property
    def reason(self) -> Optional[str]:
        return self.error.reason if self.error else None

    def __bool__(self) -> bool:
        return self.allowed

    def raise_for_denial(self) -> None:
        """Raise the carried error if the decision is a denial."""
        if not self.allowed:
            raise self.error or Forbidden()
