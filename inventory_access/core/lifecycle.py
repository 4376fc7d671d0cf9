"""Account lifecycle state machine and guarded role writes.

States:
    PENDING_ACTIVATION   : created, temporary credential only (initial state)
    ACTIVE               : normal access
    INACTIVE             : switched off by a manager, cannot authenticate
    FORCE_PASSWORD_RESET : temporary credential issued to an existing account

No state is terminal. ``transition()`` is the only way a status changes.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .errors import (
    AuthenticationError,
    ConflictError,
    Decision,
    InvalidTransitionError,
    LastManagerError,
    NotFoundError,
)
from .models import AccountStatus, Role, User
from .store import lock_tenant

logger = logging.getLogger(__name__)


class LifecycleEvent(str, Enum):
    CREDENTIAL_SET = "credential_set"
    FORCE_RESET = "force_reset"
    DEACTIVATE = "deactivate"
    REACTIVATE = "reactivate"


TRANSITIONS: dict[tuple[AccountStatus, LifecycleEvent], AccountStatus] = {
    (AccountStatus.PENDING_ACTIVATION, LifecycleEvent.CREDENTIAL_SET): AccountStatus.ACTIVE,
    (AccountStatus.ACTIVE, LifecycleEvent.FORCE_RESET): AccountStatus.FORCE_PASSWORD_RESET,
    (AccountStatus.FORCE_PASSWORD_RESET, LifecycleEvent.CREDENTIAL_SET): AccountStatus.ACTIVE,
    (AccountStatus.ACTIVE, LifecycleEvent.DEACTIVATE): AccountStatus.INACTIVE,
    (AccountStatus.INACTIVE, LifecycleEvent.REACTIVATE): AccountStatus.ACTIVE,
    # Reissuing a temporary credential keeps the account on the credential-setting path
    (AccountStatus.PENDING_ACTIVATION, LifecycleEvent.FORCE_RESET): AccountStatus.PENDING_ACTIVATION,
    (AccountStatus.FORCE_PASSWORD_RESET, LifecycleEvent.FORCE_RESET): AccountStatus.FORCE_PASSWORD_RESET,
}

INITIAL_STATUS = AccountStatus.PENDING_ACTIVATION
CREDENTIAL_CHANGE_STATUSES = frozenset(
    {AccountStatus.PENDING_ACTIVATION, AccountStatus.FORCE_PASSWORD_RESET}
)


def transition(current: AccountStatus, event: LifecycleEvent) -> AccountStatus:
    """Return the status reached by applying ``event`` to ``current``.

    Raises:
        InvalidTransitionError: If the event is not valid in ``current``
    """
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransitionError(
            f"Cannot {event.value.replace('_', ' ')} an account in status {current.value}"
        ) from None


def event_for_status(new_status: AccountStatus) -> LifecycleEvent:
    """Map a requested status (ACTIVE/INACTIVE) to its lifecycle event."""
    if new_status is AccountStatus.INACTIVE:
        return LifecycleEvent.DEACTIVATE
    if new_status is AccountStatus.ACTIVE:
        return LifecycleEvent.REACTIVATE
    raise InvalidTransitionError(f"Status {new_status.value} cannot be requested directly")


def requires_credential_change(status: AccountStatus) -> bool:
    return status in CREDENTIAL_CHANGE_STATUSES


def check_can_authenticate(status: AccountStatus, tenant_active: Optional[bool]) -> Decision:
    """Authentication gate applied regardless of role.

    Args:
        status: Account status
        tenant_active: Owning tenant's flag, or None for tenant-less admins
    """
    if tenant_active is False:
        return Decision.deny(AuthenticationError("Tenant is inactive"))
    if status is AccountStatus.INACTIVE:
        return Decision.deny(AuthenticationError("Account is inactive"))
    return Decision.allow()


def apply_event(user: User, event: LifecycleEvent) -> AccountStatus:
    """Move a loaded user row through ``event`` and return the new status."""
    new_status = transition(AccountStatus(user.account_status), event)
    user.account_status = new_status.value
    return new_status


# ─────────────────────────────────────────────────────────────────────────────
# Role writes
# ─────────────────────────────────────────────────────────────────────────────

def count_managers(session: Session, tenant_id: int) -> int:
    return session.execute(
        select(func.count())
        .select_from(User)
        .where(User.tenant_id == tenant_id, User.role == Role.MANAGER.value)
    ).scalar_one()


def clear_grants(session: Session, user: User) -> None:
    """Delete every permission grant of ``user`` (flushed immediately)."""
    user.grants.clear()
    session.flush()


def apply_role_change(session: Session, user: User, new_role: Role) -> None:
    """Write a role change together with its grant cleanup.

    Must run inside the caller's transaction. Demotions re-check the
    last-manager rule at write time so two concurrent demotions can never both
    succeed.

    Raises:
        LastManagerError: If the demotion would leave the tenant without a manager
        ConflictError: If the target changed since it was read
    """
    old_role = Role(user.role)

    if old_role is Role.MANAGER and new_role is Role.STAFF:
        _demote_manager(session, user)
    else:
        result = session.execute(
            update(User)
            .where(User.id == user.id, User.role == old_role.value)
            .values(role=new_role.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError("User was modified concurrently; reload and try again")
        session.refresh(user, attribute_names=["role"])

    # Promotion drops grants; a demoted manager starts from an empty grant set
    clear_grants(session, user)

    logger.info("Role of %s changed %s -> %s", user.id, old_role.value, new_role.value)


def _demote_manager(session: Session, user: User) -> None:
    if lock_tenant(session, user.tenant_id) is None:
        raise NotFoundError("Tenant not found")

    # Aliased so the count is not correlated with the row being updated
    others = User.__table__.alias("others")
    managers = (
        select(func.count())
        .select_from(others)
        .where(others.c.tenant_id == user.tenant_id, others.c.role == Role.MANAGER.value)
        .scalar_subquery()
    )
    result = session.execute(
        update(User)
        .where(User.id == user.id, User.role == Role.MANAGER.value, managers > 1)
        .values(role=Role.STAFF.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        session.refresh(user, attribute_names=["role"])
        return

    session.expire(user)
    if user.role != Role.MANAGER.value:
        raise ConflictError("User was modified concurrently; reload and try again")
    raise LastManagerError()
