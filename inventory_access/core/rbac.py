"""Role-Based Access Control decisions.

Every function here is pure: it looks only at the principals and counts it is
given and returns a ``Decision``. Nothing is read from the store or the
request, so callers must pass freshly loaded values (e.g. the tenant's
manager count) and apply the side effects themselves.

Roles:
    ADMIN   : tenant-less system operator
    MANAGER : all domain permissions within one tenant (implicit, never granted)
    STAFF   : explicit PermissionGrant rows within one tenant
"""
from __future__ import annotations

from typing import Optional

from .errors import (
    CrossTenantError,
    Decision,
    Forbidden,
    LastManagerError,
    NoOpError,
    SelfActionError,
)
from .models import AccountStatus, Role
from .principal import Principal

ASSIGNABLE_ROLES = frozenset({Role.MANAGER, Role.STAFF})
SETTABLE_STATUSES = frozenset({AccountStatus.ACTIVE, AccountStatus.INACTIVE})


def assert_tenant_isolation(actor: Principal, target_tenant_id: Optional[int]) -> Decision:
    """Deny any non-admin acting outside their own tenant.

    Fails closed when either side's tenant cannot be established.
    """
    if actor.is_admin:
        return Decision.allow()
    if actor.tenant_id is None or target_tenant_id is None:
        return Decision.deny(CrossTenantError("Tenant could not be established"))
    if actor.tenant_id != target_tenant_id:
        return Decision.deny(CrossTenantError())
    return Decision.allow()


def _is_demotion(target: Principal, new_role: Role) -> bool:
    return target.role is Role.MANAGER and new_role is Role.STAFF


def can_provision(
    actor: Principal,
    new_role: Role,
    target_tenant_id: Optional[int],
    manager_count: int,
) -> Decision:
    """Decide whether ``actor`` may create a ``new_role`` account in a tenant.

    ADMIN bootstraps a tenant's first MANAGER only. A MANAGER provisions STAFF
    or MANAGER accounts into their own tenant.
    """
    if new_role not in ASSIGNABLE_ROLES:
        return Decision.deny(Forbidden(f"Role {new_role.value} cannot be provisioned"))

    if actor.is_admin:
        if new_role is not Role.MANAGER:
            return Decision.deny(Forbidden("Administrators may only provision managers"))
        if manager_count > 0:
            return Decision.deny(Forbidden("Tenant already has a manager"))
        return Decision.allow()

    if actor.is_manager:
        return assert_tenant_isolation(actor, target_tenant_id)

    return Decision.deny(Forbidden())


def can_change_role(
    actor: Principal,
    target: Principal,
    new_role: Role,
    manager_count: int,
) -> Decision:
    """Administrator path for promotions and demotions.

    Args:
        actor: Resolved caller
        target: Principal whose role changes
        new_role: MANAGER or STAFF
        manager_count: Current number of MANAGERs in ``target.tenant_id``
    """
    if not actor.is_admin:
        return Decision.deny(Forbidden())
    if target.role is new_role:
        return Decision.deny(NoOpError(f"User is already a {new_role.value}."))
    if actor.id == target.id:
        return Decision.deny(SelfActionError("You cannot change your own role"))
    if target.is_admin or new_role not in ASSIGNABLE_ROLES:
        return Decision.deny(Forbidden("Administrator roles cannot be changed"))
    if _is_demotion(target, new_role) and manager_count <= 1:
        return Decision.deny(LastManagerError())
    return Decision.allow()


def can_manager_change_staff_role(actor: Principal, target: Principal, new_role: Role) -> Decision:
    """Department-level role change: a MANAGER acting on non-manager members."""
    if not actor.is_manager:
        return Decision.deny(Forbidden())
    isolation = assert_tenant_isolation(actor, target.tenant_id)
    if not isolation:
        return isolation
    if actor.id == target.id:
        return Decision.deny(SelfActionError("You cannot change your own role"))
    if target.role is not Role.STAFF:
        return Decision.deny(Forbidden("Managers cannot change the role of another manager"))
    if target.role is new_role:
        return Decision.deny(NoOpError(f"User is already a {new_role.value}."))
    if new_role not in ASSIGNABLE_ROLES:
        return Decision.deny(Forbidden(f"Role {new_role.value} cannot be assigned"))
    return Decision.allow()


def can_reset_password(actor: Principal, target: Principal) -> Decision:
    """Force a credential reset.

    Rule A: ADMIN may reset a MANAGER.
    Rule B: MANAGER may reset a STAFF member of their own tenant.
    """
    if actor.id == target.id:
        return Decision.deny(SelfActionError("Use the password change flow for your own account"))
    if actor.is_admin and target.role is Role.MANAGER:
        return Decision.allow()
    if actor.is_manager and target.role is Role.STAFF:
        return assert_tenant_isolation(actor, target.tenant_id)
    return Decision.deny(Forbidden())


def can_change_account_status(
    actor: Principal,
    target: Principal,
    new_status: AccountStatus,
) -> Decision:
    """Activate or deactivate a tenant member."""
    if new_status not in SETTABLE_STATUSES:
        return Decision.deny(Forbidden(f"Status {new_status.value} is managed by the system"))
    if not actor.is_manager:
        return Decision.deny(Forbidden())
    isolation = assert_tenant_isolation(actor, target.tenant_id)
    if not isolation:
        return isolation
    if actor.id == target.id:
        return Decision.deny(SelfActionError("You cannot change your own account status"))
    if target.role is Role.MANAGER:
        return Decision.deny(Forbidden("Manager accounts cannot be toggled by another manager"))
    return Decision.allow()


def can_manage_permissions(actor: Principal, target: Principal) -> Decision:
    """Replace a STAFF member's permission grants."""
    if not actor.is_manager:
        return Decision.deny(Forbidden())
    isolation = assert_tenant_isolation(actor, target.tenant_id)
    if not isolation:
        return isolation
    if target.role is not Role.STAFF:
        return Decision.deny(Forbidden("Permissions can only be granted to staff"))
    return Decision.allow()


def can_update_principal(actor: Principal, target: Principal, replaces_permissions: bool) -> Decision:
    """Edit a member's names and, optionally, replace their grants.

    Anyone may rename themselves; grants never change on a self edit.
    Everything else follows ``can_manage_permissions``.
    """
    if actor.id == target.id:
        if replaces_permissions:
            return Decision.deny(SelfActionError("You cannot change your own permissions"))
        return Decision.allow()
    return can_manage_permissions(actor, target)


def can_view_tenant_users(actor: Principal, tenant_id: int) -> Decision:
    if actor.is_admin:
        return Decision.allow()
    if not actor.is_manager:
        return Decision.deny(Forbidden())
    return assert_tenant_isolation(actor, tenant_id)


# ─────────────────────────────────────────────────────────────────────────────
# Tenant administration
# ─────────────────────────────────────────────────────────────────────────────

def can_manage_tenant(actor: Principal) -> Decision:
    """Create tenants (ADMIN only)."""
    return Decision.allow() if actor.is_admin else Decision.deny(Forbidden())


def can_rename_tenant(actor: Principal, tenant_id: int) -> Decision:
    if actor.is_admin:
        return Decision.allow()
    if not actor.is_manager:
        return Decision.deny(Forbidden())
    return assert_tenant_isolation(actor, tenant_id)


def can_change_tenant_status(
    actor: Principal,
    tenant_id: int,
    is_active: bool,
    allow_manager_self_deactivation: bool = False,
) -> Decision:
    """Activate or deactivate a tenant.

    ADMIN may do either. A MANAGER may only deactivate their own tenant, and
    only when the deployment enables it.
    """
    if actor.is_admin:
        return Decision.allow()
    if not actor.is_manager or is_active or not allow_manager_self_deactivation:
        return Decision.deny(Forbidden())
    return assert_tenant_isolation(actor, tenant_id)


# ─────────────────────────────────────────────────────────────────────────────
# Locations
# ─────────────────────────────────────────────────────────────────────────────

def can_manage_locations(actor: Principal, tenant_id: Optional[int]) -> Decision:
    """Create, rename or archive a tenant's locations."""
    if actor.is_admin:
        return Decision.allow()
    if not actor.is_manager:
        return Decision.deny(Forbidden())
    return assert_tenant_isolation(actor, tenant_id)
