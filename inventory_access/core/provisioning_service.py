"""
Provisioning Service Layer — account and tenant operations

Every mutating entry point of the application goes through this module, so
the HTTP API and the operator CLI share one implementation of each workflow.

Architecture:
    HTTP API (/api/*) ──┐
                        ├──> provisioning_service.py ──> rbac (Decision)
    CLI (iamctl)      ──┘                            ──> lifecycle / credentials
                                                     ──> Store (one transaction)

Each operation:
    1. Loads the target inside a single store transaction
    2. Asks the authorization engine and aborts on denial
    3. Applies the state change (lifecycle, role, grants, credential)
    4. Commits, then records an audit event (never the plaintext credential)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from scripts import audit

from . import credentials, rbac
from .errors import ConflictError, NoOpError, NotFoundError, ValidationError
from .lifecycle import (
    INITIAL_STATUS,
    LifecycleEvent,
    apply_event,
    apply_role_change,
    clear_grants,
    count_managers,
    event_for_status,
    requires_credential_change,
)
from .models import AccountStatus, Location, Permission, PermissionGrant, Role, Tenant, User
from .principal import Principal
from .store import Store, lock_tenant
from .validators import normalize_external_id, validate_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProvisionResult:
    """Outcome of a provisioning call.

    ``temporary_credential`` is handed back exactly once; only its hash is stored.
    """

    principal_id: str
    temporary_credential: str


# ─────────────────────────────────────────────────────────────────────────────
# Serialization
# ─────────────────────────────────────────────────────────────────────────────

def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "tenantId": user.tenant_id,
        "externalId": user.external_id,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "role": user.role,
        "accountStatus": user.account_status,
        "locationId": user.location_id,
        "permissions": sorted(grant.permission for grant in user.grants),
    }


def tenant_to_dict(tenant: Tenant) -> dict:
    return {"id": tenant.id, "name": tenant.name, "isActive": tenant.is_active}


def location_to_dict(location: Location) -> dict:
    return {
        "id": location.id,
        "tenantId": location.tenant_id,
        "name": location.name,
        "isArchived": location.is_archived,
    }


# ─────────────────────────────────────────────────────────────────────────────
# Loading helpers
# ─────────────────────────────────────────────────────────────────────────────

def _load_user(session: Session, user_id: str) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def _load_tenant(session: Session, tenant_id: int) -> Tenant:
    tenant = session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return tenant


def _manager_count(session: Session, tenant_id: Optional[int]) -> int:
    return count_managers(session, tenant_id) if tenant_id is not None else 0


# ─────────────────────────────────────────────────────────────────────────────
# Joiner: provisioning
# ─────────────────────────────────────────────────────────────────────────────

def provision_manager(
    store: Store,
    actor: Principal,
    tenant_id: int,
    first_name: str,
    last_name: str,
    external_id: str,
    *,
    password_length: Optional[int] = None,
) -> ProvisionResult:
    """Create a MANAGER account (the ADMIN bootstrap path for a new tenant)."""
    return provision_user(
        store,
        actor,
        tenant_id,
        first_name,
        last_name,
        external_id,
        Role.MANAGER,
        password_length=password_length,
    )


def provision_user(
    store: Store,
    actor: Principal,
    tenant_id: int,
    first_name: str,
    last_name: str,
    external_id: str,
    role: Role,
    location_id: Optional[int] = None,
    *,
    password_length: Optional[int] = None,
) -> ProvisionResult:
    """Create an account in PENDING_ACTIVATION and bind a temporary credential.

    Row creation and credential binding share one transaction: if issuing the
    credential fails, the new row is rolled back with it.

    Args:
        store: Principal store
        actor: Resolved caller
        tenant_id: Tenant receiving the account
        first_name: Given name
        last_name: Family name
        external_id: Login identifier, unique across all tenants
        role: MANAGER or STAFF
        location_id: Optional default location (must belong to the tenant)
        password_length: Temporary credential length

    Returns:
        ProvisionResult with the new id and the one-time credential

    Raises:
        AuthorizationError: If ``actor`` may not provision into the tenant
        NotFoundError: Unknown tenant or location
        ValidationError: Malformed names, identifier, or unusable location
        ConflictError: ``external_id`` already taken
    """
    first_name = validate_name(first_name, "firstName")
    last_name = validate_name(last_name, "lastName")
    external_id = normalize_external_id(external_id)

    with store.transaction() as session:
        tenant = lock_tenant(session, tenant_id)
        decision = rbac.can_provision(actor, role, tenant_id, _manager_count(session, tenant_id))
        decision.raise_for_denial()
        if tenant is None:
            raise NotFoundError("Tenant not found")

        if location_id is not None:
            location = session.get(Location, location_id)
            if location is None or location.tenant_id != tenant.id:
                raise NotFoundError("Location not found in this tenant")
            if location.is_archived:
                raise ValidationError("Archived locations cannot be assigned")

        existing = session.execute(
            select(User.id).where(User.external_id == external_id)
        ).first()
        if existing is not None:
            raise ConflictError(f"A user with externalId '{external_id}' already exists")

        user = User(
            tenant_id=tenant.id,
            external_id=external_id,
            first_name=first_name,
            last_name=last_name,
            role=role.value,
            account_status=INITIAL_STATUS.value,
            location_id=location_id,
        )
        session.add(user)
        session.flush()

        # Re-checked after the insert: the earlier count is stale when FOR UPDATE is ignored
        if actor.is_admin and count_managers(session, tenant.id) > 1:
            raise ConflictError("Tenant already has a manager")

        temporary_credential, password_hash = credentials.issue(None, password_length)
        user.password_hash = password_hash
        principal_id = user.id

    logger.info("Provisioned %s %s in tenant %s", role.value, principal_id, tenant_id)
    audit.safe_log_event(
        "provision",
        principal_id,
        actor=actor.id,
        tenant_id=tenant_id,
        details={"role": role.value, "external_id": external_id},
    )
    return ProvisionResult(principal_id=principal_id, temporary_credential=temporary_credential)


def bootstrap_admin(
    store: Store,
    first_name: str,
    last_name: str,
    external_id: str,
    *,
    password_length: Optional[int] = None,
) -> ProvisionResult:
    """Create a tenant-less ADMIN account.

    Operator path only (CLI with direct store access); no HTTP route reaches it.
    """
    first_name = validate_name(first_name, "firstName")
    last_name = validate_name(last_name, "lastName")
    external_id = normalize_external_id(external_id)

    with store.transaction() as session:
        existing = session.execute(
            select(User.id).where(User.external_id == external_id)
        ).first()
        if existing is not None:
            raise ConflictError(f"A user with externalId '{external_id}' already exists")

        user = User(
            tenant_id=None,
            external_id=external_id,
            first_name=first_name,
            last_name=last_name,
            role=Role.ADMIN.value,
            account_status=INITIAL_STATUS.value,
        )
        session.add(user)
        session.flush()
        temporary_credential, user.password_hash = credentials.issue(None, password_length)
        principal_id = user.id

    audit.safe_log_event("provision", principal_id, details={"role": Role.ADMIN.value})
    return ProvisionResult(principal_id=principal_id, temporary_credential=temporary_credential)


# ─────────────────────────────────────────────────────────────────────────────
# Mover: role changes and permissions
# ─────────────────────────────────────────────────────────────────────────────

def change_role(store: Store, actor: Principal, target_user_id: str, new_role: Role) -> None:
    """ADMIN path: promote or demote a tenant member.

    Raises:
        LastManagerError: If the demotion would leave the tenant without a manager
        ConflictError: If a concurrent change got there first
    """
    with store.transaction() as session:
        user = _load_user(session, target_user_id)
        target = Principal.from_model(user)
        decision = rbac.can_change_role(
            actor, target, new_role, _manager_count(session, target.tenant_id)
        )
        decision.raise_for_denial()
        apply_role_change(session, user, new_role)

    audit.safe_log_event(
        "role_change",
        target.id,
        actor=actor.id,
        tenant_id=target.tenant_id,
        details={"from": target.role.value, "to": new_role.value},
    )


def manager_change_staff_role(
    store: Store, actor: Principal, target_user_id: str, new_role: Role
) -> None:
    """MANAGER path: promote a STAFF member of the manager's own tenant."""
    with store.transaction() as session:
        user = _load_user(session, target_user_id)
        target = Principal.from_model(user)
        rbac.can_manager_change_staff_role(actor, target, new_role).raise_for_denial()
        apply_role_change(session, user, new_role)

    audit.safe_log_event(
        "role_change",
        target.id,
        actor=actor.id,
        tenant_id=target.tenant_id,
        details={"from": target.role.value, "to": new_role.value},
    )


def _replace_grants(session: Session, user: User, permissions: list[Permission]) -> list[str]:
    clear_grants(session, user)
    for permission in permissions:
        user.grants.append(
            PermissionGrant(tenant_id=user.tenant_id, permission=permission.value)
        )
    return sorted(permission.value for permission in permissions)


def replace_permissions(
    store: Store,
    actor: Principal,
    target_user_id: str,
    permissions: Iterable[Permission],
) -> list[str]:
    """Replace every grant of a STAFF member (delete all, then insert).

    Returns:
        Sorted permission values now granted
    """
    wanted = list(dict.fromkeys(permissions))
    with store.transaction() as session:
        user = _load_user(session, target_user_id)
        target = Principal.from_model(user)
        rbac.can_manage_permissions(actor, target).raise_for_denial()
        granted = _replace_grants(session, user, wanted)

    audit.safe_log_event(
        "permissions_replace",
        target.id,
        actor=actor.id,
        tenant_id=target.tenant_id,
        details={"permissions": granted},
    )
    return granted


def update_principal(
    store: Store,
    actor: Principal,
    target_user_id: str,
    *,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    permissions: Optional[Iterable[Permission]] = None,
) -> dict:
    """Edit a member's names and optionally replace their grants.

    Names and grants change in one transaction. ``external_id`` is the login
    identifier and is never editable here.

    Args:
        store: Principal store
        actor: Resolved caller
        target_user_id: Principal being edited (may be the caller)
        first_name: New given name, or None to keep it
        last_name: New family name, or None to keep it
        permissions: Complete new grant set, or None to keep the current one

    Returns:
        The updated record (``user_to_dict``)

    Raises:
        ValidationError: Nothing to change, or a malformed name
        SelfActionError: A principal replacing their own grants
    """
    if first_name is None and last_name is None and permissions is None:
        raise ValidationError("Nothing to update")
    if first_name is not None:
        first_name = validate_name(first_name, "firstName")
    if last_name is not None:
        last_name = validate_name(last_name, "lastName")
    wanted = list(dict.fromkeys(permissions)) if permissions is not None else None

    changes: dict = {}
    with store.transaction() as session:
        user = _load_user(session, target_user_id)
        target = Principal.from_model(user)
        rbac.can_update_principal(actor, target, wanted is not None).raise_for_denial()

        if first_name is not None and first_name != user.first_name:
            user.first_name = changes["first_name"] = first_name
        if last_name is not None and last_name != user.last_name:
            user.last_name = changes["last_name"] = last_name
        if wanted is not None:
            changes["permissions"] = _replace_grants(session, user, wanted)
        session.flush()
        result = user_to_dict(user)

    audit.safe_log_event(
        "principal_update",
        target.id,
        actor=actor.id,
        tenant_id=target.tenant_id,
        details=changes,
    )
    return result


# ─────────────────────────────────────────────────────────────────────────────
# Credentials and account status
# ─────────────────────────────────────────────────────────────────────────────

def reset_password(
    store: Store,
    actor: Principal,
    target_user_id: str,
    *,
    password_length: Optional[int] = None,
) -> str:
    """Force a credential reset and return the new temporary credential.

    Raises:
        InvalidTransitionError: If the account is INACTIVE
    """
    with store.transaction() as session:
        user = _load_user(session, target_user_id)
        target = Principal.from_model(user)
        rbac.can_reset_password(actor, target).raise_for_denial()

        new_status = apply_event(user, LifecycleEvent.FORCE_RESET)
        temporary_credential, password_hash = credentials.issue(user.password_hash, password_length)
        user.password_hash = password_hash

    audit.safe_log_event(
        "password_reset",
        target.id,
        actor=actor.id,
        tenant_id=target.tenant_id,
        details={"status": new_status.value},
    )
    return temporary_credential


def set_account_status(
    store: Store, actor: Principal, target_user_id: str, new_status: AccountStatus
) -> None:
    """Activate or deactivate a STAFF member."""
    with store.transaction() as session:
        user = _load_user(session, target_user_id)
        target = Principal.from_model(user)
        rbac.can_change_account_status(actor, target, new_status).raise_for_denial()
        if target.account_status is new_status:
            raise NoOpError(f"Account is already {new_status.value}.")
        apply_event(user, event_for_status(new_status))

    audit.safe_log_event(
        "status_change",
        target.id,
        actor=actor.id,
        tenant_id=target.tenant_id,
        details={"from": target.account_status.value, "to": new_status.value},
    )


def set_password(store: Store, actor: Principal, new_password: str) -> None:
    """Principal-initiated credential change.

    Completes activation (PENDING_ACTIVATION) or a forced reset
    (FORCE_PASSWORD_RESET); for ACTIVE accounts the status is unchanged.

    Raises:
        ValidationError: If the new password equals the current one
    """
    with store.transaction() as session:
        user = _load_user(session, actor.id)
        if credentials.verify_password(user.password_hash, new_password):
            raise ValidationError("New password must differ from the current password")

        status = AccountStatus(user.account_status)
        if requires_credential_change(status):
            status = apply_event(user, LifecycleEvent.CREDENTIAL_SET)
        user.password_hash = credentials.hash_password(new_password)

    audit.safe_log_event(
        "password_set",
        actor.id,
        actor=actor.id,
        tenant_id=actor.tenant_id,
        details={"status": status.value},
    )


# ─────────────────────────────────────────────────────────────────────────────
# Tenants
# ─────────────────────────────────────────────────────────────────────────────

def create_tenant(store: Store, actor: Principal, name: str) -> dict:
    rbac.can_manage_tenant(actor).raise_for_denial()
    name = validate_name(name, "name")

    with store.transaction() as session:
        tenant = Tenant(name=name, is_active=True)
        session.add(tenant)
        session.flush()
        result = tenant_to_dict(tenant)

    audit.safe_log_event(
        "tenant_create", str(result["id"]), actor=actor.id, tenant_id=result["id"],
        details={"name": name},
    )
    return result


def rename_tenant(store: Store, actor: Principal, tenant_id: int, name: str) -> dict:
    rbac.can_rename_tenant(actor, tenant_id).raise_for_denial()
    name = validate_name(name, "name")

    with store.transaction() as session:
        tenant = _load_tenant(session, tenant_id)
        old_name = tenant.name
        tenant.name = name
        result = tenant_to_dict(tenant)

    audit.safe_log_event(
        "tenant_rename", str(tenant_id), actor=actor.id, tenant_id=tenant_id,
        details={"from": old_name, "to": name},
    )
    return result


def set_tenant_status(
    store: Store,
    actor: Principal,
    tenant_id: int,
    is_active: bool,
    *,
    allow_manager_self_deactivation: bool = False,
) -> dict:
    """Activate or deactivate a tenant.

    Deactivation immediately blocks authentication for every member.
    """
    rbac.can_change_tenant_status(
        actor, tenant_id, is_active, allow_manager_self_deactivation
    ).raise_for_denial()

    with store.transaction() as session:
        tenant = _load_tenant(session, tenant_id)
        if tenant.is_active == is_active:
            raise NoOpError(f"Tenant is already {'active' if is_active else 'inactive'}.")
        tenant.is_active = is_active
        result = tenant_to_dict(tenant)

    logger.info("Tenant %s is_active set to %s by %s", tenant_id, is_active, actor.id)
    audit.safe_log_event(
        "tenant_status", str(tenant_id), actor=actor.id, tenant_id=tenant_id,
        details={"is_active": is_active},
    )
    return result


# ─────────────────────────────────────────────────────────────────────────────
# Locations
# ─────────────────────────────────────────────────────────────────────────────

def _load_location(session: Session, location_id: int) -> Location:
    location = session.get(Location, location_id)
    if location is None:
        raise NotFoundError("Location not found")
    return location


def create_location(store: Store, actor: Principal, tenant_id: int, name: str) -> dict:
    rbac.can_manage_locations(actor, tenant_id).raise_for_denial()
    name = validate_name(name, "name")

    with store.transaction() as session:
        _load_tenant(session, tenant_id)
        location = Location(tenant_id=tenant_id, name=name, is_archived=False)
        session.add(location)
        session.flush()
        result = location_to_dict(location)

    audit.safe_log_event(
        "location_create", str(result["id"]), actor=actor.id, tenant_id=tenant_id,
        details={"name": name},
    )
    return result


def rename_location(store: Store, actor: Principal, location_id: int, name: str) -> dict:
    name = validate_name(name, "name")

    with store.transaction() as session:
        location = _load_location(session, location_id)
        rbac.can_manage_locations(actor, location.tenant_id).raise_for_denial()
        old_name = location.name
        location.name = name
        result = location_to_dict(location)

    audit.safe_log_event(
        "location_rename", str(location_id), actor=actor.id, tenant_id=result["tenantId"],
        details={"from": old_name, "to": name},
    )
    return result


def archive_location(store: Store, actor: Principal, location_id: int) -> dict:
    """Hide a location from new assignments.

    Principals already assigned to it keep their ``location_id``; only
    ``provision_user`` refuses archived locations from now on.
    """
    with store.transaction() as session:
        location = _load_location(session, location_id)
        rbac.can_manage_locations(actor, location.tenant_id).raise_for_denial()
        if location.is_archived:
            raise NoOpError("Location is already archived.")
        location.is_archived = True
        result = location_to_dict(location)

    audit.safe_log_event(
        "location_archive", str(location_id), actor=actor.id, tenant_id=result["tenantId"],
    )
    return result


# ─────────────────────────────────────────────────────────────────────────────
# Reads
# ─────────────────────────────────────────────────────────────────────────────

def list_tenant_users(store: Store, actor: Principal, tenant_id: int) -> list[dict]:
    rbac.can_view_tenant_users(actor, tenant_id).raise_for_denial()
    with store.transaction() as session:
        _load_tenant(session, tenant_id)
        users = session.execute(
            select(User).where(User.tenant_id == tenant_id).order_by(User.last_name, User.first_name)
        ).scalars().all()
        return [user_to_dict(user) for user in users]


def get_principal(store: Store, actor: Principal) -> dict:
    """Return the caller's own record, including granted permissions."""
    with store.transaction() as session:
        user = _load_user(session, actor.id)
        result = user_to_dict(user)
        result["mustChangePassword"] = requires_credential_change(AccountStatus(user.account_status))
        return result


def list_locations(store: Store, actor: Principal, tenant_id: int) -> list[dict]:
    """Assignable (non-archived) locations of a tenant, ordered by name."""
    rbac.can_view_tenant_users(actor, tenant_id).raise_for_denial()
    with store.transaction() as session:
        _load_tenant(session, tenant_id)
        locations = session.execute(
            select(Location)
            .where(Location.tenant_id == tenant_id, Location.is_archived.is_(False))
            .order_by(Location.name)
        ).scalars().all()
        return [location_to_dict(location) for location in locations]
