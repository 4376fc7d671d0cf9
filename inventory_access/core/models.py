"""Principal store schema: tenants, users, permission grants, locations."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Role(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"


class AccountStatus(str, Enum):
    PENDING_ACTIVATION = "PENDING_ACTIVATION"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    FORCE_PASSWORD_RESET = "FORCE_PASSWORD_RESET"


class Permission(str, Enum):
    """Domain actions that can be granted to STAFF members."""

    INVENTORY_CREATE = "inventory:create"
    INVENTORY_UPDATE = "inventory:update"
    INVENTORY_ARCHIVE = "inventory:archive"
    SUPPLIER_CREATE = "supplier:create"
    SUPPLIER_UPDATE = "supplier:update"
    SUPPLIER_ARCHIVE = "supplier:archive"
    TRANSACTION_CREATE = "transaction:create"


PERMISSION_DESCRIPTIONS = {
    Permission.INVENTORY_CREATE: "Can create new inventory items",
    Permission.INVENTORY_UPDATE: "Can edit existing inventory items",
    Permission.INVENTORY_ARCHIVE: "Can archive inventory items",
    Permission.SUPPLIER_CREATE: "Can create new suppliers",
    Permission.SUPPLIER_UPDATE: "Can edit existing suppliers",
    Permission.SUPPLIER_ARCHIVE: "Can archive suppliers",
    Permission.TRANSACTION_CREATE: "Can record new transactions",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Tenant(Base):
    """A department; the isolation boundary for every non-admin principal."""

    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, doc="Department name")
    is_active = Column(Boolean, default=True, nullable=False, doc="Inactive tenants cannot sign in")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    users = relationship("User", back_populates="tenant")
    locations = relationship("Location", back_populates="tenant")

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name='{self.name}', active={self.is_active})>"


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False, doc="Hidden from new assignments")

    tenant = relationship("Tenant", back_populates="locations")


class User(Base):
    """A principal. Rows are never deleted; ``account_status`` is the off switch."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "(role = 'ADMIN' AND tenant_id IS NULL) OR (role <> 'ADMIN' AND tenant_id IS NOT NULL)",
            name="ck_users_admin_is_tenantless",
        ),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=True, index=True)
    external_id = Column(String(64), unique=True, nullable=False, doc="Login identifier (school ID)")
    first_name = Column(String(128), nullable=False)
    last_name = Column(String(128), nullable=False)
    role = Column(String(16), nullable=False)
    account_status = Column(
        String(32),
        nullable=False,
        default=AccountStatus.PENDING_ACTIVATION.value,
    )
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    password_hash = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    tenant = relationship("Tenant", back_populates="users")
    grants = relationship("PermissionGrant", back_populates="user", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User(external_id='{self.external_id}', role='{self.role}', status='{self.account_status}')>"


class PermissionGrant(Base):
    __tablename__ = "user_permissions"
    __table_args__ = (UniqueConstraint("user_id", "permission", name="uq_user_permission"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    permission = Column(String(64), nullable=False)

    user = relationship("User", back_populates="grants")
