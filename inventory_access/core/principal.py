"""Resolved caller identity passed explicitly through every core operation."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models import AccountStatus, Role, User


@dataclass(frozen=True)
class Principal:
    """Immutable snapshot of a stored user at resolution time."""

    id: str
    role: Role
    tenant_id: Optional[int]
    account_status: AccountStatus
    external_id: str = ""
    first_name: str = ""
    last_name: str = ""
    location_id: Optional[int] = None

    @classmethod
    def from_model(cls, user: User) -> "Principal":
        return cls(
            id=user.id,
            role=Role(user.role),
            tenant_id=user.tenant_id,
            account_status=AccountStatus(user.account_status),
            external_id=user.external_id,
            first_name=user.first_name,
            last_name=user.last_name,
            location_id=user.location_id,
        )

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role is Role.MANAGER

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role.value,
            "tenantId": self.tenant_id,
            "accountStatus": self.account_status.value,
            "externalId": self.external_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "locationId": self.location_id,
        }
