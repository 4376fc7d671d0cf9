"""Pytest shared fixtures: in-memory store, seeded principals, bearer tokens."""
import json
import os
import pathlib
import sys
import tempfile
import time
from typing import Iterable, Optional

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any app imports
JWT_SECRET = "test-jwt-secret-with-enough-entropy-for-hs256"
os.environ.setdefault("DEMO_MODE", "true")
os.environ.setdefault("JWT_SECRET", JWT_SECRET)
os.environ.setdefault("AUDIT_LOG_DIR", tempfile.mkdtemp(prefix="inventory-access-audit-"))

import jwt
import pytest

from inventory_access.config import AppConfig
from inventory_access.core import credentials
from inventory_access.core.models import (
    AccountStatus,
    Location,
    Permission,
    PermissionGrant,
    Role,
    Tenant,
    User,
)
from inventory_access.core.principal import Principal
from inventory_access.core.store import Store
from inventory_access.flask_app import create_app
from scripts import audit

DEFAULT_PASSWORD = "Correct-Horse-42"


# ─────────────────────────────────────────────────────────────────────────────
# Audit isolation
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def temp_audit_dir(monkeypatch, tmp_path):
    """Provide isolated audit directory for each test."""
    audit_dir = tmp_path / "audit"
    audit_file = audit_dir / "access-events.jsonl"

    monkeypatch.setattr(audit, "AUDIT_LOG_DIR", audit_dir)
    monkeypatch.setattr(audit, "AUDIT_LOG_FILE", audit_file)
    monkeypatch.setenv("AUDIT_LOG_SIGNING_KEY", "test-signing-key-for-audit-trail")

    yield audit_dir, audit_file


def read_audit_events(audit_file: pathlib.Path) -> list[dict]:
    if not audit_file.exists():
        return []
    return [json.loads(line) for line in audit_file.read_text().splitlines() if line.strip()]


@pytest.fixture()
def audit_events(temp_audit_dir):
    """Return a callable reading the events logged so far."""
    _, audit_file = temp_audit_dir
    return lambda: read_audit_events(audit_file)


# ─────────────────────────────────────────────────────────────────────────────
# Store and seed data
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def store():
    """Fresh in-memory SQLite store per test."""
    db = Store.from_url("sqlite:///:memory:")
    db.create_all()
    yield db
    db.drop_all()
    db.engine.dispose()


@pytest.fixture()
def file_store(tmp_path):
    """File-backed SQLite store shared by several threads."""
    db = Store.from_url(f"sqlite:///{tmp_path / 'access.db'}")
    db.create_all()
    yield db
    db.engine.dispose()


class Seeder:
    """Writes fixture rows directly, bypassing authorization."""

    def __init__(self, store: Store):
        self.store = store
        self._counter = 0

    def _next_external_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter:04d}"

    def tenant(self, name: str = "Chemistry", is_active: bool = True) -> int:
        with self.store.transaction() as session:
            tenant = Tenant(name=name, is_active=is_active)
            session.add(tenant)
            session.flush()
            return tenant.id

    def location(self, tenant_id: int, name: str = "Stockroom", archived: bool = False) -> int:
        with self.store.transaction() as session:
            location = Location(tenant_id=tenant_id, name=name, is_archived=archived)
            session.add(location)
            session.flush()
            return location.id

    def user(
        self,
        tenant_id: Optional[int],
        role: Role = Role.STAFF,
        status: AccountStatus = AccountStatus.ACTIVE,
        external_id: Optional[str] = None,
        password: str = DEFAULT_PASSWORD,
        permissions: Iterable[Permission] = (),
        location_id: Optional[int] = None,
    ) -> Principal:
        with self.store.transaction() as session:
            user = User(
                tenant_id=tenant_id,
                external_id=external_id or self._next_external_id(role.value.lower()),
                first_name="Test",
                last_name=role.value.title(),
                role=role.value,
                account_status=status.value,
                password_hash=credentials.hash_password(password),
                location_id=location_id,
            )
            session.add(user)
            session.flush()
            for permission in permissions:
                session.add(
                    PermissionGrant(user_id=user.id, tenant_id=tenant_id, permission=permission.value)
                )
            session.flush()
            return Principal.from_model(user)

    def admin(self, **kwargs) -> Principal:
        return self.user(None, role=Role.ADMIN, **kwargs)

    def manager(self, tenant_id: int, **kwargs) -> Principal:
        return self.user(tenant_id, role=Role.MANAGER, **kwargs)

    def staff(self, tenant_id: int, **kwargs) -> Principal:
        return self.user(tenant_id, role=Role.STAFF, **kwargs)

    def load(self, user_id: str) -> User:
        with self.store.transaction() as session:
            user = session.get(User, user_id)
            # Touch the collection so it is usable after the session closes
            list(user.grants)
            return user

    def grants(self, user_id: str) -> list[str]:
        with self.store.transaction() as session:
            rows = session.query(PermissionGrant).filter(PermissionGrant.user_id == user_id).all()
            return sorted(row.permission for row in rows)

    def manager_count(self, tenant_id: int) -> int:
        with self.store.transaction() as session:
            return (
                session.query(User)
                .filter(User.tenant_id == tenant_id, User.role == Role.MANAGER.value)
                .count()
            )


@pytest.fixture()
def seed(store):
    return Seeder(store)


@pytest.fixture()
def file_seed(file_store):
    return Seeder(file_store)


# ─────────────────────────────────────────────────────────────────────────────
# Flask Test Client
# ─────────────────────────────────────────────────────────────────────────────
def make_config(**overrides) -> AppConfig:
    base = dict(
        demo_mode=True,
        secret_key="test-secret",
        database_url="sqlite:///:memory:",
        jwt_secret=JWT_SECRET,
        temp_password_length=16,
        allow_manager_tenant_deactivation=False,
        audit_log_signing_key="test-signing-key-for-audit-trail",
    )
    base.update(overrides)
    return AppConfig(**base)


@pytest.fixture()
def config_factory():
    return make_config


@pytest.fixture()
def app_config():
    return make_config()


@pytest.fixture()
def flask_app(app_config, store):
    app = create_app(app_config, store)
    app.config.update(TESTING=True)
    return app


@pytest.fixture()
def client(flask_app):
    with flask_app.test_client() as client:
        yield client


# ─────────────────────────────────────────────────────────────────────────────
# JWT Token Helpers
# ─────────────────────────────────────────────────────────────────────────────
def create_token(
    sub: str,
    secret: str = JWT_SECRET,
    exp_offset: int = 3600,
    **claims,
) -> str:
    """Create an HS256-signed bearer token for ``sub``."""
    now = int(time.time())
    payload = {"sub": sub, "iat": now, "exp": now + exp_offset}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(principal: Principal, **kwargs) -> dict:
    return {"Authorization": f"Bearer {create_token(principal.id, **kwargs)}"}


@pytest.fixture()
def auth():
    """Build Authorization headers for a seeded principal."""
    return auth_headers


@pytest.fixture()
def token_factory():
    return create_token


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "critical: marks tests as critical security tests (P0 priority)"
    )
