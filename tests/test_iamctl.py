import json

import jwt
import pytest

import scripts.iamctl as iamctl
from inventory_access.core import credentials
from inventory_access.core.models import AccountStatus, Role, User
from inventory_access.core.store import Store


@pytest.fixture()
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cli.db'}"


def run(db_url, capsys, *args):
    code = iamctl.main(["--database-url", db_url, *args])
    captured = capsys.readouterr()
    return code, captured.out, captured.err


def test_no_command_prints_help(capsys):
    assert iamctl.main([]) == 0
    assert "usage" in capsys.readouterr().out


def test_init_db(db_url, capsys):
    code, out, _ = run(db_url, capsys, "init-db")
    assert code == 0
    assert "Schema ready" in out


def test_bootstrap_flow(db_url, capsys):
    """Admin, tenant and first manager can be created from an empty database."""
    code, out, _ = run(db_url, capsys, "create-admin", "--external-id", "root01", "--first", "Root", "--last", "Operator")
    assert code == 0
    admin = json.loads(out)

    code, out, _ = run(db_url, capsys, "create-tenant", "--name", "Chemistry")
    assert code == 0
    tenant = json.loads(out)
    assert tenant["isActive"] is True

    code, out, _ = run(
        db_url, capsys,
        "--password-length", "20",
        "provision-manager", "--tenant-id", str(tenant["id"]),
        "--external-id", "mc1867", "--first", "Marie", "--last", "Curie",
    )
    assert code == 0
    manager = json.loads(out)
    assert len(manager["temporaryCredential"]) == 20

    store = Store.from_url(db_url)
    with store.transaction() as session:
        admin_row = session.get(User, admin["principalId"])
        manager_row = session.get(User, manager["principalId"])
        assert admin_row.role == Role.ADMIN.value
        assert admin_row.tenant_id is None
        assert manager_row.account_status == AccountStatus.PENDING_ACTIVATION.value
        assert credentials.verify_password(manager_row.password_hash, manager["temporaryCredential"])
    store.engine.dispose()

    code, out, _ = run(db_url, capsys, "list-users", "--tenant-id", str(tenant["id"]))
    assert code == 0
    assert [user["externalId"] for user in json.loads(out)] == ["mc1867"]


def test_second_manager_is_refused(db_url, capsys):
    run(db_url, capsys, "create-tenant", "--name", "Chemistry")
    run(db_url, capsys, "provision-manager", "--tenant-id", "1", "--external-id", "mgr1", "--first", "A", "--last", "B")

    code, _, err = run(
        db_url, capsys, "provision-manager", "--tenant-id", "1", "--external-id", "mgr2", "--first", "C", "--last", "D"
    )
    assert code == 1
    assert "Forbidden" in err


def test_issue_token(monkeypatch, capsys):
    monkeypatch.setenv("JWT_SECRET", "cli-secret-with-enough-entropy-for-hs256")
    monkeypatch.setenv("JWT_ISSUER", "https://auth.example.edu")
    monkeypatch.delenv("JWT_AUDIENCE", raising=False)

    assert iamctl.main(["issue-token", "--user-id", "user-1", "--ttl-minutes", "5"]) == 0
    token = capsys.readouterr().out.strip()

    claims = jwt.decode(
        token,
        "cli-secret-with-enough-entropy-for-hs256",
        algorithms=["HS256"],
        issuer="https://auth.example.edu",
    )
    assert claims["sub"] == "user-1"
    assert "aud" not in claims


def test_issue_token_requires_secret(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    with pytest.raises(SystemExit):
        iamctl.main(["issue-token", "--user-id", "user-1"])


def test_verify_audit(capsys):
    iamctl.audit.log_event("tenant_create", "1")
    assert iamctl.main(["verify-audit"]) == 0
    assert "1/1" in capsys.readouterr().out
