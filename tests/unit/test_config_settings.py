import pytest

from inventory_access.config import settings
from inventory_access.config.settings import _get_or_generate

ENV_VARS = [
    "DEMO_MODE",
    "FLASK_SECRET_KEY",
    "DATABASE_URL",
    "DB_ECHO",
    "JWT_SECRET",
    "JWT_JWKS_URL",
    "JWT_ISSUER",
    "JWT_AUDIENCE",
    "TEMP_PASSWORD_LENGTH",
    "ALLOW_MANAGER_TENANT_DEACTIVATION",
    "AUDIT_LOG_SIGNING_KEY",
    "AUDIT_LOG_SIGNING_KEY_DEMO",
]


@pytest.fixture()
def clean_env(monkeypatch, tmp_path):
    """Start from an empty configuration with no /run/secrets mount."""
    for var in ENV_VARS:
        # setenv first so values written by load_settings() are undone too
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)

    real_path = settings.Path

    def fake_path(target):
        if str(target) == "/run/secrets":
            return tmp_path / "run-secrets"
        return real_path(target)

    monkeypatch.setattr(settings, "Path", fake_path)
    return monkeypatch


def _production_env(monkeypatch, **overrides):
    values = {
        "DEMO_MODE": "false",
        "FLASK_SECRET_KEY": "flask-secret",
        "JWT_SECRET": "jwt-secret",
        "DATABASE_URL": "postgresql://db/inventory",
    }
    values.update(overrides)
    for key, value in values.items():
        monkeypatch.setenv(key, value)


def test_production_settings(clean_env):
    _production_env(clean_env, JWT_ISSUER="https://auth.example.edu", JWT_AUDIENCE="inventory-api")
    cfg = settings.load_settings()

    assert cfg.demo_mode is False
    assert cfg.secret_key == "flask-secret"
    assert cfg.database_url == "postgresql://db/inventory"
    assert cfg.jwt_secret == "jwt-secret"
    assert cfg.jwt_issuer == "https://auth.example.edu"
    assert cfg.jwt_audience == "inventory-api"
    assert cfg.temp_password_length == 16
    assert cfg.allow_manager_tenant_deactivation is False


def test_production_requires_flask_secret(clean_env):
    _production_env(clean_env)
    clean_env.delenv("FLASK_SECRET_KEY")
    with pytest.raises(RuntimeError, match="FLASK_SECRET_KEY"):
        settings.load_settings()


def test_production_requires_token_verifier(clean_env):
    _production_env(clean_env)
    clean_env.delenv("JWT_SECRET")
    with pytest.raises(RuntimeError, match="JWT_SECRET or JWT_JWKS_URL"):
        settings.load_settings()


def test_jwks_url_replaces_shared_secret(clean_env):
    _production_env(clean_env, JWT_JWKS_URL="https://auth.example.edu/jwks")
    clean_env.delenv("JWT_SECRET")
    cfg = settings.load_settings()
    assert cfg.jwt_jwks_url == "https://auth.example.edu/jwks"
    assert cfg.jwt_secret == ""


def test_production_requires_database_url(clean_env):
    _production_env(clean_env)
    clean_env.delenv("DATABASE_URL")
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        settings.load_settings()


def test_demo_mode_generates_secrets(clean_env):
    clean_env.setenv("DEMO_MODE", "true")
    cfg = settings.load_settings()

    assert cfg.demo_mode is True
    assert len(cfg.secret_key) >= 32
    assert len(cfg.jwt_secret) >= 32
    assert cfg.database_url == "sqlite:///./inventory_access.db"
    assert cfg.audit_log_signing_key == "demo-audit-signing-key-change-in-production"


def test_secret_file_takes_priority(clean_env, tmp_path):
    secrets_dir = tmp_path / "run-secrets"
    secrets_dir.mkdir()
    (secrets_dir / "flask_secret_key").write_text("from-file\n")
    _production_env(clean_env, FLASK_SECRET_KEY="from-env")

    assert settings.load_settings().secret_key == "from-file"


@pytest.mark.parametrize("value", ["8", "abc"])
def test_invalid_password_length(clean_env, value):
    _production_env(clean_env, TEMP_PASSWORD_LENGTH=value)
    with pytest.raises(RuntimeError, match="TEMP_PASSWORD_LENGTH"):
        settings.load_settings()


def test_flags(clean_env):
    _production_env(clean_env, ALLOW_MANAGER_TENANT_DEACTIVATION="TRUE", DB_ECHO="true", TEMP_PASSWORD_LENGTH="20")
    cfg = settings.load_settings()
    assert cfg.allow_manager_tenant_deactivation is True
    assert cfg.db_echo is True
    assert cfg.temp_password_length == 20


def test_get_or_generate_demo_default(monkeypatch):
    monkeypatch.delenv("SOME_SETTING", raising=False)
    assert _get_or_generate("SOME_SETTING", demo_default="fallback", demo_mode=True) == "fallback"


def test_get_or_generate_optional(monkeypatch):
    monkeypatch.delenv("SOME_SETTING", raising=False)
    assert _get_or_generate("SOME_SETTING", required=False) == ""


def test_get_or_generate_required(monkeypatch):
    monkeypatch.delenv("SOME_SETTING", raising=False)
    with pytest.raises(RuntimeError, match="SOME_SETTING"):
        _get_or_generate("SOME_SETTING")
