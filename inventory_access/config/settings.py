"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from inventory_access.core import credentials


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    # Priority 1: Read from /run/secrets
    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] ✓ Loaded {secret_name} from /run/secrets")
                return secret_value
        except OSError as e:
            print(f"[settings] ✗ Failed to read /run/secrets/{secret_name}: {e}")

    # Priority 2: Fallback to environment variable
    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            print(f"[settings] ✓ Loaded {env_var} from environment (fallback)")
            return secret_value

    return None


def _env_flag(var_name: str, default: bool = False) -> bool:
    return os.environ.get(var_name, str(default)).strip().lower() == "true"


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Flask
    secret_key: str

    # Principal store
    database_url: str = "sqlite:///./inventory_access.db"
    db_echo: bool = False

    # Bearer token verification (HS256 shared secret or RS256 via JWKS)
    jwt_secret: str = ""
    jwt_jwks_url: str = ""
    jwt_issuer: str = ""
    jwt_audience: str = ""

    # Credentials
    temp_password_length: int = credentials.DEFAULT_LENGTH

    # Tenant administration
    allow_manager_tenant_deactivation: bool = False

    # Audit
    audit_log_signing_key: str = ""


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Get environment variable or use demo default/generate."""
    value = os.environ.get(var_name)
    if value:
        return value

    if demo_mode and demo_default is not None:
        print(f"[demo-mode] Using default for {var_name}")
        os.environ[var_name] = demo_default
        return demo_default

    if not required:
        return ""

    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


def _parse_password_length(raw: str) -> int:
    try:
        length = int(raw)
    except ValueError:
        raise RuntimeError(f"TEMP_PASSWORD_LENGTH must be an integer, got {raw!r}")
    if length < credentials.MIN_LENGTH:
        raise RuntimeError(
            f"TEMP_PASSWORD_LENGTH must be at least {credentials.MIN_LENGTH} (got {length})"
        )
    return length


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = _env_flag("DEMO_MODE")

    # ─────────────────────────────────────────────────────────────────────────
    # Load secrets from /run/secrets (Docker secrets pattern)
    # Priority: /run/secrets > environment variables
    # ─────────────────────────────────────────────────────────────────────────

    # Flask secret key
    secret_key = _load_secret_from_file("flask_secret_key", "FLASK_SECRET_KEY")
    if not secret_key:
        if demo_mode:
            secret_key = secrets.token_urlsafe(48)
            os.environ["FLASK_SECRET_KEY"] = secret_key
            print("[demo-mode] Generated temporary FLASK_SECRET_KEY")
        else:
            raise RuntimeError("FLASK_SECRET_KEY not found in /run/secrets or environment")

    # Token verification
    jwt_jwks_url = os.environ.get("JWT_JWKS_URL", "").strip()
    jwt_secret = _load_secret_from_file("jwt_secret", "JWT_SECRET") or ""
    if not jwt_secret and not jwt_jwks_url:
        if demo_mode:
            jwt_secret = secrets.token_urlsafe(48)
            os.environ["JWT_SECRET"] = jwt_secret
            print("[demo-mode] Generated temporary JWT_SECRET")
        else:
            raise RuntimeError("Either JWT_SECRET or JWT_JWKS_URL is required in production mode.")
    jwt_issuer = os.environ.get("JWT_ISSUER", "").strip()
    jwt_audience = os.environ.get("JWT_AUDIENCE", "").strip()

    # Audit log signing key
    audit_log_signing_key = _load_secret_from_file(
        "audit_log_signing_key",
        "AUDIT_LOG_SIGNING_KEY"
    )
    if audit_log_signing_key:
        os.environ["AUDIT_LOG_SIGNING_KEY"] = audit_log_signing_key
    elif demo_mode:
        demo_key = os.environ.get("AUDIT_LOG_SIGNING_KEY_DEMO", "demo-audit-signing-key-change-in-production")
        os.environ["AUDIT_LOG_SIGNING_KEY"] = demo_key
        audit_log_signing_key = demo_key
        print(f"[demo-mode] Using demo AUDIT_LOG_SIGNING_KEY: {demo_key[:20]}...")

    # Principal store
    database_url = _get_or_generate(
        "DATABASE_URL",
        demo_default="sqlite:///./inventory_access.db",
        demo_mode=demo_mode,
    )
    db_echo = _env_flag("DB_ECHO")

    temp_password_length = _parse_password_length(
        os.environ.get("TEMP_PASSWORD_LENGTH", str(credentials.DEFAULT_LENGTH))
    )
    allow_manager_tenant_deactivation = _env_flag("ALLOW_MANAGER_TENANT_DEACTIVATION")

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    verifier = "jwks" if jwt_jwks_url else "shared-secret"
    print(f"[settings] Mode={mode_label}; database={database_url.split('://', 1)[0]}; tokens={verifier}")

    if demo_mode:
        print("[settings] WARNING: Demo credentials in use. Do not deploy with these defaults.")

    return AppConfig(
        demo_mode=demo_mode,
        secret_key=secret_key,
        database_url=database_url,
        db_echo=db_echo,
        jwt_secret=jwt_secret,
        jwt_jwks_url=jwt_jwks_url,
        jwt_issuer=jwt_issuer,
        jwt_audience=jwt_audience,
        temp_password_length=temp_password_length,
        allow_manager_tenant_deactivation=allow_manager_tenant_deactivation,
        audit_log_signing_key=audit_log_signing_key or "",
    )
