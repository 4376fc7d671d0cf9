"""Audit logging for account lifecycle and authorization events."""

from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import os
import sys
from pathlib import Path
from typing import Any, Literal, Optional

AUDIT_LOG_DIR = Path(os.environ.get("AUDIT_LOG_DIR", ".runtime/audit"))
AUDIT_LOG_FILE = AUDIT_LOG_DIR / "access-events.jsonl"
SIGNING_KEY_FILE = Path(
    os.environ.get("AUDIT_LOG_SIGNING_KEY_FILE", "/run/secrets/audit_log_signing_key")
)


def _get_signing_key() -> bytes:
    """Get the audit signing key (loaded lazily so tests can swap it).

    ``AUDIT_LOG_SIGNING_KEY`` wins when set, even to an empty value (signing
    disabled); settings copies the Docker secret there at startup. The CLI
    runs without settings and reads the mounted secret directly.
    """
    if "AUDIT_LOG_SIGNING_KEY" in os.environ:
        return os.environ["AUDIT_LOG_SIGNING_KEY"].strip().encode("utf-8")
    if SIGNING_KEY_FILE.is_file():
        return SIGNING_KEY_FILE.read_text(encoding="utf-8").strip().encode("utf-8")
    return b""


EventType = Literal[
    "provision", "role_change", "password_reset", "status_change",
    "permissions_replace", "principal_update", "password_set",
    "tenant_create", "tenant_rename", "tenant_status",
    "location_create", "location_rename", "location_archive",
]


def _ensure_audit_dir() -> None:
    """Create audit directory with restricted permissions."""
    AUDIT_LOG_DIR.mkdir(parents=True, exist_ok=True)
    AUDIT_LOG_DIR.chmod(0o700)


def _sign_event(event: dict[str, Any]) -> str:
    """Generate HMAC-SHA256 signature for audit event."""
    signing_key = _get_signing_key()
    if not signing_key:
        return ""
    canonical = json.dumps(event, sort_keys=True, separators=(",", ":"))
    return hmac.new(signing_key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()


def log_event(
    event_type: EventType,
    target: str,
    *,
    actor: str = "system",
    tenant_id: Optional[int] = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """Append an event to the audit trail with timestamp and signature.

    Args:
        event_type: Lifecycle or authorization event
        target: Id of the affected user or tenant
        actor: Id of the principal who triggered the event
        tenant_id: Tenant the event happened in (None for admin-level events)
        details: Additional context (roles, statuses). Never credentials.
        success: Whether the operation succeeded
    """
    _ensure_audit_dir()

    event = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "event_type": event_type,
        "tenant_id": tenant_id,
        "target": target,
        "actor": actor,
        "success": success,
        "details": details or {},
    }

    signature = _sign_event(event)
    if signature:
        event["signature"] = signature

    with AUDIT_LOG_FILE.open("a", encoding="utf-8") as f:
        f.write(json.dumps(event, ensure_ascii=False) + "\n")

    AUDIT_LOG_FILE.chmod(0o600)


def safe_log_event(
    event_type: EventType,
    target: str,
    *,
    actor: str = "system",
    tenant_id: Optional[int] = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> bool:
    """Log an event without ever raising.

    The audited operation has already committed when this runs, so a logging
    failure is reported on stderr instead of failing the request.

    Returns:
        True if event was logged successfully, False if logging failed
    """
    try:
        log_event(
            event_type,
            target,
            actor=actor,
            tenant_id=tenant_id,
            details=details,
            success=success,
        )
        return True
    except Exception as e:
        print(
            f"[audit] Warning: Failed to log {event_type} event for {target}: {e}",
            file=sys.stderr
        )
        return False


def verify_audit_log() -> tuple[int, int]:
    """Verify all signatures in the audit log.

    Returns:
        Tuple of (total_events, valid_signatures)
    """
    if not AUDIT_LOG_FILE.exists():
        return 0, 0

    total = 0
    valid = 0

    with AUDIT_LOG_FILE.open("r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            total += 1
            try:
                event = json.loads(line)
                stored_sig = event.pop("signature", "")
                if not stored_sig:
                    continue
                computed_sig = _sign_event(event)
                if computed_sig and hmac.compare_digest(stored_sig, computed_sig):
                    valid += 1
            except (json.JSONDecodeError, KeyError):
                continue

    return total, valid


if __name__ == "__main__":
    total, valid = verify_audit_log()
    print(f"Audit log: {valid}/{total} events with valid signatures")
    sys.exit(0 if total == valid else 1)
