"""Operator CLI for the access store.

Bootstraps the schema, the first administrator and tenants, and verifies the
audit trail. Tenant operations run through the same service layer as the API,
acting as a built-in system administrator.
"""
from __future__ import annotations
import argparse
import datetime
import json
import os
import sys

import jwt

from inventory_access.core import provisioning_service
from inventory_access.core.errors import AccessError
from inventory_access.core.models import AccountStatus, Role
from inventory_access.core.principal import Principal
from inventory_access.core.store import Store
from scripts import audit

SYSTEM_ACTOR = Principal(
    id="system",
    role=Role.ADMIN,
    tenant_id=None,
    account_status=AccountStatus.ACTIVE,
)


def _issue_token(user_id: str, secret: str, ttl_minutes: int) -> str:
    """Mint an HS256 bearer token for local development."""
    now = datetime.datetime.now(datetime.timezone.utc)
    claims = {"sub": user_id, "iat": now, "exp": now + datetime.timedelta(minutes=ttl_minutes)}
    issuer = os.environ.get("JWT_ISSUER")
    audience = os.environ.get("JWT_AUDIENCE")
    if issuer:
        claims["iss"] = issuer
    if audience:
        claims["aud"] = audience
    return jwt.encode(claims, secret, algorithm="HS256")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Department inventory access helper")
    parser.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL", "sqlite:///./inventory_access.db"),
    )
    parser.add_argument("--password-length", type=int, default=None)

    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("init-db")

    sa = sub.add_parser("create-admin")
    sa.add_argument("--external-id", required=True)
    sa.add_argument("--first", required=True)
    sa.add_argument("--last", required=True)

    st = sub.add_parser("create-tenant")
    st.add_argument("--name", required=True)

    sm = sub.add_parser("provision-manager")
    sm.add_argument("--tenant-id", type=int, required=True)
    sm.add_argument("--external-id", required=True)
    sm.add_argument("--first", required=True)
    sm.add_argument("--last", required=True)

    sl = sub.add_parser("list-users")
    sl.add_argument("--tenant-id", type=int, required=True)

    tk = sub.add_parser("issue-token")
    tk.add_argument("--user-id", required=True)
    tk.add_argument("--ttl-minutes", type=int, default=60)

    sub.add_parser("verify-audit")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Command-line entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return 0

    if args.cmd == "verify-audit":
        total, valid = audit.verify_audit_log()
        print(f"Audit log: {valid}/{total} events with valid signatures")
        return 0 if total == valid else 1

    if args.cmd == "issue-token":
        secret = os.environ.get("JWT_SECRET")
        if not secret:
            parser.error("JWT_SECRET must be set to issue tokens")
        print(_issue_token(args.user_id, secret, args.ttl_minutes))
        return 0

    store = Store.from_url(args.database_url)
    store.create_all()

    try:
        if args.cmd == "init-db":
            print(f"[init-db] Schema ready at {args.database_url}")
        elif args.cmd == "create-admin":
            result = provisioning_service.bootstrap_admin(
                store, args.first, args.last, args.external_id,
                password_length=args.password_length,
            )
            print(json.dumps({
                "principalId": result.principal_id,
                "temporaryCredential": result.temporary_credential,
            }))
        elif args.cmd == "create-tenant":
            print(json.dumps(provisioning_service.create_tenant(store, SYSTEM_ACTOR, args.name)))
        elif args.cmd == "provision-manager":
            result = provisioning_service.provision_manager(
                store, SYSTEM_ACTOR, args.tenant_id, args.first, args.last, args.external_id,
                password_length=args.password_length,
            )
            print(json.dumps({
                "principalId": result.principal_id,
                "temporaryCredential": result.temporary_credential,
            }))
        elif args.cmd == "list-users":
            users = provisioning_service.list_tenant_users(store, SYSTEM_ACTOR, args.tenant_id)
            print(json.dumps(users, indent=2))
        else:
            parser.print_help()
    except AccessError as e:
        print(f"[{args.cmd}] Error: {e.reason}: {e.detail}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
