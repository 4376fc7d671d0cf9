"""Core Access Logic Module

This module provides the authorization and account-lifecycle logic for the
inventory application, independent of the HTTP framework.

Architecture:
    - Pure Python decisions (no Flask dependencies in core logic)
    - Testable without HTTP mocking
    - Reusable across different interfaces (HTTP API, operator CLI)

Module Structure:
    - errors.py         : Error taxonomy and the Decision value
    - models.py         : SQLAlchemy tables (tenants, locations, users, grants)
    - store.py          : Engine, transactions, tenant row locks
    - principal.py      : Resolved caller snapshot
    - rbac.py           : Authorization decisions (pure)
    - lifecycle.py      : Account status machine and guarded role writes
    - credentials.py    : Temporary credential generation and hashing
    - identity.py       : Bearer token verification and principal resolution
    - validators.py     : Request payload validation
    - provisioning_service.py : Transactional workflows (provision, role, reset, tenants)

Usage Pattern:
    These modules are NOT auto-imported; import explicitly when needed:
        from inventory_access.core import rbac
        from inventory_access.core.provisioning_service import provision_user
        from inventory_access.core.errors import AccessError
"""
