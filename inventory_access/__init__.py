"""Departmental Inventory Access Package.

To use the Flask app:
    from inventory_access.flask_app import create_app

To use the provisioning service:
    from inventory_access.core.provisioning_service import provision_user
"""
# Note: We don't import flask_app by default to avoid Flask dependency
# for CLI scripts that only use inventory_access.core
