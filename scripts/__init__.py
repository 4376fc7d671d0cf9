"""Operator scripts: audit trail and the iamctl CLI."""
