"""
Central constants for the SwiftShip application.
"""
from __future__ import annotations

VERSION = "0.1.0"

# Permission keys seeded by scripts/init_db.py and granted to the "admin" role.
PERMISSIONS = (
    ("admin.view", "Admin: view shell"),
    ("admin.manage", "Admin: manage system (sample data)"),
    ("packages.view", "Packages: view"),
    ("packages.create", "Packages: create"),
    ("packages.edit", "Packages: update status/details"),
    ("contacts.view", "Contact submissions: view"),
    ("contacts.resolve", "Contact submissions: resolve"),
)

# Requests under these prefixes skip user loading.
UNAUTHENTICATED_PREFIXES = ("/health", "/healthz", "/api/health")
