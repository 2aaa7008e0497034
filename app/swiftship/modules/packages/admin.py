from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.swiftship.api import json_body
from app.swiftship.db import db_session
from app.swiftship.errors import ValidationError
from app.swiftship.models import User
from app.swiftship.modules.contact.repository import (
    get_all_contact_submissions,
    get_contact_stats,
    get_unresolved_contact_submissions,
)
from app.swiftship.modules.contact.service import resolve_contact
from app.swiftship.modules.packages.repository import (
    get_all_packages,
    get_latest_status_update,
    get_package_stats,
    get_packages_by_status,
    get_recent_packages,
)
from app.swiftship.modules.packages.service import (
    admin_create_package,
    admin_update_package,
    create_shipment,
    seed_sample_data,
)
from app.swiftship.rbac import check_permission, require_login, require_permission

bp = Blueprint("packages_admin", __name__)


def _current_user() -> User | None:
    return getattr(g, "current_user", None)


# ---------- Create (generated tracking number) ----------
@bp.post("/create-package")
@require_permission("packages.create")
def create_package_post():
    s = db_session()
    pkg = create_shipment(s, _current_user(), json_body())
    s.commit()
    return (
        jsonify(
            {
                "success": True,
                "message": "Package created successfully",
                "package": pkg.to_dict(),
                "trackingNumber": pkg.tracking_number,
            }
        ),
        201,
    )


# ---------- Create / update actions ----------
@bp.post("/update")
@require_login
def update_post():
    s = db_session()
    u = _current_user()
    payload = json_body()
    action = str(payload.get("action") or "").strip()

    if not action:
        raise ValidationError("Action is required", error="Missing action parameter")

    if action == "create":
        check_permission(u, "packages.create")
        pkg = admin_create_package(s, u, payload)
        s.commit()
        return jsonify({"success": True, "message": "Package created successfully", "package": pkg.to_dict()}), 201

    if action == "update":
        check_permission(u, "packages.edit")
        pkg = admin_update_package(s, u, payload)
        s.commit()
        return jsonify({"success": True, "message": "Package updated successfully", "package": pkg.to_dict()})

    raise ValidationError('Invalid action. Use "create" or "update"', error="Invalid action")


# ---------- Lists / contact resolution ----------
@bp.get("/packages")
@require_permission("packages.view")
def packages_get():
    s = db_session()
    kind = (request.args.get("type") or "packages").strip()

    if kind == "contacts":
        check_permission(_current_user(), "contacts.view")
        unresolved_only = (request.args.get("unresolved") or "").strip() in ("1", "true")
        contacts = get_unresolved_contact_submissions(s) if unresolved_only else get_all_contact_submissions(s)
        return jsonify(
            {
                "success": True,
                "message": "Contact submissions retrieved successfully",
                "contacts": [c.to_dict() for c in contacts],
            }
        )

    status_filter = (request.args.get("status") or "").strip()
    packages = get_packages_by_status(s, status_filter) if status_filter else get_all_packages(s)
    return jsonify(
        {
            "success": True,
            "message": "Packages retrieved successfully",
            "packages": [p.to_dict() for p in packages],
        }
    )


@bp.post("/packages")
@require_permission("contacts.resolve")
def packages_post():
    s = db_session()
    payload = json_body()
    action = str(payload.get("action") or "").strip()

    if action != "resolve-contact":
        raise ValidationError("Invalid action", error="Unknown action")

    contact_id = str(payload.get("contactId") or "").strip()
    if not contact_id:
        raise ValidationError("Contact ID is required", error="Missing contact ID")

    resolve_contact(s, _current_user(), contact_id)
    s.commit()
    return jsonify({"success": True, "message": "Contact submission marked as resolved"})


# ---------- Stats / sample data ----------
@bp.get("/stats")
@require_permission("packages.view")
def stats_get():
    s = db_session()
    stats = get_package_stats(s)
    stats["contactSubmissions"] = get_contact_stats(s)
    recent = []
    for pkg in get_recent_packages(s, limit=5):
        row = pkg.to_dict()
        latest = get_latest_status_update(s, pkg.id)
        row["latestUpdate"] = latest.to_dict() if latest else None
        recent.append(row)
    stats["recentPackages"] = recent
    return jsonify({"success": True, "message": "Statistics retrieved successfully", "stats": stats})


@bp.post("/init-db")
@require_permission("admin.manage")
def init_db_post():
    s = db_session()
    created = seed_sample_data(s)
    s.commit()
    current_app.logger.info("Sample data seeded: %s", ", ".join(created) or "(nothing new)")
    return jsonify(
        {
            "success": True,
            "message": "Sample data initialized successfully" if created else "Sample data already present",
            "created": created,
        }
    )
