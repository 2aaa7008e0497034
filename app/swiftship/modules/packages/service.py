"""
Tracking and admin services for packages.

Admin functions take the resolved principal as an explicit argument and reject
a missing one before touching the database. Payloads are the JSON bodies the
HTTP layer received (camelCase keys).
"""
from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any

from app.swiftship.audit import record_event
from app.swiftship.errors import NotFound, ValidationError
from app.swiftship.rbac import require_principal
from app.swiftship.utils import parse_delivery_date
from app.swiftship.validation import (
    FORM_SCHEMAS,
    format_tracking_number,
    get_all_errors,
    is_form_valid,
    validate_form,
)

from .models import Package, PackageStatus, StatusUpdate
from .repository import (
    NewPackage,
    PackageUpdate,
    create_package,
    create_status_update,
    get_package_by_tracking_number,
    get_package_for_update,
    get_status_updates_by_package_id,
    update_package,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.swiftship.models import User

logger = logging.getLogger(__name__)

TRACKING_PREFIX = "SW"
_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"

# Update payloads treat blank fields as "not supplied", so drop the required rules.
_UPDATE_SCHEMA = {
    key: [r for r in rules if not r.required]
    for key, rules in FORM_SCHEMAS["admin_package"].items()
    if key != "trackingNumber"
}


@dataclass
class TrackingResult:
    package: Package
    history: list[StatusUpdate] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        body = self.package.to_dict()
        body["statusHistory"] = [su.to_dict() for su in self.history]
        return body


def generate_tracking_number(now_ms: int | None = None) -> str:
    """SW + last 8 digits of epoch millis + 3 random base36 chars. Best-effort unique."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    stamp = str(now_ms)[-8:].rjust(8, "0")
    suffix = "".join(secrets.choice(_BASE36) for _ in range(3))
    return f"{TRACKING_PREFIX}{stamp}{suffix}"


def _text(payload: dict, key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _parse_status(raw: str) -> str:
    parsed = PackageStatus.parse(raw)
    if parsed is None:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(PackageStatus.values())}",
            error="Invalid status",
        )
    return parsed.value


def _parse_delivery(raw: Any) -> date | None:
    try:
        return parse_delivery_date(raw)
    except (TypeError, ValueError):
        raise ValidationError("Invalid estimated delivery date", error="estimatedDelivery must be a valid date")


def _raise_if_invalid(payload: dict, schema: dict) -> None:
    results = validate_form(payload, schema)
    if not is_form_valid(results):
        raise ValidationError(errors=get_all_errors(results))


# ---------- Public tracking ----------
def track(s: "Session", raw_tracking_number: Any) -> TrackingResult:
    """Read-only lookup of a package and its ordered status history."""
    if not isinstance(raw_tracking_number, str) or not raw_tracking_number.strip():
        raise ValidationError("Valid tracking number is required", error="Invalid input")

    pkg = get_package_by_tracking_number(s, raw_tracking_number.strip())
    if pkg is None:
        raise NotFound(
            "Package not found. Please check your tracking number and try again.",
            error="Package not found",
        )
    return TrackingResult(package=pkg, history=get_status_updates_by_package_id(s, pkg.id))


# ---------- Admin ----------
def admin_create_package(s: "Session", principal: "User | None", payload: dict) -> Package:
    """The "create" admin action: caller supplies the tracking number."""
    user = require_principal(principal)

    payload = dict(payload)
    payload["trackingNumber"] = format_tracking_number(_text(payload, "trackingNumber"))
    if not all(_text(payload, k) for k in ("trackingNumber", "status", "location", "destination")):
        raise ValidationError(
            "Tracking number, status, current location, and destination are required",
            error="Missing required fields",
        )
    _raise_if_invalid(payload, FORM_SCHEMAS["admin_package"])
    status = _parse_status(_text(payload, "status"))

    pkg = create_package(
        s,
        NewPackage(
            tracking_number=payload["trackingNumber"],
            status=status,
            current_location=_text(payload, "location"),
            destination=_text(payload, "destination"),
            customer_name=_text(payload, "customerName") or None,
            customer_email=_text(payload, "customerEmail") or None,
            estimated_delivery=_parse_delivery(payload.get("estimatedDelivery")),
        ),
    )
    create_status_update(
        s,
        package_id=pkg.id,
        status=pkg.status,
        location=pkg.current_location,
        notes=_text(payload, "notes") or f"Package created with status: {pkg.status}",
    )
    record_event(
        s,
        actor=user,
        action="package.create",
        entity_type="Package",
        entity_id=pkg.id,
        metadata={"tracking_number": pkg.tracking_number, "status": pkg.status},
    )
    logger.info("Package created tn=%s status=%s by=%s", pkg.tracking_number, pkg.status, user.email)
    return pkg


def admin_update_package(s: "Session", principal: "User | None", payload: dict) -> Package:
    """
    The "update" admin action. Applies only the supplied fields; when status or
    location is supplied, also appends a StatusUpdate carrying the package's
    resulting status/location.
    """
    user = require_principal(principal)

    tn = format_tracking_number(_text(payload, "trackingNumber"))
    if not tn:
        raise ValidationError("Tracking number is required", error="Missing tracking number")
    _raise_if_invalid(payload, _UPDATE_SCHEMA)

    status = _text(payload, "status")
    location = _text(payload, "location")
    destination = _text(payload, "destination")
    if status:
        status = _parse_status(status)
    customer_name = payload.get("customerName")
    customer_email = payload.get("customerEmail")
    estimated = _parse_delivery(payload.get("estimatedDelivery"))

    # Row lock serializes concurrent updates of the same package.
    existing = get_package_for_update(s, tn)
    if existing is None:
        raise NotFound("Package not found", error="Invalid tracking number")
    before = {"status": existing.status, "location": existing.current_location}

    pkg = update_package(
        s,
        existing.id,
        PackageUpdate(
            status=status or None,
            current_location=location or None,
            destination=destination or None,
            customer_name=str(customer_name) if customer_name is not None else None,
            customer_email=str(customer_email) if customer_email is not None else None,
            estimated_delivery=estimated,
        ),
    )

    # update_package has flushed, so pkg now holds the resulting values.
    if status or location:
        parts = []
        if status:
            parts.append(f"Status changed to {pkg.status}")
        if location:
            parts.append(f"Location: {pkg.current_location}")
        create_status_update(
            s,
            package_id=pkg.id,
            status=pkg.status,
            location=pkg.current_location,
            notes=_text(payload, "notes") or "Package updated: " + "; ".join(parts),
        )

    record_event(
        s,
        actor=user,
        action="package.update",
        entity_type="Package",
        entity_id=pkg.id,
        metadata={
            "tracking_number": pkg.tracking_number,
            "before": before,
            "fields": sorted(k for k in payload if k not in ("action", "trackingNumber", "csrf_token")),
            "status_update_written": bool(status or location),
        },
    )
    return pkg


def create_shipment(s: "Session", principal: "User | None", payload: dict) -> Package:
    """
    The create-package endpoint: customer-centric input, tracking number
    generated unless the caller supplies one.
    """
    user = require_principal(principal)

    customer_name = _text(payload, "customerName")
    current_location = _text(payload, "currentLocation")
    destination = _text(payload, "destination")
    if not customer_name or not current_location or not destination:
        raise ValidationError(
            "Missing required fields",
            error="customerName, currentLocation, and destination are required",
        )
    customer_email = _text(payload, "customerEmail")
    if customer_email:
        _raise_if_invalid(payload, {"customerEmail": FORM_SCHEMAS["admin_package"]["customerEmail"]})
    status = _parse_status(_text(payload, "status") or PackageStatus.IN_TRANSIT.value)
    estimated = _parse_delivery(payload.get("estimatedDelivery"))

    tracking_number = format_tracking_number(_text(payload, "trackingNumber")) or generate_tracking_number()

    pkg = create_package(
        s,
        NewPackage(
            tracking_number=tracking_number,
            status=status,
            current_location=current_location,
            destination=destination,
            customer_name=customer_name,
            customer_email=customer_email or None,
            estimated_delivery=estimated,
        ),
    )
    create_status_update(
        s,
        package_id=pkg.id,
        status=pkg.status,
        location=pkg.current_location,
        notes=_text(payload, "notes") or f"Package created for {customer_name}",
    )
    record_event(
        s,
        actor=user,
        action="package.create",
        entity_type="Package",
        entity_id=pkg.id,
        metadata={"tracking_number": pkg.tracking_number, "status": pkg.status, "generated": not payload.get("trackingNumber")},
    )
    logger.info("Package created tn=%s for customer=%s", pkg.tracking_number, customer_name)
    return pkg


# ---------- Sample data ----------
SAMPLE_PACKAGES: list[dict[str, Any]] = [
    {
        "tracking_number": "SW123456789",
        "status": "in_transit",
        "current_location": "New York, NY",
        "destination": "Los Angeles, CA",
        "customer_name": "John Doe",
        "customer_email": "john.doe@example.com",
        "eta_days": 2,
    },
    {
        "tracking_number": "SW987654321",
        "status": "delivered",
        "current_location": "Chicago, IL",
        "destination": "Chicago, IL",
        "customer_name": "Jane Smith",
        "customer_email": "jane.smith@example.com",
    },
    {
        "tracking_number": "SW456789123",
        "status": "out_for_delivery",
        "current_location": "Miami, FL",
        "destination": "Miami Beach, FL",
        "customer_name": "Bob Johnson",
        "customer_email": "bob.johnson@example.com",
        "eta_days": 1,
    },
    {
        "tracking_number": "SW789123456",
        "status": "picked_up",
        "current_location": "Seattle, WA",
        "destination": "Portland, OR",
        "customer_name": "Alice Brown",
        "customer_email": "alice.brown@example.com",
        "eta_days": 3,
    },
    {
        "tracking_number": "SW321654987",
        "status": "exception",
        "current_location": "Denver, CO",
        "destination": "Phoenix, AZ",
        "customer_name": "Charlie Wilson",
        "customer_email": "charlie.wilson@example.com",
    },
]

STATUS_PROGRESSION = {
    "created": ["created"],
    "picked_up": ["created", "picked_up"],
    "in_transit": ["created", "picked_up", "in_transit"],
    "out_for_delivery": ["created", "picked_up", "in_transit", "out_for_delivery"],
    "delivered": ["created", "picked_up", "in_transit", "out_for_delivery", "delivered"],
    "exception": ["created", "picked_up", "exception"],
}

_SAMPLE_LOCATIONS = {
    "created": "Origin Facility",
    "picked_up": "Pickup Location",
    "in_transit": "Transit Hub",
    "out_for_delivery": "Local Delivery Center",
    "delivered": "Destination",
    "exception": "Exception Processing Center",
}

_SAMPLE_NOTES = {
    "created": "Package created and ready for pickup",
    "picked_up": "Package picked up by carrier",
    "in_transit": "Package in transit to destination",
    "out_for_delivery": "Package out for delivery",
    "delivered": "Package delivered successfully",
    "exception": "Delivery exception - address verification required",
}


def seed_sample_data(s: "Session") -> list[str]:
    """Insert the demo packages that are missing. Returns the tracking numbers created."""
    created: list[str] = []
    for sample in SAMPLE_PACKAGES:
        if get_package_by_tracking_number(s, sample["tracking_number"]) is not None:
            logger.info("Sample package %s already exists, skipping", sample["tracking_number"])
            continue
        eta = sample.get("eta_days")
        pkg = create_package(
            s,
            NewPackage(
                tracking_number=sample["tracking_number"],
                status=sample["status"],
                current_location=sample["current_location"],
                destination=sample["destination"],
                customer_name=sample["customer_name"],
                customer_email=sample["customer_email"],
                estimated_delivery=date.today() + timedelta(days=eta) if eta else None,
            ),
        )
        steps = STATUS_PROGRESSION[pkg.status]
        for i, step in enumerate(steps):
            # The last entry must mirror the package itself.
            is_last = i == len(steps) - 1
            create_status_update(
                s,
                package_id=pkg.id,
                status=step,
                location=pkg.current_location if is_last else _SAMPLE_LOCATIONS[step],
                notes=_SAMPLE_NOTES[step],
            )
        created.append(pkg.tracking_number)
    return created
