"""
Data access for packages and their status history.

Every function takes the caller's Session and never commits; the request (or
script) owning the session decides the transaction boundary. "Not found" is a
None return here, callers choose whether that is an error.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import date, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.swiftship.errors import DuplicateTrackingNumber, NotFound, ValidationError
from app.swiftship.validation import VALIDATION_PATTERNS, format_tracking_number

from .models import Package, PackageStatus, StatusUpdate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewPackage:
    tracking_number: str
    status: str
    current_location: str
    destination: str
    customer_name: str | None = None
    customer_email: str | None = None
    estimated_delivery: date | None = None


@dataclass(frozen=True)
class PackageUpdate:
    """
    Partial update. None means "not supplied"; an empty string on an optional
    text field means "clear it". The tracking number is deliberately absent.
    """

    status: str | None = None
    current_location: str | None = None
    destination: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    estimated_delivery: date | None = None

    def supplied(self) -> dict[str, object]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


def _require_status(status: str | None) -> str:
    parsed = PackageStatus.parse(status)
    if parsed is None:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(PackageStatus.values())}")
    return parsed.value


# ---------- Packages ----------
def create_package(s: Session, data: NewPackage) -> Package:
    """Insert a package. Does not write its initial status update."""
    errors: list[str] = []
    tn = format_tracking_number(data.tracking_number or "")
    if not tn:
        errors.append("Tracking number is required")
    elif not VALIDATION_PATTERNS["tracking_number"].match(tn):
        errors.append("Tracking number must be 8-20 uppercase letters or digits")
    if PackageStatus.parse(data.status) is None:
        errors.append("Valid status is required")
    if not (data.current_location or "").strip():
        errors.append("Current location is required")
    if not (data.destination or "").strip():
        errors.append("Destination is required")
    if data.customer_email and not VALIDATION_PATTERNS["email"].match(data.customer_email.strip()):
        errors.append("Valid email address is required")
    if errors:
        raise ValidationError(errors=errors)

    if get_package_by_tracking_number(s, tn) is not None:
        raise DuplicateTrackingNumber(f"A package with tracking number {tn} already exists")

    pkg = Package(
        tracking_number=tn,
        status=_require_status(data.status),
        current_location=data.current_location.strip(),
        destination=data.destination.strip(),
        customer_name=(data.customer_name or "").strip() or None,
        customer_email=(data.customer_email or "").strip() or None,
        estimated_delivery=data.estimated_delivery,
        last_updated=datetime.utcnow(),
    )
    try:
        # Savepoint: a unique-index failure discards only this insert.
        with s.begin_nested():
            s.add(pkg)
            s.flush()
    except IntegrityError as e:
        # Lost a race with a concurrent insert of the same number.
        logger.warning("Duplicate tracking number on insert tn=%s err=%s", tn, str(e)[:100])
        raise DuplicateTrackingNumber(f"A package with tracking number {tn} already exists") from e
    return pkg


def get_package_by_tracking_number(s: Session, tracking_number: str) -> Package | None:
    return s.query(Package).filter(Package.tracking_number == tracking_number).one_or_none()


def get_package_by_id(s: Session, package_id: str) -> Package | None:
    return s.get(Package, package_id)


def get_package_for_update(s: Session, tracking_number: str) -> Package | None:
    """Load and row-lock a package so concurrent admin updates serialize."""
    stmt = select(Package).where(Package.tracking_number == tracking_number).with_for_update()
    return s.execute(stmt).scalar_one_or_none()


def update_package(s: Session, package_id: str, update: PackageUpdate) -> Package:
    pkg = get_package_by_id(s, package_id)
    if pkg is None:
        raise NotFound("Package not found", error="Invalid package id")

    changes = update.supplied()
    if "status" in changes:
        pkg.status = _require_status(update.status)
    if "current_location" in changes:
        pkg.current_location = update.current_location.strip()
    if "destination" in changes:
        pkg.destination = update.destination.strip()
    if "customer_name" in changes:
        pkg.customer_name = update.customer_name.strip() or None
    if "customer_email" in changes:
        pkg.customer_email = update.customer_email.strip() or None
    if "estimated_delivery" in changes:
        pkg.estimated_delivery = update.estimated_delivery

    pkg.last_updated = datetime.utcnow()
    s.flush()
    return pkg


def get_all_packages(s: Session) -> list[Package]:
    return s.query(Package).order_by(Package.last_updated.desc(), Package.id.asc()).all()


def get_packages_by_status(s: Session, status: str) -> list[Package]:
    return (
        s.query(Package)
        .filter(Package.status == _require_status(status))
        .order_by(Package.last_updated.desc())
        .all()
    )


def get_recent_packages(s: Session, limit: int = 10) -> list[Package]:
    return s.query(Package).order_by(Package.last_updated.desc()).limit(limit).all()


# ---------- Status history ----------
def create_status_update(
    s: Session,
    *,
    package_id: str,
    status: str,
    location: str,
    notes: str | None = None,
) -> StatusUpdate:
    """Append one history entry. Leaves the parent Package untouched."""
    errors: list[str] = []
    if not package_id:
        errors.append("Package ID is required")
    if PackageStatus.parse(status) is None:
        errors.append("Valid status is required")
    if not (location or "").strip():
        errors.append("Location is required")
    if errors:
        raise ValidationError(errors=errors)

    # Strictly increasing per package, so "latest" is never ambiguous.
    latest = s.query(func.max(StatusUpdate.timestamp)).filter(StatusUpdate.package_id == package_id).scalar()
    ts = datetime.utcnow()
    if latest is not None and ts <= latest:
        ts = latest + timedelta(microseconds=1)

    su = StatusUpdate(
        package_id=package_id,
        status=_require_status(status),
        location=location.strip(),
        notes=(notes or "").strip() or None,
        timestamp=ts,
    )
    s.add(su)
    s.flush()
    return su


def get_status_updates_by_package_id(s: Session, package_id: str) -> list[StatusUpdate]:
    return (
        s.query(StatusUpdate)
        .filter(StatusUpdate.package_id == package_id)
        .order_by(StatusUpdate.timestamp.asc(), StatusUpdate.id.asc())
        .all()
    )


def get_latest_status_update(s: Session, package_id: str) -> StatusUpdate | None:
    history = get_status_updates_by_package_id(s, package_id)
    return history[-1] if history else None


def get_package_stats(s: Session) -> dict:
    by_status = {v: 0 for v in PackageStatus.values()}
    for status, count in s.query(Package.status, func.count(Package.id)).group_by(Package.status).all():
        by_status[status] = int(count)
    return {
        "packages": {"total": sum(by_status.values()), "byStatus": by_status},
        "statusUpdates": {"total": int(s.query(func.count(StatusUpdate.id)).scalar() or 0)},
    }
