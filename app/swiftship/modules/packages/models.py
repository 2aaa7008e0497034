from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import Date, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.swiftship.models import Base


def new_id() -> str:
    return uuid.uuid4().hex


class PackageStatus(str, enum.Enum):
    CREATED = "created"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    EXCEPTION = "exception"

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(s.value for s in cls)

    @classmethod
    def parse(cls, raw: Any) -> "PackageStatus | None":
        """Lenient lookup by value; returns None for anything not in the enum."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls((str(raw or "")).strip().lower())
        except ValueError:
            return None


def _iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


class Package(Base):
    __tablename__ = "packages"
    __table_args__ = (
        Index("idx_packages_status", "status"),
        Index("idx_packages_last_updated", "last_updated"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)

    # Immutable public identifier (uppercase A-Z0-9, 8-20 chars)
    tracking_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default=PackageStatus.CREATED.value)
    current_location: Mapped[str] = mapped_column(Text, nullable=False)
    destination: Mapped[str] = mapped_column(Text, nullable=False)

    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    estimated_delivery: Mapped[date | None] = mapped_column(Date, nullable=True)

    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    status_updates: Mapped[list["StatusUpdate"]] = relationship(
        "StatusUpdate",
        back_populates="package",
        cascade="all, delete-orphan",
        lazy="select",
        order_by="StatusUpdate.timestamp",
    )

    def to_dict(self) -> dict[str, Any]:
        from app.swiftship.utils import format_status_label

        return {
            "id": self.id,
            "trackingNumber": self.tracking_number,
            "status": self.status,
            "statusLabel": format_status_label(self.status),
            "currentLocation": self.current_location,
            "destination": self.destination,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "estimatedDelivery": _iso(self.estimated_delivery),
            "lastUpdated": _iso(self.last_updated),
        }


class StatusUpdate(Base):
    """Append-only status history entry. Never updated or deleted."""

    __tablename__ = "status_updates"
    __table_args__ = (
        Index("idx_status_updates_package_timestamp", "package_id", "timestamp"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    package_id: Mapped[str] = mapped_column(ForeignKey("packages.id", ondelete="CASCADE"), nullable=False)

    status: Mapped[str] = mapped_column(String(32), nullable=False)
    location: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    package: Mapped[Package] = relationship("Package", back_populates="status_updates")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "packageId": self.package_id,
            "status": self.status,
            "location": self.location,
            "notes": self.notes,
            "timestamp": _iso(self.timestamp),
        }
