from __future__ import annotations

from datetime import date, datetime


def format_status_label(status: str | None) -> str:
    """Display label for a status value: "out_for_delivery" -> "Out For Delivery"."""
    if not status:
        return "—"
    return " ".join(part.capitalize() for part in str(status).split("_") if part)


def parse_delivery_date(raw: str | None) -> date | None:
    """
    Parse an estimated-delivery value: YYYY-MM-DD or a full ISO timestamp.
    Raises ValueError for anything else.
    """
    if raw is None:
        return None
    s = str(raw).strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        pass
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s).date()
