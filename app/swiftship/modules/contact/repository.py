from __future__ import annotations

from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from .models import ContactSubmission


def create_contact_submission(s: Session, *, name: str, email: str, message: str) -> ContactSubmission:
    submission = ContactSubmission(
        name=name,
        email=email,
        message=message,
        submitted_at=datetime.utcnow(),
        resolved=False,
    )
    s.add(submission)
    s.flush()
    return submission


def get_contact_submission_by_id(s: Session, contact_id: str) -> ContactSubmission | None:
    return s.get(ContactSubmission, contact_id)


def get_all_contact_submissions(s: Session) -> list[ContactSubmission]:
    return s.query(ContactSubmission).order_by(ContactSubmission.submitted_at.desc()).all()


def get_unresolved_contact_submissions(s: Session) -> list[ContactSubmission]:
    return (
        s.query(ContactSubmission)
        .filter(ContactSubmission.resolved.is_(False))
        .order_by(ContactSubmission.submitted_at.desc())
        .all()
    )


def mark_contact_submission_resolved(s: Session, contact_id: str) -> bool:
    """Returns False when no submission has this id."""
    submission = get_contact_submission_by_id(s, contact_id)
    if submission is None:
        return False
    submission.resolved = True
    s.flush()
    return True


def get_contact_stats(s: Session) -> dict:
    total = int(s.query(func.count(ContactSubmission.id)).scalar() or 0)
    resolved = int(
        s.query(func.count(ContactSubmission.id)).filter(ContactSubmission.resolved.is_(True)).scalar() or 0
    )
    return {"total": total, "resolved": resolved, "unresolved": total - resolved}
