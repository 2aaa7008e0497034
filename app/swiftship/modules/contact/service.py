from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from app.swiftship.audit import record_event
from app.swiftship.errors import NotFound, ValidationError
from app.swiftship.rbac import require_principal
from app.swiftship.validation import FORM_SCHEMAS, get_all_errors, is_form_valid, sanitize_input, validate_form

from .models import ContactSubmission
from .repository import create_contact_submission, mark_contact_submission_resolved

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.swiftship.models import User

logger = logging.getLogger(__name__)


def submit_contact(s: "Session", payload: dict[str, Any]) -> ContactSubmission:
    """Validate and store a public contact inquiry."""
    data = {k: ("" if payload.get(k) is None else str(payload.get(k)).strip()) for k in ("name", "email", "message")}
    results = validate_form(data, FORM_SCHEMAS["contact"])
    if not is_form_valid(results):
        raise ValidationError(errors=get_all_errors(results))

    submission = create_contact_submission(
        s,
        name=sanitize_input(data["name"]),
        email=data["email"],
        message=sanitize_input(data["message"]),
    )
    logger.info("Contact submission created id=%s", submission.id)
    return submission


def resolve_contact(s: "Session", principal: "User | None", contact_id: str) -> None:
    user = require_principal(principal)
    if not mark_contact_submission_resolved(s, contact_id):
        raise NotFound("Contact submission not found", error="Invalid contact ID")
    record_event(
        s,
        actor=user,
        action="contact.resolve",
        entity_type="ContactSubmission",
        entity_id=contact_id,
    )
