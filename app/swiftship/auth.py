from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from werkzeug.security import check_password_hash

from app.swiftship.audit import record_event
from app.swiftship.constants import UNAUTHENTICATED_PREFIXES
from app.swiftship.db import db_session
from app.swiftship.errors import SwiftShipError, Unauthorized, ValidationError
from app.swiftship.models import User
from app.swiftship.security import ensure_csrf_token
from app.swiftship.validation import FORM_SCHEMAS, get_all_errors, is_form_valid, validate_form

bp = Blueprint("auth", __name__)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


class TooManyAttempts(SwiftShipError):
    status_code = 429
    error = "Too many requests"
    default_message = "Too many login attempts. Please wait 5 minutes."


def _attempts() -> dict[str, list[datetime]]:
    # Per-app so separate app instances (tests, workers) don't share counters.
    return current_app.extensions.setdefault("login_attempts", defaultdict(list))


def _check_rate_limit(ip: str) -> bool:
    attempts = _attempts()
    cutoff = datetime.utcnow() - timedelta(seconds=_LOGIN_RATE_WINDOW)
    attempts[ip] = [t for t in attempts[ip] if t > cutoff]
    return len(attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _attempts()[ip].append(datetime.utcnow())


def _user_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "roles": [r.key for r in user.roles],
    }


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(UNAUTHENTICATED_PREFIXES):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.is_active:
            session.pop("user_id", None)
            g.current_user = None
            return
        g.current_user = user
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None


@bp.post("/login")
def login_post():
    body = request.get_json(silent=True) if request.is_json else None
    data = body if isinstance(body, dict) else request.form
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    ip = request.remote_addr or "unknown"

    results = validate_form({"email": email, "password": password}, FORM_SCHEMAS["login"])
    if not is_form_valid(results):
        raise ValidationError(errors=get_all_errors(results))

    if _check_rate_limit(ip):
        raise TooManyAttempts()

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email,
                reason="Invalid credentials",
                metadata={"email": email},
            )
            s.commit()
            raise Unauthorized("Invalid credentials.")

        session.clear()
        session["user_id"] = user.id
        _attempts()[ip].clear()
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
        s.commit()
        return jsonify(
            {
                "success": True,
                "message": "Logged in",
                "user": _user_dict(user),
                "csrfToken": ensure_csrf_token(),
            }
        )
    except SwiftShipError:
        raise
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return jsonify({"success": True, "message": "Logged out"})


@bp.get("/me")
def me():
    user = getattr(g, "current_user", None)
    if not user:
        raise Unauthorized()
    return jsonify({"success": True, "message": "Authenticated", "user": _user_dict(user), "csrfToken": ensure_csrf_token()})
