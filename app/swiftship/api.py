"""
Public JSON API: tracking lookups, contact form, health.
"""
from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.swiftship.db import db_session
from app.swiftship.modules.contact.service import submit_contact
from app.swiftship.modules.packages.service import track
from app.swiftship.routes import detailed_health_response, health_response

bp = Blueprint("api", __name__)


def json_body() -> dict:
    """Request JSON as a dict; form data is accepted too for plain HTML posts."""
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        return body
    return request.form.to_dict()


@bp.route("/track", methods=["GET", "POST"])
def track_package():
    if request.method == "GET":
        raw = request.args.get("trackingNumber")
    else:
        raw = json_body().get("trackingNumber")

    result = track(db_session(), raw)
    return jsonify(
        {
            "success": True,
            "message": "Package tracking information retrieved successfully",
            "package": result.to_dict(),
        }
    )


@bp.post("/contact")
def contact():
    s = db_session()
    submit_contact(s, json_body())
    s.commit()
    return (
        jsonify({"success": True, "message": "Thank you for your message! We will get back to you soon."}),
        201,
    )


@bp.get("/health")
def api_health():
    return health_response()


@bp.get("/health-detailed")
def api_health_detailed():
    return detailed_health_response()
