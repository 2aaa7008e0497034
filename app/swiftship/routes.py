from datetime import datetime

from flask import Blueprint, current_app, jsonify

from app.swiftship.constants import VERSION
from app.swiftship.db import check_database, check_database_detailed

bp = Blueprint("routes", __name__)


def health_response():
    """Health payload + status code: 200 when the database answers, 503 otherwise."""
    started = datetime.utcnow()
    ok, message = check_database(current_app)
    elapsed_ms = int((datetime.utcnow() - started).total_seconds() * 1000)
    resp = jsonify(
        {
            "status": "healthy" if ok else "unhealthy",
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "version": VERSION,
            "environment": current_app.config.get("ENV"),
            "database": {
                "status": "connected" if ok else "disconnected",
                "message": f"{message} ({elapsed_ms}ms)" if ok else message,
                "connectionTime": elapsed_ms,
            },
        }
    )
    resp.status_code = 200 if ok else 503
    resp.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    resp.headers["Pragma"] = "no-cache"
    resp.headers["Expires"] = "0"
    return resp


def detailed_health_response():
    """
    Schema and read/write health. 200 when healthy or degraded (reachable,
    partly working), 503 when unhealthy.
    """
    report = check_database_detailed(current_app)
    fully_ok = report["connected"] and report["tablesExist"] and report["canRead"] and report["canWrite"]

    recommendations: list[str] = []
    if not report["tablesExist"]:
        recommendations.append("Database tables are missing - run `alembic upgrade head`")
    if not report["canRead"]:
        recommendations.append("Database read operations are failing - check database integrity")
    if not report["canWrite"]:
        recommendations.append("Database write operations are failing - check permissions and disk space")
    if not report["indexesExist"]:
        recommendations.append("Database indexes are missing - performance may be degraded")
    if report["connectionTime"] > 5000:
        recommendations.append("Database connection is slow - check database configuration")

    if fully_ok and report["indexesExist"]:
        status, db_status = "healthy", "connected"
    elif report["connected"] and (report["canRead"] or report["canWrite"]):
        status, db_status = "degraded", "degraded"
    else:
        status = "unhealthy"
        db_status = "error" if report["connected"] else "disconnected"

    resp = jsonify(
        {
            "status": status,
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "version": VERSION,
            "environment": current_app.config.get("ENV"),
            "database": {
                "status": db_status,
                "connectionTime": report["connectionTime"],
                "tablesExist": report["tablesExist"],
                "indexesExist": report["indexesExist"],
                "canRead": report["canRead"],
                "canWrite": report["canWrite"],
                "tableCount": report["tableCount"],
                "indexCount": report["indexCount"],
                "missingTables": report["missingTables"],
                "missingIndexes": report["missingIndexes"],
                "error": report["error"],
            },
            "recommendations": recommendations,
        }
    )
    resp.status_code = 503 if status == "unhealthy" else 200
    resp.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    resp.headers["Pragma"] = "no-cache"
    resp.headers["Expires"] = "0"
    return resp


@bp.get("/")
def index():
    return {
        "service": "SwiftShip package tracking",
        "version": VERSION,
        "endpoints": {
            "track": "/api/track",
            "contact": "/api/contact",
            "health": "/health",
            "healthDetailed": "/health/detailed",
        },
    }


@bp.get("/health")
def health():
    """Health check endpoint with database connectivity. Returns JSON."""
    return health_response()


@bp.get("/health/detailed")
def health_detailed():
    return detailed_health_response()


@bp.get("/healthz")
def healthz():
    """
    Fast health check for load balancer checks. No DB access, minimal overhead.
    """
    return "ok", 200
