import logging
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request, session
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException, MethodNotAllowed

from app.swiftship.config import load_config
from app.swiftship.db import init_db, missing_schema, teardown_db_session
from app.swiftship.errors import StorageUnavailable, SwiftShipError, ValidationError
from app.swiftship.routes import bp as routes_bp
from app.swiftship.api import bp as api_bp
from app.swiftship.auth import bp as auth_bp, load_current_user
from app.swiftship.modules.packages.admin import bp as packages_admin_bp

_WRITE_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    logging.basicConfig(level=app.config["LOG_LEVEL"], format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.logger.setLevel(app.config["LOG_LEVEL"])
    logging.getLogger("app.swiftship").setLevel(app.config["LOG_LEVEL"])

    from app.swiftship.security import validate_csrf

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os

        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(packages_admin_bp, url_prefix="/api/admin")

    app.before_request(load_current_user)

    @app.before_request
    def _csrf_guard():
        if not app.config.get("CSRF_ENABLED"):
            return None
        if request.method not in _WRITE_METHODS or not request.path.startswith("/api/admin"):
            return None
        # Anonymous callers fall through to the permission gate (401).
        if getattr(g, "current_user", None) is None:
            return None
        session.permanent = True
        if not validate_csrf(request):
            raise ValidationError("CSRF token missing or invalid.", error="CSRF validation failed")
        return None

    app.teardown_appcontext(teardown_db_session)

    def _run_schema_health_check() -> None:
        # Startup log only; /health/detailed reports the same data on demand.
        try:
            tables, indexes = missing_schema(app.extensions["sqlalchemy_engine"])
        except SQLAlchemyError as e:
            app.logger.warning("Schema health check failed: %s", e)
            return
        if tables or indexes:
            app.logger.warning(
                "DB schema incomplete; run `alembic upgrade head`. Missing: %s",
                ", ".join(tables + indexes),
            )

    _run_schema_health_check()

    @app.errorhandler(SwiftShipError)
    def _err_swiftship(e: SwiftShipError):
        if e.status_code == 403:
            app.logger.warning(
                "Forbidden: missing_permission=%s request_id=%s",
                getattr(g, "missing_permission", None),
                getattr(g, "request_id", None),
            )
        elif e.status_code >= 500:
            app.logger.error("%s (request_id=%s)", e.message, getattr(g, "request_id", None))
        return jsonify(e.to_envelope()), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def _err_storage(e: SQLAlchemyError):
        app.logger.exception("Storage failure (request_id=%s)", getattr(g, "request_id", None))
        err = StorageUnavailable()
        return jsonify(err.to_envelope()), err.status_code

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):
        body = {"success": False, "message": e.description, "error": e.name}
        resp = jsonify(body)
        resp.status_code = e.code or 500
        if isinstance(e, MethodNotAllowed) and e.valid_methods:
            resp.headers["Allow"] = ", ".join(sorted(e.valid_methods))
        return resp

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in the service logs.
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        body = {
            "success": False,
            "message": "An unexpected error occurred. Please try again.",
            "error": "Internal server error",
        }
        return jsonify(body), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
