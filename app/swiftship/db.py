from __future__ import annotations

from contextlib import contextmanager
from collections.abc import Generator
import time
from typing import Any

from flask import Flask, current_app, g
from sqlalchemy import create_engine, event, inspect as sa_inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

REQUIRED_TABLES = (
    "users",
    "roles",
    "permissions",
    "user_roles",
    "role_permissions",
    "audit_events",
    "packages",
    "status_updates",
    "contact_submissions",
)
REQUIRED_INDEXES = {
    "packages": ("idx_packages_status", "idx_packages_last_updated"),
    "status_updates": ("idx_status_updates_package_timestamp",),
    "contact_submissions": ("idx_contact_submissions_submitted_at",),
}


def init_db(app: Flask) -> None:
    db_url = app.config["DATABASE_URL"]
    is_postgres = db_url.startswith("postgres")
    engine_kwargs: dict[str, object] = {
        "future": True,
        "pool_pre_ping": True,
    }
    if is_postgres:
        engine_kwargs.update(
            {
                "pool_recycle": 1800,
                "pool_size": 5,
                "max_overflow": 10,
                "pool_timeout": 30,
            }
        )
    engine = create_engine(db_url, **engine_kwargs)
    if db_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record):  # type: ignore[no-redef]
            # Enforce status_updates.package_id -> packages.id on SQLite too.
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
            # pysqlite defers BEGIN until the first write; let SQLAlchemy emit it instead.
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _sqlite_begin_immediate(conn):  # type: ignore[no-redef]
            # SQLite ignores FOR UPDATE; taking the write lock at BEGIN serializes
            # read-then-write transactions on the same package.
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    if app.config.get("ENV") != "production":
        @event.listens_for(engine, "checkout")
        def _receive_checkout(dbapi_connection, connection_record, connection_proxy):  # type: ignore[no-redef]
            app.logger.debug("DB connection checkout from pool")
    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def db_session(app: Flask | None = None) -> Session:
    """
    Request-scoped session. Use inside request handlers.
    """
    if hasattr(g, "db_session") and g.db_session is not None:
        return g.db_session
    if app is None:
        app = current_app
    sm = app.extensions["sqlalchemy_sessionmaker"]
    g.db_session = sm()  # type: ignore[assignment]
    return g.db_session


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = getattr(g, "db_session", None)
    if s is not None:
        try:
            if _exc is not None:
                s.rollback()
            s.close()
        except Exception as e:
            current_app.logger.warning("DB session teardown failed: %s", e)
        g.db_session = None


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """
    Non-request helper for scripts: yields a session and commits/rolls back.
    """
    sm = app.extensions["sqlalchemy_sessionmaker"]
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def check_database(app: Flask) -> tuple[bool, str]:
    """Round-trip a trivial query. Returns (ok, message) and never raises."""
    engine = app.extensions.get("sqlalchemy_engine")
    if engine is None:
        return False, "Database engine not initialized"
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True, "Database connection successful"
    except Exception as e:
        app.logger.error("Database health check failed: %s", e)
        return False, "Database connection failed"


def missing_schema(engine: Engine) -> tuple[list[str], list[str]]:
    """(missing tables, missing indexes) compared with the current migration head."""
    insp = sa_inspect(engine)
    tables = [t for t in REQUIRED_TABLES if not insp.has_table(t)]
    indexes: list[str] = []
    for table, names in REQUIRED_INDEXES.items():
        if table in tables:
            indexes.extend(names)
            continue
        present = {ix.get("name") for ix in insp.get_indexes(table)}
        indexes.extend(n for n in names if n not in present)
    return tables, indexes


def check_database_detailed(app: Flask) -> dict[str, Any]:
    """
    Connectivity, schema presence, and read/write checks. Never raises.

    The write check is a zero-row UPDATE inside a rolled-back transaction, so it
    needs write access but changes nothing.
    """
    report: dict[str, Any] = {
        "connected": False,
        "connectionTime": 0,
        "tablesExist": False,
        "indexesExist": False,
        "canRead": False,
        "canWrite": False,
        "tableCount": 0,
        "indexCount": 0,
        "missingTables": list(REQUIRED_TABLES),
        "missingIndexes": [n for names in REQUIRED_INDEXES.values() for n in names],
        "error": None,
    }
    engine: Engine | None = app.extensions.get("sqlalchemy_engine")
    if engine is None:
        report["error"] = "Database engine not initialized"
        return report

    started = time.perf_counter()
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        report["connected"] = True
    except SQLAlchemyError as e:
        app.logger.error("Detailed health check: connection failed: %s", e)
        report["error"] = "Database connection failed"
    report["connectionTime"] = int((time.perf_counter() - started) * 1000)
    if not report["connected"]:
        return report

    try:
        tables, indexes = missing_schema(engine)
    except SQLAlchemyError as e:
        app.logger.error("Detailed health check: schema inspection failed: %s", e)
        report["error"] = "Schema inspection failed"
        return report
    report["missingTables"] = tables
    report["missingIndexes"] = indexes
    report["tablesExist"] = not tables
    report["indexesExist"] = not indexes
    report["tableCount"] = len(REQUIRED_TABLES) - len(tables)
    report["indexCount"] = sum(len(names) for names in REQUIRED_INDEXES.values()) - len(indexes)

    if "packages" in tables:
        return report

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT COUNT(*) FROM packages")).scalar()
        report["canRead"] = True
    except SQLAlchemyError as e:
        app.logger.warning("Detailed health check: read check failed: %s", e)

    try:
        with engine.connect() as conn:
            trans = conn.begin()
            try:
                conn.execute(text("UPDATE packages SET last_updated = last_updated WHERE 1 = 0"))
            finally:
                trans.rollback()
        report["canWrite"] = True
    except SQLAlchemyError as e:
        app.logger.warning("Detailed health check: write check failed: %s", e)

    return report
