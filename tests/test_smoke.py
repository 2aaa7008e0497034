import pytest
from sqlalchemy import text

from app.swiftship import create_app
from app.swiftship.db import session_scope
from app.swiftship.models import Base
from scripts.init_db import seed_admin_user, seed_permissions


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.delenv("SEED_DATABASE", raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        role = seed_permissions(s)
        s.flush()
        seed_admin_user(s, role, email="admin@example.com", password="password123")

    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["status"] == "healthy"
    assert r.json["database"]["status"] == "connected"
    assert r.headers["Cache-Control"].startswith("no-cache")


def test_api_health_and_healthz(client):
    assert client.get("/api/health").status_code == 200
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_health_reports_unreachable_database(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'missing'/'nested'/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    r = app.test_client().get("/health")
    assert r.status_code == 503
    assert r.json["status"] == "unhealthy"
    assert r.json["database"]["status"] == "disconnected"


def test_detailed_health_reports_schema_and_access(client):
    for path in ("/health/detailed", "/api/health-detailed"):
        r = client.get(path)
        assert r.status_code == 200
        assert r.json["status"] == "healthy"
        db = r.json["database"]
        assert db["status"] == "connected"
        assert db["tablesExist"] and db["indexesExist"] and db["canRead"] and db["canWrite"]
        assert db["missingTables"] == [] and db["missingIndexes"] == []
        assert r.json["recommendations"] == []


def test_detailed_health_degraded_when_index_missing(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    with engine.begin() as conn:
        conn.execute(text("DROP INDEX idx_packages_status"))

    r = app.test_client().get("/health/detailed")
    assert r.status_code == 200
    assert r.json["status"] == "degraded"
    assert r.json["database"]["missingIndexes"] == ["idx_packages_status"]
    assert any("indexes are missing" in rec for rec in r.json["recommendations"])


def test_detailed_health_unhealthy_without_schema(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'empty.db'}")
    monkeypatch.setenv("ENV", "test")

    r = create_app().test_client().get("/health/detailed")
    assert r.status_code == 503
    assert r.json["status"] == "unhealthy"
    db = r.json["database"]
    assert db["status"] == "error"
    assert db["tablesExist"] is False
    assert "packages" in db["missingTables"]
    assert any("tables are missing" in rec for rec in r.json["recommendations"])


def test_production_requires_postgres(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "a-strong-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError):
        create_app()


def test_unknown_route_is_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json["success"] is False


def test_wrong_method_returns_405_with_allow(client):
    r = client.get("/api/contact")
    assert r.status_code == 405
    assert r.json["success"] is False
    assert "POST" in r.headers["Allow"]

    r = client.delete("/api/track")
    assert r.status_code == 405
    allow = r.headers["Allow"]
    assert "GET" in allow and "POST" in allow


def test_login_logout_and_me(client):
    r = client.get("/auth/me")
    assert r.status_code == 401

    r = client.post("/auth/login", json={"email": "admin@example.com", "password": "wrong-password"})
    assert r.status_code == 401
    assert r.json["success"] is False

    r = client.post("/auth/login", json={"email": "Admin@Example.com", "password": "password123"})
    assert r.status_code == 200
    assert r.json["user"]["email"] == "admin@example.com"
    assert r.json["csrfToken"]

    r = client.get("/auth/me")
    assert r.status_code == 200
    assert "admin" in r.json["user"]["roles"]

    r = client.post("/auth/logout")
    assert r.status_code == 200
    assert client.get("/auth/me").status_code == 401


def test_login_form_post_and_validation(client):
    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "password123"})
    assert r.status_code == 200

    r = client.post("/auth/login", json={"email": "not-an-email", "password": "123"})
    assert r.status_code == 400
    assert "Please enter a valid email address" in r.json["errors"]
    assert "Password must be at least 6 characters" in r.json["errors"]


def test_login_rate_limited_after_repeated_failures(client):
    for _ in range(5):
        r = client.post("/auth/login", json={"email": "admin@example.com", "password": "wrong-password"})
        assert r.status_code == 401

    r = client.post("/auth/login", json={"email": "admin@example.com", "password": "password123"})
    assert r.status_code == 429
