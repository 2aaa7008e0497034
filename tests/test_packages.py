"""Tests for the package repository and the public tracking endpoint."""
import threading

import pytest

from app.swiftship import create_app
from app.swiftship.db import session_scope
from app.swiftship.errors import DuplicateTrackingNumber, NotFound, ValidationError
from app.swiftship.models import Base, User
from app.swiftship.modules.packages import repository, service
from app.swiftship.modules.packages.repository import (
    NewPackage,
    PackageUpdate,
    create_package,
    create_status_update,
    get_all_packages,
    get_latest_status_update,
    get_package_by_tracking_number,
    get_package_stats,
    get_packages_by_status,
    get_recent_packages,
    get_status_updates_by_package_id,
    update_package,
)
from app.swiftship.modules.packages.service import SAMPLE_PACKAGES, generate_tracking_number, seed_sample_data


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _new(tn="SW100000001", **kw):
    data = {
        "tracking_number": tn,
        "status": "created",
        "current_location": "Boston, MA",
        "destination": "Austin, TX",
    }
    data.update(kw)
    return NewPackage(**data)


# ---------- Repository ----------
def test_create_and_lookup_round_trip(app):
    with session_scope(app) as s:
        pkg = create_package(s, _new(customer_name="Dana Reyes", customer_email="dana@example.com"))
        pkg_id = pkg.id

    with session_scope(app) as s:
        found = get_package_by_tracking_number(s, "SW100000001")
        assert found is not None
        assert found.id == pkg_id
        assert found.status == "created"
        assert found.current_location == "Boston, MA"
        assert found.customer_email == "dana@example.com"
        assert get_package_by_tracking_number(s, "SW999999999") is None


def test_create_normalizes_tracking_number(app):
    with session_scope(app) as s:
        pkg = create_package(s, _new(tn="sw-100 000 002"))
        assert pkg.tracking_number == "SW100000002"


def test_create_rejects_invalid_input(app):
    with session_scope(app) as s:
        with pytest.raises(ValidationError) as exc:
            create_package(s, _new(tn="SW1", status="lost", current_location=" ", customer_email="bad"))
        errors = exc.value.errors
        assert "Tracking number must be 8-20 uppercase letters or digits" in errors
        assert "Valid status is required" in errors
        assert "Current location is required" in errors
        assert "Valid email address is required" in errors


def test_duplicate_tracking_number_rejected(app):
    with session_scope(app) as s:
        create_package(s, _new())

    with session_scope(app) as s:
        with pytest.raises(DuplicateTrackingNumber):
            create_package(s, _new(destination="Denver, CO"))


def test_duplicate_on_flush_keeps_rest_of_transaction(app, monkeypatch):
    with session_scope(app) as s:
        create_package(s, _new("SW100000001"))

    with session_scope(app) as s:
        create_package(s, _new("SW100000002"))
        with monkeypatch.context() as m:
            # Simulate losing the race: the pre-check misses the concurrent insert.
            m.setattr(repository, "get_package_by_tracking_number", lambda _s, _tn: None)
            with pytest.raises(DuplicateTrackingNumber):
                create_package(s, _new("SW100000001", destination="Denver, CO"))

    with session_scope(app) as s:
        assert get_package_by_tracking_number(s, "SW100000002") is not None
        assert get_package_by_tracking_number(s, "SW100000001").destination == "Austin, TX"


def test_update_applies_only_supplied_fields(app):
    with session_scope(app) as s:
        pkg = create_package(s, _new(customer_name="Dana Reyes"))
        before = pkg.last_updated
        updated = update_package(s, pkg.id, PackageUpdate(status="in_transit"))
        assert updated.status == "in_transit"
        assert updated.current_location == "Boston, MA"
        assert updated.destination == "Austin, TX"
        assert updated.customer_name == "Dana Reyes"
        assert updated.last_updated >= before

        cleared = update_package(s, pkg.id, PackageUpdate(customer_name=""))
        assert cleared.customer_name is None
        assert cleared.status == "in_transit"


def test_update_unknown_package(app):
    with session_scope(app) as s:
        with pytest.raises(NotFound):
            update_package(s, "does-not-exist", PackageUpdate(status="delivered"))


def test_status_update_timestamps_strictly_increase(app):
    with session_scope(app) as s:
        pkg = create_package(s, _new())
        for status in ("created", "picked_up", "in_transit", "out_for_delivery"):
            create_status_update(s, package_id=pkg.id, status=status, location="Hub")
        history = get_status_updates_by_package_id(s, pkg.id)
        stamps = [su.timestamp for su in history]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == len(stamps)
        assert [su.status for su in history] == ["created", "picked_up", "in_transit", "out_for_delivery"]
        assert get_latest_status_update(s, pkg.id).status == "out_for_delivery"


def test_status_update_requires_location_and_valid_status(app):
    with session_scope(app) as s:
        pkg = create_package(s, _new())
        with pytest.raises(ValidationError):
            create_status_update(s, package_id=pkg.id, status="teleported", location="")


def test_listing_and_stats(app):
    with session_scope(app) as s:
        a = create_package(s, _new("SW100000001"))
        b = create_package(s, _new("SW100000002", status="delivered"))
        update_package(s, a.id, PackageUpdate(current_location="Hartford, CT"))

        assert [p.tracking_number for p in get_all_packages(s)][0] == a.tracking_number
        assert [p.tracking_number for p in get_packages_by_status(s, "delivered")] == [b.tracking_number]
        assert [p.tracking_number for p in get_recent_packages(s, limit=1)] == [a.tracking_number]

        stats = get_package_stats(s)
        assert stats["packages"]["total"] == 2
        assert stats["packages"]["byStatus"]["delivered"] == 1
        assert stats["packages"]["byStatus"]["exception"] == 0


def test_generated_tracking_number_shape():
    tn = generate_tracking_number(now_ms=1700000123456)
    assert tn.startswith("SW00123456")
    assert len(tn) == 13
    assert tn.isalnum() and tn == tn.upper()


def test_seed_sample_data_is_idempotent(app):
    with session_scope(app) as s:
        created = seed_sample_data(s)
    assert len(created) == len(SAMPLE_PACKAGES)

    with session_scope(app) as s:
        assert seed_sample_data(s) == []
        for sample in SAMPLE_PACKAGES:
            pkg = get_package_by_tracking_number(s, sample["tracking_number"])
            latest = get_latest_status_update(s, pkg.id)
            # The package mirrors its most recent history entry.
            assert latest.status == pkg.status
            assert latest.location == pkg.current_location


# ---------- Public tracking API ----------
def test_track_empty_store_is_404(client):
    r = client.get("/api/track?trackingNumber=SW123456789")
    assert r.status_code == 404
    assert r.json["success"] is False
    assert "not found" in r.json["message"].lower()


def test_track_requires_tracking_number(client):
    r = client.get("/api/track")
    assert r.status_code == 400
    r = client.post("/api/track", json={"trackingNumber": "   "})
    assert r.status_code == 400
    assert r.json["message"] == "Valid tracking number is required"


def test_track_returns_package_and_history(app, client):
    with session_scope(app) as s:
        seed_sample_data(s)

    r = client.get("/api/track", query_string={"trackingNumber": " SW123456789 "})
    assert r.status_code == 200
    body = r.json["package"]
    assert body["trackingNumber"] == "SW123456789"
    assert body["status"] == "in_transit"
    assert body["statusLabel"] == "In Transit"
    assert [h["status"] for h in body["statusHistory"]] == ["created", "picked_up", "in_transit"]
    assert body["statusHistory"][-1]["location"] == body["currentLocation"]

    r = client.post("/api/track", json={"trackingNumber": "SW987654321"})
    assert r.status_code == 200
    assert r.json["package"]["status"] == "delivered"
    assert len(r.json["package"]["statusHistory"]) == 5


def test_track_lookup_is_case_sensitive(app, client):
    with session_scope(app) as s:
        seed_sample_data(s)
    r = client.get("/api/track?trackingNumber=sw123456789")
    assert r.status_code == 404


# ---------- Concurrency ----------
def test_concurrent_updates_keep_package_and_history_in_step(app, monkeypatch):
    operator = User(email="ops@example.com", password_hash="x", is_active=True)
    with session_scope(app) as s:
        pkg = create_package(s, _new())
        create_status_update(s, package_id=pkg.id, status="created", location="Boston, MA")

    errors = []

    def _move_to_denver():
        try:
            with session_scope(app) as s2:
                service.admin_update_package(s2, operator, {"trackingNumber": "SW100000001", "location": "Denver, CO"})
        except Exception as e:
            errors.append(e)

    other = threading.Thread(target=_move_to_denver)
    real_lock = service.get_package_for_update

    def _lock_then_let_other_writer_run(s, tracking_number):
        locked = real_lock(s, tracking_number)
        if other.ident is None:
            # The second writer must not slip in between this read and our write.
            other.start()
            other.join(timeout=0.5)
        return locked

    monkeypatch.setattr(service, "get_package_for_update", _lock_then_let_other_writer_run)

    with session_scope(app) as s:
        service.admin_update_package(s, operator, {"trackingNumber": "SW100000001", "status": "delivered"})
    other.join(timeout=10)
    assert not other.is_alive()
    assert errors == []

    with session_scope(app) as s:
        pkg = get_package_by_tracking_number(s, "SW100000001")
        latest = get_latest_status_update(s, pkg.id)
        assert (pkg.status, pkg.current_location) == (latest.status, latest.location)
        assert (pkg.status, pkg.current_location) == ("delivered", "Denver, CO")
        assert len(get_status_updates_by_package_id(s, pkg.id)) == 3
