import os
import sys
from contextlib import contextmanager
from pathlib import Path

from werkzeug.security import generate_password_hash
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.swiftship.config import load_settings
from app.swiftship.constants import PERMISSIONS
from app.swiftship.models import Permission, Role, User
from app.swiftship.modules.packages.service import seed_sample_data


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def seed_permissions(s: Session) -> Role:
    """Create every permission and the "admin" role holding all of them. Idempotent."""
    perms: list[Permission] = []
    for key, name in PERMISSIONS:
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        perms.append(p)

    role_admin = s.query(Role).filter(Role.key == "admin").one_or_none()
    if not role_admin:
        role_admin = Role(key="admin", name="Administrator")
        s.add(role_admin)

    for p in perms:
        if p not in role_admin.permissions:
            role_admin.permissions.append(p)
    return role_admin


def seed_admin_user(s: Session, role_admin: Role, *, email: str, password: str) -> User:
    """Create the admin user if missing. Never overwrites an existing password."""
    u = s.query(User).filter(User.email == email).one_or_none()
    if not u:
        u = User(email=email, name="Administrator", password_hash=generate_password_hash(password), is_active=True)
        s.add(u)
        print(f"Created admin user {email}", flush=True)
    if role_admin not in u.roles:
        u.roles.append(role_admin)
    return u


def seed_only(*, database_url: str | None = None, sample_data: bool | None = None) -> None:
    """
    Seed permissions/roles/admin user in an idempotent way.
    Demo packages are added only when SEED_DATABASE is set (or sample_data=True).
    """
    settings = load_settings()
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@swiftship.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    db_url = (database_url or settings.database_url).strip()
    if sample_data is None:
        sample_data = settings.seed_database

    # Direct engine/session so this can run in release without importing app.wsgi.
    with _session_scope(db_url) as s:
        role_admin = seed_permissions(s)
        s.flush()
        seed_admin_user(s, role_admin, email=admin_email, password=admin_password)

        if sample_data:
            created = seed_sample_data(s)
            print(f"Sample packages created: {', '.join(created) or '(none, already present)'}", flush=True)


def main() -> None:
    seed_only()
    print("Seed complete.", flush=True)


if __name__ == "__main__":
    main()
