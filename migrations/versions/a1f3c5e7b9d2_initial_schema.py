"""initial schema: auth, audit, packages, status history, contact

Revision ID: a1f3c5e7b9d2
Revises:
Create Date: 2026-10-17 09:12:44.301552

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = 'a1f3c5e7b9d2'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    existing_tables = set(inspect(bind).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False, unique=True),
            sa.Column("name", sa.String(length=255), nullable=True),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        )

    if "roles" not in existing_tables:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("key", sa.String(length=64), nullable=False, unique=True),
            sa.Column("name", sa.String(length=128), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        )

    if "permissions" not in existing_tables:
        op.create_table(
            "permissions",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("key", sa.String(length=128), nullable=False, unique=True),
            sa.Column("name", sa.String(length=128), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        )

    if "user_roles" not in existing_tables:
        op.create_table(
            "user_roles",
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        )

    if "role_permissions" not in existing_tables:
        op.create_table(
            "role_permissions",
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("permission_id", sa.Integer(), sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
        )

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("client_ip", sa.String(length=64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_email", sa.String(length=320), nullable=True),
            sa.Column("action", sa.String(length=128), nullable=False),
            sa.Column("entity_type", sa.String(length=128), nullable=True),
            sa.Column("entity_id", sa.String(length=128), nullable=True),
            sa.Column("reason", sa.String(length=512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
        )

    if "packages" not in existing_tables:
        op.create_table(
            "packages",
            sa.Column("id", sa.String(length=32), primary_key=True, nullable=False),
            sa.Column("tracking_number", sa.String(length=20), nullable=False, unique=True),
            sa.Column("status", sa.String(length=32), nullable=False),
            sa.Column("current_location", sa.Text(), nullable=False),
            sa.Column("destination", sa.Text(), nullable=False),
            sa.Column("customer_name", sa.String(length=255), nullable=True),
            sa.Column("customer_email", sa.String(length=320), nullable=True),
            sa.Column("estimated_delivery", sa.Date(), nullable=True),
            sa.Column("last_updated", sa.DateTime(timezone=False), nullable=False),
        )
        op.create_index("idx_packages_status", "packages", ["status"])
        op.create_index("idx_packages_last_updated", "packages", ["last_updated"])

    if "status_updates" not in existing_tables:
        op.create_table(
            "status_updates",
            sa.Column("id", sa.String(length=32), primary_key=True, nullable=False),
            sa.Column("package_id", sa.String(length=32), sa.ForeignKey("packages.id", ondelete="CASCADE"), nullable=False),
            sa.Column("status", sa.String(length=32), nullable=False),
            sa.Column("location", sa.Text(), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=False), nullable=False),
        )
        op.create_index("idx_status_updates_package_timestamp", "status_updates", ["package_id", "timestamp"])

    if "contact_submissions" not in existing_tables:
        op.create_table(
            "contact_submissions",
            sa.Column("id", sa.String(length=32), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("submitted_at", sa.DateTime(timezone=False), nullable=False),
            sa.Column("resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
        )
        op.create_index("idx_contact_submissions_submitted_at", "contact_submissions", ["submitted_at"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("idx_contact_submissions_submitted_at", table_name="contact_submissions")
    op.drop_table("contact_submissions")
    op.drop_index("idx_status_updates_package_timestamp", table_name="status_updates")
    op.drop_table("status_updates")
    op.drop_index("idx_packages_last_updated", table_name="packages")
    op.drop_index("idx_packages_status", table_name="packages")
    op.drop_table("packages")
    op.drop_table("audit_events")
    op.drop_table("role_permissions")
    op.drop_table("user_roles")
    op.drop_table("permissions")
    op.drop_table("roles")
    op.drop_table("users")
