"""Guest Mode schema: roles, users, daily_usage, request_log.

Idempotent: app startup runs Base.metadata.create_all before Alembic, so each
table is only created when missing. Built-in roles are seeded if absent.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ROLES = [
    # -1 = unlimited, NULL = configured default (DAILY_LIMIT / VELOCITY_LIMIT)
    {"id": 0, "name": "banned", "daily_limit": 0, "velocity_limit": 0, "description": "Blocked from all access"},
    {"id": 1, "name": "guest", "daily_limit": None, "velocity_limit": None, "description": "Default free tier"},
    {"id": 2, "name": "admin", "daily_limit": -1, "velocity_limit": -1, "description": "Unlimited access, bypasses all checks"},
]


def upgrade() -> None:
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    tables = set(inspector.get_table_names())

    if "roles" not in tables:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
            sa.Column("name", sa.String(50), nullable=False, unique=True),
            sa.Column("daily_limit", sa.Integer(), nullable=True),
            sa.Column("velocity_limit", sa.Integer(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
        )

    if "users" not in tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("client_token", sa.String(128), nullable=False),
            sa.Column("device_signature", sa.String(128), nullable=False),
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id"), nullable=False, server_default="1"),
            sa.Column("ban_reason", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("last_seen_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index("ix_users_id", "users", ["id"])
        op.create_index("ix_users_client_token", "users", ["client_token"], unique=True)
        op.create_index("ix_users_device_signature", "users", ["device_signature"])

    if "daily_usage" not in tables:
        op.create_table(
            "daily_usage",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("usage_date", sa.Date(), nullable=False),
            sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_used_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.UniqueConstraint("user_id", "usage_date", name="uq_daily_usage_user_date"),
        )

    if "request_log" not in tables:
        op.create_table(
            "request_log",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("idx_logs_user_time", "request_log", ["user_id", "requested_at"])

    roles = sa.table(
        "roles",
        sa.column("id", sa.Integer),
        sa.column("name", sa.String),
        sa.column("daily_limit", sa.Integer),
        sa.column("velocity_limit", sa.Integer),
        sa.column("description", sa.Text),
    )
    existing = {row[0] for row in conn.execute(sa.text("SELECT name FROM roles"))}
    missing = [role for role in ROLES if role["name"] not in existing]
    if missing:
        op.bulk_insert(roles, missing)


def downgrade() -> None:
    op.drop_table("request_log")
    op.drop_table("daily_usage")
    op.drop_table("users")
    op.drop_table("roles")
