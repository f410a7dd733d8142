"""initial smart home schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17 00:00:00

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: str | None = None
branch_labels = None
depends_on = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", ID_TYPE, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(254), nullable=False),
        sa.Column("password_hash", sa.String(256), nullable=False),
        sa.Column("first_name", sa.String(128), nullable=True),
        sa.Column("last_name", sa.String(128), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "houses",
        sa.Column("id", ID_TYPE, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("address", sa.String(512), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "user_houses",
        sa.Column("user_id", ID_TYPE, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("house_id", ID_TYPE, sa.ForeignKey("houses.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "rooms",
        sa.Column("id", ID_TYPE, primary_key=True, autoincrement=True),
        sa.Column("house_id", ID_TYPE, sa.ForeignKey("houses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("room_type", sa.String(64), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_rooms_house_id", "rooms", ["house_id"])

    op.create_table(
        "devices",
        sa.Column("id", ID_TYPE, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("device_type", sa.String(64), nullable=False),
        sa.Column("room_id", ID_TYPE, sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_devices_room_id", "devices", ["room_id"])

    op.create_table(
        "device_metrics",
        sa.Column("id", ID_TYPE, primary_key=True, autoincrement=True),
        sa.Column("device_id", ID_TYPE, sa.ForeignKey("devices.id", ondelete="CASCADE"), nullable=False),
        sa.Column("metric_type", sa.String(64), nullable=False),
        sa.Column("metric_value", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.Column("measured_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_device_metrics_metric_type", "device_metrics", ["metric_type"])
    op.create_index("ix_device_metrics_device_measured", "device_metrics", ["device_id", "measured_at"])


def downgrade() -> None:
    op.drop_index("ix_device_metrics_device_measured", table_name="device_metrics")
    op.drop_index("ix_device_metrics_metric_type", table_name="device_metrics")
    op.drop_table("device_metrics")
    op.drop_index("ix_devices_room_id", table_name="devices")
    op.drop_table("devices")
    op.drop_index("ix_rooms_house_id", table_name="rooms")
    op.drop_table("rooms")
    op.drop_table("user_houses")
    op.drop_table("houses")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
