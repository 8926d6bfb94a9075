"""Initial schema: users, categories, events, participation requests.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(250), nullable=False),
        sa.Column("email", sa.String(254), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Categories table
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.UniqueConstraint("name", name="uq_categories_name"),
    )
    op.create_index("ix_categories_id", "categories", ["id"])

    # Events table
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(120), nullable=False),
        sa.Column("annotation", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("event_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location_lat", sa.Float(), nullable=False),
        sa.Column("location_lon", sa.Float(), nullable=False),
        sa.Column("paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("participant_limit", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("request_moderation", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("published_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("state", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("initiator_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("participant_limit >= 0", name="check_participant_limit_non_negative"),
        sa.CheckConstraint(
            "state IN ('PENDING', 'PUBLISHED', 'CANCELED')", name="check_event_state"
        ),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_category_id", "events", ["category_id"])
    op.create_index("ix_events_initiator_id", "events", ["initiator_id"])
    # Public listings load PUBLISHED events ordered by date
    op.create_index("ix_events_state_date", "events", ["state", "event_date"])

    # Participation requests table
    op.create_table(
        "participation_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("requester_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'REJECTED', 'CANCELED')", name="check_request_status"
        ),
    )
    op.create_index("ix_participation_requests_id", "participation_requests", ["id"])
    op.create_index("ix_participation_requests_event_id", "participation_requests", ["event_id"])
    op.create_index("ix_participation_requests_requester_id", "participation_requests", ["requester_id"])
    # Confirmed counts: WHERE event_id IN (...) AND status = 'CONFIRMED' GROUP BY event_id
    op.create_index("ix_requests_event_status", "participation_requests", ["event_id", "status"])
    # At most one live request per (requester, event); canceled ones do not count
    op.create_index(
        "uq_live_request_per_requester_event",
        "participation_requests",
        ["requester_id", "event_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'CANCELED'"),
    )


def downgrade() -> None:
    op.drop_table("participation_requests")
    op.drop_table("events")
    op.drop_table("categories")
    op.drop_table("users")
