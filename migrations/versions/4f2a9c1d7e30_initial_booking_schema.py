"""initial_booking_schema

Revision ID: 4f2a9c1d7e30
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4f2a9c1d7e30"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ACTIVE_REQUEST_PREDICATE = sa.text("status NOT IN ('rejected', 'completed', 'no_show')")


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "slots",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("label", sa.String(length=100), nullable=False),
        sa.Column("start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('"end" > start', name="ck_slots_end_after_start"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_slots_start"), "slots", ["start"], unique=False)

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        # Live slots never overlap, enforced by the database as well
        op.execute(
            'ALTER TABLE slots ADD CONSTRAINT ex_slots_no_overlap '
            'EXCLUDE USING gist (tstzrange(start, "end", \'[)\') WITH &&)'
        )

    op.create_table(
        "requests",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("subject_id", sa.BigInteger(), nullable=False),
        sa.Column("subject_handle", sa.String(length=64), nullable=True),
        sa.Column("subject_name", sa.String(length=255), nullable=True),
        sa.Column("slot_id", sa.String(length=36), nullable=True),
        sa.Column("slot_label", sa.String(length=100), nullable=True),
        sa.Column("slot_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("slot_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("procedure_key", sa.String(length=100), nullable=True),
        sa.Column("procedure_name", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("original_slot_id", sa.String(length=36), nullable=True),
        sa.Column("original_slot_label", sa.String(length=100), nullable=True),
        sa.Column("original_slot_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("original_slot_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("move_slot_id", sa.String(length=36), nullable=True),
        sa.Column("move_slot_label", sa.String(length=100), nullable=True),
        sa.Column("move_slot_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("move_slot_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("prev_status", sa.String(length=32), nullable=True),
        sa.Column("reminder_evening_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reminder_final_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_requests_subject_id"), "requests", ["subject_id"], unique=False)
    op.create_index(op.f("ix_requests_slot_id"), "requests", ["slot_id"], unique=False)
    op.create_index(op.f("ix_requests_status"), "requests", ["status"], unique=False)
    op.create_index(
        "uq_requests_active_subject_slot",
        "requests",
        ["subject_id", "slot_id"],
        unique=True,
        postgresql_where=ACTIVE_REQUEST_PREDICATE,
        sqlite_where=ACTIVE_REQUEST_PREDICATE,
    )

    op.create_table(
        "history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("subject_id", sa.BigInteger(), nullable=False),
        sa.Column("request_id", sa.String(length=36), nullable=True),
        sa.Column("date_label", sa.String(length=100), nullable=True),
        sa.Column("procedure_label", sa.String(length=255), nullable=True),
        sa.Column("outcome_label", sa.String(length=32), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_history_subject_id"), "history", ["subject_id"], unique=False)

    op.create_table(
        "procedures",
        sa.Column("key", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )

    op.create_table(
        "blacklist",
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint("username"),
    )

    op.create_table(
        "schedule_patterns",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("intervals", sa.Text(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "system_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.Column("level", sa.String(length=10), nullable=False),
        sa.Column("event_type", sa.String(length=100), nullable=False),
        sa.Column("request_id", sa.String(length=36), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_system_events_created_at"), "system_events", ["created_at"], unique=False)
    op.create_index(op.f("ix_system_events_level"), "system_events", ["level"], unique=False)
    op.create_index(op.f("ix_system_events_event_type"), "system_events", ["event_type"], unique=False)
    op.create_index(op.f("ix_system_events_request_id"), "system_events", ["request_id"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f("ix_system_events_request_id"), table_name="system_events")
    op.drop_index(op.f("ix_system_events_event_type"), table_name="system_events")
    op.drop_index(op.f("ix_system_events_level"), table_name="system_events")
    op.drop_index(op.f("ix_system_events_created_at"), table_name="system_events")
    op.drop_table("system_events")
    op.drop_table("schedule_patterns")
    op.drop_table("blacklist")
    op.drop_table("procedures")
    op.drop_index(op.f("ix_history_subject_id"), table_name="history")
    op.drop_table("history")
    op.drop_index("uq_requests_active_subject_slot", table_name="requests")
    op.drop_index(op.f("ix_requests_status"), table_name="requests")
    op.drop_index(op.f("ix_requests_slot_id"), table_name="requests")
    op.drop_index(op.f("ix_requests_subject_id"), table_name="requests")
    op.drop_table("requests")
    op.drop_index(op.f("ix_slots_start"), table_name="slots")
    op.drop_table("slots")
