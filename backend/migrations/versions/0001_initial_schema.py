"""Initial schema: snapshots, changes, timeline, sync sessions, CAO grid, overview

Revision ID: 0001
Revises:
Create Date: 2026-01-05 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from empsync.models.overview import OVERVIEW_SELECT

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _is_postgres() -> bool:
    return op.get_bind().dialect.name == "postgresql"


def upgrade() -> None:
    # === employes_raw_snapshots ===
    op.create_table(
        "employes_raw_snapshots",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("employee_id", sa.String(64), nullable=False),
        sa.Column("endpoint", sa.String(32), nullable=False, comment='"/employee" or "/employments"'),
        sa.Column("payload", JSON_TYPE, nullable=False),
        sa.Column("content_hash", sa.String(64), nullable=False, comment="sha256 of canonical JSON"),
        sa.Column("collected_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("is_latest", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sync_session_id", sa.Uuid(), nullable=True),
        sa.Column("last_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_raw_snapshot_latest",
        "employes_raw_snapshots",
        ["employee_id", "endpoint"],
        unique=True,
        postgresql_where=sa.text("is_latest"),
        sqlite_where=sa.text("is_latest"),
    )
    op.create_index(
        "ix_raw_snapshot_history",
        "employes_raw_snapshots",
        ["employee_id", "endpoint", "collected_at"],
    )

    # === employes_changes ===
    op.create_table(
        "employes_changes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("employee_id", sa.String(64), nullable=False),
        sa.Column("endpoint", sa.String(32), nullable=False),
        sa.Column("field_name", sa.String(64), nullable=False),
        sa.Column("change_type", sa.String(16), nullable=True),
        sa.Column("old_value", JSON_TYPE, nullable=True),
        sa.Column("new_value", JSON_TYPE, nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_duplicate", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("business_impact", sa.String(16), nullable=True),
        sa.Column("prev_snapshot_id", sa.Uuid(), nullable=True),
        sa.Column("curr_snapshot_id", sa.Uuid(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("curr_snapshot_id", "field_name", name="uq_change_snapshot_field"),
        sa.CheckConstraint(
            "change_type IS NULL OR change_type IN ('create', 'update', 'remove')",
            name="valid_change_type",
        ),
    )
    op.create_index("ix_change_feed", "employes_changes", ["employee_id", "is_duplicate", "detected_at"])

    # === employes_timeline_events ===
    op.create_table(
        "employes_timeline_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("employee_id", sa.String(64), nullable=False),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("event_date", sa.Date(), nullable=False),
        sa.Column("field_name", sa.String(64), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("change_amount", sa.Float(), nullable=True),
        sa.Column("change_percentage", sa.Float(), nullable=True),
        sa.Column("contract_milestone_type", sa.String(16), nullable=True),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "employee_id", "event_type", "event_date", "field_name",
            name="uq_timeline_event_key",
        ),
    )

    # === employes_sync_sessions ===
    op.create_table(
        "employes_sync_sessions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("source_label", sa.String(64), nullable=False, server_default="manual"),
        sa.Column("status", sa.String(32), nullable=False, server_default="running"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_records", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("successful_records", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_records", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sync_details", JSON_TYPE, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('running', 'completed', 'completed_with_errors', 'failed', 'cancelled')",
            name="valid_sync_status",
        ),
    )
    op.create_index("ix_sync_sessions_started", "employes_sync_sessions", ["started_at"])

    # === cao_salary_scales ===
    op.create_table(
        "cao_salary_scales",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("scale", sa.String(16), nullable=False),
        sa.Column("trede", sa.Integer(), nullable=False),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("hourly_wage", sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("scale", "trede", "effective_date", name="uq_cao_scale_trede_date"),
    )

    # === employment_overview ===
    if _is_postgres():
        op.execute(f"CREATE MATERIALIZED VIEW employment_overview AS {OVERVIEW_SELECT} WITH NO DATA")
        # REFRESH ... CONCURRENTLY needs a unique index
        op.create_index("uq_employment_overview_employee", "employment_overview", ["employee_id"], unique=True)
        op.execute("REFRESH MATERIALIZED VIEW employment_overview")
    else:
        op.create_table(
            "employment_overview",
            sa.Column("employee_id", sa.String(64), nullable=False),
            sa.Column("last_collected_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("endpoints_collected", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("change_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_change_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("employee_id"),
        )


def downgrade() -> None:
    if _is_postgres():
        op.execute("DROP MATERIALIZED VIEW IF EXISTS employment_overview")
    else:
        op.drop_table("employment_overview")

    op.drop_table("cao_salary_scales")
    op.drop_index("ix_sync_sessions_started", table_name="employes_sync_sessions")
    op.drop_table("employes_sync_sessions")
    op.drop_table("employes_timeline_events")
    op.drop_index("ix_change_feed", table_name="employes_changes")
    op.drop_table("employes_changes")
    op.drop_index("ix_raw_snapshot_history", table_name="employes_raw_snapshots")
    op.drop_index("uq_raw_snapshot_latest", table_name="employes_raw_snapshots")
    op.drop_table("employes_raw_snapshots")
