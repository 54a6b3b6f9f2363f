"""Create pipeline tables

Revision ID: 001
Revises: None
Create Date: 2026-10-18 00:00:00.000000+00:00

What:  Creates `kv_entries` (cache store backing) and
       `processing_session_logs` (one row per pipeline run).
How:   Generic column types only, so the same revision applies to SQLite
       and PostgreSQL.

Rollback: downgrade() drops both tables; cached results and run history are lost.
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "kv_entries",
        sa.Column("key", sa.String(255), nullable=False, comment="Namespaced cache key"),
        sa.Column("payload", sa.Text(), nullable=False, comment="JSON-encoded value"),
        sa.Column(
            "stored_at",
            sa.Float(),
            nullable=False,
            comment="Epoch seconds when the value was written",
        ),
        sa.PrimaryKeyConstraint("key", name="pk_kv_entries"),
    )
    op.create_index("idx_kv_entries_stored_at", "kv_entries", ["stored_at"])

    op.create_table(
        "processing_session_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "session_id",
            sa.String(64),
            nullable=False,
            comment="Pipeline session identifier",
        ),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("processing_time_ms", sa.Integer(), nullable=False),
        sa.Column("confidence", sa.Integer(), nullable=False),
        sa.Column("steps_completed", sa.Integer(), nullable=False),
        sa.Column("total_steps", sa.Integer(), nullable=False),
        sa.Column("steps", sa.JSON(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_processing_session_logs"),
        sa.UniqueConstraint("session_id", name="uq_processing_session_logs_session_id"),
    )
    op.create_index(
        "idx_session_logs_created_at",
        "processing_session_logs",
        ["created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_session_logs_created_at", table_name="processing_session_logs")
    op.drop_table("processing_session_logs")
    op.drop_index("idx_kv_entries_stored_at", table_name="kv_entries")
    op.drop_table("kv_entries")
