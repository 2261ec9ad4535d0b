"""initial_schema

Revision ID: 3f1a9c2e7b40
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1a9c2e7b40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # =========================================================
    # tasks
    # =========================================================
    op.create_table(
        "tasks",
        sa.Column("task_id", sa.String(64), nullable=False),
        sa.Column("poster_id", sa.String(128), nullable=False),
        sa.Column("doer_id", sa.String(128), nullable=True),
        sa.Column("title", sa.Text(), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("reward_amount", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("auto_release_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("task_id"),
    )
    op.create_index("ix_tasks_poster_id", "tasks", ["poster_id"])
    op.create_index("ix_tasks_doer_id", "tasks", ["doer_id"])
    op.create_index("ix_tasks_status", "tasks", ["status"])
    op.create_index("ix_tasks_status_auto_release_at", "tasks", ["status", "auto_release_at"])

    # =========================================================
    # task_events
    # =========================================================
    op.create_table(
        "task_events",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("event_id", sa.String(64), nullable=False),
        sa.Column("task_id", sa.String(64), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("actor_id", sa.String(128), nullable=True),
        sa.Column("actor_role", sa.String(32), nullable=True),
        sa.Column("old_status", sa.String(32), nullable=True),
        sa.Column("new_status", sa.String(32), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id"),
    )
    op.create_index("ix_task_events_task_id", "task_events", ["task_id"])

    # =========================================================
    # escrow_transactions
    # =========================================================
    op.create_table(
        "escrow_transactions",
        sa.Column("escrow_id", sa.String(64), nullable=False),
        sa.Column("task_id", sa.String(64), nullable=False),
        sa.Column("poster_id", sa.String(128), nullable=False),
        sa.Column("doer_id", sa.String(128), nullable=True),
        sa.Column("gross_amount", sa.BigInteger(), nullable=False),
        sa.Column("platform_fee", sa.BigInteger(), nullable=True),
        sa.Column("fee_percent", sa.String(16), nullable=True),
        sa.Column("net_payout", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("auto_release_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("escrow_id"),
        sa.UniqueConstraint("task_id"),
    )
    op.create_index("ix_escrow_transactions_poster_id", "escrow_transactions", ["poster_id"])
    op.create_index("ix_escrow_transactions_doer_id", "escrow_transactions", ["doer_id"])
    op.create_index("ix_escrow_transactions_status", "escrow_transactions", ["status"])

    # =========================================================
    # wallet_balances / wallet_events
    # =========================================================
    op.create_table(
        "wallet_balances",
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_earnings", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("tasks_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "wallet_events",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("event_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("balance_before", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column("task_id", sa.String(64), nullable=True),
        sa.Column("escrow_id", sa.String(64), nullable=True),
        sa.Column("actor_id", sa.String(128), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id"),
    )
    op.create_index("ix_wallet_events_user_id", "wallet_events", ["user_id"])
    op.create_index("ix_wallet_events_task_id", "wallet_events", ["task_id"])

    # =========================================================
    # disputes
    # =========================================================
    op.create_table(
        "disputes",
        sa.Column("dispute_id", sa.String(64), nullable=False),
        sa.Column("task_id", sa.String(64), nullable=False),
        sa.Column("escrow_id", sa.String(64), nullable=False),
        sa.Column("raised_by", sa.String(128), nullable=False),
        sa.Column("raised_by_role", sa.String(16), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("outcome", sa.String(16), nullable=True),
        sa.Column("split_ratio", sa.String(32), nullable=True),
        sa.Column("doer_amount", sa.BigInteger(), nullable=True),
        sa.Column("poster_amount", sa.BigInteger(), nullable=True),
        sa.Column("platform_fee", sa.BigInteger(), nullable=True),
        sa.Column("resolver_id", sa.String(128), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("dispute_id"),
        sa.UniqueConstraint("task_id"),
    )
    op.create_index("ix_disputes_status", "disputes", ["status"])

    # =========================================================
    # idempotency_keys / rate_limits
    # =========================================================
    op.create_table(
        "idempotency_keys",
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("caller_id", sa.String(128), nullable=False),
        sa.Column("endpoint", sa.String(128), nullable=False),
        sa.Column("request_hash", sa.String(64), nullable=False),
        sa.Column("response", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("key", "caller_id", "endpoint"),
    )

    op.create_table(
        "rate_limits",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("identifier", sa.String(128), nullable=False),
        sa.Column("operation", sa.String(64), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_rate_limits_identifier_operation_window",
        "rate_limits",
        ["identifier", "operation", "window_start"],
    )


def downgrade() -> None:
    op.drop_table("rate_limits")
    op.drop_table("idempotency_keys")
    op.drop_table("disputes")
    op.drop_table("wallet_events")
    op.drop_table("wallet_balances")
    op.drop_table("escrow_transactions")
    op.drop_table("task_events")
    op.drop_table("tasks")
