"""credit ledger, schedules, check results

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


transaction_type = sa.Enum(
    "FEATURE_DEBIT", "FEATURE_REFUND", "PURCHASE", "MONTHLY_GRANT", "ACCOUNT_CLOSURE",
    name="transactiontype",
)
feature_type = sa.Enum("RANK_TRACKING", "LLM_VISIBILITY", name="featuretype")
schedule_frequency = sa.Enum("HOURLY", "DAILY", "WEEKLY", "MONTHLY", name="schedulefrequency")
cron_run_status = sa.Enum("COMPLETED", "FAILED", name="cronrunstatus")


def _schedule_columns():
    return [
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
        sa.Column("schedule_frequency", schedule_frequency, nullable=True),
        sa.Column("next_scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_scheduled_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_credit_warning_sent_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "credit_balances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("included_credits", sa.Integer(), nullable=False),
        sa.Column("purchased_credits", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("included_credits >= 0", name="included_credits_non_negative"),
        sa.CheckConstraint("purchased_credits >= 0", name="purchased_credits_non_negative"),
    )
    op.create_index("ix_credit_balances_account_id", "credit_balances", ["account_id"], unique=True)

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("transaction_type", transaction_type, nullable=False),
        sa.Column("feature_type", feature_type, nullable=True),
        sa.Column("idempotency_key", sa.String(), nullable=False, unique=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("included_amount", sa.Integer(), nullable=False),
        sa.Column("purchased_amount", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("feature_metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_credit_transactions_account_id", "credit_transactions", ["account_id"])

    op.create_table(
        "businesses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("account_id", sa.String(), nullable=False, unique=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("website", sa.String(), nullable=True),
    )

    op.create_table(
        "rank_keyword_groups",
        sa.Column("id", sa.String(), primary_key=True),
        *_schedule_columns(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("location_code", sa.Integer(), nullable=False),
        sa.Column("device", sa.String(16), nullable=False),
        sa.Column("language_code", sa.String(8), nullable=False),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_rank_keyword_groups_account_id", "rank_keyword_groups", ["account_id"])
    op.create_index("ix_rank_keyword_groups_next_scheduled_at", "rank_keyword_groups", ["next_scheduled_at"])

    op.create_table(
        "rank_group_keywords",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "group_id", sa.String(),
            sa.ForeignKey("rank_keyword_groups.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("phrase", sa.String(), nullable=False),
        sa.Column("search_query", sa.String(), nullable=True),
        sa.Column("target_url", sa.String(), nullable=True),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
    )

    op.create_table(
        "keywords",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("phrase", sa.String(), nullable=False),
        sa.Column("related_questions", sa.JSON(), nullable=True),
    )
    op.create_index("ix_keywords_account_id", "keywords", ["account_id"])

    op.create_table(
        "llm_visibility_schedules",
        sa.Column("id", sa.String(), primary_key=True),
        *_schedule_columns(),
        sa.Column(
            "keyword_id", sa.String(),
            sa.ForeignKey("keywords.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("providers", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_llm_visibility_schedules_account_id", "llm_visibility_schedules", ["account_id"])
    op.create_index(
        "ix_llm_visibility_schedules_next_scheduled_at", "llm_visibility_schedules", ["next_scheduled_at"]
    )

    op.create_table(
        "rank_checks",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("group_id", sa.String(), nullable=False),
        sa.Column("keyword_id", sa.String(), nullable=False),
        sa.Column("search_query_used", sa.String(), nullable=False),
        sa.Column("device", sa.String(16), nullable=False),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.Column("found_url", sa.String(), nullable=True),
        sa.Column("matched_target_url", sa.Boolean(), nullable=True),
        sa.Column("api_cost_usd", sa.DECIMAL(10, 6), nullable=False),
        sa.Column("run_token", sa.String(), nullable=False),
        sa.Column("checked_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_rank_checks_account_id", "rank_checks", ["account_id"])
    op.create_index("ix_rank_checks_group_id", "rank_checks", ["group_id"])

    op.create_table(
        "llm_visibility_checks",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("keyword_id", sa.String(), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("llm_provider", sa.String(32), nullable=False),
        sa.Column("domain_cited", sa.Boolean(), nullable=False),
        sa.Column("response_snippet", sa.Text(), nullable=True),
        sa.Column("api_cost_usd", sa.DECIMAL(10, 6), nullable=False),
        sa.Column("run_token", sa.String(), nullable=False),
        sa.Column("checked_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_llm_visibility_checks_account_id", "llm_visibility_checks", ["account_id"])
    op.create_index("ix_llm_visibility_checks_keyword_id", "llm_visibility_checks", ["keyword_id"])

    op.create_table(
        "cron_run_logs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("job_name", sa.String(), nullable=False),
        sa.Column("status", cron_run_status, nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("summary", sa.JSON(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("cron_run_logs")
    op.drop_table("llm_visibility_checks")
    op.drop_table("rank_checks")
    op.drop_table("llm_visibility_schedules")
    op.drop_table("keywords")
    op.drop_table("rank_group_keywords")
    op.drop_table("rank_keyword_groups")
    op.drop_table("businesses")
    op.drop_table("credit_transactions")
    op.drop_table("credit_balances")

    bind = op.get_bind()
    for enum_type in (cron_run_status, schedule_frequency, feature_type, transaction_type):
        enum_type.drop(bind, checkfirst=True)
