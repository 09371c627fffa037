"""Create query desk tables: query groups, sub-queries, chat, applications"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261001_query_desk"
down_revision = None
branch_labels = None
depends_on = None


def _decision_columns() -> list[sa.Column]:
    return [
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(length=255), nullable=True),
        sa.Column("resolution_reason", sa.Text(), nullable=True),
        sa.Column("resolution_status", sa.String(length=40), nullable=True),
        sa.Column("approver_comment", sa.Text(), nullable=True),
        sa.Column("approved_by", sa.String(length=255), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approval_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approval_status", sa.String(length=40), nullable=True),
        sa.Column("proposed_action", sa.String(length=40), nullable=True),
        sa.Column("proposed_by", sa.String(length=255), nullable=True),
        sa.Column("proposed_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "query_groups",
        sa.Column("id", sa.String(length=80), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("app_no", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("case_id", sa.String(length=64), nullable=True),
        sa.Column("branch", sa.String(length=255), nullable=True),
        sa.Column("branch_code", sa.String(length=50), nullable=True),
        sa.Column("application_branch", sa.String(length=255), nullable=True),
        sa.Column("application_branch_code", sa.String(length=50), nullable=True),
        sa.Column("assigned_to_branch", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=40), nullable=False, server_default="pending"),
        sa.Column("team", sa.String(length=20), nullable=False, server_default="operations"),
        sa.Column(
            "marked_for_team", sa.String(length=20), nullable=False, server_default="operations"
        ),
        sa.Column("send_to", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("send_to_sales", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("send_to_credit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("priority", sa.String(length=10), nullable=False, server_default="medium"),
        sa.Column("tat", sa.String(length=50), nullable=True),
        sa.Column("allow_messaging", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("messages", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("remarks", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("submitted_by", sa.String(length=255), nullable=True),
        sa.Column("assigned_to", sa.String(length=255), nullable=True),
        sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_individual_query", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        *_decision_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_query_groups_org_id", "query_groups", ["org_id"])
    op.create_index("ix_query_groups_status", "query_groups", ["status"])
    op.create_index("ix_query_groups_org_app_no", "query_groups", ["org_id", "app_no"])
    op.create_index("ix_query_groups_org_team", "query_groups", ["org_id", "marked_for_team"])

    op.create_table(
        "query_items",
        sa.Column("id", sa.String(length=100), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("group_id", sa.String(length=80), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("sender", sa.String(length=255), nullable=True),
        sa.Column("query_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=40), nullable=False, server_default="pending"),
        sa.Column("sent_to", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("tat", sa.String(length=50), nullable=True),
        sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        *_decision_columns(),
        sa.ForeignKeyConstraint(["group_id"], ["query_groups.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_query_items_org_id", "query_items", ["org_id"])
    op.create_index("ix_query_items_group_id", "query_items", ["group_id"])
    op.create_index("ix_query_items_query_number", "query_items", ["query_number"])

    op.create_table(
        "chat_messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("query_id", sa.String(length=100), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("response_text", sa.Text(), nullable=True),
        sa.Column("sender", sa.String(length=255), nullable=False),
        sa.Column("sender_role", sa.String(length=50), nullable=False),
        sa.Column("team", sa.String(length=50), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("is_system_message", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("action_type", sa.String(length=50), nullable=True),
        sa.Column("idempotency_key", sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_messages_org_id", "chat_messages", ["org_id"])
    op.create_index(
        "ix_chat_messages_org_query_ts", "chat_messages", ["org_id", "query_id", "timestamp"]
    )
    op.create_index(
        "ix_chat_messages_idempotency", "chat_messages", ["org_id", "query_id", "idempotency_key"]
    )

    op.create_table(
        "sanctioned_applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("app_id", sa.String(length=64), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("branch", sa.String(length=255), nullable=True),
        sa.Column("branch_code", sa.String(length=50), nullable=True),
        sa.Column("sanctioned_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("loan_type", sa.String(length=100), nullable=True),
        sa.Column("sales_exec", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=40), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "app_id", name="uq_sanctioned_applications_org_app"),
    )
    op.create_index("ix_sanctioned_applications_org_id", "sanctioned_applications", ["org_id"])

    op.create_table(
        "applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("app_id", sa.String(length=64), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("branch", sa.String(length=255), nullable=True),
        sa.Column("branch_code", sa.String(length=50), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("loan_type", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=40), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "app_id", name="uq_applications_org_app"),
    )
    op.create_index("ix_applications_org_id", "applications", ["org_id"])


def downgrade() -> None:
    op.drop_index("ix_applications_org_id", table_name="applications")
    op.drop_table("applications")
    op.drop_index("ix_sanctioned_applications_org_id", table_name="sanctioned_applications")
    op.drop_table("sanctioned_applications")
    op.drop_index("ix_chat_messages_idempotency", table_name="chat_messages")
    op.drop_index("ix_chat_messages_org_query_ts", table_name="chat_messages")
    op.drop_index("ix_chat_messages_org_id", table_name="chat_messages")
    op.drop_table("chat_messages")
    op.drop_index("ix_query_items_query_number", table_name="query_items")
    op.drop_index("ix_query_items_group_id", table_name="query_items")
    op.drop_index("ix_query_items_org_id", table_name="query_items")
    op.drop_table("query_items")
    op.drop_index("ix_query_groups_org_team", table_name="query_groups")
    op.drop_index("ix_query_groups_org_app_no", table_name="query_groups")
    op.drop_index("ix_query_groups_status", table_name="query_groups")
    op.drop_index("ix_query_groups_org_id", table_name="query_groups")
    op.drop_table("query_groups")
