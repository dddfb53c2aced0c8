"""initial workflow engine schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamp(name: str, **kwargs) -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), server_default=sa.text("now()"), **kwargs
    )


def upgrade() -> None:
    op.create_table(
        "agents",
        _uuid_pk(),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("created_at"),
    )

    op.create_table(
        "leads",
        _uuid_pk(),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(30)),
        sa.Column("country", sa.String(100), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="new"),
        sa.Column("balance", sa.Numeric(15, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("bonus_amount", sa.Numeric(15, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("kyc_status", sa.String(20)),
        sa.Column(
            "assigned_agent_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("agents.id", ondelete="SET NULL"),
        ),
        sa.Column("last_contact", sa.DateTime(timezone=True)),
        _timestamp("registration_date"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "status IN ('new', 'contacted', 'qualified', 'active', 'inactive', 'converted', 'lost')",
            name="ck_lead_status",
        ),
        sa.CheckConstraint(
            "kyc_status IS NULL OR kyc_status IN ('pending', 'approved', 'rejected')",
            name="ck_lead_kyc_status",
        ),
    )
    op.create_index(
        "idx_leads_assigned_agent_status", "leads", ["assigned_agent_id", "status"]
    )
    op.create_index("idx_leads_last_contact", "leads", ["last_contact"])

    op.create_table(
        "workflow_rules",
        _uuid_pk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column(
            "conditions",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "actions",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by", sa.String(100)),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "type IN ('email_automation', 'escalation', 'follow_up', 'lead_assignment')",
            name="ck_workflow_rule_type",
        ),
    )
    op.create_index(
        "idx_workflow_rules_type_active_priority",
        "workflow_rules",
        ["type", "is_active", "priority"],
    )

    op.create_table(
        "workflow_executions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "rule_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("workflow_rules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "lead_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("leads.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        _timestamp("started_at"),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("error_message", sa.Text()),
        sa.Column("result_data", postgresql.JSONB()),
        sa.CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed')",
            name="ck_execution_status",
        ),
    )
    op.create_index(
        "idx_workflow_executions_rule_lead",
        "workflow_executions",
        ["rule_id", "lead_id"],
    )

    op.create_table(
        "escalation_rules",
        _uuid_pk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("trigger_condition", sa.String(50), nullable=False),
        sa.Column(
            "escalation_levels",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("created_at"),
    )

    op.create_table(
        "escalation_states",
        _uuid_pk(),
        sa.Column(
            "escalation_rule_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("escalation_rules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "lead_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("leads.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("triggered_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "levels_fired",
            postgresql.ARRAY(sa.Integer()),
            nullable=False,
            server_default=sa.text("'{}'"),
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _timestamp("updated_at"),
        sa.UniqueConstraint(
            "escalation_rule_id", "lead_id", name="uq_escalation_state_rule_lead"
        ),
    )

    op.create_table(
        "follow_up_reminders",
        _uuid_pk(),
        sa.Column(
            "lead_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("leads.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("assigned_to", sa.String(100), nullable=False),
        sa.Column("reminder_type", sa.String(20), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("created_by", sa.String(100), nullable=False),
        _timestamp("created_at"),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint(
            "reminder_type IN ('call', 'email', 'meeting', 'custom')",
            name="ck_reminder_type",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'cancelled')",
            name="ck_reminder_status",
        ),
        sa.CheckConstraint(
            "priority IN ('low', 'medium', 'high', 'urgent')",
            name="ck_reminder_priority",
        ),
    )
    op.create_index(
        "idx_reminders_assigned_status_due",
        "follow_up_reminders",
        ["assigned_to", "status", "due_date"],
    )

    op.create_table(
        "notifications",
        _uuid_pk(),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(30), nullable=False, server_default="system"),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("data", postgresql.JSONB()),
        sa.Column("related_entity_type", sa.String(50)),
        sa.Column("related_entity_id", postgresql.UUID(as_uuid=True)),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _timestamp("created_at"),
    )
    op.create_index(
        "idx_notifications_user_unread", "notifications", ["user_id", "is_read"]
    )


def downgrade() -> None:
    op.drop_index("idx_notifications_user_unread", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("idx_reminders_assigned_status_due", table_name="follow_up_reminders")
    op.drop_table("follow_up_reminders")
    op.drop_table("escalation_states")
    op.drop_table("escalation_rules")
    op.drop_index("idx_workflow_executions_rule_lead", table_name="workflow_executions")
    op.drop_table("workflow_executions")
    op.drop_index("idx_workflow_rules_type_active_priority", table_name="workflow_rules")
    op.drop_table("workflow_rules")
    op.drop_index("idx_leads_last_contact", table_name="leads")
    op.drop_index("idx_leads_assigned_agent_status", table_name="leads")
    op.drop_table("leads")
    op.drop_table("agents")
