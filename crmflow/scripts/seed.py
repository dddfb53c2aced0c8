"""Sample data seeder: agents, leads, workflow rules and escalation ladders."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from crmflow.core.config import settings
from crmflow.models import Agent, EscalationRuleModel, Lead, WorkflowRuleModel
from crmflow.schemas.escalation import EscalationRuleCreate
from crmflow.schemas.workflow import WorkflowRuleCreate

COUNTRIES = ["US", "UK", "DE", "AE", "IN", "CA"]
STATUSES = ["new", "contacted", "qualified", "active", "inactive"]
KYC_STATUSES = [None, "pending", "approved", "pending", "rejected"]
BALANCES = [0, 250, 1500, 9000, 12500, 40000]

# Validated through the API schemas so seeded rules obey the same rules
# as rules created over HTTP
SAMPLE_WORKFLOW_RULES = [
    {
        "name": "US leads round-robin",
        "type": "lead_assignment",
        "priority": 10,
        "conditions": [{"field": "country", "operator": "equals", "value": "US"}],
        "actions": [
            {"type": "assign_agent", "parameters": {"strategy": "round_robin"}},
            {
                "type": "send_email",
                "parameters": {
                    "subject": "Welcome aboard, $first_name",
                    "content": "An account manager will contact you shortly.",
                },
            },
        ],
    },
    {
        "name": "High balance to least loaded agent",
        "type": "lead_assignment",
        "priority": 20,
        "conditions": [
            {"field": "balance", "operator": "greater_than", "value": 10000, "logic": "and"},
            {"field": "status", "operator": "not_in", "value": ["converted", "lost"]},
        ],
        "actions": [
            {"type": "assign_agent", "parameters": {"strategy": "workload_based"}},
        ],
    },
    {
        "name": "Call new leads within two days",
        "type": "follow_up",
        "priority": 5,
        "conditions": [{"field": "status", "operator": "equals", "value": "new"}],
        "actions": [
            {
                "type": "create_reminder",
                "parameters": {
                    "reminder_type": "call",
                    "title": "Intro call with $first_name $last_name",
                    "delay_hours": 48,
                },
            }
        ],
    },
    {
        "name": "KYC nudge",
        "type": "email_automation",
        "priority": 1,
        "conditions": [{"field": "kyc_status", "operator": "equals", "value": "pending"}],
        "actions": [
            {
                "type": "send_email",
                "parameters": {
                    "subject": "Finish verifying your account",
                    "content": "Hi $first_name, upload your documents to start trading.",
                },
            }
        ],
    },
]

SAMPLE_ESCALATION_RULES = [
    {
        "name": "No contact for a day",
        "trigger_condition": "no_contact_24h",
        "escalation_levels": [
            {"level": 1, "delay_hours": 0, "escalate_to": ["team-lead"]},
            {"level": 2, "delay_hours": 12, "action_type": "create_task", "escalate_to": ["team-lead"]},
            {"level": 3, "delay_hours": 24, "action_type": "reassign", "escalate_to": ["sales-manager"]},
        ],
    },
    {
        "name": "KYC stuck",
        "trigger_condition": "overdue_kyc",
        "escalation_levels": [
            {
                "level": 1,
                "delay_hours": 0,
                "escalate_to": ["compliance"],
                "message_template": "KYC for $first_name $last_name pending over 72h",
            },
        ],
    },
]


async def seed():
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with session_maker() as session:
        print("Seeding workflow sample data")

        await session.execute(
            text(
                "TRUNCATE TABLE "
                "notifications, "
                "follow_up_reminders, "
                "escalation_states, "
                "escalation_rules, "
                "workflow_executions, "
                "workflow_rules, "
                "leads, "
                "agents "
                "CASCADE"
            )
        )
        await session.commit()
        print("Cleared existing data")

        # 1. Agents
        agents = []
        for i in range(1, 7):
            agent = Agent(
                full_name=f"Agent {i} Example",
                email=f"agent{i}@example.com",
                is_active=i != 6,
            )
            session.add(agent)
            agents.append(agent)
        await session.flush()
        print(f"Created {len(agents)} agents (1 inactive)")

        # 2. Leads; every third one unassigned, some never contacted
        now = datetime.now(timezone.utc)
        for i in range(60):
            registered = now - timedelta(hours=6 * i)
            lead = Lead(
                first_name=["Ava", "Noah", "Mia", "Liam", "Zoe"][i % 5],
                last_name=["Carter", "Singh", "Meyer", "Haddad", "Brown"][i % 5],
                email=f"lead{i}@example.com",
                phone=f"+1555010{i:04d}",
                country=COUNTRIES[i % len(COUNTRIES)],
                status=STATUSES[i % len(STATUSES)],
                balance=Decimal(BALANCES[i % len(BALANCES)]),
                kyc_status=KYC_STATUSES[i % len(KYC_STATUSES)],
                assigned_agent_id=None if i % 3 == 0 else agents[i % 5].id,
                last_contact=None if i % 4 == 0 else registered + timedelta(hours=2),
                registration_date=registered,
            )
            session.add(lead)
        await session.flush()
        print("Created 60 leads")

        # 3. Workflow rules
        for raw in SAMPLE_WORKFLOW_RULES:
            rule = WorkflowRuleCreate(**raw, created_by="seed")
            session.add(WorkflowRuleModel(**rule.model_dump(mode="json")))
        print(f"Created {len(SAMPLE_WORKFLOW_RULES)} workflow rules")

        # 4. Escalation rules
        for raw in SAMPLE_ESCALATION_RULES:
            rule = EscalationRuleCreate(**raw)
            session.add(EscalationRuleModel(**rule.model_dump(mode="json")))
        print(f"Created {len(SAMPLE_ESCALATION_RULES)} escalation rules")

        await session.commit()

        lead_cnt = await session.scalar(select(func.count()).select_from(Lead))
        unassigned = await session.scalar(
            select(func.count()).select_from(Lead).where(Lead.assigned_agent_id.is_(None))
        )

        print("\nValidation:")
        print(f"  Leads: {lead_cnt}")
        print(f"  Unassigned: {unassigned}")
        print("Seeding complete")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
