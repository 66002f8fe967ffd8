"""Pytest fixtures for workforce payroll tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from workforce_payroll.calculators.line_builder import LineItemBuilder
from workforce_payroll.clock import FixedClock
from workforce_payroll.config import Settings
from workforce_payroll.models import (
    Base,
    EmployeeExpense,
    EmployeeRate,
    Organization,
    PayrollRecord,
    Project,
    Task,
    User,
)
from workforce_payroll.services.notifications import LoggingNotificationSender

# In-memory SQLite shared across connections of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

PERIOD_START = date(2025, 7, 1)
PERIOD_END = date(2025, 7, 31)


def utc(year: int, month: int, day: int, hour: int = 12) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


@dataclass
class PayrollWorld:
    """Identifiers of the seeded organization.

    Plain ids only, so tests never touch ORM state that a rollback expired.
    """

    organization_id: UUID
    admin_id: UUID
    project_id: UUID
    alice_id: UUID
    bob_id: UUID
    other_project_id: UUID
    alice_expense_ids: list[UUID] = field(default_factory=list)
    bob_expense_ids: list[UUID] = field(default_factory=list)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        engine_version="test",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="DEBUG",
        standard_hours=Decimal("40"),
        overtime_multiplier=Decimal("1.5"),
        tax_rate=Decimal("0"),
        store_timeout_seconds=5.0,
        whatsapp_api_url=None,
        whatsapp_api_token=None,
        company_name="Acme Field Services",
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 8, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier() -> LoggingNotificationSender:
    return LoggingNotificationSender()


@pytest.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def world(session: AsyncSession) -> PayrollWorld:
    """Seed an organization with two employees on one project in July 2025.

    Alice: 10h completed + 2h verified at 20.00/h, 150.00 approved expenses.
    Bob: 45h completed at 10.00/h, 25.50 approved expenses.
    Noise that must be ignored: in-progress tasks, tasks outside the period
    or on another project, unapproved and already processed expenses.
    """
    org = Organization(organization_id=uuid4(), name="Acme Field Services")
    admin = User(
        user_id=uuid4(),
        organization_id=org.organization_id,
        display_name="Admin",
        role="admin",
    )
    alice = User(
        user_id=uuid4(),
        organization_id=org.organization_id,
        display_name="Alice",
        role="employee",
        phone_number="+15550100",
        whatsapp_opt_in=True,
        bank_account_number="1234567890",
        bank_ifsc="ACME0001",
    )
    bob = User(
        user_id=uuid4(),
        organization_id=org.organization_id,
        display_name="Bob",
        role="employee",
    )
    project = Project(project_id=uuid4(), organization_id=org.organization_id, name="Tower A")
    other = Project(project_id=uuid4(), organization_id=org.organization_id, name="Tower B")
    session.add_all([org, admin, alice, bob, project, other])
    await session.flush()

    session.add_all(
        [
            EmployeeRate(
                employee_id=alice.user_id,
                payment_mode="hourly",
                hourly_rate=Decimal("20.00"),
                effective_from=date(2025, 1, 1),
            ),
            EmployeeRate(
                employee_id=bob.user_id,
                payment_mode="hourly",
                hourly_rate=Decimal("10.00"),
                effective_from=date(2025, 1, 1),
            ),
        ]
    )

    def task(employee: User, seconds: int, status: str, when: datetime, project_id=None) -> Task:
        return Task(
            organization_id=org.organization_id,
            project_id=project_id or project.project_id,
            assigned_employee_id=employee.user_id,
            title="Inspection",
            status=status,
            elapsed_time_seconds=seconds,
            updated_at=when,
        )

    session.add_all(
        [
            task(alice, 10 * 3600, "completed", utc(2025, 7, 10)),
            task(alice, 2 * 3600, "verified", utc(2025, 7, 31, 23)),
            task(alice, 5 * 3600, "in-progress", utc(2025, 7, 12)),
            task(alice, 7 * 3600, "completed", utc(2025, 8, 2)),
            task(alice, 3 * 3600, "completed", utc(2025, 7, 15), project_id=other.project_id),
            task(bob, 45 * 3600, "completed", utc(2025, 7, 20)),
        ]
    )

    def expense(employee: User, amount: str, approved: bool, processed: bool = False) -> EmployeeExpense:
        return EmployeeExpense(
            expense_id=uuid4(),
            organization_id=org.organization_id,
            employee_id=employee.user_id,
            project_id=project.project_id,
            expense_type="travel",
            amount=Decimal(amount),
            approved=approved,
            approved_at=utc(2025, 7, 5) if approved else None,
            processed=processed,
        )

    alice_expenses = [expense(alice, "100.00", True), expense(alice, "50.00", True)]
    bob_expenses = [expense(bob, "25.50", True)]
    session.add_all(alice_expenses + bob_expenses)
    session.add_all(
        [
            expense(alice, "999.00", False),
            expense(bob, "80.00", True, processed=True),
        ]
    )
    await session.commit()

    return PayrollWorld(
        organization_id=org.organization_id,
        admin_id=admin.user_id,
        project_id=project.project_id,
        alice_id=alice.user_id,
        bob_id=bob.user_id,
        other_project_id=other.project_id,
        alice_expense_ids=[e.expense_id for e in alice_expenses],
        bob_expense_ids=[e.expense_id for e in bob_expenses],
    )


def make_record(
    world: PayrollWorld,
    employee_id: UUID,
    net_pay: str,
    status: str = "pending",
    period_start: date = PERIOD_START,
    period_end: date = PERIOD_END,
    project_id: UUID | None = None,
    hours: str = "10",
    expenses: str = "0",
) -> PayrollRecord:
    """Build a consistent payroll record (gross = net - expenses)."""
    project_id = project_id or world.project_id
    net = Decimal(net_pay)
    reimbursed = Decimal(expenses)
    return PayrollRecord(
        organization_id=world.organization_id,
        employee_id=employee_id,
        project_id=project_id,
        period_start=period_start,
        period_end=period_end,
        hours_worked=Decimal(hours),
        hourly_rate=Decimal("0"),
        task_pay=net - reimbursed,
        approved_expenses=reimbursed,
        gross_pay=net - reimbursed,
        net_pay=net,
        generated_by=world.admin_id,
        generated_at=datetime(2025, 8, 1, tzinfo=timezone.utc),
        idempotency_key=LineItemBuilder.compute_idempotency_key(
            project_id, period_start, period_end, employee_id
        ),
        payroll_status=status,
    )
