"""Integration test fixtures with a real (SQLite) database."""

from collections.abc import AsyncGenerator
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from labor_billing.api.app import create_app
from labor_billing.api.dependencies import get_app_settings, get_db_session
from labor_billing.config import Settings
from labor_billing.models import (
    Base,
    Customer,
    Personnel,
    PersonnelProjectAssignment,
    Project,
    RateBracket,
    TimeEntry,
    Vendor,
)

TEST_DATABASE_URL = "sqlite+aiosqlite://"
MONDAY = date(2025, 1, 6)


@dataclass
class SeedData:
    """Ids of the seeded rows.

    Ada: 30h on Apollo (bracket X, $40) and 20h on Gemini (bracket Y, $60),
    pay $20, no vendor. Bob: 8h on Apollo (bracket X), pay $30, own vendor.
    Both projects belong to Acme Corp.
    """

    customer_id: UUID
    apollo_id: UUID
    gemini_id: UUID
    bracket_x_id: UUID
    bracket_y_id: UUID
    ada_id: UUID
    bob_id: UUID
    bob_vendor_id: UUID
    ada_entry_ids: list[UUID]
    bob_entry_ids: list[UUID]

    @property
    def entry_ids(self) -> list[UUID]:
        return self.ada_entry_ids + self.bob_entry_ids


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Get database session for integration tests."""
    factory = async_sessionmaker(test_engine, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def seeded(db_session: AsyncSession) -> SeedData:
    """Load a one-week timesheet for one customer."""
    acme = Customer(name="Jane Buyer", company="Acme Corp")
    apollo = Project(name="Apollo", customer=acme)
    gemini = Project(name="Gemini", customer=acme)
    bracket_x = RateBracket(
        project=apollo, name="Bracket X", bill_rate=Decimal("40"), overtime_multiplier=Decimal("1.5")
    )
    bracket_y = RateBracket(
        project=gemini, name="Bracket Y", bill_rate=Decimal("60"), overtime_multiplier=Decimal("1.5")
    )
    bob_vendor = Vendor(name="Bob Builder", vendor_type="contractor")
    db_session.add_all([acme, apollo, gemini, bracket_x, bracket_y, bob_vendor])
    await db_session.flush()

    ada = Personnel(first_name="Ada", last_name="Lovelace", hourly_rate=Decimal("20"))
    bob = Personnel(
        first_name="Bob",
        last_name="Builder",
        hourly_rate=Decimal("30"),
        linked_vendor_id=bob_vendor.vendor_id,
    )
    db_session.add_all([ada, bob])
    await db_session.flush()

    db_session.add_all(
        [
            PersonnelProjectAssignment(
                personnel_id=ada.personnel_id,
                project_id=apollo.project_id,
                rate_bracket_id=bracket_x.rate_bracket_id,
            ),
            PersonnelProjectAssignment(
                personnel_id=ada.personnel_id,
                project_id=gemini.project_id,
                rate_bracket_id=bracket_y.rate_bracket_id,
            ),
            PersonnelProjectAssignment(
                personnel_id=bob.personnel_id,
                project_id=apollo.project_id,
                rate_bracket_id=bracket_x.rate_bracket_id,
            ),
        ]
    )

    ada_entries = [
        TimeEntry(
            personnel_id=ada.personnel_id,
            project_id=(apollo if day < 3 else gemini).project_id,
            entry_date=MONDAY + timedelta(days=day),
            hours=Decimal("10"),
        )
        for day in range(5)
    ]
    bob_entries = [
        TimeEntry(
            personnel_id=bob.personnel_id,
            project_id=apollo.project_id,
            entry_date=MONDAY,
            hours=Decimal("8"),
        )
    ]
    db_session.add_all(ada_entries + bob_entries)
    await db_session.commit()

    return SeedData(
        customer_id=acme.customer_id,
        apollo_id=apollo.project_id,
        gemini_id=gemini.project_id,
        bracket_x_id=bracket_x.rate_bracket_id,
        bracket_y_id=bracket_y.rate_bracket_id,
        ada_id=ada.personnel_id,
        bob_id=bob.personnel_id,
        bob_vendor_id=bob_vendor.vendor_id,
        ada_entry_ids=[e.time_entry_id for e in ada_entries],
        bob_entry_ids=[e.time_entry_id for e in bob_entries],
    )


def make_settings(**overrides) -> Settings:
    return replace(Settings.from_env(), **overrides)


@pytest_asyncio.fixture
async def app_settings() -> Settings:
    return make_settings(accounting_sync_enabled=False)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, app_settings: Settings
) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client bound to the test session."""
    app = create_app()

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_session
    app.dependency_overrides[get_app_settings] = lambda: app_settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
