"""Pytest fixtures for labor billing engine tests."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from fakes import InMemoryBillingStore, RecordingAccountingSync, make_bracket
from labor_billing.calculators.rate_resolver import RateResolver
from labor_billing.calculators.types import BracketInfo
from labor_billing.config import BillingPolicy, OvertimePeriod
from labor_billing.services.billing_service import BillingService


@pytest.fixture
def store() -> InMemoryBillingStore:
    return InMemoryBillingStore()


@pytest.fixture
def policy() -> BillingPolicy:
    """Default policy: 40h threshold over the whole run, 1.5x, no tax."""
    return BillingPolicy()


@pytest.fixture
def weekly_policy() -> BillingPolicy:
    return BillingPolicy(overtime_period=OvertimePeriod.WEEK)


@pytest.fixture
def resolver(store: InMemoryBillingStore) -> RateResolver:
    return RateResolver(store)


@pytest.fixture
def accounting() -> RecordingAccountingSync:
    return RecordingAccountingSync()


@pytest.fixture
def service(store: InMemoryBillingStore, policy: BillingPolicy) -> BillingService:
    return BillingService(store, policy)


@pytest.fixture
def synced_service(
    store: InMemoryBillingStore, policy: BillingPolicy, accounting: RecordingAccountingSync
) -> BillingService:
    return BillingService(store, policy, accounting_sync=accounting)


@pytest.fixture
def customer_id() -> UUID:
    return uuid4()


@pytest.fixture
def project_id() -> UUID:
    return uuid4()


@pytest.fixture
def senior(project_id: UUID) -> BracketInfo:
    """$50/hr bracket with a 1.5x overtime multiplier."""
    return make_bracket("Senior Engineer", Decimal("50"), project_id=project_id)
