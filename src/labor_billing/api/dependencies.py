"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from labor_billing.config import Settings, get_settings
from labor_billing.database import init_db
from labor_billing.services.accounting_sync import build_accounting_sync
from labor_billing.services.billing_service import BillingService
from labor_billing.services.ports import AccountingSync
from labor_billing.services.store import SqlBillingStore


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_app_settings() -> Settings:
    return get_settings()


_accounting_sync: dict[bool, AccountingSync | None] = {}


def get_accounting_sync(
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> AccountingSync | None:
    """One accounting adapter per process."""
    enabled = settings.accounting_sync_enabled
    if enabled not in _accounting_sync:
        _accounting_sync[enabled] = build_accounting_sync(enabled)
    return _accounting_sync[enabled]


def get_billing_service(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    accounting_sync: Annotated[AccountingSync | None, Depends(get_accounting_sync)],
) -> BillingService:
    """Build a billing service for one request.

    Raises:
        ConfigurationError: If the billing settings are invalid
    """
    store = SqlBillingStore(
        db,
        invoice_prefix=settings.invoice_number_prefix,
        bill_prefix=settings.bill_number_prefix,
    )
    return BillingService(
        store,
        policy=settings.billing_policy(),
        accounting_sync=accounting_sync,
        engine_version=settings.engine_version,
    )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Billing = Annotated[BillingService, Depends(get_billing_service)]
