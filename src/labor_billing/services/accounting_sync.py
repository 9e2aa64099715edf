"""Accounting sync stub for local development and testing.

Replace with a QuickBooks (or other ledger) adapter for production.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from labor_billing.calculators.types import Side
from labor_billing.services.ports import AccountingSync, SyncReceipt

logger = logging.getLogger(__name__)


class StubAccountingSync:
    """Stub accounting adapter.

    In production, this would:
    - Map the document's lines to ledger items and accounts
    - Create the invoice or bill in the external system
    - Store the external id for later reconciliation
    """

    provider_name = "accounting_stub"

    def __init__(self, fail_for: set[UUID] | None = None):
        """Initialize stub adapter.

        Args:
            fail_for: Document ids whose push raises, to exercise the retry path.
        """
        self.fail_for = set(fail_for or ())
        # In-memory tracking for stub
        self.pushed: dict[UUID, dict[str, Any]] = {}

    async def push_document(self, side: Side, document_id: UUID) -> SyncReceipt:
        if document_id in self.fail_for:
            raise ConnectionError(f"{self.provider_name} unavailable")

        prefix = "QINV" if side == Side.INVOICE else "QBILL"
        external_ref = f"{prefix}-{str(document_id)[:8].upper()}"
        self.pushed[document_id] = {
            "side": side.value,
            "external_ref": external_ref,
            "pushed_at": datetime.now(timezone.utc),
        }
        logger.info("Pushed %s %s to %s", side.value, document_id, self.provider_name)
        return SyncReceipt(provider=self.provider_name, external_ref=external_ref)


def build_accounting_sync(enabled: bool) -> AccountingSync | None:
    """Return the configured accounting adapter, or None when sync is off."""
    if not enabled:
        return None
    return StubAccountingSync()
