"""Labor billing services."""

from labor_billing.services.billing_service import (
    BillingService,
    DocumentContext,
    DocumentResult,
    FailedDocument,
    FanOutResult,
    InvoicePreview,
    VendorBillPreview,
)
from labor_billing.services.linkage_service import LinkageCommitter, LinkageResult
from labor_billing.services.store import SqlBillingStore

__all__ = [
    "BillingService",
    "DocumentContext",
    "DocumentResult",
    "FailedDocument",
    "FanOutResult",
    "InvoicePreview",
    "VendorBillPreview",
    "LinkageCommitter",
    "LinkageResult",
    "SqlBillingStore",
]
