"""SQLAlchemy ORM models."""

from labor_billing.models.base import Base, TimestampMixin
from labor_billing.models.billing import (
    Invoice,
    InvoiceLineItem,
    TimeEntry,
    VendorBill,
    VendorBillLineItem,
)
from labor_billing.models.directory import (
    Customer,
    Personnel,
    PersonnelProjectAssignment,
    Project,
    RateBracket,
    Vendor,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "Customer",
    "Project",
    "Vendor",
    "Personnel",
    "RateBracket",
    "PersonnelProjectAssignment",
    "TimeEntry",
    "Invoice",
    "InvoiceLineItem",
    "VendorBill",
    "VendorBillLineItem",
]
