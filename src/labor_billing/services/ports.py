"""Boundary protocols between the billing engine and its collaborators.

The engine core only talks to these protocols. ``SqlBillingStore``
implements every store protocol on one SQLAlchemy session; tests use an
in-memory fake.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import AsyncContextManager, Protocol, Sequence
from uuid import UUID

from labor_billing.calculators.types import (
    AssignmentInfo,
    EntryFilter,
    EntryRecord,
    LineCandidate,
    PayProfile,
    Side,
)


@dataclass(frozen=True)
class InvoiceHeader:
    """Header fields for a new invoice."""

    customer_id: UUID
    customer_name: str
    invoice_date: date
    due_date: date
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    fingerprint: str
    project_id: UUID | None = None
    project_name: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class VendorBillHeader:
    """Header fields for a new vendor bill."""

    vendor_id: UUID
    person_id: UUID
    bill_date: date
    due_date: date
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    fingerprint: str
    notes: str | None = None


@dataclass(frozen=True)
class CreatedDocument:
    """Identity of a persisted document."""

    document_id: UUID
    number: str


@dataclass(frozen=True)
class LinkageOutcome:
    """Result of a conditional linkage update."""

    linked_ids: tuple[UUID, ...]
    conflicting_ids: tuple[UUID, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.conflicting_ids


class EntrySource(Protocol):
    """Loads time entries."""

    async def fetch_entries(self, entry_filter: EntryFilter) -> list[EntryRecord]:
        """Load entries matching the filter, linked or not."""
        ...

    async def fetch_unbilled_entries(
        self, entry_filter: EntryFilter, side: Side
    ) -> list[EntryRecord]:
        """Load entries matching the filter whose ref for ``side`` is unset."""
        ...


class RateSource(Protocol):
    """Read-only rate data for RateResolver."""

    async def get_active_assignment(
        self, person_id: UUID, project_id: UUID
    ) -> AssignmentInfo | None:
        ...

    async def get_pay_profile(self, person_id: UUID) -> PayProfile | None:
        ...


class PayeeProvisioner(Protocol):
    """Creates a payee vendor for a person who has none."""

    async def ensure_payee_for_person(self, person_id: UUID) -> UUID:
        """Return the person's payee vendor id, creating one if needed.

        Raises:
            PayeeCreationError: If the vendor cannot be created
        """
        ...


class DocumentStore(Protocol):
    """Persists invoices and vendor bills."""

    async def create_invoice(
        self, header: InvoiceHeader, lines: Sequence[LineCandidate]
    ) -> CreatedDocument:
        ...

    async def create_vendor_bill(
        self, header: VendorBillHeader, lines: Sequence[LineCandidate]
    ) -> CreatedDocument:
        ...

    async def document_exists(self, side: Side, document_id: UUID) -> bool:
        ...

    async def set_external_ref(self, side: Side, document_id: UUID, external_ref: str) -> None:
        """Record the accounting system's id for a synced document."""
        ...


class LinkageStore(Protocol):
    """Sets entry refs. Must be called inside a unit of work."""

    async def set_entry_refs(
        self, entry_ids: Sequence[UUID], document_id: UUID, side: Side
    ) -> LinkageOutcome:
        """Link entries whose ref for ``side`` is still unset.

        Entries that were already linked (or do not exist) are returned as
        conflicting; the caller rolls the unit of work back.
        """
        ...


class BillingStore(EntrySource, RateSource, PayeeProvisioner, DocumentStore, LinkageStore, Protocol):
    """Everything the billing service needs from storage."""

    def unit_of_work(self) -> AsyncContextManager[None]:
        """Commit on clean exit, roll back on exception."""
        ...


@dataclass(frozen=True)
class SyncReceipt:
    """Result of pushing a document to the accounting system."""

    provider: str
    external_ref: str | None = None
    message: str = ""


class AccountingSync(Protocol):
    """Pushes committed documents to an external accounting system.

    Called only after the document's unit of work has committed.
    """

    @property
    def provider_name(self) -> str:
        ...

    async def push_document(self, side: Side, document_id: UUID) -> SyncReceipt:
        ...
