"""SQLAlchemy implementation of the billing store protocols."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Sequence
from uuid import UUID

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from labor_billing.calculators.types import (
    AssignmentInfo,
    BracketInfo,
    EntryFilter,
    EntryRecord,
    LineCandidate,
    PayProfile,
    Side,
)
from labor_billing.exceptions import PayeeCreationError
from labor_billing.models import (
    Invoice,
    InvoiceLineItem,
    Personnel,
    PersonnelProjectAssignment,
    Project,
    TimeEntry,
    Vendor,
    VendorBill,
    VendorBillLineItem,
)
from labor_billing.services.ports import (
    CreatedDocument,
    InvoiceHeader,
    LinkageOutcome,
    VendorBillHeader,
)

logger = logging.getLogger(__name__)


class SqlBillingStore:
    """Billing store backed by one AsyncSession.

    Reads use ``populate_existing`` so that refs changed by the bulk
    linkage update are never served stale from the identity map.
    """

    def __init__(
        self,
        session: AsyncSession,
        invoice_prefix: str = "INV",
        bill_prefix: str = "BILL",
    ):
        self.session = session
        self.invoice_prefix = invoice_prefix
        self.bill_prefix = bill_prefix

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[None]:
        """Commit on clean exit, roll back on any exception."""
        try:
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    # ===== Entries =====

    @staticmethod
    def _ref_column(side: Side) -> Any:
        if side == Side.INVOICE:
            return TimeEntry.invoice_id
        return TimeEntry.vendor_bill_id

    @staticmethod
    def _entry_query(entry_filter: EntryFilter) -> Select[tuple[TimeEntry]]:
        stmt = select(TimeEntry).options(
            selectinload(TimeEntry.personnel),
            selectinload(TimeEntry.project).selectinload(Project.customer),
        )
        if entry_filter.entry_ids:
            stmt = stmt.where(TimeEntry.time_entry_id.in_(entry_filter.entry_ids))
        if entry_filter.person_ids:
            stmt = stmt.where(TimeEntry.personnel_id.in_(entry_filter.person_ids))
        if entry_filter.project_ids:
            stmt = stmt.where(TimeEntry.project_id.in_(entry_filter.project_ids))
        if entry_filter.start_date is not None:
            stmt = stmt.where(TimeEntry.entry_date >= entry_filter.start_date)
        if entry_filter.end_date is not None:
            stmt = stmt.where(TimeEntry.entry_date <= entry_filter.end_date)
        return stmt.order_by(TimeEntry.entry_date, TimeEntry.time_entry_id).execution_options(
            populate_existing=True
        )

    @staticmethod
    def _to_record(entry: TimeEntry) -> EntryRecord:
        project = entry.project
        customer = project.customer if project is not None else None
        return EntryRecord(
            entry_id=entry.time_entry_id,
            person_id=entry.personnel_id,
            project_id=entry.project_id,
            entry_date=entry.entry_date,
            hours=entry.hours,
            person_name=entry.personnel.full_name if entry.personnel else "Unknown",
            project_name=project.name if project is not None else None,
            customer_id=customer.customer_id if customer is not None else None,
            customer_name=customer.display_name if customer is not None else None,
            invoice_id=entry.invoice_id,
            vendor_bill_id=entry.vendor_bill_id,
        )

    async def fetch_entries(self, entry_filter: EntryFilter) -> list[EntryRecord]:
        result = await self.session.execute(self._entry_query(entry_filter))
        return [self._to_record(entry) for entry in result.scalars().all()]

    async def fetch_unbilled_entries(
        self, entry_filter: EntryFilter, side: Side
    ) -> list[EntryRecord]:
        stmt = self._entry_query(entry_filter).where(self._ref_column(side).is_(None))
        result = await self.session.execute(stmt)
        return [self._to_record(entry) for entry in result.scalars().all()]

    # ===== Rates =====

    async def get_active_assignment(
        self, person_id: UUID, project_id: UUID
    ) -> AssignmentInfo | None:
        result = await self.session.execute(
            select(PersonnelProjectAssignment)
            .options(selectinload(PersonnelProjectAssignment.rate_bracket))
            .where(
                PersonnelProjectAssignment.personnel_id == person_id,
                PersonnelProjectAssignment.project_id == project_id,
                PersonnelProjectAssignment.status == "active",
            )
            .order_by(PersonnelProjectAssignment.created_at.desc())
            .limit(1)
        )
        assignment = result.scalars().first()
        if assignment is None:
            return None

        bracket = assignment.rate_bracket
        return AssignmentInfo(
            person_id=assignment.personnel_id,
            project_id=assignment.project_id,
            status=assignment.status,
            bracket=(
                BracketInfo(
                    bracket_id=bracket.rate_bracket_id,
                    project_id=bracket.project_id,
                    name=bracket.name,
                    bill_rate=bracket.bill_rate,
                    overtime_multiplier=bracket.overtime_multiplier,
                    is_billable=bracket.is_billable,
                )
                if bracket is not None
                else None
            ),
        )

    async def get_pay_profile(self, person_id: UUID) -> PayProfile | None:
        personnel = await self.session.get(Personnel, person_id, populate_existing=True)
        if personnel is None:
            return None
        return PayProfile(
            person_id=personnel.personnel_id,
            pay_rate=personnel.hourly_rate,
            staffing_vendor_id=personnel.staffing_vendor_id,
            self_vendor_id=personnel.linked_vendor_id,
            overtime_multiplier=personnel.overtime_multiplier,
        )

    # ===== Payees =====

    async def ensure_payee_for_person(self, person_id: UUID) -> UUID:
        """Return the person's own vendor, creating and linking one if missing.

        Runs in its own transaction, before any document for the person is
        written.
        """
        personnel = await self.session.get(Personnel, person_id, populate_existing=True)
        if personnel is None:
            raise PayeeCreationError(person_id, "Unknown", "person not found")
        if personnel.linked_vendor_id is not None:
            return personnel.linked_vendor_id

        name = personnel.full_name
        try:
            async with self.unit_of_work():
                vendor = Vendor(name=name, email=personnel.email, vendor_type="personnel")
                self.session.add(vendor)
                await self.session.flush()
                personnel.linked_vendor_id = vendor.vendor_id
        except SQLAlchemyError as exc:
            raise PayeeCreationError(person_id, name, str(exc)) from exc

        logger.info("Created payee vendor %s for %s", vendor.vendor_id, name)
        return vendor.vendor_id

    # ===== Documents =====

    async def _next_number(self, model: type[Invoice] | type[VendorBill], prefix: str) -> str:
        count = await self.session.scalar(select(func.count()).select_from(model))
        return f"{prefix}-{(count or 0) + 1:05d}"

    async def create_invoice(
        self, header: InvoiceHeader, lines: Sequence[LineCandidate]
    ) -> CreatedDocument:
        number = await self._next_number(Invoice, self.invoice_prefix)
        invoice = Invoice(
            invoice_number=number,
            customer_id=header.customer_id,
            customer_name=header.customer_name,
            project_id=header.project_id,
            project_name=header.project_name,
            invoice_date=header.invoice_date,
            due_date=header.due_date,
            subtotal=header.subtotal,
            tax_rate=header.tax_rate,
            tax_amount=header.tax_amount,
            total=header.total,
            notes=header.notes,
            fingerprint=header.fingerprint,
            line_items=[
                InvoiceLineItem(
                    position=position,
                    kind=line.kind.value,
                    product_name=line.product_name,
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=line.rate,
                    total=line.total,
                    rate_bracket_id=line.subject_id,
                    entry_ids=[str(entry_id) for entry_id in line.entry_ids],
                )
                for position, line in enumerate(lines)
            ],
        )
        self.session.add(invoice)
        await self.session.flush()
        return CreatedDocument(document_id=invoice.invoice_id, number=number)

    async def create_vendor_bill(
        self, header: VendorBillHeader, lines: Sequence[LineCandidate]
    ) -> CreatedDocument:
        vendor = await self.session.get(Vendor, header.vendor_id)
        number = await self._next_number(VendorBill, self.bill_prefix)
        bill = VendorBill(
            bill_number=number,
            vendor_id=header.vendor_id,
            vendor_name=vendor.display_name if vendor is not None else "Unknown",
            personnel_id=header.person_id,
            bill_date=header.bill_date,
            due_date=header.due_date,
            subtotal=header.subtotal,
            tax_rate=header.tax_rate,
            tax_amount=header.tax_amount,
            total=header.total,
            notes=header.notes,
            fingerprint=header.fingerprint,
            line_items=[
                VendorBillLineItem(
                    position=position,
                    kind=line.kind.value,
                    product_name=line.product_name,
                    description=line.description,
                    quantity=line.quantity,
                    unit_cost=line.rate,
                    total=line.total,
                    project_id=line.project_id,
                    entry_ids=[str(entry_id) for entry_id in line.entry_ids],
                )
                for position, line in enumerate(lines)
            ],
        )
        self.session.add(bill)
        await self.session.flush()
        return CreatedDocument(document_id=bill.vendor_bill_id, number=number)

    async def document_exists(self, side: Side, document_id: UUID) -> bool:
        model = Invoice if side == Side.INVOICE else VendorBill
        return await self.session.get(model, document_id) is not None

    async def set_external_ref(self, side: Side, document_id: UUID, external_ref: str) -> None:
        model: Any = Invoice if side == Side.INVOICE else VendorBill
        document = await self.session.get(model, document_id)
        if document is not None:
            document.external_ref = external_ref
            await self.session.flush()

    # ===== Linkage =====

    async def set_entry_refs(
        self, entry_ids: Sequence[UUID], document_id: UUID, side: Side
    ) -> LinkageOutcome:
        """Conditionally link entries: ``UPDATE ... WHERE ref IS NULL``.

        When fewer rows than requested are updated, the ids that are not
        linked to this document are looked up and reported as conflicts.
        """
        ids = list(entry_ids)
        ref_column = self._ref_column(side)
        stamp_field = "invoiced_at" if side == Side.INVOICE else "billed_at"

        result = await self.session.execute(
            update(TimeEntry)
            .where(TimeEntry.time_entry_id.in_(ids), ref_column.is_(None))
            .values({ref_column.key: document_id, stamp_field: datetime.now(timezone.utc)})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == len(ids):
            return LinkageOutcome(linked_ids=tuple(ids))

        rows = await self.session.execute(
            select(TimeEntry.time_entry_id, ref_column).where(TimeEntry.time_entry_id.in_(ids))
        )
        current = {entry_id: ref for entry_id, ref in rows.all()}
        linked = tuple(entry_id for entry_id in ids if current.get(entry_id) == document_id)
        conflicting = tuple(entry_id for entry_id in ids if current.get(entry_id) != document_id)
        return LinkageOutcome(linked_ids=linked, conflicting_ids=conflicting)
