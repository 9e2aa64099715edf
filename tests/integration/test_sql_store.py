"""Integration tests for the SQLAlchemy billing store and full billing runs."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from labor_billing.calculators.types import EntryFilter, Side
from labor_billing.exceptions import NothingToBillError, PayeeCreationError
from labor_billing.models import Invoice, Personnel, TimeEntry, Vendor, VendorBill
from labor_billing.services.billing_service import BillingService, DocumentContext
from labor_billing.services.ports import InvoiceHeader
from labor_billing.services.store import SqlBillingStore

pytestmark = pytest.mark.asyncio

CONTEXT = DocumentContext(document_date=date(2025, 1, 13))


class TestEntryQueries:
    """Test loading time entries."""

    async def test_fetch_entries_maps_directory(self, db_session, seeded):
        store = SqlBillingStore(db_session)

        entries = await store.fetch_entries(EntryFilter())

        assert len(entries) == 6
        ada = [e for e in entries if e.person_id == seeded.ada_id]
        assert {e.person_name for e in ada} == {"Ada Lovelace"}
        assert {e.project_name for e in ada} == {"Apollo", "Gemini"}
        assert {e.customer_name for e in entries} == {"Acme Corp"}
        assert {e.customer_id for e in entries} == {seeded.customer_id}

    async def test_filters(self, db_session, seeded):
        store = SqlBillingStore(db_session)

        by_person = await store.fetch_entries(EntryFilter(person_ids=(seeded.bob_id,)))
        by_project = await store.fetch_entries(EntryFilter(project_ids=(seeded.gemini_id,)))
        by_date = await store.fetch_entries(
            EntryFilter(start_date=date(2025, 1, 7), end_date=date(2025, 1, 8))
        )

        assert [e.entry_id for e in by_person] == seeded.bob_entry_ids
        assert len(by_project) == 2
        assert len(by_date) == 2

    async def test_unbilled_is_per_side(self, db_session, seeded):
        store = SqlBillingStore(db_session)
        async with store.unit_of_work():
            invoice = await _any_invoice(store, seeded)
            await store.set_entry_refs(seeded.bob_entry_ids, invoice, Side.INVOICE)

        uninvoiced = await store.fetch_unbilled_entries(EntryFilter(), Side.INVOICE)
        unbilled = await store.fetch_unbilled_entries(EntryFilter(), Side.VENDOR_BILL)

        assert len(uninvoiced) == 5
        assert len(unbilled) == 6


class TestRateQueries:
    """Test assignment and pay profile lookups."""

    async def test_active_assignment(self, db_session, seeded):
        store = SqlBillingStore(db_session)

        assignment = await store.get_active_assignment(seeded.ada_id, seeded.gemini_id)

        assert assignment.bracket.bracket_id == seeded.bracket_y_id
        assert assignment.bracket.bill_rate == Decimal("60")
        assert await store.get_active_assignment(seeded.bob_id, seeded.gemini_id) is None

    async def test_pay_profile(self, db_session, seeded):
        store = SqlBillingStore(db_session)

        profile = await store.get_pay_profile(seeded.bob_id)

        assert profile.pay_rate == Decimal("30")
        assert profile.self_vendor_id == seeded.bob_vendor_id
        assert await store.get_pay_profile(uuid4()) is None


class TestPayeeProvisioning:
    """Test auto-created payee vendors."""

    async def test_creates_and_links_vendor(self, db_session, seeded):
        store = SqlBillingStore(db_session)

        vendor_id = await store.ensure_payee_for_person(seeded.ada_id)

        vendor = await db_session.get(Vendor, vendor_id)
        assert vendor.name == "Ada Lovelace"
        assert vendor.vendor_type == "personnel"
        ada = await db_session.get(Personnel, seeded.ada_id, populate_existing=True)
        assert ada.linked_vendor_id == vendor_id

    async def test_existing_vendor_reused(self, db_session, seeded):
        store = SqlBillingStore(db_session)

        first = await store.ensure_payee_for_person(seeded.ada_id)
        second = await store.ensure_payee_for_person(seeded.ada_id)

        assert first == second
        assert await store.ensure_payee_for_person(seeded.bob_id) == seeded.bob_vendor_id

    async def test_unknown_person(self, db_session, seeded):
        with pytest.raises(PayeeCreationError):
            await SqlBillingStore(db_session).ensure_payee_for_person(uuid4())


class TestLinkage:
    """Test the conditional ref update."""

    async def test_conflicts_reported(self, db_session, seeded):
        store = SqlBillingStore(db_session)
        async with store.unit_of_work():
            first = await _any_invoice(store, seeded)
            await store.set_entry_refs(seeded.bob_entry_ids, first, Side.INVOICE)

        second = uuid4()
        outcome = await store.set_entry_refs(
            seeded.bob_entry_ids + seeded.ada_entry_ids[:1], second, Side.INVOICE
        )
        await db_session.rollback()

        assert not outcome.ok
        assert outcome.conflicting_ids == tuple(seeded.bob_entry_ids)
        entry = await db_session.get(TimeEntry, seeded.bob_entry_ids[0], populate_existing=True)
        assert entry.invoice_id == first


class TestBillingRuns:
    """Test full runs against the database."""

    async def test_invoice_run(self, db_session, seeded):
        """Test Ada's overtime splits across both brackets; Bob adds 8 regular hours."""
        service = BillingService(SqlBillingStore(db_session))
        entries = await service.load_entries(EntryFilter(), side=Side.INVOICE)

        result = await service.create_invoice(entries, CONTEXT)

        # X: 32 x 40 + 6 x 60, Y: 16 x 60 + 4 x 90
        assert result.total == Decimal("2960.00")
        assert result.number == "INV-00001"
        invoice = await db_session.get(Invoice, result.document_id)
        assert invoice.customer_name == "Acme Corp"
        assert invoice.due_date == date(2025, 1, 17)
        rows = await db_session.execute(
            select(TimeEntry.invoice_id).execution_options(populate_existing=True)
        )
        assert {ref for (ref,) in rows.all()} == {result.document_id}

    async def test_invoice_rerun_bills_nothing(self, db_session, seeded):
        service = BillingService(SqlBillingStore(db_session))
        await service.create_invoice(await service.load_entries(EntryFilter()), CONTEXT)

        with pytest.raises(NothingToBillError):
            await service.create_invoice(await service.load_entries(EntryFilter()), CONTEXT)

        count = await db_session.scalar(select(func.count()).select_from(Invoice))
        assert count == 1

    async def test_vendor_bill_run(self, db_session, seeded):
        service = BillingService(SqlBillingStore(db_session))
        entries = await service.load_entries(EntryFilter(), side=Side.VENDOR_BILL)

        result = await service.create_vendor_bills(entries, CONTEXT)

        assert result.failure_count == 0
        totals = {doc.subject_name: doc.total for doc in result.succeeded}
        assert totals == {"Ada Lovelace": Decimal("1100.00"), "Bob Builder": Decimal("240.00")}

        bills = (await db_session.execute(select(VendorBill))).scalars().all()
        assert {bill.bill_number for bill in bills} == {"BILL-00001", "BILL-00002"}
        bob_bill = next(bill for bill in bills if bill.personnel_id == seeded.bob_id)
        assert bob_bill.vendor_id == seeded.bob_vendor_id
        assert bob_bill.vendor_name == "Bob Builder"

        ada = await db_session.get(Personnel, seeded.ada_id, populate_existing=True)
        ada_bill = next(bill for bill in bills if bill.personnel_id == seeded.ada_id)
        assert ada_bill.vendor_id == ada.linked_vendor_id

    async def test_sides_are_independent(self, db_session, seeded):
        """Test that invoicing leaves every entry available for vendor bills."""
        service = BillingService(SqlBillingStore(db_session))
        await service.create_invoice(await service.load_entries(EntryFilter()), CONTEXT)

        unbilled = await service.load_entries(EntryFilter(), side=Side.VENDOR_BILL)

        assert len(unbilled) == 6


async def _any_invoice(store: SqlBillingStore, seeded):
    """Persist a minimal invoice so refs point at a real row."""
    created = await store.create_invoice(
        InvoiceHeader(
            customer_id=seeded.customer_id,
            customer_name="Acme Corp",
            invoice_date=date(2025, 1, 13),
            due_date=date(2025, 1, 17),
            subtotal=Decimal("0"),
            tax_rate=Decimal("0"),
            tax_amount=Decimal("0"),
            total=Decimal("0"),
            fingerprint="test",
        ),
        [],
    )
    return created.document_id
