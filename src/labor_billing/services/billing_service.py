"""Billing runs: preview, create and fan out invoices and vendor bills."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from labor_billing.calculators.aggregators import (
    BracketAggregation,
    BracketAggregator,
    PersonnelAggregation,
    PersonnelAggregator,
)
from labor_billing.calculators.line_builder import BillingDocumentBuilder
from labor_billing.calculators.rate_resolver import RateResolver
from labor_billing.calculators.types import (
    ZERO,
    DocumentDraft,
    EntryFilter,
    EntryRecord,
    LineCandidate,
    PersonnelSummary,
    Side,
    UnresolvedPerson,
)
from labor_billing.config import BillingPolicy
from labor_billing.exceptions import (
    AccountingSyncError,
    BillingError,
    DocumentNotFoundError,
    MissingCustomerError,
    NothingToBillError,
    PayeeCreationError,
    UnresolvedRateError,
)
from labor_billing.services.linkage_service import LinkageCommitter
from labor_billing.services.ports import (
    AccountingSync,
    BillingStore,
    InvoiceHeader,
    SyncReceipt,
    VendorBillHeader,
)

logger = logging.getLogger(__name__)


def next_friday(day: date) -> date:
    """Return the first Friday strictly after ``day``."""
    return day + timedelta(days=(4 - day.weekday()) % 7 or 7)


@dataclass(frozen=True)
class DocumentContext:
    """Operator-supplied fields for the documents of one run."""

    document_date: date | None = None
    due_date: date | None = None
    notes: str | None = None
    payee_vendor_id: UUID | None = None  # vendor bills only

    def resolved_date(self) -> date:
        return self.document_date or date.today()

    def resolved_due_date(self) -> date:
        return self.due_date or next_friday(self.resolved_date())


@dataclass(frozen=True)
class DocumentResult:
    """A committed document."""

    side: Side
    document_id: UUID
    number: str
    subject_id: UUID | None
    subject_name: str
    total: Decimal
    entry_ids: tuple[UUID, ...]
    fingerprint: str
    external_ref: str | None = None
    sync_warning: str | None = None

    @property
    def entries_linked(self) -> int:
        return len(self.entry_ids)


@dataclass(frozen=True)
class FailedDocument:
    """A document that could not be produced; nothing was written for it."""

    subject_id: UUID | None
    subject_name: str
    code: str
    message: str
    retryable: bool = False
    entry_ids: tuple[UUID, ...] = ()

    @classmethod
    def from_error(
        cls,
        subject_id: UUID | None,
        subject_name: str,
        error: Exception,
        entry_ids: Sequence[UUID] = (),
    ) -> FailedDocument:
        if isinstance(error, BillingError):
            code, message, retryable = error.code, error.message, error.retryable
        else:
            code, message, retryable = "UNEXPECTED_ERROR", f"Unexpected error: {error}", False
        return cls(subject_id, subject_name, code, message, retryable, tuple(entry_ids))


@dataclass
class FanOutResult:
    """Partial-success report for a multi-document run."""

    side: Side
    succeeded: list[DocumentResult] = field(default_factory=list)
    failed: list[FailedDocument] = field(default_factory=list)
    skipped_entry_ids: list[UUID] = field(default_factory=list)
    unresolved: list[UnresolvedPerson] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def total_amount(self) -> Decimal:
        return sum((doc.total for doc in self.succeeded), ZERO)

    @property
    def skipped_message(self) -> str | None:
        if not self.skipped_entry_ids:
            return None
        return f"{len(self.skipped_entry_ids)} entries already billed, will be skipped"


@dataclass(frozen=True)
class InvoicePreview:
    """Invoice draft plus everything that would block submitting it."""

    aggregation: BracketAggregation
    draft: DocumentDraft
    fingerprint: str
    zero_rate_lines: tuple[LineCandidate, ...] = ()
    customer_error: MissingCustomerError | None = None

    @property
    def blockers(self) -> tuple[UnresolvedPerson, ...]:
        return self.aggregation.unresolved

    @property
    def skipped_entry_ids(self) -> tuple[UUID, ...]:
        return self.aggregation.skipped_entry_ids

    @property
    def can_submit(self) -> bool:
        return (
            bool(self.draft.lines)
            and not self.blockers
            and not self.zero_rate_lines
            and self.customer_error is None
        )


@dataclass(frozen=True)
class VendorBillPreview:
    """One draft per person, plus people with no pay rate."""

    aggregation: PersonnelAggregation
    drafts: tuple[DocumentDraft, ...]

    @property
    def unresolved(self) -> tuple[UnresolvedPerson, ...]:
        return self.aggregation.unresolved

    @property
    def skipped_entry_ids(self) -> tuple[UUID, ...]:
        return self.aggregation.skipped_entry_ids

    @property
    def zero_rate_people(self) -> list[str]:
        return [
            draft.subject_name
            for draft in self.drafts
            if BillingDocumentBuilder.zero_rate_lines(draft)
        ]


class BillingService:
    """Orchestrates one billing run per call.

    Invoice runs are all-or-nothing: any unresolved person refuses the run.
    Vendor bill runs fan out one document per person; each document is its
    own unit of work, and one person's failure never affects another's bill.
    Accounting sync runs only after a document commits and never unwinds it.
    """

    def __init__(
        self,
        store: BillingStore,
        policy: BillingPolicy | None = None,
        accounting_sync: AccountingSync | None = None,
        engine_version: str = "1.0.0",
    ):
        self.store = store
        self.policy = policy or BillingPolicy()
        self.accounting_sync = accounting_sync
        self.engine_version = engine_version
        self.builder = BillingDocumentBuilder(self.policy.tax_rate)
        self.linkage = LinkageCommitter(store)

    def _resolver(self, payee_override: UUID | None = None) -> RateResolver:
        """A fresh resolver, so rate caching never outlives the run."""
        return RateResolver(self.store, self.policy.overtime_multiplier, payee_override)

    async def load_entries(
        self, entry_filter: EntryFilter, side: Side | None = None
    ) -> list[EntryRecord]:
        """Load entries; with ``side``, only those not yet linked on that side."""
        if side is None:
            return await self.store.fetch_entries(entry_filter)
        return await self.store.fetch_unbilled_entries(entry_filter, side)

    # ===== Invoices =====

    async def preview_invoice(self, entries: Iterable[EntryRecord]) -> InvoicePreview:
        """Aggregate and build without validating or writing anything."""
        entries = list(entries)
        aggregation = await BracketAggregator(self._resolver(), self.policy).aggregate(entries)
        eligible = _without(entries, aggregation.skipped_entry_ids)

        customer_id: UUID | None = None
        customer_name = ""
        customer_error: MissingCustomerError | None = None
        if eligible:
            try:
                customer_id, customer_name = _single_customer(eligible)
            except MissingCustomerError as e:
                customer_error = e

        draft = self.builder.build_invoice(
            aggregation.summaries, customer_id, customer_name, _project_names(eligible)
        )
        return InvoicePreview(
            aggregation=aggregation,
            draft=draft,
            fingerprint=self.builder.compute_fingerprint(draft, self.engine_version),
            zero_rate_lines=tuple(self.builder.zero_rate_lines(draft)),
            customer_error=customer_error,
        )

    async def create_invoice(
        self, entries: Iterable[EntryRecord], context: DocumentContext | None = None
    ) -> DocumentResult:
        """Create one invoice for entries that all belong to one customer.

        Raises:
            NothingToBillError: If every entry is already invoiced
            UnresolvedRateError: If any person has no usable bracket
            MissingCustomerError: If the entries do not map to exactly one customer
            ZeroOrMissingRateError: If any line would bill at a zero rate
            LinkageConflictError: If another run invoiced an entry first
        """
        context = context or DocumentContext()
        entries = list(entries)
        logger.info("Invoice run started for %d entries", len(entries))

        aggregation = await BracketAggregator(self._resolver(), self.policy).aggregate(entries)
        eligible = _without(entries, aggregation.skipped_entry_ids)
        if not eligible:
            raise NothingToBillError(Side.INVOICE, len(aggregation.skipped_entry_ids))
        if aggregation.unresolved:
            raise UnresolvedRateError(aggregation.unresolved)
        customer_id, customer_name = _single_customer(eligible)

        draft = self.builder.build_invoice(
            aggregation.summaries, customer_id, customer_name, _project_names(eligible)
        )
        return await self._commit_invoice(draft, context)

    async def create_customer_invoices(
        self, entries: Iterable[EntryRecord], context: DocumentContext | None = None
    ) -> FanOutResult:
        """Create one invoice per customer.

        Overtime is still computed per person across the whole selection;
        bracket summaries are then split by their project's customer. A person
        with any unresolved entry blocks every customer they worked for, since
        their overtime split is incomplete without those hours.
        """
        context = context or DocumentContext()
        entries = list(entries)
        aggregation = await BracketAggregator(self._resolver(), self.policy).aggregate(entries)
        eligible = _without(entries, aggregation.skipped_entry_ids)
        if not eligible:
            raise NothingToBillError(Side.INVOICE, len(aggregation.skipped_entry_ids))

        result = FanOutResult(
            side=Side.INVOICE,
            skipped_entry_ids=list(aggregation.skipped_entry_ids),
            unresolved=list(aggregation.unresolved),
        )
        customer_of = {e.entry_id: e.customer_id for e in eligible}

        missing = [e.entry_id for e in eligible if e.customer_id is None]
        if missing:
            result.failed.append(
                FailedDocument.from_error(None, "No customer", MissingCustomerError(missing), missing)
            )

        customers = _customers(eligible)
        for customer_id, customer_name in sorted(
            customers.items(), key=lambda item: (item[1], str(item[0]))
        ):
            summaries = [s for s in aggregation.summaries if customer_of[s.entry_ids[0]] == customer_id]
            customer_entries = [e for e in eligible if e.customer_id == customer_id]
            entry_ids = [e.entry_id for e in customer_entries]
            people = {e.person_id for e in customer_entries}
            blockers = [u for u in aggregation.unresolved if u.person_id in people]

            try:
                if blockers:
                    raise UnresolvedRateError(blockers)
                draft = self.builder.build_invoice(
                    summaries, customer_id, customer_name, _project_names(customer_entries)
                )
                result.succeeded.append(await self._commit_invoice(draft, context))
            except BillingError as e:
                logger.warning("Invoice for %s not created: %s", customer_name, e.message)
                result.failed.append(
                    FailedDocument.from_error(customer_id, customer_name, e, entry_ids)
                )
            except Exception as e:
                logger.exception("Unexpected error invoicing %s", customer_name)
                result.failed.append(
                    FailedDocument.from_error(customer_id, customer_name, e, entry_ids)
                )

        logger.info(
            "Customer invoice run finished: %d created, %d failed",
            result.success_count,
            result.failure_count,
        )
        return result

    async def _commit_invoice(self, draft: DocumentDraft, context: DocumentContext) -> DocumentResult:
        draft = self.builder.finalize(draft)
        if draft.subject_id is None:
            raise MissingCustomerError(draft.entry_ids)
        fingerprint = self.builder.compute_fingerprint(draft, self.engine_version)
        invoice_date = context.resolved_date()

        header = InvoiceHeader(
            customer_id=draft.subject_id,
            customer_name=draft.subject_name,
            invoice_date=invoice_date,
            due_date=context.resolved_due_date(),
            subtotal=draft.subtotal,
            tax_rate=draft.tax_rate,
            tax_amount=draft.tax_amount,
            total=draft.total,
            fingerprint=fingerprint,
            project_id=draft.project_ids[0] if draft.project_ids else None,
            project_name=", ".join(draft.project_names) or None,
            notes=context.notes,
        )

        async with self.store.unit_of_work():
            created = await self.store.create_invoice(header, draft.lines)
            await self.linkage.commit(created.document_id, draft.entry_ids, Side.INVOICE)

        logger.info(
            "Created invoice %s for %s: %s (%d entries)",
            created.number,
            draft.subject_name,
            draft.total,
            len(draft.entry_ids),
        )
        external_ref, warning = await self._sync(Side.INVOICE, created.document_id)
        return DocumentResult(
            side=Side.INVOICE,
            document_id=created.document_id,
            number=created.number,
            subject_id=draft.subject_id,
            subject_name=draft.subject_name,
            total=draft.total,
            entry_ids=draft.entry_ids,
            fingerprint=fingerprint,
            external_ref=external_ref,
            sync_warning=warning,
        )

    # ===== Vendor bills =====

    async def preview_vendor_bills(
        self, entries: Iterable[EntryRecord], payee_vendor_id: UUID | None = None
    ) -> VendorBillPreview:
        aggregation = await PersonnelAggregator(
            self._resolver(payee_vendor_id), self.policy
        ).aggregate(entries)
        drafts = tuple(self.builder.build_vendor_bill(s) for s in aggregation.summaries)
        return VendorBillPreview(aggregation=aggregation, drafts=drafts)

    async def create_vendor_bills(
        self, entries: Iterable[EntryRecord], context: DocumentContext | None = None
    ) -> FanOutResult:
        """Create one vendor bill per person.

        Per person, in order: build and validate, ensure a payee, then write
        the bill and its linkage in one unit of work, then sync. Failures are
        recorded and the loop moves on.

        Raises:
            NothingToBillError: If every entry is already billed
        """
        context = context or DocumentContext()
        entries = list(entries)
        logger.info("Vendor bill run started for %d entries", len(entries))

        aggregation = await PersonnelAggregator(
            self._resolver(context.payee_vendor_id), self.policy
        ).aggregate(entries)
        if not _without(entries, aggregation.skipped_entry_ids):
            raise NothingToBillError(Side.VENDOR_BILL, len(aggregation.skipped_entry_ids))

        result = FanOutResult(
            side=Side.VENDOR_BILL,
            skipped_entry_ids=list(aggregation.skipped_entry_ids),
            unresolved=list(aggregation.unresolved),
        )
        for person in aggregation.unresolved:
            logger.warning("No pay rate for %s (%s)", person.person_name, person.reason.value)

        for summary in aggregation.summaries:
            try:
                result.succeeded.append(await self._create_vendor_bill(summary, context))
            except BillingError as e:
                logger.warning("Vendor bill for %s not created: %s", summary.person_name, e.message)
                result.failed.append(
                    FailedDocument.from_error(
                        summary.person_id, summary.person_name, e, summary.entry_ids
                    )
                )
            except Exception as e:
                logger.exception("Unexpected error billing %s", summary.person_name)
                result.failed.append(
                    FailedDocument.from_error(
                        summary.person_id, summary.person_name, e, summary.entry_ids
                    )
                )

        logger.info(
            "Vendor bill run finished: %d created, %d failed, %d skipped",
            result.success_count,
            result.failure_count,
            len(result.skipped_entry_ids),
        )
        return result

    async def _create_vendor_bill(
        self, summary: PersonnelSummary, context: DocumentContext
    ) -> DocumentResult:
        draft = self.builder.finalize(self.builder.build_vendor_bill(summary))

        vendor_id = summary.payee.vendor_id
        if summary.payee.needs_auto_create:
            vendor_id = await self.store.ensure_payee_for_person(summary.person_id)
            draft = replace(draft, payee_vendor_id=vendor_id)
        if vendor_id is None:
            raise PayeeCreationError(summary.person_id, summary.person_name, "no payee vendor")

        fingerprint = self.builder.compute_fingerprint(draft, self.engine_version)
        bill_date = context.resolved_date()
        header = VendorBillHeader(
            vendor_id=vendor_id,
            person_id=summary.person_id,
            bill_date=bill_date,
            due_date=context.resolved_due_date(),
            subtotal=draft.subtotal,
            tax_rate=draft.tax_rate,
            tax_amount=draft.tax_amount,
            total=draft.total,
            fingerprint=fingerprint,
            notes=context.notes or _labor_bill_note(summary, bill_date),
        )

        async with self.store.unit_of_work():
            created = await self.store.create_vendor_bill(header, draft.lines)
            await self.linkage.commit(created.document_id, draft.entry_ids, Side.VENDOR_BILL)

        logger.info(
            "Created vendor bill %s for %s: %s (%d entries)",
            created.number,
            summary.person_name,
            draft.total,
            len(draft.entry_ids),
        )
        external_ref, warning = await self._sync(Side.VENDOR_BILL, created.document_id)
        return DocumentResult(
            side=Side.VENDOR_BILL,
            document_id=created.document_id,
            number=created.number,
            subject_id=summary.person_id,
            subject_name=summary.person_name,
            total=draft.total,
            entry_ids=draft.entry_ids,
            fingerprint=fingerprint,
            external_ref=external_ref,
            sync_warning=warning,
        )

    # ===== Accounting sync =====

    async def _sync(self, side: Side, document_id: UUID) -> tuple[str | None, str | None]:
        """Push a committed document. Returns (external_ref, warning)."""
        if self.accounting_sync is None:
            return None, None
        try:
            receipt = await self._push(side, document_id)
        except AccountingSyncError as e:
            logger.warning("%s; the document is saved and can be synced later", e.message)
            return None, e.message
        return receipt.external_ref, None

    async def _push(self, side: Side, document_id: UUID) -> SyncReceipt:
        if self.accounting_sync is None:
            raise AccountingSyncError(side, document_id, "accounting sync is disabled")
        try:
            receipt = await self.accounting_sync.push_document(side, document_id)
        except Exception as e:
            raise AccountingSyncError(side, document_id, str(e)) from e

        if receipt.external_ref:
            async with self.store.unit_of_work():
                await self.store.set_external_ref(side, document_id, receipt.external_ref)
        return receipt

    async def retry_accounting_sync(self, side: Side, document_id: UUID) -> SyncReceipt:
        """Push an already-committed document again.

        Raises:
            DocumentNotFoundError: If the document does not exist
            AccountingSyncError: If sync is disabled or the push fails again
        """
        if self.accounting_sync is None:
            raise AccountingSyncError(side, document_id, "accounting sync is disabled")
        if not await self.store.document_exists(side, document_id):
            raise DocumentNotFoundError(side, document_id)
        return await self._push(side, document_id)


def _without(entries: Sequence[EntryRecord], skipped: Iterable[UUID]) -> list[EntryRecord]:
    """Entries left to bill: not skipped and with hours."""
    skipped_ids = set(skipped)
    return [e for e in entries if e.entry_id not in skipped_ids and e.hours > 0]


def _customers(entries: Iterable[EntryRecord]) -> dict[UUID, str]:
    customers: dict[UUID, str] = {}
    for entry in entries:
        if entry.customer_id is not None:
            customers.setdefault(entry.customer_id, entry.customer_name or "Unknown")
    return customers


def _single_customer(entries: Sequence[EntryRecord]) -> tuple[UUID, str]:
    """The one customer every entry bills to.

    Raises:
        MissingCustomerError: If any entry has no customer or there are several
    """
    missing = [e.entry_id for e in entries if e.customer_id is None]
    if missing:
        raise MissingCustomerError(missing)
    customers = _customers(entries)
    if len(customers) != 1:
        raise MissingCustomerError(customer_count=len(customers))
    ((customer_id, customer_name),) = customers.items()
    return customer_id, customer_name


def _project_names(entries: Iterable[EntryRecord]) -> list[str]:
    return list(dict.fromkeys(e.project_name for e in entries if e.project_name))


def _labor_bill_note(summary: PersonnelSummary, bill_date: date) -> str:
    project = summary.project_name or "multiple projects"
    return f"Labor bill for {project} - {bill_date:%b} {bill_date.day}, {bill_date.year}"
