"""Billing document builder with deterministic fingerprints."""

from __future__ import annotations

import hashlib
import json
from dataclasses import replace
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence
from uuid import UUID

from labor_billing.calculators.types import (
    ZERO,
    BracketSummary,
    DocumentDraft,
    HourKind,
    LineCandidate,
    PersonnelSummary,
    Side,
)
from labor_billing.exceptions import NothingToBillError, ZeroOrMissingRateError


class BillingDocumentBuilder:
    """Turns frozen summaries into invoice and vendor bill drafts.

    Line rules:
    - Invoice: one line per (bracket, hour kind) with hours > 0
    - Vendor bill: one line per (person, hour kind), "Regular Hours" / "Overtime Hours"
    - Overtime lines carry the already-multiplied rate

    Rounding:
    - Hours and rates are never rounded
    - Line totals and document totals round to cents (ROUND_HALF_UP)

    Quantity, rate and total are always derived. Only descriptions may be
    edited after building.
    """

    OUTPUT_PRECISION = Decimal("0.01")  # 2 decimal places for money
    HOURS_PRECISION = Decimal("0.01")  # display only

    REGULAR_HOURS = "Regular Hours"
    OVERTIME_HOURS = "Overtime Hours"

    def __init__(self, tax_rate: Decimal = ZERO):
        self.tax_rate = tax_rate

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return amount.quantize(BillingDocumentBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    # ===== Formatting =====

    @staticmethod
    def format_hours(hours: Decimal) -> str:
        return str(hours.quantize(BillingDocumentBuilder.HOURS_PRECISION, rounding=ROUND_HALF_UP))

    @staticmethod
    def format_money(amount: Decimal) -> str:
        return f"${BillingDocumentBuilder.round_to_cents(amount):,}"

    @staticmethod
    def format_multiplier(multiplier: Decimal) -> str:
        return f"{multiplier.normalize():f}"

    @staticmethod
    def format_date_range(start: date, end: date) -> str:
        """Format a covered date range, e.g. ``Jan 6 - Jan 10, 2025``."""
        if start == end:
            return f"{start:%b} {start.day}, {start.year}"
        if start.year == end.year:
            return f"{start:%b} {start.day} - {end:%b} {end.day}, {end.year}"
        return f"{start:%b} {start.day}, {start.year} - {end:%b} {end.day}, {end.year}"

    @staticmethod
    def period_label(summary: BracketSummary) -> str:
        label = BillingDocumentBuilder.format_date_range(summary.period_start, summary.period_end)
        if summary.week_start is not None:
            return f"Week of {label}"
        return label

    # ===== Lines =====

    @staticmethod
    def invoice_lines(summary: BracketSummary) -> list[LineCandidate]:
        """Create the regular and overtime lines for one bracket summary."""
        fmt = BillingDocumentBuilder
        label = fmt.period_label(summary)
        lines: list[LineCandidate] = []

        if summary.regular_hours > 0:
            product = f"{summary.bracket_name} - Regular Time"
            lines.append(
                LineCandidate(
                    kind=HourKind.REGULAR,
                    product_name=product,
                    description=(
                        f"{product}, {label}\n"
                        f"{fmt.format_hours(summary.regular_hours)} hours @ "
                        f"{fmt.format_money(summary.bill_rate)}/hr"
                    ),
                    quantity=summary.regular_hours,
                    rate=summary.bill_rate,
                    subject_id=summary.bracket_id,
                    entry_ids=summary.entry_ids,
                    project_id=summary.project_id,
                )
            )

        if summary.overtime_hours > 0:
            product = f"{summary.bracket_name} - Overtime"
            lines.append(
                LineCandidate(
                    kind=HourKind.OVERTIME,
                    product_name=product,
                    description=(
                        f"{product}, {label}\n"
                        f"{fmt.format_hours(summary.overtime_hours)} hours @ "
                        f"{fmt.format_money(summary.overtime_rate)}/hr "
                        f"({fmt.format_multiplier(summary.overtime_multiplier)}x rate)"
                    ),
                    quantity=summary.overtime_hours,
                    rate=summary.overtime_rate,
                    subject_id=summary.bracket_id,
                    entry_ids=summary.entry_ids,
                    project_id=summary.project_id,
                )
            )

        return lines

    @staticmethod
    def vendor_bill_lines(summary: PersonnelSummary) -> list[LineCandidate]:
        """Create the regular and overtime lines for one person."""
        fmt = BillingDocumentBuilder
        label = fmt.format_date_range(summary.period_start, summary.period_end)
        project_id = summary.project_ids[0] if len(summary.project_ids) == 1 else None
        lines: list[LineCandidate] = []

        for kind, product, hours, rate in (
            (HourKind.REGULAR, fmt.REGULAR_HOURS, summary.regular_hours, summary.pay_rate),
            (HourKind.OVERTIME, fmt.OVERTIME_HOURS, summary.overtime_hours, summary.overtime_rate),
        ):
            if hours <= 0:
                continue
            lines.append(
                LineCandidate(
                    kind=kind,
                    product_name=product,
                    description=(
                        f"Labor - {summary.person_name}: {product}, {label}\n"
                        f"{fmt.format_hours(hours)} hours @ {fmt.format_money(rate)}/hr"
                    ),
                    quantity=hours,
                    rate=rate,
                    subject_id=summary.person_id,
                    entry_ids=summary.entry_ids,
                    project_id=project_id,
                )
            )

        return lines

    # ===== Documents =====

    def build(
        self,
        summaries: Sequence[BracketSummary] | Sequence[PersonnelSummary],
        side: Side,
        subject_id: UUID | None = None,
        subject_name: str = "",
    ) -> list[DocumentDraft]:
        """Build drafts for either side.

        Invoices collapse all summaries into one document; vendor bills
        produce one document per person.
        """
        if side == Side.INVOICE:
            return [self.build_invoice(summaries, subject_id, subject_name)]  # type: ignore[arg-type]
        return [self.build_vendor_bill(s) for s in summaries]  # type: ignore[arg-type]

    def build_invoice(
        self,
        summaries: Sequence[BracketSummary],
        customer_id: UUID | None,
        customer_name: str,
        project_names: Sequence[str] = (),
    ) -> DocumentDraft:
        lines: list[LineCandidate] = []
        for summary in summaries:
            lines.extend(self.invoice_lines(summary))

        return DocumentDraft(
            side=Side.INVOICE,
            subject_id=customer_id,
            subject_name=customer_name,
            lines=tuple(lines),
            period_start=min((s.period_start for s in summaries), default=date.today()),
            period_end=max((s.period_end for s in summaries), default=date.today()),
            tax_rate=self.tax_rate,
            project_ids=tuple(dict.fromkeys(s.project_id for s in summaries)),
            project_names=tuple(project_names),
        )

    def build_vendor_bill(self, summary: PersonnelSummary) -> DocumentDraft:
        return DocumentDraft(
            side=Side.VENDOR_BILL,
            subject_id=summary.person_id,
            subject_name=summary.person_name,
            lines=tuple(self.vendor_bill_lines(summary)),
            period_start=summary.period_start,
            period_end=summary.period_end,
            tax_rate=self.tax_rate,
            project_ids=summary.project_ids,
            project_names=(summary.project_name,) if summary.project_name else (),
            payee_vendor_id=summary.payee.vendor_id,
        )

    # ===== Validation =====

    @staticmethod
    def zero_rate_lines(draft: DocumentDraft) -> list[LineCandidate]:
        """Lines that would bill hours at a zero or missing rate."""
        return [line for line in draft.lines if line.rate is None or line.rate <= 0]

    @staticmethod
    def finalize(draft: DocumentDraft) -> DocumentDraft:
        """Validate a draft before it is persisted.

        Raises:
            NothingToBillError: If the draft has no lines
            ZeroOrMissingRateError: If any line has a rate <= 0
        """
        if not draft.lines:
            raise NothingToBillError(draft.side)
        bad = BillingDocumentBuilder.zero_rate_lines(draft)
        if bad:
            raise ZeroOrMissingRateError(draft.subject_name, bad)
        return draft

    @staticmethod
    def edit_description(draft: DocumentDraft, index: int, description: str) -> DocumentDraft:
        """Replace one line's description; amounts are untouched."""
        lines = list(draft.lines)
        lines[index] = replace(lines[index], description=description)
        return replace(draft, lines=tuple(lines))

    @staticmethod
    def compute_fingerprint(draft: DocumentDraft, engine_version: str = "") -> str:
        """Compute deterministic hash for a document's amounts.

        Descriptions are excluded so that editing them does not change the
        fingerprint. Identical summaries always give identical fingerprints.
        """
        canonical = draft.to_canonical_dict()
        canonical["engine_version"] = engine_version
        json_str = json.dumps(canonical, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]
