"""Type definitions for the billing aggregation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Union
from uuid import UUID

CENTS = Decimal("0.01")
ZERO = Decimal("0")


class Side(str, Enum):
    """Which document a run produces. The two sides are independent."""

    INVOICE = "invoice"  # customer-facing revenue
    VENDOR_BILL = "vendor_bill"  # labor cost payable


class HourKind(str, Enum):
    """Hour classification on a line item."""

    REGULAR = "regular"
    OVERTIME = "overtime"


class UnresolvedReason(str, Enum):
    """Why no usable rate could be found for a person."""

    NO_ASSIGNMENT = "no_assignment"
    NO_BRACKET = "no_bracket"
    NON_BILLABLE_BRACKET = "non_billable_bracket"
    NO_PAY_PROFILE = "no_pay_profile"
    NO_PAY_RATE = "no_pay_rate"


class PayeeSource(str, Enum):
    """Where a vendor bill's payee came from, in resolution order."""

    OVERRIDE = "override"
    STAFFING_AGENCY = "staffing_agency"
    SELF_VENDOR = "self_vendor"
    NEEDS_AUTO_CREATE = "needs_auto_create"


# ===== Inputs =====


@dataclass(frozen=True)
class EntryRecord:
    """A time entry as loaded for one aggregation run."""

    entry_id: UUID
    person_id: UUID
    project_id: UUID
    entry_date: date
    hours: Decimal
    person_name: str = "Unknown"
    project_name: str | None = None
    customer_id: UUID | None = None
    customer_name: str | None = None

    # Linkage refs, one per side
    invoice_id: UUID | None = None
    vendor_bill_id: UUID | None = None

    def ref_for(self, side: Side) -> UUID | None:
        """Return the document this entry is linked to on ``side``."""
        if side == Side.INVOICE:
            return self.invoice_id
        return self.vendor_bill_id

    def is_linked(self, side: Side) -> bool:
        return self.ref_for(side) is not None


@dataclass(frozen=True)
class EntryFilter:
    """Selection criteria for loading time entries."""

    entry_ids: tuple[UUID, ...] = ()
    person_ids: tuple[UUID, ...] = ()
    project_ids: tuple[UUID, ...] = ()
    start_date: date | None = None
    end_date: date | None = None


@dataclass(frozen=True)
class BracketInfo:
    """Customer-facing rate bracket as stored."""

    bracket_id: UUID
    project_id: UUID
    name: str
    bill_rate: Decimal | None
    overtime_multiplier: Decimal | None
    is_billable: bool = True


@dataclass(frozen=True)
class AssignmentInfo:
    """Person-to-project assignment as stored."""

    person_id: UUID
    project_id: UUID
    bracket: BracketInfo | None
    status: str = "active"


@dataclass(frozen=True)
class PayProfile:
    """Cost-side pay data and payee identity for a person."""

    person_id: UUID
    pay_rate: Decimal | None
    staffing_vendor_id: UUID | None = None
    self_vendor_id: UUID | None = None
    overtime_multiplier: Decimal | None = None


# ===== Rate resolution =====


@dataclass(frozen=True)
class BracketRate:
    """Resolved customer-side billing rate."""

    bracket_id: UUID
    bracket_name: str
    project_id: UUID
    bill_rate: Decimal
    overtime_multiplier: Decimal


@dataclass(frozen=True)
class PayeeResolution:
    """Resolved payee for a vendor bill."""

    source: PayeeSource
    vendor_id: UUID | None = None

    @property
    def needs_auto_create(self) -> bool:
        return self.source == PayeeSource.NEEDS_AUTO_CREATE


@dataclass(frozen=True)
class PayRate:
    """Resolved vendor-side pay rate."""

    person_id: UUID
    pay_rate: Decimal
    overtime_multiplier: Decimal
    payee: PayeeResolution


@dataclass(frozen=True)
class Unresolved:
    """No usable rate. A normal branch, not an error."""

    person_id: UUID
    side: Side
    reason: UnresolvedReason
    project_id: UUID | None = None


RateInfo = Union[BracketRate, PayRate]


@dataclass(frozen=True)
class UnresolvedPerson:
    """A blocker listed back to the operator."""

    person_id: UUID
    person_name: str
    reason: UnresolvedReason
    project_id: UUID | None = None
    project_name: str | None = None
    entry_ids: tuple[UUID, ...] = ()


# ===== Aggregation =====


@dataclass(frozen=True)
class OvertimeSplit:
    """Regular vs. overtime hours. ``regular + overtime`` is exact."""

    regular: Decimal = ZERO
    overtime: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.regular + self.overtime

    def __add__(self, other: OvertimeSplit) -> OvertimeSplit:
        return OvertimeSplit(self.regular + other.regular, self.overtime + other.overtime)


@dataclass(frozen=True)
class BracketSummary:
    """Hours and billable amounts for one rate bracket (optionally one week)."""

    bracket_id: UUID
    bracket_name: str
    project_id: UUID
    bill_rate: Decimal
    overtime_multiplier: Decimal
    regular_hours: Decimal
    overtime_hours: Decimal
    entry_ids: tuple[UUID, ...]
    person_ids: tuple[UUID, ...]
    period_start: date
    period_end: date
    week_start: date | None = None

    @property
    def total_hours(self) -> Decimal:
        return self.regular_hours + self.overtime_hours

    @property
    def overtime_rate(self) -> Decimal:
        return self.bill_rate * self.overtime_multiplier

    @property
    def regular_billable(self) -> Decimal:
        return self.regular_hours * self.bill_rate

    @property
    def overtime_billable(self) -> Decimal:
        return self.overtime_hours * self.overtime_rate

    @property
    def total_billable(self) -> Decimal:
        return self.regular_billable + self.overtime_billable


@dataclass(frozen=True)
class PersonnelSummary:
    """Hours and labor cost for one person. Always becomes one vendor bill."""

    person_id: UUID
    person_name: str
    pay_rate: Decimal
    overtime_multiplier: Decimal
    payee: PayeeResolution
    regular_hours: Decimal
    overtime_hours: Decimal
    entry_ids: tuple[UUID, ...]
    project_ids: tuple[UUID, ...]
    period_start: date
    period_end: date
    project_name: str | None = None

    @property
    def total_hours(self) -> Decimal:
        return self.regular_hours + self.overtime_hours

    @property
    def overtime_rate(self) -> Decimal:
        return self.pay_rate * self.overtime_multiplier

    @property
    def regular_cost(self) -> Decimal:
        return self.regular_hours * self.pay_rate

    @property
    def overtime_cost(self) -> Decimal:
        return self.overtime_hours * self.overtime_rate

    @property
    def total_cost(self) -> Decimal:
        return self.regular_cost + self.overtime_cost

    def with_payee(self, vendor_id: UUID, source: PayeeSource | None = None) -> PersonnelSummary:
        """Return a copy bound to a concrete payee vendor."""
        return replace(
            self,
            payee=PayeeResolution(source=source or self.payee.source, vendor_id=vendor_id),
        )


# ===== Documents =====


@dataclass(frozen=True)
class LineCandidate:
    """A line item before persistence.

    Quantity and rate are the only inputs; the total is always derived so it
    can never drift from them. Only the description is free text.
    """

    kind: HourKind
    product_name: str
    description: str
    quantity: Decimal
    rate: Decimal
    subject_id: UUID  # bracket on invoices, person on vendor bills
    entry_ids: tuple[UUID, ...] = ()
    project_id: UUID | None = None

    @property
    def total(self) -> Decimal:
        return (self.quantity * self.rate).quantize(CENTS, rounding=ROUND_HALF_UP)

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "kind": self.kind.value,
            "product_name": self.product_name,
            "subject_id": str(self.subject_id),
            "project_id": str(self.project_id) if self.project_id else None,
            "quantity": str(self.quantity),
            "rate": str(self.rate),
            "total": str(self.total),
            "entry_ids": sorted(str(e) for e in self.entry_ids),
        }


@dataclass(frozen=True)
class DocumentDraft:
    """An invoice or vendor bill ready to validate and persist."""

    side: Side
    subject_id: UUID | None  # customer on invoices, person on vendor bills
    subject_name: str
    lines: tuple[LineCandidate, ...]
    period_start: date
    period_end: date
    tax_rate: Decimal = ZERO
    project_ids: tuple[UUID, ...] = ()
    project_names: tuple[str, ...] = ()
    payee_vendor_id: UUID | None = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def subtotal(self) -> Decimal:
        return sum((line.total for line in self.lines), ZERO).quantize(
            CENTS, rounding=ROUND_HALF_UP
        )

    @property
    def tax_amount(self) -> Decimal:
        return (self.subtotal * self.tax_rate).quantize(CENTS, rounding=ROUND_HALF_UP)

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax_amount

    @property
    def total_hours(self) -> Decimal:
        return sum((line.quantity for line in self.lines), ZERO)

    @property
    def entry_ids(self) -> tuple[UUID, ...]:
        """Entries consumed by this document, in first-seen order."""
        seen: dict[UUID, None] = {}
        for line in self.lines:
            for entry_id in line.entry_ids:
                seen.setdefault(entry_id, None)
        return tuple(seen)

    def to_canonical_dict(self) -> dict[str, Any]:
        return {
            "side": self.side.value,
            "subject_id": str(self.subject_id) if self.subject_id else None,
            "tax_rate": str(self.tax_rate),
            "subtotal": str(self.subtotal),
            "tax_amount": str(self.tax_amount),
            "total": str(self.total),
            "lines": [line.to_canonical_dict() for line in self.lines],
        }
