"""Typed exceptions for the labor billing engine.

Every error carries a machine-readable ``code`` plus the structured data an
operator needs to act on it (person names, bracket names, entry ids).

    BillingError
    +-- ConfigurationError
    +-- NothingToBillError
    +-- MissingCustomerError
    +-- UnresolvedRateError
    +-- ZeroOrMissingRateError
    +-- LinkageConflictError
    +-- PayeeCreationError
    +-- AccountingSyncError
    +-- DocumentNotFoundError
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence
from uuid import UUID

if TYPE_CHECKING:
    from labor_billing.calculators.types import LineCandidate, Side, UnresolvedPerson


class BillingError(Exception):
    """Base class for all billing engine errors."""

    code: str = "BILLING_ERROR"
    retryable: bool = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(BillingError):
    """Invalid engine configuration. Fatal, raised before any write."""

    code = "CONFIGURATION_ERROR"

    def __init__(self, setting: str, value: object, reason: str):
        self.setting = setting
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid configuration {setting}={value!r}: {reason}")


class NothingToBillError(BillingError):
    """No eligible entries remain after filtering."""

    code = "NOTHING_TO_BILL"

    def __init__(self, side: Side, skipped_count: int = 0):
        self.side = side
        self.skipped_count = skipped_count
        msg = f"No eligible time entries for {side.value}"
        if skipped_count:
            msg += f" ({skipped_count} already billed)"
        super().__init__(msg)


class MissingCustomerError(BillingError):
    """An invoice run does not resolve to exactly one customer."""

    code = "MISSING_CUSTOMER"

    def __init__(self, entry_ids: Sequence[UUID] = (), customer_count: int = 0):
        self.entry_ids = list(entry_ids)
        self.customer_count = customer_count
        if customer_count > 1:
            msg = f"Time entries span {customer_count} customers; invoice each customer separately"
        else:
            msg = f"No customer for {len(self.entry_ids)} time entries; assign the project to a customer"
        super().__init__(msg)


class UnresolvedRateError(BillingError):
    """One or more people have no usable rate; the run is refused."""

    code = "UNRESOLVED_RATE"

    def __init__(self, blockers: Sequence[UnresolvedPerson]):
        self.blockers = list(blockers)
        names = ", ".join(sorted({b.person_name for b in self.blockers}))
        super().__init__(f"Missing rate for: {names}")


class ZeroOrMissingRateError(BillingError):
    """A line item would be billed at a zero or missing rate."""

    code = "ZERO_OR_MISSING_RATE"

    def __init__(self, subject: str, lines: Sequence[LineCandidate]):
        self.subject = subject
        self.lines = list(lines)
        descriptions = "; ".join(line.product_name for line in self.lines)
        super().__init__(f"Zero or missing rate on {subject}: {descriptions}")


class LinkageConflictError(BillingError):
    """Entries were already linked on this side by another run."""

    code = "LINKAGE_CONFLICT"

    def __init__(self, side: Side, document_id: UUID, conflicting_entry_ids: Sequence[UUID]):
        self.side = side
        self.document_id = document_id
        self.conflicting_entry_ids = list(conflicting_entry_ids)
        super().__init__(
            f"{len(self.conflicting_entry_ids)} entries already billed "
            f"({side.value}), will be skipped"
        )


class PayeeCreationError(BillingError):
    """The payee vendor for a person could not be created."""

    code = "PAYEE_CREATION_FAILED"
    retryable = True

    def __init__(self, person_id: UUID, person_name: str, reason: str):
        self.person_id = person_id
        self.person_name = person_name
        self.reason = reason
        super().__init__(f"Could not create payee for {person_name}: {reason}")


class AccountingSyncError(BillingError):
    """Pushing a committed document to the accounting system failed."""

    code = "ACCOUNTING_SYNC_FAILED"
    retryable = True

    def __init__(self, side: Side, document_id: UUID, reason: str):
        self.side = side
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Accounting sync failed for {side.value} {document_id}: {reason}")


class DocumentNotFoundError(BillingError):
    """No invoice or vendor bill with the given id."""

    code = "DOCUMENT_NOT_FOUND"

    def __init__(self, side: Side, document_id: UUID):
        self.side = side
        self.document_id = document_id
        super().__init__(f"{side.value} {document_id} not found")
