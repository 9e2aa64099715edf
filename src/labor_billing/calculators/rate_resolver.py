"""Rate resolution for both billing sides."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from labor_billing.calculators.types import (
    ZERO,
    BracketRate,
    PayeeResolution,
    PayeeSource,
    PayProfile,
    PayRate,
    RateInfo,
    Side,
    Unresolved,
    UnresolvedReason,
)

if TYPE_CHECKING:
    from labor_billing.services.ports import RateSource

logger = logging.getLogger(__name__)


class RateResolver:
    """Resolves the applicable rate for a person on one side.

    Customer side:
    1. Active assignment for (person, project) must exist
    2. The assignment must carry a rate bracket
    3. The bracket must be billable (a non-billable bracket is "no bracket")

    Vendor side:
    1. The person must have a pay profile with a pay rate
    2. Payee order: per-run override, staffing agency, self vendor,
       otherwise flagged for auto-create

    A missing rate is returned as ``Unresolved``, never raised. Results are
    cached for the lifetime of the resolver, which is one run.
    """

    def __init__(
        self,
        source: RateSource,
        default_overtime_multiplier: Decimal = Decimal("1.5"),
        payee_override: UUID | None = None,
    ):
        self.source = source
        self.default_overtime_multiplier = default_overtime_multiplier
        self.payee_override = payee_override
        self._cache: dict[tuple[Side, UUID, UUID | None], RateInfo | Unresolved] = {}

    async def resolve(
        self, person_id: UUID, project_id: UUID | None, side: Side
    ) -> RateInfo | Unresolved:
        """Resolve the rate for a person on a project.

        The project only matters on the invoice side; vendor pay is per person.
        """
        cache_key = (side, person_id, project_id if side == Side.INVOICE else None)
        if cache_key in self._cache:
            return self._cache[cache_key]

        if side == Side.INVOICE:
            result = await self._resolve_bracket(person_id, project_id)
        else:
            result = await self._resolve_pay(person_id)

        if isinstance(result, Unresolved):
            logger.debug(
                "Unresolved %s rate for person %s (%s)", side.value, person_id, result.reason.value
            )
        self._cache[cache_key] = result
        return result

    async def _resolve_bracket(
        self, person_id: UUID, project_id: UUID | None
    ) -> BracketRate | Unresolved:
        if project_id is None:
            return Unresolved(person_id, Side.INVOICE, UnresolvedReason.NO_ASSIGNMENT)

        assignment = await self.source.get_active_assignment(person_id, project_id)
        if assignment is None or assignment.status != "active":
            return Unresolved(
                person_id, Side.INVOICE, UnresolvedReason.NO_ASSIGNMENT, project_id
            )

        bracket = assignment.bracket
        if bracket is None:
            return Unresolved(person_id, Side.INVOICE, UnresolvedReason.NO_BRACKET, project_id)
        if not bracket.is_billable:
            return Unresolved(
                person_id, Side.INVOICE, UnresolvedReason.NON_BILLABLE_BRACKET, project_id
            )

        return BracketRate(
            bracket_id=bracket.bracket_id,
            bracket_name=bracket.name,
            project_id=bracket.project_id,
            bill_rate=bracket.bill_rate if bracket.bill_rate is not None else ZERO,
            overtime_multiplier=bracket.overtime_multiplier or self.default_overtime_multiplier,
        )

    async def _resolve_pay(self, person_id: UUID) -> PayRate | Unresolved:
        profile = await self.source.get_pay_profile(person_id)
        if profile is None:
            return Unresolved(person_id, Side.VENDOR_BILL, UnresolvedReason.NO_PAY_PROFILE)
        if profile.pay_rate is None:
            return Unresolved(person_id, Side.VENDOR_BILL, UnresolvedReason.NO_PAY_RATE)

        return PayRate(
            person_id=person_id,
            pay_rate=profile.pay_rate,
            overtime_multiplier=profile.overtime_multiplier or self.default_overtime_multiplier,
            payee=self.resolve_payee(profile),
        )

    def resolve_payee(self, profile: PayProfile) -> PayeeResolution:
        """Pick the payee vendor for a person's bill."""
        if self.payee_override is not None:
            return PayeeResolution(PayeeSource.OVERRIDE, self.payee_override)
        if profile.staffing_vendor_id is not None:
            return PayeeResolution(PayeeSource.STAFFING_AGENCY, profile.staffing_vendor_id)
        if profile.self_vendor_id is not None:
            return PayeeResolution(PayeeSource.SELF_VENDOR, profile.self_vendor_id)
        return PayeeResolution(PayeeSource.NEEDS_AUTO_CREATE)
