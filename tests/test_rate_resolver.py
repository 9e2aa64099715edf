"""Tests for rate resolution on both billing sides."""

from decimal import Decimal
from uuid import uuid4

import pytest

from fakes import make_bracket
from labor_billing.calculators.rate_resolver import RateResolver
from labor_billing.calculators.types import (
    BracketRate,
    PayeeSource,
    PayProfile,
    PayRate,
    Side,
    Unresolved,
    UnresolvedReason,
)


class TestBracketResolution:
    """Test customer-side rate lookup."""

    @pytest.mark.asyncio
    async def test_resolves_assigned_bracket(self, store, resolver, senior, project_id):
        """Test that an active assignment with a bracket resolves."""
        person = uuid4()
        store.assign(person, project_id, senior)

        rate = await resolver.resolve(person, project_id, Side.INVOICE)

        assert isinstance(rate, BracketRate)
        assert rate.bracket_id == senior.bracket_id
        assert rate.bracket_name == "Senior Engineer"
        assert rate.bill_rate == Decimal("50")
        assert rate.overtime_multiplier == Decimal("1.5")

    @pytest.mark.asyncio
    async def test_no_assignment(self, resolver, project_id):
        """Test that a person without an assignment is unresolved."""
        rate = await resolver.resolve(uuid4(), project_id, Side.INVOICE)

        assert isinstance(rate, Unresolved)
        assert rate.reason == UnresolvedReason.NO_ASSIGNMENT
        assert rate.project_id == project_id

    @pytest.mark.asyncio
    async def test_inactive_assignment(self, store, resolver, senior, project_id):
        """Test that an inactive assignment counts as no assignment."""
        person = uuid4()
        store.assign(person, project_id, senior, status="inactive")

        rate = await resolver.resolve(person, project_id, Side.INVOICE)

        assert isinstance(rate, Unresolved)
        assert rate.reason == UnresolvedReason.NO_ASSIGNMENT

    @pytest.mark.asyncio
    async def test_assignment_without_bracket(self, store, resolver, project_id):
        """Test that an assignment with no bracket is unresolved."""
        person = uuid4()
        store.assign(person, project_id, None)

        rate = await resolver.resolve(person, project_id, Side.INVOICE)

        assert isinstance(rate, Unresolved)
        assert rate.reason == UnresolvedReason.NO_BRACKET

    @pytest.mark.asyncio
    async def test_non_billable_bracket(self, store, resolver, project_id):
        """Test that a non-billable bracket is treated as no bracket."""
        person = uuid4()
        store.assign(person, project_id, make_bracket("Internal", is_billable=False))

        rate = await resolver.resolve(person, project_id, Side.INVOICE)

        assert isinstance(rate, Unresolved)
        assert rate.reason == UnresolvedReason.NON_BILLABLE_BRACKET

    @pytest.mark.asyncio
    async def test_missing_multiplier_uses_default(self, store, project_id):
        """Test that a bracket without a multiplier falls back to the run default."""
        person = uuid4()
        store.assign(person, project_id, make_bracket(overtime_multiplier=None))
        resolver = RateResolver(store, default_overtime_multiplier=Decimal("2"))

        rate = await resolver.resolve(person, project_id, Side.INVOICE)

        assert rate.overtime_multiplier == Decimal("2")

    @pytest.mark.asyncio
    async def test_missing_bill_rate_resolves_to_zero(self, store, resolver, project_id):
        """Test that a bracket without a rate resolves to zero, for the zero-rate guard."""
        person = uuid4()
        store.assign(person, project_id, make_bracket(bill_rate=None))

        rate = await resolver.resolve(person, project_id, Side.INVOICE)

        assert isinstance(rate, BracketRate)
        assert rate.bill_rate == Decimal("0")

    @pytest.mark.asyncio
    async def test_lookups_cached_per_resolver(self, store, resolver, senior, project_id):
        """Test that repeated lookups hit the store once."""
        person = uuid4()
        store.assign(person, project_id, senior)

        first = await resolver.resolve(person, project_id, Side.INVOICE)
        second = await resolver.resolve(person, project_id, Side.INVOICE)

        assert first is second
        assert store.assignment_lookups == 1

    @pytest.mark.asyncio
    async def test_cache_is_per_project(self, store, resolver, senior, project_id):
        """Test that the same person on another project is looked up separately."""
        person = uuid4()
        other_project = uuid4()
        store.assign(person, project_id, senior)

        await resolver.resolve(person, project_id, Side.INVOICE)
        other = await resolver.resolve(person, other_project, Side.INVOICE)

        assert isinstance(other, Unresolved)
        assert store.assignment_lookups == 2


class TestPayResolution:
    """Test vendor-side rate and payee lookup."""

    @pytest.mark.asyncio
    async def test_resolves_pay_rate(self, store, resolver):
        """Test that a pay profile resolves with the default multiplier."""
        person = uuid4()
        vendor = uuid4()
        store.set_profile(person, Decimal("20"), self_vendor_id=vendor)

        rate = await resolver.resolve(person, uuid4(), Side.VENDOR_BILL)

        assert isinstance(rate, PayRate)
        assert rate.pay_rate == Decimal("20")
        assert rate.overtime_multiplier == Decimal("1.5")
        assert rate.payee.vendor_id == vendor

    @pytest.mark.asyncio
    async def test_no_pay_profile(self, resolver):
        """Test that an unknown person is unresolved."""
        rate = await resolver.resolve(uuid4(), None, Side.VENDOR_BILL)

        assert isinstance(rate, Unresolved)
        assert rate.reason == UnresolvedReason.NO_PAY_PROFILE

    @pytest.mark.asyncio
    async def test_no_pay_rate(self, store, resolver):
        """Test that a person without a pay rate is unresolved."""
        person = uuid4()
        store.set_profile(person, None)

        rate = await resolver.resolve(person, None, Side.VENDOR_BILL)

        assert isinstance(rate, Unresolved)
        assert rate.reason == UnresolvedReason.NO_PAY_RATE

    @pytest.mark.asyncio
    async def test_zero_pay_rate_still_resolves(self, store, resolver):
        """Test that a zero rate resolves; the builder refuses it later."""
        person = uuid4()
        store.set_profile(person, Decimal("0"))

        rate = await resolver.resolve(person, None, Side.VENDOR_BILL)

        assert isinstance(rate, PayRate)
        assert rate.pay_rate == Decimal("0")

    @pytest.mark.asyncio
    async def test_pay_is_per_person_not_per_project(self, store, resolver):
        """Test that the vendor side caches one lookup per person."""
        person = uuid4()
        store.set_profile(person, Decimal("20"))

        await resolver.resolve(person, uuid4(), Side.VENDOR_BILL)
        await resolver.resolve(person, uuid4(), Side.VENDOR_BILL)

        assert store.profile_lookups == 1

    @pytest.mark.asyncio
    async def test_person_multiplier_overrides_default(self, store, resolver):
        """Test a personal overtime multiplier."""
        person = uuid4()
        store.set_profile(person, Decimal("20"), overtime_multiplier=Decimal("2"))

        rate = await resolver.resolve(person, None, Side.VENDOR_BILL)

        assert rate.overtime_multiplier == Decimal("2")


class TestPayeeOrder:
    """Test payee precedence: override, staffing agency, self vendor, auto-create."""

    def _profile(self, **kwargs) -> PayProfile:
        return PayProfile(person_id=uuid4(), pay_rate=Decimal("20"), **kwargs)

    def test_override_wins(self, store):
        override = uuid4()
        resolver = RateResolver(store, payee_override=override)

        payee = resolver.resolve_payee(
            self._profile(staffing_vendor_id=uuid4(), self_vendor_id=uuid4())
        )

        assert payee.source == PayeeSource.OVERRIDE
        assert payee.vendor_id == override

    def test_staffing_agency_before_self(self, resolver):
        agency = uuid4()
        payee = resolver.resolve_payee(
            self._profile(staffing_vendor_id=agency, self_vendor_id=uuid4())
        )

        assert payee.source == PayeeSource.STAFFING_AGENCY
        assert payee.vendor_id == agency

    def test_self_vendor(self, resolver):
        own = uuid4()
        payee = resolver.resolve_payee(self._profile(self_vendor_id=own))

        assert payee.source == PayeeSource.SELF_VENDOR
        assert payee.vendor_id == own

    def test_needs_auto_create(self, resolver):
        """Test that a person with no vendor is flagged rather than failed."""
        payee = resolver.resolve_payee(self._profile())

        assert payee.needs_auto_create
        assert payee.vendor_id is None
