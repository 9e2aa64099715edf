"""Bracket and personnel aggregation over one run of time entries.

Both aggregators share one pipeline parameterized by ``Side``:

1. Drop entries already linked on this side (reported as skipped)
2. Resolve a rate per (person, project); unresolved entries become blockers
3. Pass 1: total hours per person (per week in weekly mode), split at the threshold
4. Pass 2: apportion each person's split across their buckets
5. Accumulate buckets, then freeze them into summaries

Only the rate lookup and the bucket key differ between sides.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Hashable, Iterable, Mapping, Optional, TypeVar
from uuid import UUID

from labor_billing.calculators.overtime import OvertimeAllocator, week_start
from labor_billing.calculators.rate_resolver import RateResolver
from labor_billing.calculators.types import (
    BracketRate,
    BracketSummary,
    EntryRecord,
    OvertimeSplit,
    PayRate,
    PersonnelSummary,
    RateInfo,
    Side,
    Unresolved,
    UnresolvedPerson,
)
from labor_billing.config import BillingPolicy, OvertimePeriod

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
PersonPeriod = tuple[UUID, Optional[date]]


@dataclass(frozen=True)
class BracketAggregation:
    """Customer-side aggregation output."""

    summaries: tuple[BracketSummary, ...]
    unresolved: tuple[UnresolvedPerson, ...]
    skipped_entry_ids: tuple[UUID, ...] = ()

    @property
    def has_blockers(self) -> bool:
        return bool(self.unresolved)


@dataclass(frozen=True)
class PersonnelAggregation:
    """Vendor-side aggregation output."""

    summaries: tuple[PersonnelSummary, ...]
    unresolved: tuple[UnresolvedPerson, ...]
    skipped_entry_ids: tuple[UUID, ...] = ()


@dataclass
class _Bucket:
    """Mutable accumulator, only alive inside ``aggregate``."""

    split: OvertimeSplit = field(default_factory=OvertimeSplit)
    entry_ids: list[UUID] = field(default_factory=list)
    person_ids: dict[UUID, None] = field(default_factory=dict)
    project_ids: dict[UUID, None] = field(default_factory=dict)
    project_names: dict[str, None] = field(default_factory=dict)
    dates: list[date] = field(default_factory=list)

    def add_entry(self, entry: EntryRecord) -> None:
        self.entry_ids.append(entry.entry_id)
        self.person_ids.setdefault(entry.person_id, None)
        self.project_ids.setdefault(entry.project_id, None)
        if entry.project_name:
            self.project_names.setdefault(entry.project_name, None)
        self.dates.append(entry.entry_date)


class _AggregationPipeline:
    """Steps shared by both sides."""

    side: Side

    def __init__(self, resolver: RateResolver, policy: BillingPolicy):
        self.resolver = resolver
        self.policy = policy
        self.allocator = OvertimeAllocator(policy.weekly_overtime_threshold)

    def partition(self, entries: Iterable[EntryRecord]) -> tuple[list[EntryRecord], list[UUID]]:
        """Split entries into eligible and already-linked (skipped).

        Zero-hour entries are in neither list; they are never linked.
        """
        eligible: list[EntryRecord] = []
        skipped: list[UUID] = []
        seen: set[UUID] = set()

        for entry in entries:
            if entry.entry_id in seen:
                continue
            seen.add(entry.entry_id)
            if entry.hours < 0:
                raise ValueError(f"Time entry {entry.entry_id} has negative hours")
            if entry.is_linked(self.side):
                skipped.append(entry.entry_id)
            elif entry.hours > 0:
                eligible.append(entry)

        if skipped:
            logger.info(
                "%d entries already billed (%s), will be skipped", len(skipped), self.side.value
            )
        return eligible, skipped

    def period_of(self, entry: EntryRecord) -> date | None:
        if self.policy.overtime_period == OvertimePeriod.WEEK:
            return week_start(entry.entry_date)
        return None

    async def resolve_all(
        self, eligible: list[EntryRecord]
    ) -> tuple[list[tuple[EntryRecord, RateInfo]], tuple[UnresolvedPerson, ...]]:
        """Resolve every entry's rate; group the misses into blockers."""
        resolved: list[tuple[EntryRecord, RateInfo]] = []
        misses: dict[tuple[UUID, UUID | None], tuple[Unresolved, list[EntryRecord]]] = {}

        for entry in eligible:
            rate = await self.resolver.resolve(entry.person_id, entry.project_id, self.side)
            if isinstance(rate, Unresolved):
                key = (entry.person_id, rate.project_id)
                misses.setdefault(key, (rate, []))[1].append(entry)
                continue
            resolved.append((entry, rate))

        unresolved = tuple(
            UnresolvedPerson(
                person_id=miss.person_id,
                person_name=entries[0].person_name,
                reason=miss.reason,
                project_id=miss.project_id,
                project_name=entries[0].project_name if miss.project_id else None,
                entry_ids=tuple(e.entry_id for e in entries),
            )
            for miss, entries in misses.values()
        )
        return resolved, tuple(sorted(unresolved, key=lambda u: (u.person_name, str(u.person_id))))

    def split_hours(
        self, hours: Mapping[PersonPeriod, Mapping[K, Decimal]]
    ) -> dict[PersonPeriod, dict[K, OvertimeSplit]]:
        """Pass 1 and pass 2: allocate each person's total, then apportion it."""
        return {
            person_period: self.allocator.split_buckets(per_bucket)
            for person_period, per_bucket in hours.items()
        }


class BracketAggregator(_AggregationPipeline):
    """Groups billable hours by rate bracket for a customer invoice."""

    side = Side.INVOICE

    async def aggregate(self, entries: Iterable[EntryRecord]) -> BracketAggregation:
        eligible, skipped = self.partition(entries)
        resolved, unresolved = await self.resolve_all(eligible)

        hours: dict[PersonPeriod, dict[tuple[UUID, date | None], Decimal]] = defaultdict(
            lambda: defaultdict(Decimal)
        )
        rates: dict[tuple[UUID, date | None], BracketRate] = {}
        buckets: dict[tuple[UUID, date | None], _Bucket] = {}

        for entry, rate in resolved:
            if not isinstance(rate, BracketRate):
                raise TypeError(f"Expected a bracket rate for time entry {entry.entry_id}")
            period = self.period_of(entry)
            key = (rate.bracket_id, period)
            hours[(entry.person_id, period)][key] += entry.hours
            rates.setdefault(key, rate)
            buckets.setdefault(key, _Bucket()).add_entry(entry)

        for splits in self.split_hours(hours).values():
            for key, split in splits.items():
                buckets[key].split += split

        summaries = sorted(
            (self._freeze(rates[key], key[1], bucket) for key, bucket in buckets.items()),
            key=lambda s: (s.week_start or date.min, s.bracket_name, str(s.bracket_id)),
        )
        logger.debug(
            "Aggregated %d entries into %d bracket summaries (%d unresolved)",
            len(resolved),
            len(summaries),
            len(unresolved),
        )
        return BracketAggregation(tuple(summaries), unresolved, tuple(skipped))

    @staticmethod
    def _freeze(rate: BracketRate, period: date | None, bucket: _Bucket) -> BracketSummary:
        return BracketSummary(
            bracket_id=rate.bracket_id,
            bracket_name=rate.bracket_name,
            project_id=rate.project_id,
            bill_rate=rate.bill_rate,
            overtime_multiplier=rate.overtime_multiplier,
            regular_hours=bucket.split.regular,
            overtime_hours=bucket.split.overtime,
            entry_ids=tuple(bucket.entry_ids),
            person_ids=tuple(bucket.person_ids),
            period_start=min(bucket.dates),
            period_end=max(bucket.dates),
            week_start=period,
        )


class PersonnelAggregator(_AggregationPipeline):
    """Groups labor cost by person; each summary becomes one vendor bill."""

    side = Side.VENDOR_BILL

    async def aggregate(self, entries: Iterable[EntryRecord]) -> PersonnelAggregation:
        eligible, skipped = self.partition(entries)
        resolved, unresolved = await self.resolve_all(eligible)

        hours: dict[PersonPeriod, dict[UUID, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
        rates: dict[UUID, PayRate] = {}
        names: dict[UUID, str] = {}
        buckets: dict[UUID, _Bucket] = {}

        for entry, rate in resolved:
            if not isinstance(rate, PayRate):
                raise TypeError(f"Expected a pay rate for time entry {entry.entry_id}")
            hours[(entry.person_id, self.period_of(entry))][entry.person_id] += entry.hours
            rates.setdefault(entry.person_id, rate)
            names.setdefault(entry.person_id, entry.person_name)
            buckets.setdefault(entry.person_id, _Bucket()).add_entry(entry)

        for splits in self.split_hours(hours).values():
            for person_id, split in splits.items():
                buckets[person_id].split += split

        summaries = sorted(
            (
                self._freeze(rates[person_id], names[person_id], bucket)
                for person_id, bucket in buckets.items()
            ),
            key=lambda s: (s.person_name, str(s.person_id)),
        )
        return PersonnelAggregation(tuple(summaries), unresolved, tuple(skipped))

    @staticmethod
    def _freeze(rate: PayRate, person_name: str, bucket: _Bucket) -> PersonnelSummary:
        return PersonnelSummary(
            person_id=rate.person_id,
            person_name=person_name,
            pay_rate=rate.pay_rate,
            overtime_multiplier=rate.overtime_multiplier,
            payee=rate.payee,
            regular_hours=bucket.split.regular,
            overtime_hours=bucket.split.overtime,
            entry_ids=tuple(bucket.entry_ids),
            project_ids=tuple(bucket.project_ids),
            period_start=min(bucket.dates),
            period_end=max(bucket.dates),
            project_name=", ".join(bucket.project_names) or None,
        )
