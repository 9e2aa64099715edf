"""Weekly overtime allocation and proportional apportionment."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import ROUND_CEILING, Decimal
from typing import Hashable, Mapping, TypeVar

from labor_billing.calculators.types import ZERO, OvertimeSplit
from labor_billing.exceptions import ConfigurationError

K = TypeVar("K", bound=Hashable)

SHARE_QUANTUM = Decimal("1E-10")


def week_start(day: date) -> date:
    """Return the Monday that starts the calendar week containing ``day``."""
    return day - timedelta(days=day.weekday())


class OvertimeAllocator:
    """Splits a person's total hours into regular and overtime.

    Overtime is decided on the person's total for the period, never per
    bracket. The split is then spread over that person's buckets with
    ``apportion`` so per-bracket overtime always sums back to the person's.
    """

    def __init__(self, weekly_threshold: Decimal):
        if weekly_threshold is None or weekly_threshold <= 0:
            raise ConfigurationError(
                "WEEKLY_OVERTIME_THRESHOLD", weekly_threshold, "must be greater than zero"
            )
        self.threshold = weekly_threshold

    def allocate(self, total_hours: Decimal) -> OvertimeSplit:
        """Split total hours at the threshold.

        Raises:
            ValueError: If total_hours is negative
        """
        if total_hours < 0:
            raise ValueError(f"Total hours cannot be negative: {total_hours}")
        if total_hours == 0:
            return OvertimeSplit(ZERO, ZERO)

        regular = min(total_hours, self.threshold)
        overtime = max(ZERO, total_hours - self.threshold)
        return OvertimeSplit(regular, overtime)

    @staticmethod
    def apportion(split: OvertimeSplit, hours_by_key: Mapping[K, Decimal]) -> dict[K, OvertimeSplit]:
        """Distribute a split across buckets in proportion to their hours.

        Buckets are visited in a stable order (sorted by ``str(key)``) and
        the last one takes whatever regular time remains, so the result
        sums exactly to ``split``. Each bucket's overtime is its hours minus
        its regular share.

        Raises:
            ValueError: If the bucket hours do not add up to the split total
        """
        total = sum(hours_by_key.values(), ZERO)
        if total != split.total:
            raise ValueError(f"Bucket hours {total} do not match split total {split.total}")

        keys = sorted(hours_by_key, key=str)
        if split.overtime == 0:
            return {key: OvertimeSplit(hours_by_key[key], ZERO) for key in keys}

        result: dict[K, OvertimeSplit] = {}
        remaining_regular = split.regular
        for index, key in enumerate(keys):
            hours = hours_by_key[key]
            if index == len(keys) - 1:
                regular = remaining_regular
            else:
                # Shares round up so the remainder never exceeds the last bucket's hours
                share = (split.regular * hours / total).quantize(SHARE_QUANTUM, rounding=ROUND_CEILING)
                regular = min(share, hours, remaining_regular)
            remaining_regular -= regular
            result[key] = OvertimeSplit(regular, hours - regular)

        return result

    def split_buckets(
        self, hours_by_key: Mapping[K, Decimal]
    ) -> dict[K, OvertimeSplit]:
        """Allocate a person's total and apportion it in one step."""
        split = self.allocate(sum(hours_by_key.values(), ZERO))
        return self.apportion(split, hours_by_key)
