"""Billing aggregation calculators."""

from labor_billing.calculators.aggregators import (
    BracketAggregation,
    BracketAggregator,
    PersonnelAggregation,
    PersonnelAggregator,
)
from labor_billing.calculators.line_builder import BillingDocumentBuilder
from labor_billing.calculators.overtime import OvertimeAllocator
from labor_billing.calculators.rate_resolver import RateResolver

__all__ = [
    "BracketAggregation",
    "BracketAggregator",
    "PersonnelAggregation",
    "PersonnelAggregator",
    "BillingDocumentBuilder",
    "OvertimeAllocator",
    "RateResolver",
]
