"""
Pure domain layer.

Value objects, decimal helpers and the clock abstraction.  NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (except SystemClock, the one sanctioned time boundary)
"""

from campaign_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from campaign_kernel.domain.decimals import (
    DEFAULT_ROUNDING,
    decimal_to_str,
    quantize,
    to_decimal,
)
from campaign_kernel.domain.values import SUPPORTED_CURRENCIES, FinancialAmount

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "DEFAULT_ROUNDING",
    "decimal_to_str",
    "quantize",
    "to_decimal",
    "SUPPORTED_CURRENCIES",
    "FinancialAmount",
]
