"""
Values -- Immutable, self-validating financial value objects.

Responsibility:
    Provides FinancialAmount, the pairing of an exact Decimal with a
    currency code.  The campaign calculator reads the price and media budget
    blocks through it, so block currencies are checked and normalized before
    any formula runs; validation uses it for the same currency check.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Amounts are always Decimal, never float (construction from float fails).
    - Currency codes are validated against SUPPORTED_CURRENCIES.
    - Arithmetic and comparison never mix currencies.

Failure modes:
    - InvalidDecimalFormatError on construction with a malformed amount.
    - InvalidCurrencyError on an unsupported currency code.
    - CurrencyMismatchError when arithmetic mixes currencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from campaign_kernel.domain.decimals import (
    DEFAULT_ROUNDING,
    decimal_to_str,
    quantize,
    to_decimal,
)
from campaign_kernel.exceptions import CurrencyMismatchError, InvalidCurrencyError

# Currencies accepted by the campaign platform.
SUPPORTED_CURRENCIES: frozenset[str] = frozenset({"USD", "EUR", "GBP", "CAD", "AUD"})

DEFAULT_CURRENCY = "USD"


def validate_currency(currency: str) -> str:
    """Return the normalized (upper, stripped) code or raise InvalidCurrencyError."""
    if not currency or not isinstance(currency, str):
        raise InvalidCurrencyError(str(currency))
    normalized = currency.upper().strip()
    if normalized not in SUPPORTED_CURRENCIES:
        raise InvalidCurrencyError(currency)
    return normalized


@dataclass(frozen=True, slots=True)
class FinancialAmount:
    """
    Monetary amount value object.

    Contract:
        Pairs a Decimal amount with its currency code -- they are NEVER
        separated.

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots)
        - amount is always a finite Decimal (never float)
        - currency is always a supported, upper-case code
        - Arithmetic operations enforce same-currency constraint

    Non-goals:
        - Does NOT perform currency conversion
        - Does NOT auto-round -- callers must explicitly call .round()
    """

    amount: Decimal
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "currency", validate_currency(self.currency))

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str = DEFAULT_CURRENCY) -> FinancialAmount:
        """Factory accepting Decimal, int or decimal-string amounts."""
        return cls(amount=to_decimal(amount), currency=currency)

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> FinancialAmount:
        """Create a zero amount in the given currency."""
        return cls(amount=Decimal("0"), currency=currency)

    @classmethod
    def from_document(cls, data: dict[str, Any], field: str = "amount") -> FinancialAmount:
        """Build from a document block such as ``{"amount": "10.00", "currency": "USD"}``."""
        return cls.of(data[field], data.get("currency") or DEFAULT_CURRENCY)

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def round(self, decimal_places: int = 2, rounding: str = DEFAULT_ROUNDING) -> FinancialAmount:
        """Return a new amount quantized to ``decimal_places``."""
        return FinancialAmount(
            amount=quantize(self.amount, decimal_places, rounding),
            currency=self.currency,
        )

    def _check_currency(self, other: FinancialAmount) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def __add__(self, other: FinancialAmount) -> FinancialAmount:
        if not isinstance(other, FinancialAmount):
            return NotImplemented
        self._check_currency(other)
        return FinancialAmount(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: FinancialAmount) -> FinancialAmount:
        if not isinstance(other, FinancialAmount):
            return NotImplemented
        self._check_currency(other)
        return FinancialAmount(amount=self.amount - other.amount, currency=self.currency)

    def __neg__(self) -> FinancialAmount:
        return FinancialAmount(amount=-self.amount, currency=self.currency)

    def __mul__(self, factor: Decimal | int | str) -> FinancialAmount:
        """Multiply by a scalar."""
        if isinstance(factor, float):
            return NotImplemented
        return FinancialAmount(amount=self.amount * to_decimal(factor), currency=self.currency)

    def __rmul__(self, factor: Decimal | int | str) -> FinancialAmount:
        return self.__mul__(factor)

    def __lt__(self, other: FinancialAmount) -> bool:
        if not isinstance(other, FinancialAmount):
            return NotImplemented
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: FinancialAmount) -> bool:
        if not isinstance(other, FinancialAmount):
            return NotImplemented
        self._check_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other: FinancialAmount) -> bool:
        if not isinstance(other, FinancialAmount):
            return NotImplemented
        self._check_currency(other)
        return self.amount > other.amount

    def __ge__(self, other: FinancialAmount) -> bool:
        if not isinstance(other, FinancialAmount):
            return NotImplemented
        self._check_currency(other)
        return self.amount >= other.amount

    def to_document(self) -> dict[str, str]:
        """API / storage shape: amount as a fixed-point string."""
        return {"amount": decimal_to_str(self.amount), "currency": self.currency}

    def __str__(self) -> str:
        return f"{decimal_to_str(self.amount)} {self.currency}"

    def __repr__(self) -> str:
        return f"FinancialAmount({self.amount!r}, {self.currency!r})"
