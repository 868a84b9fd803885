"""
Typed Exception Hierarchy for the Campaign Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the calculation engine and the bulk pipeline must be able to tell
a malformed amount apart from a misconfigured formula registry, and both apart
from a storage outage.  Matching on message text is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from CampaignKernelError:

    CampaignKernelError (base)
    |
    +-- ValidationError
    |   +-- RecordValidationError
    |   +-- CurrencyError
    |       +-- InvalidCurrencyError
    |       +-- CurrencyMismatchError
    |
    +-- CalculationError
    |   +-- InvalidDecimalFormatError
    |   +-- FormulaArityError
    |
    +-- ConfigurationError
    |   +-- UnknownFormulaError
    |   +-- UnknownCalculationVersionError
    |   +-- DuplicateFormulaError
    |   +-- UnknownPrecisionPolicyError
    |   +-- InvalidRoundingModeError
    |
    +-- PersistenceError
    |   +-- StorageUnavailableError
    |   +-- WriteConflictError
    |   +-- RecordNotFoundError
    |
    +-- BulkOperationError
        +-- BulkOperationAbortedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                         | When Raised
----------------|------------------------------|---------------------------------------
Validation      | VALIDATION_FAILED            | Record failed field/date/amount checks
----------------|------------------------------|---------------------------------------
Calculation     | INVALID_DECIMAL_FORMAT       | Operand is not an exact decimal
                | FORMULA_ARITY                | Wrong operand count for a formula
----------------|------------------------------|---------------------------------------
Configuration   | UNKNOWN_FORMULA              | No formula with that name in version
                | UNKNOWN_CALCULATION_VERSION  | Version not registered
                | DUPLICATE_FORMULA            | (name, version) registered twice
                | UNKNOWN_PRECISION_POLICY     | Named policy missing from table
                | INVALID_ROUNDING_MODE        | Rounding mode name not recognised
----------------|------------------------------|---------------------------------------
Currency        | INVALID_CURRENCY             | Code not in the supported set (a
                |                              | ValidationError, item-level in bulk)
                | CURRENCY_MISMATCH            | Mixed currencies in one operation
----------------|------------------------------|---------------------------------------
Persistence     | STORAGE_UNAVAILABLE          | Store unreachable / timed out
                | WRITE_CONFLICT               | Identifier and natural key disagree,
                |                              | or natural key already taken
                | RECORD_NOT_FOUND             | Update target does not exist
----------------|------------------------------|---------------------------------------
Bulk            | BULK_OPERATION_ABORTED       | Hard abort requested after a failure

===============================================================================
PROPAGATION POLICY
===============================================================================

Item-level problems (ValidationError, CalculationError, per-item
PersistenceError) are recovered by the bulk orchestrator and reported in the
BulkResult.  ConfigurationError always propagates: an unknown formula name is
a deployment defect, not bad input.  BulkOperationAbortedError is raised only
when the caller asked for a hard abort.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from campaign_batch.domain.types import BulkResult


class CampaignKernelError(Exception):
    """
    Base exception for all campaign kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "CAMPAIGN_KERNEL_ERROR"


# Validation exceptions


class ValidationError(CampaignKernelError):
    """Base exception for record validation errors."""

    code: str = "VALIDATION_ERROR"


class RecordValidationError(ValidationError):
    """
    A record failed one or more validation checks.

    ``issues`` holds every problem found; validation never stops at the
    first one.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(self, issues: tuple[str, ...] | list[str], index: int | None = None):
        self.issues = tuple(issues)
        self.index = index
        super().__init__("; ".join(self.issues) or "Validation failed")


# Calculation exceptions


class CalculationError(CampaignKernelError):
    """Base exception for malformed calculation input."""

    code: str = "CALCULATION_ERROR"


class InvalidDecimalFormatError(CalculationError):
    """Operand cannot be represented as an exact decimal."""

    code: str = "INVALID_DECIMAL_FORMAT"

    def __init__(self, raw_value: Any, reason: str | None = None):
        self.raw_value = raw_value
        self.reason = reason
        detail = f" ({reason})" if reason else ""
        super().__init__(f"Invalid decimal value: {raw_value!r}{detail}")


class FormulaArityError(CalculationError):
    """Formula called with the wrong number of operands."""

    code: str = "FORMULA_ARITY"

    def __init__(self, formula_name: str, expected: int, received: int):
        self.formula_name = formula_name
        self.expected = expected
        self.received = received
        super().__init__(
            f"Formula '{formula_name}' expects {expected} operand(s), "
            f"received {received}"
        )


# Configuration exceptions


class ConfigurationError(CampaignKernelError):
    """Base exception for unrecoverable configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class UnknownFormulaError(ConfigurationError):
    """No formula registered under this name for the active version."""

    code: str = "UNKNOWN_FORMULA"

    def __init__(self, formula_name: str, version: str):
        self.formula_name = formula_name
        self.version = version
        super().__init__(
            f"Calculation method '{formula_name}' not found in version {version}"
        )


class UnknownCalculationVersionError(ConfigurationError):
    """Requested calculation version has no registered formula set."""

    code: str = "UNKNOWN_CALCULATION_VERSION"

    def __init__(self, version: str, available: tuple[str, ...] = ()):
        self.version = version
        self.available = available
        super().__init__(
            f"Calculation version '{version}' not found. "
            f"Available: {list(available)}"
        )


class DuplicateFormulaError(ConfigurationError):
    """A (name, version) pair was registered twice."""

    code: str = "DUPLICATE_FORMULA"

    def __init__(self, formula_name: str, version: str):
        self.formula_name = formula_name
        self.version = version
        super().__init__(
            f"Formula '{formula_name}' is already registered for version {version}"
        )


class UnknownPrecisionPolicyError(ConfigurationError):
    """Named precision policy is not present in the policy table."""

    code: str = "UNKNOWN_PRECISION_POLICY"

    def __init__(self, policy_name: str):
        self.policy_name = policy_name
        super().__init__(f"Unknown precision policy: {policy_name}")


class InvalidRoundingModeError(ConfigurationError):
    """Rounding mode name is not recognised."""

    code: str = "INVALID_ROUNDING_MODE"

    def __init__(self, rounding_mode: str):
        self.rounding_mode = rounding_mode
        super().__init__(f"Invalid rounding mode: {rounding_mode}")


# Currency exceptions


class CurrencyError(ValidationError):
    """Base exception for currency errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Currency code is not supported."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid currency code: '{currency}'")


class CurrencyMismatchError(CurrencyError):
    """Operation mixes amounts in different currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, left: str, right: str):
        self.left = left
        self.right = right
        super().__init__(f"Currency mismatch: {left} and {right}")


# Persistence exceptions


class PersistenceError(CampaignKernelError):
    """Base exception for storage port failures."""

    code: str = "PERSISTENCE_ERROR"


class StorageUnavailableError(PersistenceError):
    """Storage backend unreachable or timed out."""

    code: str = "STORAGE_UNAVAILABLE"

    def __init__(self, message: str):
        self.detail = message
        super().__init__(message)


class WriteConflictError(PersistenceError):
    """
    Write rejected because of an identity clash.

    Raised when a natural key already belongs to a different record than
    the one being written.
    """

    code: str = "WRITE_CONFLICT"

    def __init__(
        self,
        natural_key: str | None,
        existing_id: str | None,
        record_id: str | None = None,
    ):
        self.natural_key = natural_key
        self.existing_id = existing_id
        self.record_id = record_id
        if natural_key is None:
            message = f"Identifier '{record_id}' is taken or not a valid record id"
        elif record_id is not None:
            message = (
                f"Natural key '{natural_key}' belongs to record {existing_id}, "
                f"not to {record_id}"
            )
        else:
            message = (
                f"Natural key '{natural_key}' already exists (record {existing_id})"
            )
        super().__init__(message)


class RecordNotFoundError(PersistenceError):
    """Update target does not exist."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")


# Bulk operation exceptions


class BulkOperationError(CampaignKernelError):
    """Base exception for bulk operation errors."""

    code: str = "BULK_OPERATION_ERROR"


class BulkOperationAbortedError(BulkOperationError):
    """
    Bulk call aborted on request after a failure.

    Only raised when the caller set both ``stop_on_error`` and
    ``abort_on_error``.  Batches committed before the abort are NOT rolled
    back; ``result`` describes exactly what was applied.
    """

    code: str = "BULK_OPERATION_ABORTED"

    def __init__(self, result: BulkResult, batch_index: int):
        self.result = result
        self.batch_index = batch_index
        super().__init__(
            f"Bulk operation aborted at batch {batch_index}: "
            f"{result.inserted} inserted, {result.updated} updated, "
            f"{len(result.failed)} failed"
        )
