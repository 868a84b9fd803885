"""
Campaign engines: precision policies, versioned formulas, the calculation
engine, calculated-field recording, budget pacing and presentation helpers.

Pure calculation layer.  No I/O except trace log records.
"""

from campaign_engines.budget import (
    BudgetTracker,
    BudgetTracking,
    CampaignSchedule,
    PacingStatus,
    classify_pacing,
)
from campaign_engines.calculation import (
    CalculationEngine,
    CalculationResult,
    PrecisionResult,
)
from campaign_engines.formulas import (
    CURRENT_CALCULATION_VERSION,
    FormulaDefinition,
    FormulaRegistry,
    default_registry,
)
from campaign_engines.precision import (
    PrecisionContext,
    PrecisionPolicy,
    PrecisionPolicyTable,
    PrecisionResolver,
    RoundingMode,
    default_policy_table,
)
from campaign_engines.presentation import (
    CalculationPresenter,
    compare_amounts,
    format_unit_price,
    infer_product_type,
)
from campaign_engines.recorder import (
    CalculatedField,
    CalculatedFieldName,
    CalculatedFieldRecorder,
    CalculatedFields,
)

__all__ = [
    "BudgetTracker",
    "BudgetTracking",
    "CURRENT_CALCULATION_VERSION",
    "CalculatedField",
    "CalculatedFieldName",
    "CalculatedFieldRecorder",
    "CalculatedFields",
    "CalculationEngine",
    "CalculationPresenter",
    "CalculationResult",
    "CampaignSchedule",
    "FormulaDefinition",
    "FormulaRegistry",
    "PacingStatus",
    "PrecisionContext",
    "PrecisionPolicy",
    "PrecisionPolicyTable",
    "PrecisionResolver",
    "PrecisionResult",
    "RoundingMode",
    "classify_pacing",
    "compare_amounts",
    "default_policy_table",
    "default_registry",
    "format_unit_price",
    "infer_product_type",
]
