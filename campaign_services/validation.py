"""
Campaign record validation.

Collects every problem with a campaign record instead of stopping at the
first one.  Never raises for bad input; callers decide whether a non-empty
issue list is an exception (single writes) or a failure entry (bulk).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from campaign_engines.budget import to_datetime
from campaign_kernel.domain.decimals import to_decimal
from campaign_kernel.domain.values import FinancialAmount
from campaign_kernel.exceptions import CampaignKernelError

# (block, field) pairs that must parse as exact decimals when present.
DECIMAL_FIELDS: tuple[tuple[str | None, str], ...] = (
    ("price", "target_amount"),
    ("price", "actual_amount"),
    ("price", "remaining_amount"),
    ("media_budget", "target_amount"),
    ("media_budget", "actual_spend"),
    ("metrics", "units"),
    ("metrics", "clicks"),
    ("metrics", "impressions"),
    (None, "revenue"),
    (None, "cost"),
    (None, "referral_rate"),
    (None, "agency_markup_rate"),
)


def _label(block: str | None, field: str) -> str:
    return f"{block}.{field}" if block else field


def _value(data: Mapping[str, Any], block: str | None, field: str) -> Any:
    if block is None:
        return data.get(field)
    container = data.get(block)
    if not isinstance(container, Mapping):
        return None
    return container.get(field)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_campaign(data: Any, partial: bool = False) -> list[str]:
    """
    Return every validation issue for a campaign record.

    With ``partial`` only the fields present are checked (updates).
    """
    if not isinstance(data, Mapping):
        return ["Campaign must be a mapping"]

    issues: list[str] = []

    if not partial or "name" in data:
        if _blank(data.get("name")):
            issues.append("Campaign name is required")
    if not partial or "campaign_number" in data:
        if _blank(data.get("campaign_number")):
            issues.append("Campaign number is required")

    if not partial or "dates" in data:
        issues.extend(_date_issues(data.get("dates")))

    if not partial or "price" in data:
        issues.extend(_price_issues(data.get("price")))

    for block, field in DECIMAL_FIELDS:
        if block == "price" and field == "target_amount":
            continue
        raw = _value(data, block, field)
        if raw is None:
            continue
        try:
            to_decimal(raw)
        except CampaignKernelError:
            issues.append(f"{_label(block, field)} must be a decimal amount")

    for block in ("price", "media_budget"):
        container = data.get(block)
        if isinstance(container, Mapping) and container.get("currency") is not None:
            try:
                FinancialAmount.of(0, container["currency"])
            except CampaignKernelError as exc:
                issues.append(f"{block}.currency: {exc}")

    return issues


def _date_issues(dates: Any) -> list[str]:
    if not isinstance(dates, Mapping) or _blank(dates.get("start")) or _blank(dates.get("end")):
        return ["Campaign start and end dates are required"]
    try:
        start = to_datetime(dates["start"])
        end = to_datetime(dates["end"])
    except ValueError:
        return ["Campaign dates must be ISO dates"]
    if end <= start:
        return ["Campaign end date must be after start date"]
    return []


def _price_issues(price: Any) -> list[str]:
    if not isinstance(price, Mapping) or _blank(price.get("target_amount")):
        return ["Campaign price target amount is required"]
    try:
        target = to_decimal(price["target_amount"])
    except CampaignKernelError:
        return ["price.target_amount must be a decimal amount"]
    if target <= 0:
        return ["Campaign price target amount must be positive"]
    return []
