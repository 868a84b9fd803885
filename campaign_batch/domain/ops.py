"""
campaign_batch.domain.ops -- Write operations sent through the storage port.

Filters address a record either by identifier (``{"id": ...}``) or by
natural key (``{"natural_key": ...}``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

ID_FILTER = "id"
NATURAL_KEY_FILTER = "natural_key"


@dataclass(frozen=True)
class InsertOne:
    document: dict[str, Any]


@dataclass(frozen=True)
class UpdateOne:
    """Set top-level fields on the matched record and append ``history``.

    With ``upsert`` a missing record is inserted from ``document``.
    """

    filter: dict[str, Any]
    document: dict[str, Any]
    history: tuple[dict[str, Any], ...] = ()
    upsert: bool = False

    def __post_init__(self) -> None:
        keys = set(self.filter)
        if not keys or not keys <= {ID_FILTER, NATURAL_KEY_FILTER}:
            raise ValueError(
                f"UpdateOne filter must use '{ID_FILTER}' or "
                f"'{NATURAL_KEY_FILTER}', got {sorted(keys)}"
            )


WriteOperation = Union[InsertOne, UpdateOne]


def by_id(record_id: Any) -> dict[str, Any]:
    return {ID_FILTER: str(record_id)}


def by_natural_key(natural_key: Any) -> dict[str, Any]:
    return {NATURAL_KEY_FILTER: str(natural_key)}
