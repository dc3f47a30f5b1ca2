"""
Criteria helpers for the segment authoring flow: support checks, blank-row
filtering and the human-readable criteria text shown on segment cards.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from app.schemas.segment import ConditionKind, SegmentConditionSchema
from app.services.audience.compiler import CATEGORY_COMPILERS, normalize_category

logger = logging.getLogger(__name__)


@dataclass
class ConditionValidation:
    supported: List[SegmentConditionSchema] = field(default_factory=list)
    unsupported_categories: List[str] = field(default_factory=list)

    @property
    def all_supported(self) -> bool:
        return not self.unsupported_categories


def is_blank_condition(condition: SegmentConditionSchema) -> bool:
    """Half-filled rows from the authoring UI (no category or no operator yet)."""
    return not condition.category.strip() or not condition.operator.strip()


def validate_conditions(conditions: Sequence[SegmentConditionSchema]) -> ConditionValidation:
    """Split conditions by whether their category can be compiled."""
    validation = ConditionValidation()

    for condition in conditions:
        category = normalize_category(condition.category)
        if condition.type == ConditionKind.PROPERTY and category in CATEGORY_COMPILERS:
            validation.supported.append(condition)
        elif category not in validation.unsupported_categories:
            validation.unsupported_categories.append(category)

    if validation.unsupported_categories:
        logger.warning("Unsupported categories: %s", ", ".join(validation.unsupported_categories))

    return validation


def _describe_value(condition: SegmentConditionSchema) -> str:
    if condition.value:
        return condition.value
    if condition.number_value is not None:
        number = f"{condition.number_value:g}"
        return f"{number} {condition.date_unit}" if condition.date_unit else number
    if condition.date_value is not None:
        return condition.date_value.isoformat()

    location = [
        part
        for part in (condition.location_city, condition.location_region, condition.location_country)
        if part
    ]
    return ", ".join(location)


def describe_conditions(conditions: Sequence[SegmentConditionSchema]) -> str:
    """
    Render conditions as display text, e.g.
    `location is Karachi, Sindh, Pakistan OR device_type is_mobile`.
    """
    if not conditions:
        return "No conditions defined"

    parts: List[str] = []
    for index, condition in enumerate(conditions):
        text = f"{condition.category} {condition.operator}"
        value = _describe_value(condition)
        if value:
            text = f"{text} {value}"

        if index > 0 and condition.logical_operator:
            parts.append(condition.logical_operator.value)
        parts.append(text)

    return " ".join(parts)
