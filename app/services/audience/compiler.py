"""
Segment Condition Compiler

Turns one `SegmentConditionSchema` into a SQLAlchemy boolean clause over the
`subscribers` table.

CATEGORIES SUPPORTED:
- subscribed, last_seen: in_last, before, after, more_than_ago, less_than_ago
- location: is, is_not (country/region/city slots), contains (free text)
- device_type: is, is_not, is_mobile, is_desktop
- browser, operating_system, language: is, is_not, contains
- referrer: is, is_not, contains, is_null, is_not_null
- email_domain: is, is_not (suffix match on the address), contains

All string comparisons are case-insensitive. Relative date windows use a
fixed day count per unit (a month is 30 days, a year is 365 days).

Compilation never raises for a bad condition: `compile_condition` returns a
`CompiledCondition` carrying either the clause or the `ConditionError`, and
the expression assembler decides what to do with failures.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import and_, func, not_, or_
from sqlalchemy.sql.elements import ColumnElement

from app.models.subscriber import Subscriber
from app.schemas.segment import ConditionKind, SegmentConditionSchema
from app.services.audience.errors import (
    ConditionError,
    IncompleteCondition,
    UnsupportedCategory,
    UnsupportedOperator,
)

DATE_UNIT_DAYS: Dict[str, int] = {
    "days": 1,
    "weeks": 7,
    "months": 30,
    "years": 365,
}

WINDOW_OPERATORS = ("in_last", "more_than_ago", "less_than_ago")
DATE_OPERATORS = WINDOW_OPERATORS + ("before", "after")
TEXT_OPERATORS = ("is", "is_not", "contains")

# Legacy operator names still stored on older segments
OPERATOR_ALIASES = {
    "equals": "is",
    "not_equals": "is_not",
}

CATEGORY_ALIASES = {
    "subscription_date": "subscribed",
}

CategoryCompileFn = Callable[[SegmentConditionSchema, str, datetime], ColumnElement]


@dataclass(frozen=True)
class CategoryDefinition:
    """A condition category: its legal operators and how to compile them."""

    name: str
    display_name: str
    operators: Tuple[str, ...]
    compile: CategoryCompileFn
    description: str = ""


@dataclass(frozen=True)
class CompiledCondition:
    """Outcome of compiling one condition: a clause or the reason it was rejected."""

    condition_id: str
    category: str
    clause: Optional[ColumnElement] = None
    error: Optional[ConditionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> ColumnElement:
        if self.error is not None:
            raise self.error
        return self.clause


# =========================================================================
# NORMALIZATION HELPERS
# =========================================================================


def normalize_category(category: Optional[str]) -> str:
    """`Subscription-Date` -> `subscribed`, `device-type` -> `device_type`."""
    key = (category or "").strip().lower().replace("-", "_")
    return CATEGORY_ALIASES.get(key, key)


def normalize_operator(operator: Optional[str]) -> str:
    key = (operator or "").strip().lower().replace("-", "_")
    return OPERATOR_ALIASES.get(key, key)


def date_unit_to_days(number: float, unit: str) -> float:
    """Calendar-naive conversion used by all relative date windows."""
    return number * DATE_UNIT_DAYS[unit]


def normalize_email_domain(value: str) -> str:
    return value if value.startswith("@") else f"@{value}"


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def _require_value(condition: SegmentConditionSchema, category: str, operator: str) -> str:
    if not _is_present(condition.value):
        raise IncompleteCondition(condition.id, category, f"'{operator}' requires a value")
    return condition.value


def _iequals(column: Any, value: str) -> ColumnElement:
    return func.lower(column) == func.lower(value)


def _icontains(column: Any, value: str) -> ColumnElement:
    return column.icontains(value, autoescape=True)


# =========================================================================
# CATEGORY COMPILERS
# =========================================================================


def _window_days(condition: SegmentConditionSchema, category: str, operator: str) -> float:
    if condition.number_value is None or not _is_present(condition.date_unit):
        raise IncompleteCondition(
            condition.id, category, f"'{operator}' requires a number and a date unit"
        )
    if not math.isfinite(condition.number_value):
        raise IncompleteCondition(condition.id, category, "number must be finite")
    if condition.number_value < 0:
        raise IncompleteCondition(condition.id, category, "number must not be negative")

    unit = condition.date_unit.strip().lower()
    if unit not in DATE_UNIT_DAYS:
        raise IncompleteCondition(condition.id, category, f"unknown date unit '{condition.date_unit}'")

    return date_unit_to_days(condition.number_value, unit)


def _date_field(column: Any, category: str) -> CategoryCompileFn:
    def compile_date(condition: SegmentConditionSchema, operator: str, now: datetime) -> ColumnElement:
        if operator in WINDOW_OPERATORS:
            days = _window_days(condition, category, operator)
            try:
                cutoff = now - timedelta(days=days)
            except OverflowError:
                raise IncompleteCondition(
                    condition.id, category, f"window of {condition.number_value:g} {condition.date_unit} is out of range"
                )
            if operator == "more_than_ago":
                return column < cutoff
            return column >= cutoff

        if condition.date_value is None:
            raise IncompleteCondition(condition.id, category, f"'{operator}' requires a date")

        boundary = datetime.combine(condition.date_value, time.min, tzinfo=timezone.utc)
        if operator == "before":
            return column < boundary
        return column > boundary

    return compile_date


LOCATION_SLOTS = (
    ("location_country", Subscriber.country),
    ("location_region", Subscriber.region),
    ("location_city", Subscriber.city),
)


def _compile_location(condition: SegmentConditionSchema, operator: str, now: datetime) -> ColumnElement:
    if operator == "contains":
        value = _require_value(condition, "location", operator)
        return or_(
            _icontains(Subscriber.country, value),
            _icontains(Subscriber.city, value),
            _icontains(Subscriber.region, value),
        )

    clauses = [
        _iequals(column, getattr(condition, slot))
        for slot, column in LOCATION_SLOTS
        if _is_present(getattr(condition, slot))
    ]
    if not clauses:
        raise IncompleteCondition(
            condition.id, "location", f"'{operator}' requires a country, region or city"
        )

    match = and_(*clauses)
    # is_not negates the whole conjunction, not each slot
    return match if operator == "is" else not_(match)


def _compile_device(condition: SegmentConditionSchema, operator: str, now: datetime) -> ColumnElement:
    if operator == "is_mobile":
        return Subscriber.is_mobile.is_(True)
    if operator == "is_desktop":
        return Subscriber.is_mobile.is_(False)

    value = _require_value(condition, "device_type", operator)
    match = _iequals(Subscriber.device, value)
    return match if operator == "is" else not_(match)


def _text_field(column: Any, category: str) -> CategoryCompileFn:
    def compile_text(condition: SegmentConditionSchema, operator: str, now: datetime) -> ColumnElement:
        if operator == "is_null":
            return column.is_(None)
        if operator == "is_not_null":
            return column.isnot(None)

        value = _require_value(condition, category, operator)
        if operator == "contains":
            return _icontains(column, value)

        match = _iequals(column, value)
        return match if operator == "is" else not_(match)

    return compile_text


def _compile_email_domain(condition: SegmentConditionSchema, operator: str, now: datetime) -> ColumnElement:
    value = _require_value(condition, "email_domain", operator)
    if operator == "contains":
        return _icontains(Subscriber.email, value)

    match = Subscriber.email.iendswith(normalize_email_domain(value), autoescape=True)
    return match if operator == "is" else not_(match)


# =========================================================================
# REGISTRY
# =========================================================================

CATEGORY_COMPILERS: Dict[str, CategoryDefinition] = {}


def register_category(definition: CategoryDefinition) -> None:
    CATEGORY_COMPILERS[definition.name] = definition


register_category(CategoryDefinition(
    "subscribed", "Subscription Date", DATE_OPERATORS,
    _date_field(Subscriber.subscribed_at, "subscribed"),
    "When the subscriber opted in",
))
register_category(CategoryDefinition(
    "last_seen", "Last Seen", DATE_OPERATORS,
    _date_field(Subscriber.last_seen_at, "last_seen"),
    "Most recent visit",
))
register_category(CategoryDefinition(
    "location", "Location", TEXT_OPERATORS, _compile_location,
    "Country, region and city",
))
register_category(CategoryDefinition(
    "device_type", "Device Type", ("is", "is_not", "is_mobile", "is_desktop"), _compile_device,
))
register_category(CategoryDefinition(
    "browser", "Browser", TEXT_OPERATORS, _text_field(Subscriber.browser, "browser"),
))
register_category(CategoryDefinition(
    "operating_system", "Operating System", TEXT_OPERATORS, _text_field(Subscriber.os, "operating_system"),
))
register_category(CategoryDefinition(
    "language", "Language", TEXT_OPERATORS, _text_field(Subscriber.language, "language"),
))
register_category(CategoryDefinition(
    "email_domain", "Email Domain", TEXT_OPERATORS, _compile_email_domain,
    "Domain part of the subscriber email",
))
register_category(CategoryDefinition(
    "referrer", "Referrer", TEXT_OPERATORS + ("is_null", "is_not_null"),
    _text_field(Subscriber.referrer, "referrer"),
    "Page the subscriber opted in from",
))


def supported_categories() -> List[str]:
    return list(CATEGORY_COMPILERS)


def get_available_categories() -> List[Dict[str, Any]]:
    """Category/operator table for the authoring UI."""
    return [
        {
            "name": definition.name,
            "display_name": definition.display_name,
            "operators": list(definition.operators),
            "description": definition.description,
        }
        for definition in CATEGORY_COMPILERS.values()
    ]


# =========================================================================
# ENTRY POINT
# =========================================================================


def _compile(condition: SegmentConditionSchema, category: str, now: datetime) -> ColumnElement:
    if not category:
        raise IncompleteCondition(condition.id, category, "category is required")

    if condition.type != ConditionKind.PROPERTY:
        raise UnsupportedCategory(condition.id, category, "action-based conditions are not supported")

    definition = CATEGORY_COMPILERS.get(category)
    if definition is None:
        raise UnsupportedCategory(condition.id, category, f"unsupported condition category '{category}'")

    operator = normalize_operator(condition.operator)
    if not operator:
        raise IncompleteCondition(condition.id, category, "operator is required")
    if operator not in definition.operators:
        raise UnsupportedOperator(
            condition.id, category, f"unsupported {category} operator '{condition.operator}'"
        )

    return definition.compile(condition, operator, now)


def compile_condition(
    condition: SegmentConditionSchema, now: Optional[datetime] = None
) -> CompiledCondition:
    """
    Compile a single condition.

    Args:
        condition: The condition to compile
        now: Reference time for relative date windows (defaults to current UTC time)

    Returns:
        CompiledCondition with either `clause` or `error` set
    """
    now = now or datetime.now(timezone.utc)
    category = normalize_category(condition.category)

    try:
        clause = _compile(condition, category, now)
    except ConditionError as e:
        return CompiledCondition(condition_id=condition.id, category=category, error=e)

    return CompiledCondition(condition_id=condition.id, category=category, clause=clause)
