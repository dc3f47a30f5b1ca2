"""
Segment condition schemas.

`SegmentConditionSchema` is the condition model shared by the authoring API,
the persistence layer (built from ORM rows) and the predicate compiler.
Both snake_case and the dashboard's camelCase keys are accepted.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConditionKind(str, Enum):
    ACTION = "action"
    PROPERTY = "property"


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class DateUnit(str, Enum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"


class SegmentType(str, Enum):
    DYNAMIC = "dynamic"
    STATIC = "static"
    BEHAVIOR = "behavior"


class SegmentConditionSchema(BaseModel):
    """One declarative filter rule over a subscriber field."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: ConditionKind = ConditionKind.PROPERTY
    category: str = ""
    operator: str = ""

    value: Optional[str] = None
    number_value: Optional[float] = Field(None, alias="numberValue")
    date_value: Optional[date] = Field(None, alias="dateValue")
    # Kept as free text: an unknown unit is reported by the compiler, not rejected here
    date_unit: Optional[str] = Field(None, alias="dateUnit")

    location_country: Optional[str] = Field(None, alias="locationCountry")
    location_region: Optional[str] = Field(None, alias="locationRegion")
    location_city: Optional[str] = Field(None, alias="locationCity")

    logical_operator: Optional[LogicalOperator] = Field(None, alias="logicalOperator")

    @field_validator("date_value", mode="before")
    @classmethod
    def strip_time_component(cls, v):
        """The dashboard sends ISO timestamps (`2024-01-01T00:00:00.000Z`) for calendar dates."""
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        if v == "":
            return None
        return v

    @field_validator("logical_operator", mode="before")
    @classmethod
    def normalize_logical_operator(cls, v):
        if isinstance(v, str):
            v = v.strip().upper()
            return v or None
        return v

    @field_validator("category", "operator", mode="before")
    @classmethod
    def none_to_blank(cls, v):
        return "" if v is None else v
