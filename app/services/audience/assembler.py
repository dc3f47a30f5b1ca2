"""
Expression Assembler

Combines the compiled conditions of a segment into one predicate.

Precedence is a fixed two-tier rule, not general boolean algebra:

    tenant AND active AND (all of AND-group) AND (any of OR-group)

The first condition, and every condition joined with AND, goes to the
AND-group; every other condition (joined with OR, or with no join marker)
goes to the OR-group. So `[A, B(AND), C(OR)]` is `A AND B AND C`, and
`[A, B(OR), C(OR)]` is `A AND (B OR C)`. Conditions that fail to compile are dropped and
logged.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement

from app.models.subscriber import Subscriber
from app.schemas.segment import LogicalOperator, SegmentConditionSchema
from app.services.audience.compiler import compile_condition
from app.services.audience.errors import ConditionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SkippedCondition:
    """A condition dropped from the composite predicate."""

    condition_id: str
    category: str
    error_type: str
    reason: str

    @classmethod
    def from_error(cls, error: ConditionError) -> "SkippedCondition":
        return cls(
            condition_id=error.condition_id,
            category=error.category,
            error_type=type(error).__name__,
            reason=error.reason,
        )


@dataclass
class AssembledPredicate:
    """Composite predicate for one segment (or one set of authored conditions)."""

    clause: ColumnElement
    merchant_id: str
    and_count: int = 0
    or_count: int = 0
    skipped: List[SkippedCondition] = field(default_factory=list)

    @property
    def compiled_count(self) -> int:
        return self.and_count + self.or_count


def tenant_scope(merchant_id: str) -> ColumnElement:
    """Every predicate is limited to the tenant's active subscribers."""
    return and_(Subscriber.merchant_id == merchant_id, Subscriber.is_active.is_(True))


def assemble_conditions(
    conditions: Sequence[SegmentConditionSchema],
    merchant_id: str,
    segment_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AssembledPredicate:
    """
    Assemble an ordered condition list into a composite predicate.

    Args:
        conditions: Conditions in authoring order
        merchant_id: Tenant every subscriber must belong to
        segment_id: Segment being assembled, for log context only
        now: Reference time for relative date windows

    Returns:
        AssembledPredicate; with no (valid) conditions the clause matches every
        active subscriber of the tenant
    """
    base = tenant_scope(merchant_id)

    if not conditions:
        logger.debug("No conditions for segment %s, using tenant scope only", segment_id)
        return AssembledPredicate(clause=base, merchant_id=merchant_id)

    and_group: List[ColumnElement] = []
    or_group: List[ColumnElement] = []
    skipped: List[SkippedCondition] = []

    for index, condition in enumerate(conditions):
        compiled = compile_condition(condition, now=now)

        if not compiled.ok:
            error = compiled.error
            logger.warning(
                "Skipping condition %s of segment %s: %s",
                error.condition_id,
                segment_id,
                error.reason,
                extra={
                    "segment_id": segment_id,
                    "condition_id": error.condition_id,
                    "category": error.category,
                    "error_type": type(error).__name__,
                },
            )
            skipped.append(SkippedCondition.from_error(error))
            continue

        # Position decides membership: only the very first condition ignores its join marker
        if index == 0 or condition.logical_operator == LogicalOperator.AND:
            and_group.append(compiled.clause)
        else:
            or_group.append(compiled.clause)

    clauses = [base, *and_group]
    if or_group:
        clauses.append(or_(*or_group))

    logger.debug(
        "Assembled segment %s: %d AND, %d OR, %d skipped",
        segment_id,
        len(and_group),
        len(or_group),
        len(skipped),
    )

    return AssembledPredicate(
        clause=and_(*clauses),
        merchant_id=merchant_id,
        and_count=len(and_group),
        or_count=len(or_group),
        skipped=skipped,
    )
