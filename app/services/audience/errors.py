"""
Audience error taxonomy.

Condition-level errors are recovered locally by the expression assembler
(the condition is dropped and logged). Segment- and store-level errors are
surfaced to the caller.
"""

from typing import Optional


class AudienceError(Exception):
    """Base class for audience compilation and resolution failures."""


class ConditionError(AudienceError):
    """A single condition could not be compiled."""

    def __init__(self, condition_id: str, category: str, reason: str):
        self.condition_id = condition_id
        self.category = category
        self.reason = reason
        super().__init__(f"Condition {condition_id} ({category or '<blank>'}): {reason}")


class UnsupportedCategory(ConditionError):
    """Category is unknown, or the condition kind is not executable."""


class UnsupportedOperator(ConditionError):
    """Operator is not legal for the condition's category."""


class IncompleteCondition(ConditionError):
    """A value slot required by the operator is missing or invalid."""


class SegmentNotFound(AudienceError):
    """Segment does not exist, is deleted, or belongs to another tenant."""

    def __init__(self, segment_id: str):
        self.segment_id = segment_id
        super().__init__(f"Segment {segment_id} was not found")


class CampaignNotFound(AudienceError):
    def __init__(self, campaign_id: str):
        self.campaign_id = campaign_id
        super().__init__(f"Campaign {campaign_id} was not found")


class StoreError(AudienceError):
    """The subscriber store failed to answer a query."""

    def __init__(self, detail: str, original: Optional[BaseException] = None):
        self.detail = detail
        self.original = original
        super().__init__(detail)


class StoreTimeout(StoreError):
    """A store query exceeded the configured timeout."""

    def __init__(self, timeout_seconds: float, operation: str):
        self.timeout_seconds = timeout_seconds
        self.operation = operation
        super().__init__(f"Subscriber store {operation} timed out after {timeout_seconds:g}s")


class AudienceResolutionError(AudienceError):
    """Campaign audience aggregation failed outright; dispatch must not proceed."""

    def __init__(self, detail: str, failures: Optional[dict[str, str]] = None):
        self.detail = detail
        self.failures = failures or {}
        super().__init__(detail)
