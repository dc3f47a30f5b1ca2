"""
Audience services: segment condition compilation and audience resolution.
"""

from app.services.audience.aggregator import (
    AudienceAggregator,
    CampaignAudience,
    SegmentBreakdown,
)
from app.services.audience.assembler import (
    AssembledPredicate,
    SkippedCondition,
    assemble_conditions,
    tenant_scope,
)
from app.services.audience.compiler import (
    CompiledCondition,
    compile_condition,
    get_available_categories,
    supported_categories,
)
from app.services.audience.criteria import (
    ConditionValidation,
    describe_conditions,
    is_blank_condition,
    validate_conditions,
)
from app.services.audience.errors import (
    AudienceError,
    AudienceResolutionError,
    CampaignNotFound,
    ConditionError,
    IncompleteCondition,
    SegmentNotFound,
    StoreError,
    StoreTimeout,
    UnsupportedCategory,
    UnsupportedOperator,
)
from app.services.audience.estimator import AudienceEstimate, AudienceEstimator
from app.services.audience.resolver import SegmentAudience, SegmentResolver
from app.services.audience.service import AudienceService, AudienceStatistics, SegmentCountUpdate
from app.services.audience.store import SubscriberStore

__all__ = [
    # Compilation
    "compile_condition",
    "CompiledCondition",
    "assemble_conditions",
    "AssembledPredicate",
    "SkippedCondition",
    "tenant_scope",
    "supported_categories",
    "get_available_categories",
    # Criteria helpers
    "validate_conditions",
    "ConditionValidation",
    "describe_conditions",
    "is_blank_condition",
    # Resolution
    "SubscriberStore",
    "AudienceEstimator",
    "AudienceEstimate",
    "SegmentResolver",
    "SegmentAudience",
    "AudienceAggregator",
    "CampaignAudience",
    "SegmentBreakdown",
    "AudienceService",
    "AudienceStatistics",
    "SegmentCountUpdate",
    # Errors
    "AudienceError",
    "ConditionError",
    "UnsupportedCategory",
    "UnsupportedOperator",
    "IncompleteCondition",
    "SegmentNotFound",
    "CampaignNotFound",
    "StoreError",
    "StoreTimeout",
    "AudienceResolutionError",
]
