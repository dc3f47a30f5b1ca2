"""
Audience Estimator

Live "estimated reach" for a composite predicate. Called on every edit while
a segment is being authored, so it never raises store failures into the
caller: a failed count is reported as 0 together with the error message.
Debouncing is the caller's job.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from app.services.audience.assembler import AssembledPredicate, SkippedCondition
from app.services.audience.errors import StoreError
from app.services.audience.store import SubscriberStore

logger = logging.getLogger(__name__)


@dataclass
class AudienceEstimate:
    count: int
    skipped: List[SkippedCondition] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AudienceEstimator:
    def __init__(self, store: SubscriberStore):
        self.store = store

    async def estimate(self, predicate: AssembledPredicate) -> AudienceEstimate:
        try:
            count = await self.store.count(predicate)
        except StoreError as e:
            logger.error(
                "Estimation failed for merchant %s: %s",
                predicate.merchant_id,
                e.detail,
                extra={"merchant_id": predicate.merchant_id, "error_type": type(e).__name__},
            )
            return AudienceEstimate(count=0, skipped=list(predicate.skipped), error=e.detail)

        logger.info(
            "Estimated %d subscribers (%d conditions compiled, %d skipped)",
            count,
            predicate.compiled_count,
            len(predicate.skipped),
        )
        return AudienceEstimate(count=count, skipped=list(predicate.skipped))
