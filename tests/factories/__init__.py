"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation.
"""

from .merchant import MerchantFactory, auth_headers
from .subscriber import (
    NOW,
    SubscriberFactory,
    MobileSubscriberFactory,
    InactiveSubscriberFactory,
)
from .segment import (
    ConditionFactory,
    LocationConditionFactory,
    DateWindowConditionFactory,
)

__all__ = [
    "NOW",
    # Merchants
    "MerchantFactory",
    "auth_headers",
    # Subscribers
    "SubscriberFactory",
    "MobileSubscriberFactory",
    "InactiveSubscriberFactory",
    # Conditions
    "ConditionFactory",
    "LocationConditionFactory",
    "DateWindowConditionFactory",
]
