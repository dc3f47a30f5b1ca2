"""
Merchant test factory and auth helpers.
"""

import factory
from faker import Faker
from jose import jwt

from app.config import settings

fake = Faker()


class MerchantFactory(factory.Factory):
    """
    Factory for generating Merchant test data.

    Usage:
        merchant = Merchant(**MerchantFactory())
        merchant = Merchant(**MerchantFactory(auth_user_id="user_abc"))
    """

    class Meta:
        model = dict

    name = factory.LazyFunction(fake.company)
    auth_user_id = factory.Sequence(lambda n: f"user_{n:04d}")
    store_url = factory.LazyFunction(lambda: f"https://{fake.domain_name()}")


def auth_headers(auth_user_id: str) -> dict:
    """Bearer header for a token whose subject is `auth_user_id`."""
    token = jwt.encode({"sub": auth_user_id}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}
