import uuid

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from app.database import Base


class Subscriber(Base):
    """
    Web push subscriber.

    Read-only from the audience core: segment conditions only ever compile
    to predicates over these columns.
    """

    __tablename__ = "subscribers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    merchant_id = Column(String(36), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)

    # Delivery
    fcm_token = Column(String(500))
    is_active = Column(Boolean, default=True, nullable=False)

    # Identity
    email = Column(String(255))
    first_name = Column(String(100))
    last_name = Column(String(100))

    # Location
    country = Column(String(100))
    region = Column(String(100))
    city = Column(String(100))

    # Device / client
    device = Column(String(50))
    is_mobile = Column(Boolean, default=False)
    browser = Column(String(100))
    os = Column(String(100))
    language = Column(String(20))
    referrer = Column(String(500))

    # Lifecycle
    subscribed_at = Column(DateTime(timezone=True), server_default=func.now())
    last_seen_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index("ix_subscribers_merchant_active", "merchant_id", "is_active"),
        Index("ix_subscribers_merchant_subscribed_at", "merchant_id", "subscribed_at"),
    )

    def __repr__(self):
        return f"<Subscriber id={self.id} merchant_id={self.merchant_id} active={self.is_active}>"
