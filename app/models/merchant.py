import uuid

from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from app.database import Base


class Merchant(Base):
    """Tenant account. Every subscriber, segment and campaign belongs to one merchant."""

    __tablename__ = "merchants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    # Subject claim of the identity provider token that maps to this merchant
    auth_user_id = Column(String(255), unique=True, nullable=False, index=True)
    store_url = Column(String(500))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Merchant id={self.id} name='{self.name}'>"
