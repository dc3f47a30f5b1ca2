# Services module
from app.services.audience import AudienceService

__all__ = [
    "AudienceService",
]
