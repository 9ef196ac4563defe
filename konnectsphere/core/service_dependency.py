"""
FastAPI dependencies for shared service objects.

Routes depend on these instead of constructing clients, so tests can swap
them out through ``app.dependency_overrides``.
"""
from functools import lru_cache

from fastapi import HTTPException, Request, status

from konnectsphere.core.scheduler import JobScheduler
from konnectsphere.services.billing_gateway import BillingGateway
from konnectsphere.services.notification_service import NotificationService
from konnectsphere.services.storage_service import MediaStorage


@lru_cache()
def get_billing_gateway() -> BillingGateway:
    return BillingGateway()


@lru_cache()
def get_notification_service() -> NotificationService:
    return NotificationService()


@lru_cache()
def get_media_storage() -> MediaStorage:
    return MediaStorage()


def get_scheduler(request: Request) -> JobScheduler:
    """The scheduler built at startup and kept on app.state."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Job scheduler is not available")
    return scheduler
