"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.

All models must be imported here to be included in database migrations and table creation.
"""
from konnectsphere.db.models.user import User
from konnectsphere.db.models.subscription import SubscriptionPlan, SubscriptionPrice
from konnectsphere.db.models.user_subscription import UserSubscription
from konnectsphere.db.models.payment_history import PaymentHistory
from konnectsphere.db.models.pitch import Pitch
from konnectsphere.db.models.favourite import Favourite
from konnectsphere.db.models.password_reset_token import PasswordResetToken

# Explicitly export all models for clarity
__all__ = [
    "User",
    "SubscriptionPlan",
    "SubscriptionPrice",
    "UserSubscription",
    "PaymentHistory",
    "Pitch",
    "Favourite",
    "PasswordResetToken",
]
