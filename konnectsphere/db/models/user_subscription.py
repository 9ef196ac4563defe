"""
Per-user subscription record.

One row per user, created on the first successful checkout and then only
mutated (checkout, cancellation, webhooks, sweeps); never hard-deleted.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, event
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from konnectsphere.db.base import Base
from konnectsphere.core.subscription_status import is_active_status


class UserSubscription(Base):
    __tablename__ = "user_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=False)
    price_id = Column(Integer, ForeignKey("subscription_prices.id"), nullable=False)

    active = Column(Boolean, nullable=False, default=False)
    status = Column(String, nullable=False, default="incomplete", index=True)

    stripe_id = Column(String, nullable=True, index=True)  # external subscription id
    stripe_customer_id = Column(String, nullable=True, index=True)

    user_cancelled = Column(Boolean, nullable=False, default=False)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)

    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True, index=True)
    original_period_start = Column(DateTime, nullable=True)
    billing_cycle_anchor = Column(DateTime, nullable=True)

    pitches_used = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="subscription")
    plan = relationship("SubscriptionPlan")
    price = relationship("SubscriptionPrice")

    def is_active_status(self) -> bool:
        return is_active_status(self.status)

    def plan_name(self) -> str:
        return self.plan.name if self.plan else "Unknown Plan"

    def pitch_limit(self) -> int:
        return self.plan.pitch_limit if self.plan else 0

    def remaining_pitches(self) -> int:
        return max(0, self.pitch_limit() - (self.pitches_used or 0))

    def can_add_pitch(self) -> bool:
        return bool(self.active) and self.is_active_status() and self.remaining_pitches() > 0

    def is_live(self, now: Optional[datetime] = None) -> bool:
        """Active flag set, active status, and the recorded period has not lapsed."""
        now = now or datetime.utcnow()
        if not self.active or not self.is_active_status():
            return False
        return self.current_period_end is None or self.current_period_end > now

    def serialize(self) -> Dict[str, Any]:
        return {
            "planName": self.plan_name(),
            "status": self.status,
            "active": bool(self.active),
            "currentPeriodStart": self.current_period_start.isoformat() if self.current_period_start else None,
            "currentPeriodEnd": self.current_period_end.isoformat() if self.current_period_end else None,
            "pitchesUsed": self.pitches_used or 0,
            "pitchesRemaining": self.remaining_pitches(),
            "canAddPitch": self.can_add_pitch(),
            "cancelAtPeriodEnd": bool(self.cancel_at_period_end),
        }

    def __repr__(self):
        return f"<UserSubscription(id={self.id}, user_id={self.user_id}, status='{self.status}', active={self.active})>"


@event.listens_for(UserSubscription, "before_insert")
@event.listens_for(UserSubscription, "before_update")
def _set_original_period_start(mapper, connection, target):
    if target.original_period_start is None and target.current_period_start is not None:
        target.original_period_start = target.current_period_start
