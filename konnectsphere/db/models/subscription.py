"""
Subscription plan catalog: plans and their price options.
"""
from sqlalchemy import Column, Integer, String, Text, Boolean, Float, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from konnectsphere.db.base import Base


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False, index=True)
    subtitle = Column(String, nullable=True)
    user_type = Column(String, nullable=False)  # entrepreneur | investor

    pitch_limit = Column(Integer, nullable=False, default=0)
    global_visibility = Column(Boolean, nullable=False, default=False)

    features = Column(Text, nullable=True)  # one feature per line
    permissions = Column(JSON, nullable=True, default=list)

    order = Column(Integer, nullable=False, default=0)
    featured = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    stripe_id = Column(String, nullable=True)  # external product id

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    prices = relationship("SubscriptionPrice", back_populates="plan", order_by="SubscriptionPrice.order")

    def feature_list(self):
        return [line.strip() for line in (self.features or "").split("\n") if line.strip()]

    def __repr__(self):
        return f"<SubscriptionPlan(id={self.id}, name='{self.name}', user_type='{self.user_type}')>"


class SubscriptionPrice(Base):
    __tablename__ = "subscription_prices"

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=False, index=True)

    interval = Column(String, nullable=False, default="month")  # month | year
    price = Column(Float, nullable=False)  # major currency units
    currency = Column(String, nullable=False, default="usd")

    featured = Column(Boolean, nullable=False, default=False)
    order = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    stripe_id = Column(String, nullable=True, index=True)  # external price id

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    plan = relationship("SubscriptionPlan", back_populates="prices")

    def stripe_unit_amount(self) -> int:
        """Price in the smallest currency unit, as the gateway expects it."""
        return int(round(self.price * 100))

    def __repr__(self):
        return f"<SubscriptionPrice(id={self.id}, plan_id={self.plan_id}, interval='{self.interval}', price={self.price})>"
