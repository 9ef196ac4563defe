from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from konnectsphere.db.base import Base


class PaymentHistory(Base):
    """
    Append-only ledger entry per invoice outcome.

    Duplicate webhook deliveries are suppressed by looking up
    ``stripe_invoice_id`` + ``status`` before inserting; there is no unique
    constraint on those columns.
    """
    __tablename__ = "payment_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user_subscription_id = Column(Integer, ForeignKey("user_subscriptions.id"), nullable=False, index=True)

    stripe_invoice_id = Column(String, nullable=True, index=True)
    stripe_payment_intent_id = Column(String, nullable=True)

    amount = Column(Float, nullable=False, default=0.0)
    currency = Column(String, nullable=False, default="usd")
    status = Column(String, nullable=False)  # paid | pending | failed | cancelled | processing | requires_action
    payment_type = Column(String, nullable=False, default="initial")  # initial | recurring | retry
    description = Column(String, nullable=True)
    invoice_url = Column(String, nullable=True)

    paid_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True)

    retry_count = Column(Integer, nullable=False, default=0)
    last_retry_at = Column(DateTime, nullable=True)
    next_retry_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), index=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user_subscription = relationship("UserSubscription")

    def __repr__(self):
        return f"<PaymentHistory(id={self.id}, invoice='{self.stripe_invoice_id}', status='{self.status}', amount={self.amount})>"
