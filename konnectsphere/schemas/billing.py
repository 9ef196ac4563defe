"""
Pydantic schemas for subscription and billing endpoints.
"""
from typing import Optional
from pydantic import BaseModel, Field

from konnectsphere.services.billing_gateway import CANCELLATION_FEEDBACK


class CreateCheckoutSessionRequest(BaseModel):
    """Request schema for creating checkout session."""
    price_id: int = Field(..., description="Catalog price id (see GET /subscriptions/plans)")

    class Config:
        json_schema_extra = {
            "example": {
                "price_id": 2
            }
        }


class CreateCheckoutSessionResponse(BaseModel):
    """Response schema for checkout session creation."""
    checkout_url: str = Field(..., description="Stripe checkout session URL")
    session_id: str = Field(..., description="Stripe checkout session ID")

    class Config:
        json_schema_extra = {
            "example": {
                "checkout_url": "https://checkout.stripe.com/c/pay/cs_test_...",
                "session_id": "cs_test_..."
            }
        }


class CheckoutSuccessRequest(BaseModel):
    """Request schema for confirming a completed checkout session."""
    session_id: str = Field(..., min_length=1, description="Stripe checkout session ID from the success URL")


class CancelSubscriptionRequest(BaseModel):
    """Request schema for cancelling the current subscription."""
    reason: Optional[str] = Field(default="User requested cancellation", max_length=500)
    feedback: str = Field(default="other", description="Stripe cancellation feedback code")
    immediate: bool = Field(default=False, description="Cancel now instead of at period end")

    def feedback_code(self) -> str:
        return self.feedback if self.feedback in CANCELLATION_FEEDBACK else "other"

    class Config:
        json_schema_extra = {
            "example": {
                "reason": "Raised our round",
                "feedback": "unused",
                "immediate": False
            }
        }
