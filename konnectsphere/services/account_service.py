"""
Account management: profile edits, password change, email opt-out and
account deletion.
"""
import logging
from typing import Any, Dict, List

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from konnectsphere.core.plan_capabilities import INVESTOR, INVESTOR_ACCESS_PLAN
from konnectsphere.core.security import hash_password, verify_password
from konnectsphere.db.models.favourite import Favourite
from konnectsphere.db.models.password_reset_token import PasswordResetToken
from konnectsphere.db.models.payment_history import PaymentHistory
from konnectsphere.db.models.pitch import Pitch
from konnectsphere.db.models.user import User
from konnectsphere.db.models.user_subscription import UserSubscription
from konnectsphere.schemas.user import ChangePasswordRequest, UpdateProfileRequest
from konnectsphere.services.billing_gateway import BillingGateway, BillingGatewayError
from konnectsphere.services.subscription_service import get_user_subscription

logger = logging.getLogger(__name__)

FEATURED_INVESTOR_LIMIT = 3


def serialize_public_profile(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "fullName": user.full_name,
        "role": user.role,
        "bio": user.bio,
        "countryName": user.country_name,
        "cityName": user.city_name,
        "subscriptionPlan": user.subscription_plan,
        "profileInfo": user.profile_info or {},
        "investmentPreferences": user.investment_preferences or {},
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }


def serialize_own_profile(user: User) -> Dict[str, Any]:
    data = serialize_public_profile(user)
    data.update({
        "email": user.email,
        "phoneNumber": user.phone_number,
        "isEmailVerified": user.is_email_verified,
        "isUnsubscribed": user.is_unsubscribed,
        "isInvestorProfileComplete": user.is_investor_profile_complete,
        "agreedToTerms": user.agreed_to_terms,
    })
    return data


def update_profile(db: Session, user: User, payload: UpdateProfileRequest) -> User:
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(user, field, value.strip() if isinstance(value, str) else value)
    db.commit()
    db.refresh(user)
    logger.info(f"Profile updated: user_id={user.id}, fields={sorted(changes)}")
    return user


def change_password(db: Session, user: User, payload: ChangePasswordRequest) -> None:
    """
    Replace the user's password after checking the current one.

    Raises:
        HTTPException: 403 wrong current password, 400 confirmation mismatch
            or new password equal to the current one
    """
    if not verify_password(payload.current_password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Current password is incorrect")
    if payload.new_password != payload.confirm_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="New passwords do not match")
    if payload.new_password == payload.current_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="New password must be different from the current password",
        )

    user.password_hash = hash_password(payload.new_password)
    db.commit()
    logger.info(f"Password changed: user_id={user.id}")


def set_unsubscribed(db: Session, user: User, unsubscribed: bool) -> User:
    """Opt the user out of (or back into) marketplace emails and listings."""
    user.is_unsubscribed = unsubscribed
    db.commit()
    db.refresh(user)
    logger.info(f"Email preference changed: user_id={user.id}, unsubscribed={unsubscribed}")
    return user


def _cancel_live_subscription(db: Session, user: User, gateway: BillingGateway) -> None:
    record = get_user_subscription(db, user.id)
    if not record or not record.stripe_id or not record.is_active_status():
        return
    try:
        gateway.cancel_subscription(record.stripe_id, at_period_end=False, reason="Account deleted", feedback="other")
    except BillingGatewayError as e:
        logger.error(f"Failed to cancel subscription for deleted account: user_id={user.id}, error={e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not cancel the active subscription; account not deleted",
        )


def delete_account(db: Session, user: User, password: str, gateway: BillingGateway) -> None:
    """
    Delete the user and everything they own.

    A live gateway subscription is cancelled immediately first so the
    customer is not billed for a deleted account.

    Raises:
        HTTPException: 403 wrong password, 502 gateway refused cancellation
    """
    if not verify_password(password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Incorrect password")

    _cancel_live_subscription(db, user, gateway)

    user_id = user.id
    pitch_ids = [pid for (pid,) in db.query(Pitch.id).filter(Pitch.user_id == user_id).all()]
    try:
        db.query(Favourite).filter(Favourite.investor_id == user_id).delete(synchronize_session=False)
        if pitch_ids:
            db.query(Favourite).filter(Favourite.pitch_id.in_(pitch_ids)).delete(synchronize_session=False)
            db.query(Pitch).filter(Pitch.id.in_(pitch_ids)).delete(synchronize_session=False)
        db.query(PaymentHistory).filter(PaymentHistory.user_id == user_id).delete(synchronize_session=False)
        db.query(UserSubscription).filter(UserSubscription.user_id == user_id).delete(synchronize_session=False)
        db.query(PasswordResetToken).filter(PasswordResetToken.user_id == user_id).delete(synchronize_session=False)
        db.query(User).filter(User.id == user_id).delete(synchronize_session=False)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Account deletion failed: user_id={user_id}, error={e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete account")

    logger.info(f"Account deleted: user_id={user_id}, pitches={len(pitch_ids)}")


def get_public_profile(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def featured_investors(db: Session, limit: int = FEATURED_INVESTOR_LIMIT) -> List[User]:
    """Newest investors on the investor plan with a completed profile."""
    return (
        db.query(User)
        .filter(
            func.lower(User.role) == INVESTOR.lower(),
            User.subscription_plan == INVESTOR_ACCESS_PLAN,
            User.is_investor_profile_complete == True,  # noqa: E712
            User.is_unsubscribed == False,  # noqa: E712
        )
        .order_by(User.created_at.desc(), User.id.desc())
        .limit(limit)
        .all()
    )
