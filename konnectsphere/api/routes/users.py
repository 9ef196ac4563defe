"""
Account endpoints: own profile, password change, email opt-out, account
deletion, public profiles and featured investors.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from konnectsphere.core.auth_dependency import get_current_user_obj, get_db
from konnectsphere.core.config import AUTH_COOKIE_NAME
from konnectsphere.core.service_dependency import get_billing_gateway
from konnectsphere.db.models.user import User
from konnectsphere.schemas.user import ChangePasswordRequest, DeleteAccountRequest, UpdateProfileRequest
from konnectsphere.services import account_service
from konnectsphere.services.billing_gateway import BillingGateway
from konnectsphere.services.investor_service import serialize_investor_detail

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


# ============================================
# ✅ OWN PROFILE
# ============================================

@router.get("/profile")
def my_profile(user: User = Depends(get_current_user_obj)):
    return {"user": account_service.serialize_own_profile(user)}


@router.put("/profile")
def update_profile(
    payload: UpdateProfileRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    try:
        user = account_service.update_profile(db, user, payload)
    except Exception as e:
        db.rollback()
        logger.error(f"Profile update failed: user_id={user.id}, error={e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update profile")
    return {"message": "Profile updated", "user": account_service.serialize_own_profile(user)}


@router.patch("/profile/password")
def change_password(
    payload: ChangePasswordRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    account_service.change_password(db, user, payload)
    return {"message": "Password changed successfully"}


@router.delete("/account")
def delete_account(
    payload: DeleteAccountRequest,
    response: Response,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
):
    account_service.delete_account(db, user, payload.password, gateway)
    response.delete_cookie(AUTH_COOKIE_NAME)
    return {"message": "User deleted successfully"}


# ============================================
# ✅ EMAIL PREFERENCES
# ============================================

@router.patch("/unsubscribe")
def unsubscribe(user: User = Depends(get_current_user_obj), db: Session = Depends(get_db)):
    """Stop marketplace emails; published pitches are hidden from other users until resubscribed."""
    account_service.set_unsubscribed(db, user, True)
    return {"message": "Unsubscribed successfully", "isUnsubscribed": True}


@router.patch("/resubscribe")
def resubscribe(user: User = Depends(get_current_user_obj), db: Session = Depends(get_db)):
    account_service.set_unsubscribed(db, user, False)
    return {"message": "Resubscribed successfully", "isUnsubscribed": False}


# ============================================
# ✅ PUBLIC
# ============================================

@router.get("/featured-investors")
def featured_investors(db: Session = Depends(get_db)):
    investors = account_service.featured_investors(db)
    return {"investors": [serialize_investor_detail(inv) for inv in investors]}


@router.get("/profile/{user_id}")
def public_profile(
    user_id: int,
    _: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    return {"user": account_service.serialize_public_profile(account_service.get_public_profile(db, user_id))}
