"""
Investor directory, public investor profiles and investor profile editing.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from konnectsphere.core.auth_dependency import get_current_investor, get_current_user_obj, get_db
from konnectsphere.db.models.user import User
from konnectsphere.schemas.user import InvestorProfileUpdate
from konnectsphere.services import investor_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/investors", tags=["Investors"])


@router.get("")
def list_investors(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    search: Optional[str] = Query(None),
    industries: Optional[str] = Query(None, description="Comma-separated"),
    stages: Optional[str] = Query(None, description="Comma-separated"),
    countries: Optional[str] = Query(None, description="Comma-separated"),
    investmentRangeMin: Optional[float] = Query(None, ge=0),
    investmentRangeMax: Optional[float] = Query(None, ge=0),
    sortBy: str = Query("newest", pattern="^(newest|investments)$"),
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    """Investors visible to the viewer; same-country only without global access."""
    return investor_service.search_investors(
        db,
        user,
        page=page,
        limit=limit,
        search=search,
        industries=industries,
        stages=stages,
        countries=countries,
        range_min=investmentRangeMin,
        range_max=investmentRangeMax,
        sort_by=sortBy,
    )


# ============================================
# ✅ OWN INVESTOR PROFILE
# ============================================

@router.put("/profile")
def update_investor_profile(
    payload: InvestorProfileUpdate,
    user: User = Depends(get_current_investor),
    db: Session = Depends(get_db)
):
    try:
        investor = investor_service.update_investor_profile(db, user, payload)
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Investor profile update failed: user_id={user.id}, error={e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update investor profile")

    return {
        "message": "Investor profile updated",
        "isInvestorProfileComplete": investor.is_investor_profile_complete,
        "investor": investor_service.serialize_investor_detail(investor),
    }


@router.get("/preferred-pitches")
def preferred_pitches(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    user: User = Depends(get_current_investor),
    db: Session = Depends(get_db)
):
    """Published pitches matching the investor's countries, industries and range."""
    return investor_service.preferred_pitches(db, user, page=page, limit=limit)


@router.get("/{investor_id}")
def investor_detail(
    investor_id: int,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    investor = investor_service.get_investor_detail(db, user, investor_id)
    return {"investor": investor_service.serialize_investor_detail(investor)}
