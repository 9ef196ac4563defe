"""
Investor profiles: directory search, public detail, profile editing and
pitches matching an investor's stated preferences.
"""
import logging
import math
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import case, or_
from sqlalchemy.orm import Session

from konnectsphere.db.models.pitch import Pitch
from konnectsphere.db.models.user import User
from konnectsphere.schemas.user import InvestorProfileUpdate
from konnectsphere.services.access_control import visible_investors_query, visible_pitches_query
from konnectsphere.services.pitch_service import FEATURED_PLANS, serialize_pitch

logger = logging.getLogger(__name__)

PROFILE_INFO_KEYS = {
    "about_me": "aboutMe",
    "areas_of_expertise": "areasOfExpertise",
    "previous_investments": "previousInvestments",
    "linkedin_url": "linkedinUrl",
    "personal_website": "personalWebsite",
}

PREFERENCE_KEYS = {
    "investment_range_min": "investmentRangeMin",
    "investment_range_max": "investmentRangeMax",
    "interested_industries": "interestedIndustries",
    "investment_stages": "investmentStages",
    "max_investments_per_year": "maxInvestmentsPerYear",
    "interested_locations": "interestedLocations",
    "pitch_countries": "pitchCountries",
    "languages": "languages",
    "additional_criteria": "additionalCriteria",
}


def _split(values: Optional[str]) -> List[str]:
    return [v.strip().lower() for v in (values or "").split(",") if v.strip()]


def _lowered(values: Any) -> List[str]:
    return [str(v).strip().lower() for v in (values or []) if str(v).strip()]


def _pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalItems": total,
        "hasNext": page < total_pages,
    }


def serialize_investor_summary(investor: User) -> Dict[str, Any]:
    return {
        "id": investor.id,
        "fullName": investor.full_name,
        "countryName": investor.country_name,
        "cityName": investor.city_name,
        "investmentPreferences": investor.investment_preferences or {},
        "subscriptionPlan": investor.subscription_plan,
    }


def serialize_investor_detail(investor: User) -> Dict[str, Any]:
    info = investor.profile_info or {}
    prefs = investor.investment_preferences or {}
    location = ", ".join(part for part in (investor.city_name, investor.country_name) if part)
    return {
        "id": investor.id,
        "name": investor.full_name,
        "location": location or None,
        "bio": investor.bio,
        "professionalBackground": info.get("aboutMe"),
        "areasOfExpertise": info.get("areasOfExpertise") or [],
        "investmentRange": {
            "min": prefs.get("investmentRangeMin"),
            "max": prefs.get("investmentRangeMax"),
        },
        "preferredIndustries": prefs.get("interestedIndustries") or [],
        "investmentStages": prefs.get("investmentStages") or [],
        "pastInvestments": info.get("previousInvestments") or 0,
        "linkedinUrl": info.get("linkedinUrl"),
        "website": info.get("personalWebsite"),
        "subscriptionPlan": investor.subscription_plan,
    }


def _matches_range(prefs: Dict[str, Any], range_min: Optional[float], range_max: Optional[float]) -> bool:
    """Investor's range overlaps the requested one; unset bounds are open."""
    low = prefs.get("investmentRangeMin")
    high = prefs.get("investmentRangeMax")
    if range_min is not None and high is not None and high < range_min:
        return False
    if range_max is not None and low is not None and low > range_max:
        return False
    return True


def search_investors(
    db: Session,
    viewer: User,
    page: int = 1,
    limit: int = 12,
    search: Optional[str] = None,
    industries: Optional[str] = None,
    stages: Optional[str] = None,
    countries: Optional[str] = None,
    range_min: Optional[float] = None,
    range_max: Optional[float] = None,
    sort_by: str = "newest",
) -> Dict[str, Any]:
    """
    Investors visible to the viewer, filtered and paginated.

    Preference filters read the JSON preferences, so they are applied after
    the visibility query and before pagination.
    """
    query = visible_investors_query(db, viewer).filter(User.id != viewer.id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(User.full_name.ilike(pattern), User.city_name.ilike(pattern)))
    investors = query.order_by(User.created_at.desc(), User.id.desc()).all()

    wanted_industries = set(_split(industries))
    wanted_stages = set(_split(stages))
    wanted_countries = set(_split(countries))

    matched = []
    for investor in investors:
        prefs = investor.investment_preferences or {}
        if wanted_industries and not wanted_industries & set(_lowered(prefs.get("interestedIndustries"))):
            continue
        if wanted_stages and not wanted_stages & set(_lowered(prefs.get("investmentStages"))):
            continue
        if wanted_countries and (investor.country_name or "").strip().lower() not in wanted_countries:
            continue
        if not _matches_range(prefs, range_min, range_max):
            continue
        matched.append(investor)

    if sort_by == "investments":
        matched.sort(key=lambda inv: (inv.profile_info or {}).get("previousInvestments") or 0, reverse=True)

    offset = (page - 1) * limit
    return {
        "investors": [serialize_investor_summary(inv) for inv in matched[offset:offset + limit]],
        "pagination": _pagination(page, limit, len(matched)),
    }


def get_investor_detail(db: Session, viewer: User, investor_id: int) -> User:
    investor = visible_investors_query(db, viewer).filter(User.id == investor_id).first()
    if not investor:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Investor not found")
    return investor


def update_investor_profile(db: Session, investor: User, payload: InvestorProfileUpdate) -> User:
    """
    Merge the submitted profile sections into the stored JSON.

    Writing ``about_me`` marks the investor profile complete.
    """
    prefs = None
    if payload.investment_preferences is not None:
        changes = payload.investment_preferences.model_dump(exclude_unset=True)
        prefs = dict(investor.investment_preferences or {})
        prefs.update({PREFERENCE_KEYS[key]: value for key, value in changes.items()})
        low, high = prefs.get("investmentRangeMin"), prefs.get("investmentRangeMax")
        if low is not None and high is not None and high <= low:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Maximum investment must be greater than minimum investment",
            )

    if payload.profile_info is not None:
        changes = payload.profile_info.model_dump(exclude_unset=True)
        info = dict(investor.profile_info or {})
        info.update({PROFILE_INFO_KEYS[key]: value for key, value in changes.items()})
        investor.profile_info = info
        if info.get("aboutMe"):
            investor.is_investor_profile_complete = True

    if prefs is not None:
        investor.investment_preferences = prefs

    db.commit()
    db.refresh(investor)
    logger.info(
        f"Investor profile updated: user_id={investor.id}, complete={investor.is_investor_profile_complete}"
    )
    return investor


def _pitch_industries(pitch: Pitch) -> List[str]:
    info = pitch.company_info or {}
    return _lowered([info.get("industry1"), info.get("industry2")])


def preferred_pitches(db: Session, investor: User, page: int = 1, limit: int = 12) -> Dict[str, Any]:
    """
    Published pitches the investor can see that match their preferences.

    Pitches with no minimum investment always pass the range check.

    Raises:
        HTTPException: 404 when the investor has not set preferences
    """
    prefs = investor.investment_preferences or {}
    if not prefs:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Investment preferences not set")

    query = visible_pitches_query(db, investor)
    range_max = prefs.get("investmentRangeMax")
    if range_max is not None:
        query = query.filter(or_(
            Pitch.minimum_investment.is_(None),
            Pitch.minimum_investment == 0,
            Pitch.minimum_investment <= range_max,
        ))

    premium_first = case((User.subscription_plan.in_(FEATURED_PLANS), 1), else_=0).desc()
    pitches = query.order_by(premium_first, Pitch.published_at.desc(), Pitch.id.desc()).all()

    countries = set(_lowered(prefs.get("pitchCountries")))
    industries = set(_lowered(prefs.get("interestedIndustries")))
    matched = [
        pitch for pitch in pitches
        if (not countries or (pitch.country or "").strip().lower() in countries)
        and (not industries or industries & set(_pitch_industries(pitch)))
    ]

    offset = (page - 1) * limit
    return {
        "pitches": [serialize_pitch(p, include_owner=True) for p in matched[offset:offset + limit]],
        "pagination": _pagination(page, limit, len(matched)),
    }
