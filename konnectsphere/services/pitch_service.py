"""
Pitch drafting, publishing and listing.

A user has at most one working draft; each step upserts its section on that
draft. Publishing turns the most recent draft into a published pitch, which
can no longer be edited, only deleted.
"""
import logging
import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from konnectsphere.core.plan_capabilities import ENTREPRENEUR, PLAN_CAPABILITIES
from konnectsphere.db.models.favourite import Favourite
from konnectsphere.db.models.pitch import Pitch
from konnectsphere.db.models.user import User
from konnectsphere.services.access_control import (
    can_view_pitch,
    require_document_access,
    require_publishing_rights,
    visible_pitches_query,
)
from konnectsphere.services.subscription_service import get_user_subscription

logger = logging.getLogger(__name__)

DRAFT = "draft"
PUBLISHED = "published"

# step name -> Pitch column
STEP_FIELDS: Dict[str, str] = {
    "company-info": "company_info",
    "pitch-deal": "pitch_deal",
    "team": "team",
    "media": "media",
    "documents": "documents",
    "package": "package",
}

REQUIRED_FIELDS: Dict[str, List[str]] = {
    "company-info": [
        "pitchTitle",
        "website",
        "country",
        "phoneNumber",
        "industry1",
        "stage",
        "idealInvestorRole",
        "raisingAmount",
        "minimumInvestment",
    ],
    "pitch-deal": [
        "summary",
        "business",
        "market",
        "progress",
        "objectives",
        "highlights",
        "dealType",
        "financials",
        "tags",
    ],
}

PUBLISHED_STEP = "packages"

FEATURED_PLANS = [plan for (role, plan), caps in PLAN_CAPABILITIES.items() if role == ENTREPRENEUR and caps.featured_in_search]


# ----------------------------------------------------------------------
# Content checks
# ----------------------------------------------------------------------

def _text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _url(value: Any) -> bool:
    return isinstance(value, dict) and bool(value.get("url"))


def has_content(data: Any) -> bool:
    """True when any leaf value in step data is non-empty (auto-save guard)."""
    if isinstance(data, dict):
        return any(has_content(value) for value in data.values())
    if isinstance(data, list):
        return len(data) > 0
    if isinstance(data, str):
        return bool(data.strip())
    if isinstance(data, bool):
        return data
    if isinstance(data, (int, float)):
        return data > 0
    return data is not None


def has_meaningful_content(pitch: Pitch) -> bool:
    company_info = pitch.company_info or {}
    if any(_text(company_info.get(key)) for key in ("pitchTitle", "website", "phoneNumber")):
        return True

    pitch_deal = pitch.pitch_deal or {}
    if any(_text(pitch_deal.get(key)) for key in ("summary", "business", "market")):
        return True

    members = (pitch.team or {}).get("members") or []
    if any(isinstance(m, dict) and any(_text(m.get(key)) for key in ("name", "role", "bio")) for m in members):
        return True

    media = pitch.media or {}
    if _url(media.get("logo")) or _url(media.get("banner")) or _url(media.get("uploadedVideo")):
        return True
    if _text(media.get("youtubeUrl")) or media.get("images"):
        return True

    documents = pitch.documents or {}
    if any(_url(documents.get(key)) for key in ("businessPlan", "financials", "pitchDeck", "executiveSummary")):
        return True
    return bool(documents.get("additionalDocuments"))


def parse_amount(value: Any) -> Optional[float]:
    """Amounts arrive as free text ("$250,000"); keep the digits."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    digits = re.sub(r"[^0-9.]", "", str(value))
    try:
        return float(digits) if digits else None
    except ValueError:
        return None


def refresh_filter_columns(pitch: Pitch) -> None:
    company_info = pitch.company_info or {}
    pitch_deal = pitch.pitch_deal or {}
    pitch.title = company_info.get("pitchTitle")
    pitch.country = company_info.get("country")
    pitch.industry = company_info.get("industry1")
    pitch.stage = company_info.get("stage")
    pitch.raising_amount = parse_amount(company_info.get("raisingAmount"))
    pitch.minimum_investment = parse_amount(company_info.get("minimumInvestment"))
    pitch.deal_type = pitch_deal.get("dealType")
    pitch.summary = pitch_deal.get("summary")


# ----------------------------------------------------------------------
# Serialization
# ----------------------------------------------------------------------

def serialize_pitch(pitch: Pitch, include_owner: bool = False) -> Dict[str, Any]:
    data = {
        "id": pitch.id,
        "userId": pitch.user_id,
        "companyInfo": pitch.company_info or {},
        "pitchDeal": pitch.pitch_deal or {},
        "team": pitch.team or {"members": []},
        "media": pitch.media or {},
        "documents": pitch.documents or {},
        "package": pitch.package or {},
        "status": pitch.status,
        "completedSteps": pitch.completed_steps or [],
        "isActive": pitch.is_active,
        "publishedAt": pitch.published_at.isoformat() if pitch.published_at else None,
        "createdAt": pitch.created_at.isoformat() if pitch.created_at else None,
        "updatedAt": pitch.updated_at.isoformat() if pitch.updated_at else None,
    }
    if include_owner and pitch.owner:
        data["owner"] = {
            "id": pitch.owner.id,
            "fullName": pitch.owner.full_name,
            "subscriptionPlan": pitch.owner.subscription_plan,
            "countryName": pitch.owner.country_name,
        }
    return data


# ----------------------------------------------------------------------
# Drafts
# ----------------------------------------------------------------------

def get_draft(db: Session, user: User) -> Optional[Pitch]:
    return (
        db.query(Pitch)
        .filter(Pitch.user_id == user.id, Pitch.status == DRAFT)
        .order_by(Pitch.updated_at.desc(), Pitch.id.desc())
        .first()
    )


def _get_or_create_draft(db: Session, user: User) -> Pitch:
    pitch = get_draft(db, user)
    if pitch is None:
        pitch = Pitch(user_id=user.id, status=DRAFT, is_active=True, completed_steps=[])
        db.add(pitch)
    return pitch


def _validate_step(step: str, data: Dict[str, Any]) -> None:
    if step not in STEP_FIELDS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown pitch step: {step}")
    missing = [field for field in REQUIRED_FIELDS.get(step, []) if not data.get(field)]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing required fields: {', '.join(missing)}",
        )


def save_step(db: Session, user: User, step: str, data: Dict[str, Any]) -> Pitch:
    """
    Upsert one section of the user's draft and mark the step completed.

    Raises:
        HTTPException: 400 missing required fields, 403 documents not in plan
    """
    _validate_step(step, data)
    if step == "documents":
        require_document_access(user)

    pitch = _get_or_create_draft(db, user)
    setattr(pitch, STEP_FIELDS[step], dict(data))
    steps = list(pitch.completed_steps or [])
    if step not in steps:
        steps.append(step)
    pitch.completed_steps = steps
    refresh_filter_columns(pitch)

    db.commit()
    db.refresh(pitch)
    logger.info(f"Pitch step saved: user_id={user.id}, pitch_id={pitch.id}, step={step}")
    return pitch


def auto_save(db: Session, user: User, step: str, data: Optional[Dict[str, Any]]) -> Optional[Pitch]:
    """Persist step data without validation; returns None when there was nothing to save."""
    if step not in STEP_FIELDS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown pitch step: {step}")
    if not has_content(data):
        return None

    pitch = _get_or_create_draft(db, user)
    setattr(pitch, STEP_FIELDS[step], dict(data))
    refresh_filter_columns(pitch)
    db.commit()
    db.refresh(pitch)
    logger.debug(f"Pitch auto-saved: user_id={user.id}, pitch_id={pitch.id}, step={step}")
    return pitch


def _delete_empty_drafts(db: Session, user: User, keep_id: Optional[int] = None) -> int:
    drafts = db.query(Pitch).filter(Pitch.user_id == user.id, Pitch.status == DRAFT).all()
    removed = 0
    for draft in drafts:
        if draft.id != keep_id and not has_meaningful_content(draft):
            db.delete(draft)
            removed += 1
    return removed


def cleanup_empty_drafts(db: Session, user: User) -> int:
    removed = _delete_empty_drafts(db, user)
    db.commit()
    logger.info(f"Empty drafts cleaned: user_id={user.id}, removed={removed}")
    return removed


# ----------------------------------------------------------------------
# Publishing and deletion
# ----------------------------------------------------------------------

def publish(db: Session, user: User, package_data: Dict[str, Any], now: Optional[datetime] = None) -> Pitch:
    """
    Publish the user's most recent draft.

    Raises:
        HTTPException: 403 no publishing rights or limit reached, 400 missing
            package/terms or empty pitch, 404 no draft
    """
    now = now or datetime.utcnow()
    require_publishing_rights(db, user, now)

    if not package_data.get("selectedPackage") or not package_data.get("agreeToTerms"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Package selection and terms agreement are required",
        )

    pitch = get_draft(db, user)
    if pitch is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No draft pitch found to publish")
    if not has_meaningful_content(pitch):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot publish an empty pitch. Please add content first.",
        )

    pitch.package = {
        "selectedPackage": package_data["selectedPackage"],
        "agreeToTerms": bool(package_data["agreeToTerms"]),
    }
    pitch.status = PUBLISHED
    pitch.published_at = now
    steps = list(pitch.completed_steps or [])
    if PUBLISHED_STEP not in steps:
        steps.append(PUBLISHED_STEP)
    pitch.completed_steps = steps

    record = get_user_subscription(db, user.id)
    if record is not None:
        record.pitches_used = (record.pitches_used or 0) + 1

    removed = _delete_empty_drafts(db, user, keep_id=pitch.id)
    db.commit()
    db.refresh(pitch)
    logger.info(f"Pitch published: user_id={user.id}, pitch_id={pitch.id}, empty_drafts_removed={removed}")
    return pitch


def get_owned_pitch(db: Session, user: User, pitch_id: int) -> Pitch:
    pitch = db.query(Pitch).filter(Pitch.id == pitch_id, Pitch.user_id == user.id).first()
    if not pitch:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Pitch not found or you don't have permission to access it",
        )
    return pitch


def delete_pitch(db: Session, user: User, pitch_id: int) -> bool:
    """Delete one of the user's pitches. Returns whether it had been published."""
    pitch = get_owned_pitch(db, user, pitch_id)
    was_published = pitch.status == PUBLISHED

    db.query(Favourite).filter(Favourite.pitch_id == pitch.id).delete(synchronize_session=False)
    db.delete(pitch)

    if was_published:
        record = get_user_subscription(db, user.id)
        if record is not None:
            record.pitches_used = max(0, (record.pitches_used or 0) - 1)

    db.commit()
    logger.info(f"Pitch deleted: user_id={user.id}, pitch_id={pitch_id}, was_published={was_published}")
    return was_published


# ----------------------------------------------------------------------
# Listings
# ----------------------------------------------------------------------

def list_user_pitches(db: Session, user: User) -> List[Pitch]:
    return (
        db.query(Pitch)
        .filter(Pitch.user_id == user.id)
        .order_by(Pitch.updated_at.desc(), Pitch.id.desc())
        .all()
    )


def get_visible_pitch(db: Session, viewer: Optional[User], pitch_id: int) -> Pitch:
    pitch = db.query(Pitch).filter(Pitch.id == pitch_id).first()
    if not pitch:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pitch not found")
    is_owner = viewer is not None and pitch.user_id == viewer.id
    if not is_owner and (pitch.status != PUBLISHED or not can_view_pitch(db, viewer, pitch)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pitch not found")
    return pitch


def _split(values: Optional[str]) -> List[str]:
    return [v.strip() for v in (values or "").split(",") if v.strip()]


def list_published(
    db: Session,
    viewer: Optional[User],
    page: int = 1,
    limit: int = 12,
    search: Optional[str] = None,
    countries: Optional[str] = None,
    industries: Optional[str] = None,
    stages: Optional[str] = None,
    funding_types: Optional[str] = None,
    min_investment: Optional[float] = None,
    max_investment: Optional[float] = None,
    sort_by: str = "newest",
    prioritize_premium: bool = True,
) -> Dict[str, Any]:
    """Published pitches visible to the viewer, filtered, sorted and paginated."""
    query = visible_pitches_query(db, viewer)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Pitch.title.ilike(pattern),
            Pitch.industry.ilike(pattern),
            Pitch.summary.ilike(pattern),
            Pitch.country.ilike(pattern),
        ))
    if _split(countries):
        query = query.filter(Pitch.country.in_(_split(countries)))
    if _split(industries):
        query = query.filter(Pitch.industry.in_(_split(industries)))
    if _split(stages):
        query = query.filter(Pitch.stage.in_(_split(stages)))
    if _split(funding_types):
        query = query.filter(Pitch.deal_type.in_(_split(funding_types)))
    if min_investment is not None:
        query = query.filter(func.coalesce(Pitch.minimum_investment, 0) >= min_investment)
    if max_investment is not None:
        query = query.filter(Pitch.raising_amount <= max_investment)

    total = query.count()
    featured_count = query.filter(User.subscription_plan.in_(FEATURED_PLANS)).count()

    order = []
    if prioritize_premium:
        order.append(case((User.subscription_plan.in_(FEATURED_PLANS), 1), else_=0).desc())
    if sort_by == "oldest":
        order.extend([Pitch.published_at.asc(), Pitch.created_at.asc()])
    else:
        order.extend([Pitch.published_at.desc(), Pitch.created_at.desc()])
    order.append(Pitch.id.desc() if sort_by != "oldest" else Pitch.id.asc())

    pitches = query.order_by(*order).offset((page - 1) * limit).limit(limit).all()
    total_pages = math.ceil(total / limit) if limit else 0

    return {
        "pitches": [serialize_pitch(p, include_owner=True) for p in pitches],
        "pagination": {
            "currentPage": page,
            "totalPages": total_pages,
            "totalItems": total,
            "hasNext": page < total_pages,
            "hasPrev": page > 1,
        },
        "meta": {
            "premiumCount": featured_count,
            "basicCount": total - featured_count,
        },
    }


def count_visible(db: Session, viewer: Optional[User]) -> int:
    return visible_pitches_query(db, viewer).count()
