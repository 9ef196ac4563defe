"""
Subscription-based access control.

Turns the capability table into checks (publishing, pitch limit, document
access) and into query filters for what a viewer may see.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from sqlalchemy import and_, false, func, or_
from sqlalchemy.orm import Query, Session

from konnectsphere.core.plan_capabilities import (
    ENTREPRENEUR,
    INVESTOR,
    PlanCapabilities,
    get_capabilities,
    normalize_role,
    plans_with_global_visibility,
)
from konnectsphere.core.subscription_status import ACTIVE_STATUSES
from konnectsphere.db.models.pitch import Pitch
from konnectsphere.db.models.user import User
from konnectsphere.db.models.user_subscription import UserSubscription
from konnectsphere.services.subscription_service import count_published_pitches, get_user_subscription

logger = logging.getLogger(__name__)


def capabilities_for(user: Optional[User]) -> PlanCapabilities:
    if user is None:
        return get_capabilities(None, None)
    return get_capabilities(user.role, user.subscription_plan)


def has_live_subscription(db: Session, user: User, now: Optional[datetime] = None) -> bool:
    record = get_user_subscription(db, user.id)
    return bool(record and record.is_live(now))


def get_publishing_rights(db: Session, user: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Whether the user may publish another pitch right now, and why not when they may not."""
    caps = capabilities_for(user)
    published = count_published_pitches(db, user.id)
    reason = None

    if normalize_role(user.role) != ENTREPRENEUR:
        reason = "Only entrepreneurs can publish pitches"
    elif not has_live_subscription(db, user, now):
        reason = "An active subscription is required to publish pitches"
    elif published >= caps.pitch_limit:
        reason = (
            f"You have reached your pitch limit of {caps.pitch_limit} for your "
            f"{user.subscription_plan} plan. Please upgrade to publish more pitches."
        )

    return {
        "canPublish": reason is None,
        "reason": reason,
        "plan": user.subscription_plan,
        "publishedCount": published,
        "pitchLimit": caps.pitch_limit,
        "remaining": max(0, caps.pitch_limit - published),
    }


def require_publishing_rights(db: Session, user: User, now: Optional[datetime] = None) -> None:
    """
    Raises:
        HTTPException: 403 when the user cannot publish another pitch
    """
    rights = get_publishing_rights(db, user, now)
    if not rights["canPublish"]:
        logger.info(f"Publish denied: user_id={user.id}, reason={rights['reason']}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=rights["reason"])


def require_document_access(user: User) -> None:
    if normalize_role(user.role) != ENTREPRENEUR:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only entrepreneurs can upload documents")
    if not capabilities_for(user).documents_allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Document uploads are not included in your plan. Please upgrade to upload documents.",
        )


def _same_country(column, country: Optional[str]):
    if not country:
        return false()
    return func.lower(column) == country.strip().lower()


def visible_pitches_query(db: Session, viewer: Optional[User], now: Optional[datetime] = None) -> Query:
    """
    Published pitches the viewer may see.

    Pitches of owners who unsubscribed or whose subscription is missing,
    inactive or past its period end are hidden from everyone but the owner.
    """
    now = now or datetime.utcnow()
    query = (
        db.query(Pitch)
        .join(User, Pitch.user_id == User.id)
        .outerjoin(UserSubscription, UserSubscription.user_id == User.id)
        .filter(Pitch.status == "published", Pitch.is_active == True)  # noqa: E712
    )

    owner_live = and_(
        User.is_unsubscribed == False,  # noqa: E712
        UserSubscription.active == True,  # noqa: E712
        UserSubscription.status.in_(ACTIVE_STATUSES),
        or_(UserSubscription.current_period_end.is_(None), UserSubscription.current_period_end > now),
    )
    global_owner = User.subscription_plan.in_(plans_with_global_visibility(ENTREPRENEUR))

    if viewer is None:
        return query.filter(owner_live, global_owner)

    own = Pitch.user_id == viewer.id
    query = query.filter(or_(owner_live, own))

    caps = capabilities_for(viewer)
    role = normalize_role(viewer.role)
    if caps.investor_access_global:
        return query
    if role == INVESTOR:
        return query.filter(or_(_same_country(Pitch.country, viewer.country_name), own))
    if role == ENTREPRENEUR:
        return query.filter(or_(global_owner, _same_country(Pitch.country, viewer.country_name), own))
    return query.filter(or_(global_owner, own))


def can_view_pitch(db: Session, viewer: Optional[User], pitch: Pitch, now: Optional[datetime] = None) -> bool:
    if viewer is not None and pitch.user_id == viewer.id:
        return True
    return visible_pitches_query(db, viewer, now).filter(Pitch.id == pitch.id).first() is not None


def visible_investors_query(db: Session, viewer: User) -> Query:
    """Investors the viewer may search; limited to the viewer's country without global access."""
    query = db.query(User).filter(func.lower(User.role) == INVESTOR.lower())
    if not capabilities_for(viewer).investor_access_global:
        query = query.filter(_same_country(User.country_name, viewer.country_name))
    return query
