"""
Investor favourites: saved pitches.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from konnectsphere.core.auth_dependency import get_current_investor, get_db
from konnectsphere.db.models.favourite import Favourite
from konnectsphere.db.models.pitch import Pitch
from konnectsphere.db.models.user import User
from konnectsphere.schemas.pitch import FavouriteRequest
from konnectsphere.services.access_control import can_view_pitch
from konnectsphere.services.pitch_service import PUBLISHED, serialize_pitch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/favourites", tags=["Favourites"])


@router.post("", status_code=status.HTTP_201_CREATED)
def add_favourite(
    payload: FavouriteRequest,
    user: User = Depends(get_current_investor),
    db: Session = Depends(get_db)
):
    pitch = db.query(Pitch).filter(Pitch.id == payload.pitch_id, Pitch.status == PUBLISHED).first()
    if not pitch or not can_view_pitch(db, user, pitch):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pitch not found")

    existing = db.query(Favourite).filter(
        Favourite.investor_id == user.id,
        Favourite.pitch_id == pitch.id,
    ).first()
    if existing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Pitch is already in your favourites")

    favourite = Favourite(investor_id=user.id, pitch_id=pitch.id)
    db.add(favourite)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Pitch is already in your favourites")
    db.refresh(favourite)

    logger.info(f"Favourite added: investor_id={user.id}, pitch_id={pitch.id}")
    return {"message": "Added to favourites", "id": favourite.id, "pitchId": pitch.id}


@router.delete("/{pitch_id}")
def remove_favourite(
    pitch_id: int,
    user: User = Depends(get_current_investor),
    db: Session = Depends(get_db)
):
    favourite = db.query(Favourite).filter(
        Favourite.investor_id == user.id,
        Favourite.pitch_id == pitch_id,
    ).first()
    if not favourite:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Favourite not found")

    db.delete(favourite)
    db.commit()
    logger.info(f"Favourite removed: investor_id={user.id}, pitch_id={pitch_id}")
    return {"message": "Removed from favourites"}


@router.get("")
def list_favourites(
    user: User = Depends(get_current_investor),
    db: Session = Depends(get_db)
):
    favourites = (
        db.query(Favourite)
        .filter(Favourite.investor_id == user.id)
        .order_by(Favourite.added_at.desc(), Favourite.id.desc())
        .all()
    )
    return {
        "favourites": [
            {
                "id": fav.id,
                "addedAt": fav.added_at.isoformat() if fav.added_at else None,
                "pitch": serialize_pitch(fav.pitch, include_owner=True),
            }
            for fav in favourites
            if fav.pitch is not None
        ],
        "total": len(favourites),
    }


@router.get("/check/{pitch_id}")
def check_favourite(
    pitch_id: int,
    user: User = Depends(get_current_investor),
    db: Session = Depends(get_db)
):
    exists = db.query(Favourite).filter(
        Favourite.investor_id == user.id,
        Favourite.pitch_id == pitch_id,
    ).first() is not None
    return {"isFavourite": exists}


@router.get("/count")
def count_favourites(
    user: User = Depends(get_current_investor),
    db: Session = Depends(get_db)
):
    return {"count": db.query(Favourite).filter(Favourite.investor_id == user.id).count()}
