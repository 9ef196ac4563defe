"""
Pitch endpoints: step-by-step drafting, publishing, media uploads and the
published listing.
"""
import logging
import os
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from konnectsphere.core.auth_dependency import get_current_user_obj, get_db, get_optional_user
from konnectsphere.core.service_dependency import get_media_storage
from konnectsphere.db.models.user import User
from konnectsphere.schemas.pitch import AutoSaveRequest, FileDeleteRequest, PitchPackageRequest
from konnectsphere.services import pitch_service
from konnectsphere.services.access_control import get_publishing_rights, require_document_access
from konnectsphere.services.storage_service import (
    ALLOWED_CONTENT_TYPES,
    MAX_UPLOAD_BYTES,
    MediaStorage,
    StorageError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pitches", tags=["Pitches"])


def _save_step(step: str, data: Dict[str, Any], user: User, db: Session) -> Dict[str, Any]:
    try:
        pitch = pitch_service.save_step(db, user, step, data)
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to save pitch step: user_id={user.id}, step={step}, error={e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save pitch")
    return {"message": "Pitch saved", "pitch": pitch_service.serialize_pitch(pitch)}


# ============================================
# ✅ DRAFT STEPS
# ============================================

@router.get("/draft")
def get_draft(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    pitch = pitch_service.get_draft(db, user)
    return {"pitch": pitch_service.serialize_pitch(pitch) if pitch else None}


@router.put("/company-info")
def save_company_info(
    data: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    return _save_step("company-info", data, user, db)


@router.put("/pitch-deal")
def save_pitch_deal(
    data: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    return _save_step("pitch-deal", data, user, db)


@router.put("/team")
def save_team(
    data: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    return _save_step("team", data, user, db)


@router.put("/media")
def save_media(
    data: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    return _save_step("media", data, user, db)


@router.put("/documents")
def save_documents(
    data: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    return _save_step("documents", data, user, db)


@router.put("/package")
def publish_pitch(
    payload: PitchPackageRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    try:
        pitch = pitch_service.publish(db, user, payload.model_dump())
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to publish pitch: user_id={user.id}, error={e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to publish pitch")
    return {"message": "Pitch published successfully", "pitch": pitch_service.serialize_pitch(pitch)}


@router.post("/auto-save")
def auto_save(
    payload: AutoSaveRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    try:
        pitch = pitch_service.auto_save(db, user, payload.stepName, payload.data)
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Auto-save failed: user_id={user.id}, step={payload.stepName}, error={e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to auto-save pitch")

    if pitch is None:
        return {"message": "No content to save", "saved": False}
    return {"message": "Draft saved", "saved": True, "pitchId": pitch.id}


# ============================================
# ✅ MEDIA
# ============================================

@router.post("/upload/{file_type}")
def upload_file(
    file_type: str,
    file: UploadFile = File(...),
    user: User = Depends(get_current_user_obj),
    storage: MediaStorage = Depends(get_media_storage),
):
    if file_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unsupported file type: {file_type}")
    if file_type == "document":
        require_document_access(user)
    if file.content_type not in ALLOWED_CONTENT_TYPES[file_type]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid content type for {file_type}: {file.content_type}",
        )

    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    if size > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File exceeds the 10MB upload limit")

    try:
        stored = storage.upload(user.id, file_type, file.file, file.filename, file.content_type)
    except StorageError as e:
        logger.error(f"Upload failed: user_id={user.id}, file_type={file_type}, error={e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to upload file")

    return {**stored, "size": size, "contentType": file.content_type}


@router.delete("/file")
def delete_file(
    payload: FileDeleteRequest,
    user: User = Depends(get_current_user_obj),
    storage: MediaStorage = Depends(get_media_storage),
):
    if not payload.public_id.startswith(f"pitches/{user.id}/"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only delete your own files")
    try:
        storage.delete(payload.public_id)
    except StorageError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete file")
    return {"message": "File deleted"}


# ============================================
# ✅ OWNER VIEWS
# ============================================

@router.delete("/cleanup-drafts")
def cleanup_drafts(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    removed = pitch_service.cleanup_empty_drafts(db, user)
    return {"message": "Empty drafts removed", "deleted": removed}


@router.get("/publishing-rights")
def publishing_rights(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    return get_publishing_rights(db, user)


@router.get("/my-pitches")
def my_pitches(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    pitches = pitch_service.list_user_pitches(db, user)
    return {"pitches": [pitch_service.serialize_pitch(p) for p in pitches], "total": len(pitches)}


@router.get("/my-pitch/{pitch_id}")
def my_pitch(
    pitch_id: int,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    return {"pitch": pitch_service.serialize_pitch(pitch_service.get_owned_pitch(db, user, pitch_id))}


# ============================================
# ✅ PUBLIC LISTING
# ============================================

@router.get("/published")
def published_pitches(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    search: Optional[str] = Query(None),
    countries: Optional[str] = Query(None, description="Comma-separated"),
    industries: Optional[str] = Query(None, description="Comma-separated"),
    stages: Optional[str] = Query(None, description="Comma-separated"),
    fundingTypes: Optional[str] = Query(None, description="Comma-separated"),
    minInvestment: Optional[float] = Query(None, ge=0),
    maxInvestment: Optional[float] = Query(None, ge=0),
    sortBy: str = Query("newest", pattern="^(newest|oldest)$"),
    prioritizePremium: bool = Query(True),
    viewer: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    return pitch_service.list_published(
        db,
        viewer,
        page=page,
        limit=limit,
        search=search,
        countries=countries,
        industries=industries,
        stages=stages,
        funding_types=fundingTypes,
        min_investment=minInvestment,
        max_investment=maxInvestment,
        sort_by=sortBy,
        prioritize_premium=prioritizePremium,
    )


@router.get("/count")
def count_pitches(
    viewer: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    return {"count": pitch_service.count_visible(db, viewer)}


@router.get("/{pitch_id}")
def get_pitch(
    pitch_id: int,
    viewer: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    pitch = pitch_service.get_visible_pitch(db, viewer, pitch_id)
    return {"pitch": pitch_service.serialize_pitch(pitch, include_owner=True)}


@router.delete("/{pitch_id}")
def delete_pitch(
    pitch_id: int,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    try:
        was_published = pitch_service.delete_pitch(db, user, pitch_id)
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to delete pitch: user_id={user.id}, pitch_id={pitch_id}, error={e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete pitch")
    return {"message": "Pitch deleted successfully", "wasPublished": was_published}
