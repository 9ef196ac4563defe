"""
Authentication endpoints: registration, login, logout, password reset.
"""
import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from konnectsphere.core.auth_dependency import get_current_user_obj, get_db
from konnectsphere.core.config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    AUTH_COOKIE_NAME,
    COOKIE_SECURE,
    PASSWORD_RESET_EXPIRY_MINUTES,
)
from konnectsphere.core.security import (
    create_access_token,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    verify_password,
)
from konnectsphere.core.service_dependency import get_notification_service
from konnectsphere.db.models.password_reset_token import PasswordResetToken
from konnectsphere.db.models.user import User
from konnectsphere.schemas.auth import (
    ForgotPasswordRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserResponse,
)
from konnectsphere.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

FORGOT_PASSWORD_MESSAGE = "If an account exists for that email, a password reset link has been sent"


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


# ✅ REGISTER
@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    email = payload.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    try:
        user = User(
            full_name=payload.full_name.strip(),
            email=email,
            password_hash=hash_password(payload.password),
            role=payload.role,
            country_name=payload.country_name,
            city_name=payload.city_name,
            investment_preferences=(
                {"interestedIndustries": payload.investment_preferences}
                if payload.investment_preferences else None
            ),
            agreed_to_terms=payload.agreed_to_terms,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
    except Exception as e:
        db.rollback()
        logger.error(f"Registration failed: email={email}, error={e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create user")

    logger.info(f"User registered: user_id={user.id}, role={user.role}")
    return user


# ✅ LOGIN (OAuth2 form so Swagger's Authorize button works)
@router.post("/login", response_model=TokenResponse)
def login(
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    # Swagger sends "username", but we treat it as email
    user = db.query(User).filter(User.email == form_data.username.lower()).first()

    if not user or not verify_password(form_data.password, user.password_hash):
        logger.info(f"Login failed: email={form_data.username}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_access_token({"sub": user.email})
    _set_auth_cookie(response, token)
    logger.info(f"User logged in: user_id={user.id}")
    return {"access_token": token, "token_type": "bearer"}


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(AUTH_COOKIE_NAME)
    return {"message": "Logged out"}


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user_obj)):
    return user


# ✅ PASSWORD RESET
@router.post("/forgot-password")
def forgot_password(
    payload: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service),
):
    """Always answers 200 so the endpoint does not reveal which emails have accounts."""
    user = db.query(User).filter(User.email == payload.email.lower()).first()
    if not user:
        return {"message": FORGOT_PASSWORD_MESSAGE}

    raw_token, token_hash = generate_reset_token()
    try:
        db.add(PasswordResetToken(
            user_id=user.id,
            token=token_hash,
            expires_at=datetime.utcnow() + timedelta(minutes=PASSWORD_RESET_EXPIRY_MINUTES),
        ))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to store reset token: user_id={user.id}, error={e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to start password reset")

    notifier.send_password_reset(user, raw_token)
    logger.info(f"Password reset requested: user_id={user.id}")
    return {"message": FORGOT_PASSWORD_MESSAGE}


def _valid_reset_token(db: Session, raw_token: str) -> PasswordResetToken:
    record = db.query(PasswordResetToken).filter(PasswordResetToken.token == hash_reset_token(raw_token)).first()
    if not record or record.is_used or record.expires_at < datetime.utcnow():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired reset token")
    return record


@router.get("/reset-password/{token}")
def check_reset_token(token: str, db: Session = Depends(get_db)):
    _valid_reset_token(db, token)
    return {"valid": True}


@router.post("/reset-password/{token}")
def reset_password(
    token: str,
    payload: ResetPasswordRequest,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service),
):
    record = _valid_reset_token(db, token)
    user = db.query(User).filter(User.id == record.user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired reset token")

    user.password_hash = hash_password(payload.password)
    record.is_used = True
    db.commit()

    notifier.send_password_reset_success(user)
    logger.info(f"Password reset completed: user_id={user.id}")
    return {"message": "Password has been reset successfully"}
