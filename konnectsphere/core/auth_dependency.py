from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from sqlalchemy.orm import Session
from konnectsphere.core.config import SECRET_KEY, ALGORITHM, AUTH_COOKIE_NAME
from konnectsphere.core.plan_capabilities import INVESTOR, normalize_role
from konnectsphere.db.session import SessionLocal
from konnectsphere.db.models.user import User

# auto_error=False so the httpOnly cookie can be used instead of the header
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_db():
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _token_from_request(request: Request, bearer_token: Optional[str]) -> Optional[str]:
    if bearer_token:
        return bearer_token
    return request.cookies.get(AUTH_COOKIE_NAME)


def _email_from_token(token: str) -> str:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    email = payload.get("sub")
    if email is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return email


def get_current_user(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> str:
    """Get current user email from the bearer header or the auth cookie."""
    raw = _token_from_request(request, token)
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _email_from_token(raw)


def get_current_user_obj(
    email: str = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> User:
    """Get current User object from JWT token."""
    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user


def get_optional_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """Current user when a valid token is present, otherwise None (public listings)."""
    raw = _token_from_request(request, token)
    if not raw:
        return None
    try:
        email = _email_from_token(raw)
    except HTTPException:
        return None
    return db.query(User).filter(User.email == email).first()


def get_current_investor(user: User = Depends(get_current_user_obj)) -> User:
    """Current user, rejected with 403 unless they registered as an investor."""
    if normalize_role(user.role) != INVESTOR:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only investors can access this resource")
    return user
