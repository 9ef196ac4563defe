import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

import bcrypt
from passlib.context import CryptContext
from jose import jwt
from konnectsphere.core.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES

logger = logging.getLogger(__name__)

# bcrypt hard limit
MAX_PASSWORD_BYTES = 72

# Verification fallback for hashes produced through passlib
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def _password_bytes(password: str) -> bytes:
    """Encode and cut to the bcrypt limit without splitting a UTF-8 sequence."""
    encoded = password.encode("utf-8")
    if len(encoded) <= MAX_PASSWORD_BYTES:
        return encoded
    logger.warning("Password exceeds 72 bytes, truncating before hashing (validation should have caught this)")
    return encoded[:MAX_PASSWORD_BYTES].decode("utf-8", errors="ignore").encode("utf-8")


def hash_password(password: str) -> str:
    """
    Hash a password with bcrypt.

    Args:
        password: Plain text password (at most 72 bytes in UTF-8)

    Returns:
        bcrypt hash string

    Raises:
        ValueError: If the password cannot be hashed
    """
    try:
        return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")
    except (TypeError, ValueError) as e:
        logger.error(f"Password hashing failed: {e}")
        raise ValueError("Invalid password") from e


def verify_password(password: str, hashed: Optional[str]) -> bool:
    """
    Verify a password against its hash.

    Native bcrypt hashes are checked directly; anything bcrypt rejects is
    retried through the passlib context.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(password), hashed.encode("utf-8"))
    except (TypeError, ValueError):
        try:
            return pwd_context.verify(password, hashed)
        except (TypeError, ValueError) as e:
            logger.warning(f"Password verification failed: {e}")
            return False


def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_reset_token() -> Tuple[str, str]:
    """Return (raw token for the email link, sha256 hash for storage)."""
    raw = secrets.token_hex(32)
    return raw, hash_reset_token(raw)
