"""
Pydantic schemas for authentication endpoints.
"""
import re
from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field, field_validator

PASSWORD_SPECIAL_CHARACTERS = "@$!%*?&"

_PASSWORD_RULES = [
    (re.compile(r"\d"), "Password must contain at least one number"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[@$!%*?&]"), f"Password must contain at least one special character ({PASSWORD_SPECIAL_CHARACTERS})"),
]


def check_password_rules(v: str) -> str:
    password_bytes = v.encode("utf-8")
    if len(password_bytes) > 72:
        raise ValueError("Password too long (bcrypt limit 72 bytes)")
    if len(password_bytes) < 8:
        raise ValueError("Password must be at least 8 characters")
    for pattern, message in _PASSWORD_RULES:
        if not pattern.search(v):
            raise ValueError(message)
    return v


class RegisterRequest(BaseModel):
    """Request schema for user registration."""
    full_name: str = Field(..., min_length=5, max_length=200, description="User's full name (min 5 characters)")
    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(..., min_length=8, description="Min 8 characters with a number, upper and lower case letters and one of @$!%*?&")
    role: str = Field(..., pattern="^(Entrepreneur|Investor|entrepreneur|investor)$", description="Entrepreneur or Investor")
    country_name: Optional[str] = Field(default=None, max_length=100)
    city_name: Optional[str] = Field(default=None, max_length=100)
    investment_preferences: Optional[List[str]] = Field(default=None, description="Industries of interest (investors)")
    agreed_to_terms: bool = Field(..., description="Must be true")

    @field_validator("full_name")
    @classmethod
    def strip_full_name(cls, v: str) -> str:
        if len(v.strip()) < 5:
            raise ValueError("Full name must be at least 5 characters")
        return v.strip()

    @field_validator("password")
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        """Validate length in bytes (bcrypt limit is 72 bytes) and character classes."""
        return check_password_rules(v)

    @field_validator("role")
    @classmethod
    def capitalize_role(cls, v: str) -> str:
        return v.capitalize()

    @field_validator("agreed_to_terms")
    @classmethod
    def require_terms(cls, v: bool) -> bool:
        if v is not True:
            raise ValueError("You must agree to the terms and conditions")
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "full_name": "Amara Okafor",
                "email": "amara@example.com",
                "password": "SecurePass123!",
                "role": "Entrepreneur",
                "country_name": "Nigeria",
                "city_name": "Lagos",
                "agreed_to_terms": True,
            }
        }


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: int
    full_name: str
    email: str
    role: str
    subscription_plan: str
    country_name: Optional[str] = None
    city_name: Optional[str] = None
    is_email_verified: bool = False

    class Config:
        from_attributes = True


class ForgotPasswordRequest(BaseModel):
    email: EmailStr = Field(..., description="Account email address")


class ResetPasswordRequest(BaseModel):
    """Request schema for choosing a new password with a reset token."""
    password: str = Field(..., min_length=8, description="New password (min 8 characters)")

    @field_validator("password")
    @classmethod
    def validate_password_length(cls, v: str) -> str:
        return check_password_rules(v)

    class Config:
        json_schema_extra = {
            "example": {
                "password": "NewSecurePass456!"
            }
        }
