"""
Pydantic schemas for account and investor profile endpoints.
"""
import re
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from konnectsphere.schemas.auth import check_password_rules

URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


class UpdateProfileRequest(BaseModel):
    """Fields a user may change on their own profile; omitted fields are left alone."""
    full_name: Optional[str] = Field(default=None, min_length=5, max_length=200)
    bio: Optional[str] = Field(default=None, max_length=2000)
    country_name: Optional[str] = Field(default=None, max_length=100)
    city_name: Optional[str] = Field(default=None, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=30)

    class Config:
        json_schema_extra = {
            "example": {
                "full_name": "Amara Okafor",
                "bio": "Building pay-as-you-go solar for West Africa",
                "city_name": "Abuja"
            }
        }


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)
    confirm_password: str = Field(..., min_length=1)

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return check_password_rules(v)


class DeleteAccountRequest(BaseModel):
    password: str = Field(..., min_length=1, description="Current password, required to confirm deletion")


class InvestorProfileInfo(BaseModel):
    about_me: Optional[str] = Field(default=None, min_length=10, max_length=2000)
    areas_of_expertise: Optional[List[str]] = Field(default=None, max_length=10)
    previous_investments: Optional[int] = Field(default=None, ge=0)
    linkedin_url: Optional[str] = Field(default=None, max_length=500)
    personal_website: Optional[str] = Field(default=None, max_length=500)

    @field_validator("areas_of_expertise")
    @classmethod
    def validate_expertise(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        cleaned = [area.strip() for area in v]
        for area in cleaned:
            if not 2 <= len(area) <= 50:
                raise ValueError("Each area of expertise must be 2-50 characters")
        return cleaned

    @field_validator("linkedin_url", "personal_website")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        if v and not URL_PATTERN.match(v):
            raise ValueError("URL must start with http:// or https://")
        return v


class InvestorPreferences(BaseModel):
    investment_range_min: Optional[float] = Field(default=None, ge=0)
    investment_range_max: Optional[float] = Field(default=None, ge=0)
    interested_industries: Optional[List[str]] = Field(default=None, max_length=15)
    investment_stages: Optional[List[str]] = None
    max_investments_per_year: Optional[int] = Field(default=None, ge=0)
    interested_locations: Optional[List[str]] = None
    pitch_countries: Optional[List[str]] = None
    languages: Optional[List[str]] = None
    additional_criteria: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def check_range(self):
        low, high = self.investment_range_min, self.investment_range_max
        if low is not None and high is not None and high <= low:
            raise ValueError("Maximum investment must be greater than minimum investment")
        return self


class InvestorProfileUpdate(BaseModel):
    """Request schema for PUT /investors/profile."""
    profile_info: Optional[InvestorProfileInfo] = None
    investment_preferences: Optional[InvestorPreferences] = None

    class Config:
        json_schema_extra = {
            "example": {
                "profile_info": {
                    "about_me": "Angel investor backing clean energy in East Africa",
                    "areas_of_expertise": ["Energy", "Fintech"],
                    "previous_investments": 12,
                    "linkedin_url": "https://linkedin.com/in/example"
                },
                "investment_preferences": {
                    "investment_range_min": 5000,
                    "investment_range_max": 100000,
                    "interested_industries": ["Energy"],
                    "pitch_countries": ["Kenya"]
                }
            }
        }
