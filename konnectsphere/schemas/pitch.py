"""
Pydantic schemas for pitch endpoints.

Step bodies (company info, pitch & deal, team, media, documents) are free-form
JSON objects validated by the pitch service; only the envelopes are typed here.
"""
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class PitchPackageRequest(BaseModel):
    """Final step: choosing a package publishes the draft."""
    selectedPackage: str = Field(..., min_length=1, description="Package chosen for the listing")
    agreeToTerms: bool = Field(..., description="Terms must be accepted to publish")

    class Config:
        json_schema_extra = {
            "example": {
                "selectedPackage": "standard",
                "agreeToTerms": True
            }
        }


class AutoSaveRequest(BaseModel):
    stepName: str = Field(..., description="company-info | pitch-deal | team | media | documents | package")
    data: Optional[Dict[str, Any]] = Field(default=None)


class FileDeleteRequest(BaseModel):
    public_id: str = Field(..., min_length=1, description="Object key returned by the upload endpoint")


class FavouriteRequest(BaseModel):
    pitch_id: int = Field(..., description="Published pitch to save")
