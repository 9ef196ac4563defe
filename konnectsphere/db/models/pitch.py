"""
Pitch model: an entrepreneur's multi-step investment pitch.
"""
from sqlalchemy import Column, Integer, String, Text, Boolean, Float, DateTime, ForeignKey, JSON, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from konnectsphere.db.base import Base


class Pitch(Base):
    """
    Pitch drafted section by section, then published once.

    Sections are stored as JSON; the columns under "Filter columns" are
    copied out of company_info / pitch_deal on every save so listings can
    filter and sort in SQL.
    """
    __tablename__ = "pitches"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Sections
    company_info = Column(JSON, nullable=True)
    pitch_deal = Column(JSON, nullable=True)
    team = Column(JSON, nullable=True)
    media = Column(JSON, nullable=True)
    documents = Column(JSON, nullable=True)
    package = Column(JSON, nullable=True)

    status = Column(String, nullable=False, default="draft", index=True)  # draft | published
    completed_steps = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)

    # Filter columns
    title = Column(String, nullable=True, index=True)
    country = Column(String, nullable=True, index=True)
    industry = Column(String, nullable=True, index=True)
    stage = Column(String, nullable=True)
    deal_type = Column(String, nullable=True)
    summary = Column(Text, nullable=True)
    raising_amount = Column(Float, nullable=True)
    minimum_investment = Column(Float, nullable=True)

    published_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    owner = relationship("User", back_populates="pitches")

    __table_args__ = (
        Index("idx_pitches_status_active_published", "status", "is_active", "published_at"),
    )

    def __repr__(self):
        return f"<Pitch(id={self.id}, user_id={self.user_id}, status='{self.status}', title='{self.title}')>"
