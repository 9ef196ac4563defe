from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from konnectsphere.db.base import Base


class Favourite(Base):
    __tablename__ = "favourites"

    id = Column(Integer, primary_key=True, index=True)
    investor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    pitch_id = Column(Integer, ForeignKey("pitches.id", ondelete="CASCADE"), nullable=False)
    added_at = Column(DateTime, server_default=func.now(), nullable=False)

    pitch = relationship("Pitch")

    __table_args__ = (
        UniqueConstraint("investor_id", "pitch_id", name="uq_favourites_investor_pitch"),
        Index("idx_favourites_investor_added", "investor_id", "added_at"),
    )
