from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from konnectsphere.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default="Entrepreneur")  # Entrepreneur | Investor

    # Plan label shown across the product: Free | Basic | Premium | Investor Access Plan
    subscription_plan = Column(String, nullable=False, default="Free", server_default="Free")

    country_name = Column(String, nullable=True, index=True)
    city_name = Column(String, nullable=True)
    bio = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)

    # Investors: {"aboutMe", "areasOfExpertise", "previousInvestments", "linkedinUrl", "personalWebsite"}
    profile_info = Column(JSON, nullable=True)
    # Investors: {"interestedIndustries", "investmentRangeMin", "investmentRangeMax", "pitchCountries", ...}
    investment_preferences = Column(JSON, nullable=True)
    is_investor_profile_complete = Column(Boolean, nullable=False, default=False)

    stripe_customer_id = Column(String, nullable=True, index=True)
    is_email_verified = Column(Boolean, nullable=False, default=False)
    is_unsubscribed = Column(Boolean, nullable=False, default=False)
    agreed_to_terms = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    subscription = relationship("UserSubscription", back_populates="user", uselist=False)
    pitches = relationship("Pitch", back_populates="owner")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}', plan='{self.subscription_plan}')>"
