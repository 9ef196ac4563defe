"""
Shared fixtures: in-memory database, API client with overridden
dependencies, and small factories for users, subscriptions and pitches.
"""
import os

# Must be set before konnectsphere.core.config is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("ENABLE_SCHEDULER", "0")

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from konnectsphere.core.auth_dependency import get_db
from konnectsphere.core.security import create_access_token, hash_password
from konnectsphere.core.service_dependency import (
    get_billing_gateway,
    get_media_storage,
    get_notification_service,
)
from konnectsphere.db.base import Base
from konnectsphere.db import models  # noqa: F401
from konnectsphere.db.models.pitch import Pitch
from konnectsphere.db.models.subscription import SubscriptionPlan, SubscriptionPrice
from konnectsphere.db.models.user import User
from konnectsphere.db.models.user_subscription import UserSubscription
from konnectsphere.main import app
from konnectsphere.services.billing_gateway import BillingGateway
from konnectsphere.services.notification_service import NotificationService
from konnectsphere.services.storage_service import MediaStorage
from konnectsphere.services.subscription_service import initialize_subscription_plans


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

NOW = datetime(2025, 3, 10, 12, 0, 0)

COMPANY_INFO = {
    "pitchTitle": "SolarGrid Kenya",
    "website": "https://solargrid.example",
    "country": "Kenya",
    "phoneNumber": "+254700000000",
    "industry1": "Energy",
    "stage": "Seed",
    "idealInvestorRole": "Angel",
    "raisingAmount": "$250,000",
    "minimumInvestment": "$5,000",
}

PITCH_DEAL = {
    "summary": "Pay-as-you-go solar for rural households",
    "business": "Hardware plus mobile-money subscriptions",
    "market": "East African off-grid homes",
    "progress": "2,000 installs",
    "objectives": "Expand to Uganda",
    "highlights": "Profitable unit economics",
    "dealType": "Equity",
    "financials": "$40k MRR",
    "tags": ["solar", "fintech"],
}


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def plans(db):
    """Seeded catalog keyed by plan name."""
    initialize_subscription_plans(db)
    return {plan.name: plan for plan in db.query(SubscriptionPlan).all()}


@pytest.fixture
def gateway():
    return MagicMock(spec=BillingGateway)


@pytest.fixture
def notifier():
    return MagicMock(spec=NotificationService)


@pytest.fixture
def storage():
    return MagicMock(spec=MediaStorage)


@pytest.fixture
def client(db, gateway, notifier, storage):
    """API client bound to the test database and mocked services."""
    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_billing_gateway] = lambda: gateway
    app.dependency_overrides[get_notification_service] = lambda: notifier
    app.dependency_overrides[get_media_storage] = lambda: storage
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user.email})}"}


def make_user(db, email="founder@example.com", role="Entrepreneur", plan="Free", country="Kenya", **kwargs) -> User:
    user = User(
        full_name=kwargs.pop("full_name", "Test User"),
        email=email,
        password_hash=kwargs.pop("password_hash", hash_password("testpass123")),
        role=role,
        subscription_plan=plan,
        country_name=country,
        **kwargs,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_subscription(
    db,
    user: User,
    plan: SubscriptionPlan,
    status="active",
    active=True,
    period_end=None,
    stripe_id="sub_123",
    stripe_customer_id="cus_123",
    period_start=None,
) -> UserSubscription:
    price = db.query(SubscriptionPrice).filter(SubscriptionPrice.plan_id == plan.id).first()
    now = datetime.utcnow()
    start = period_start or (now - timedelta(days=10))
    record = UserSubscription(
        user_id=user.id,
        plan_id=plan.id,
        price_id=price.id,
        status=status,
        active=active,
        stripe_id=stripe_id,
        stripe_customer_id=stripe_customer_id,
        current_period_start=start,
        current_period_end=period_end or (now + timedelta(days=20)),
        pitches_used=0,
    )
    user.subscription_plan = plan.name
    user.stripe_customer_id = stripe_customer_id
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def make_pitch(db, user: User, status="published", country=None, title="SolarGrid Kenya", **kwargs) -> Pitch:
    company_info = dict(COMPANY_INFO, pitchTitle=title, country=country or user.country_name)
    pitch = Pitch(
        user_id=user.id,
        company_info=company_info,
        pitch_deal=dict(PITCH_DEAL),
        status=status,
        completed_steps=["company-info", "pitch-deal"],
        is_active=True,
        title=title,
        country=company_info["country"],
        industry=company_info["industry1"],
        stage=company_info["stage"],
        deal_type=PITCH_DEAL["dealType"],
        summary=PITCH_DEAL["summary"],
        raising_amount=250000.0,
        minimum_investment=5000.0,
        published_at=kwargs.pop("published_at", NOW if status == "published" else None),
        **kwargs,
    )
    db.add(pitch)
    db.commit()
    db.refresh(pitch)
    return pitch
