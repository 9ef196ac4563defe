"""
Tests for pitch drafting, publishing, deletion and marketplace listings.
"""
from datetime import datetime

import pytest
from fastapi import HTTPException

from konnectsphere.db.models.favourite import Favourite
from konnectsphere.db.models.pitch import Pitch
from konnectsphere.services import pitch_service

from conftest import COMPANY_INFO, PITCH_DEAL, make_pitch, make_subscription, make_user

PACKAGE = {"selectedPackage": "basic", "agreeToTerms": True}


@pytest.fixture
def founder(db, plans):
    user = make_user(db)
    make_subscription(db, user, plans["Basic"])
    return user


# ============================================
# Steps
# ============================================

def test_save_step_creates_single_draft(db, founder):
    pitch_service.save_step(db, founder, "company-info", COMPANY_INFO)
    pitch = pitch_service.save_step(db, founder, "pitch-deal", PITCH_DEAL)

    assert db.query(Pitch).count() == 1
    assert pitch.status == "draft"
    assert pitch.completed_steps == ["company-info", "pitch-deal"]
    assert pitch.title == "SolarGrid Kenya"
    assert pitch.raising_amount == 250000.0
    assert pitch.minimum_investment == 5000.0
    assert pitch.deal_type == "Equity"


def test_save_step_reports_missing_fields(db, founder):
    with pytest.raises(HTTPException) as exc:
        pitch_service.save_step(db, founder, "company-info", {"pitchTitle": "Half done"})
    assert exc.value.status_code == 400
    assert "website" in exc.value.detail
    assert db.query(Pitch).count() == 0


def test_save_step_rejects_unknown_step(db, founder):
    with pytest.raises(HTTPException) as exc:
        pitch_service.save_step(db, founder, "financial-model", {})
    assert exc.value.status_code == 400


def test_documents_step_requires_plan(db):
    free = make_user(db, plan="Free")
    with pytest.raises(HTTPException) as exc:
        pitch_service.save_step(db, free, "documents", {"businessPlan": {"url": "https://cdn.example/plan.pdf"}})
    assert exc.value.status_code == 403


def test_auto_save_skips_empty_payload(db, founder):
    assert pitch_service.auto_save(db, founder, "pitch-deal", {"summary": "  ", "tags": []}) is None
    assert db.query(Pitch).count() == 0

    pitch = pitch_service.auto_save(db, founder, "pitch-deal", {"summary": "Draft summary"})
    assert pitch.pitch_deal == {"summary": "Draft summary"}
    assert pitch.completed_steps == []


def test_parse_amount():
    assert pitch_service.parse_amount("$1,250,000") == 1250000.0
    assert pitch_service.parse_amount(15) == 15.0
    assert pitch_service.parse_amount("TBD") is None
    assert pitch_service.parse_amount(None) is None


# ============================================
# Publishing
# ============================================

def test_publish_flow(db, founder):
    pitch_service.save_step(db, founder, "company-info", COMPANY_INFO)
    pitch_service.save_step(db, founder, "pitch-deal", PITCH_DEAL)
    now = datetime(2025, 3, 10, 12, 0)

    pitch = pitch_service.publish(db, founder, PACKAGE, now=now)

    assert pitch.status == "published"
    assert pitch.published_at == now
    assert pitch.package == PACKAGE
    assert "packages" in pitch.completed_steps
    assert founder.subscription.pitches_used == 1

    # Basic allows a single published pitch
    pitch_service.save_step(db, founder, "company-info", dict(COMPANY_INFO, pitchTitle="Second"))
    with pytest.raises(HTTPException) as exc:
        pitch_service.publish(db, founder, PACKAGE, now=now)
    assert exc.value.status_code == 403


def test_publish_requires_terms(db, founder):
    pitch_service.save_step(db, founder, "company-info", COMPANY_INFO)
    with pytest.raises(HTTPException) as exc:
        pitch_service.publish(db, founder, {"selectedPackage": "basic", "agreeToTerms": False})
    assert exc.value.detail == "Package selection and terms agreement are required"


def test_publish_without_draft(db, founder):
    with pytest.raises(HTTPException) as exc:
        pitch_service.publish(db, founder, PACKAGE)
    assert exc.value.status_code == 404


def test_publish_rejects_empty_draft(db, founder):
    pitch_service.auto_save(db, founder, "team", {"members": [{"name": "", "role": ""}]})
    with pytest.raises(HTTPException) as exc:
        pitch_service.publish(db, founder, PACKAGE)
    assert exc.value.status_code == 400
    assert "empty pitch" in exc.value.detail


def test_publish_without_subscription(db, plans):
    user = make_user(db, plan="Basic")
    pitch_service.save_step(db, user, "company-info", COMPANY_INFO)
    with pytest.raises(HTTPException) as exc:
        pitch_service.publish(db, user, PACKAGE)
    assert exc.value.status_code == 403


def test_cleanup_removes_only_empty_drafts(db, founder):
    db.add_all([
        Pitch(user_id=founder.id, status="draft", completed_steps=[], team={"members": []}),
        Pitch(user_id=founder.id, status="draft", completed_steps=[], company_info={"pitchTitle": "Keep me"}),
    ])
    db.commit()

    assert pitch_service.cleanup_empty_drafts(db, founder) == 1
    assert [p.company_info["pitchTitle"] for p in db.query(Pitch).all()] == ["Keep me"]


# ============================================
# Deletion and visibility
# ============================================

def test_delete_published_pitch_releases_slot(db, founder):
    record = founder.subscription
    record.pitches_used = 1
    pitch = make_pitch(db, founder)
    investor = make_user(db, email="inv@example.com", role="Investor")
    db.add(Favourite(investor_id=investor.id, pitch_id=pitch.id))
    db.commit()

    assert pitch_service.delete_pitch(db, founder, pitch.id) is True

    assert db.query(Pitch).count() == 0
    assert db.query(Favourite).count() == 0
    db.refresh(record)
    assert record.pitches_used == 0


def test_delete_requires_ownership(db, founder):
    pitch = make_pitch(db, founder)
    other = make_user(db, email="other@example.com")
    with pytest.raises(HTTPException) as exc:
        pitch_service.delete_pitch(db, other, pitch.id)
    assert exc.value.status_code == 404


def test_drafts_are_visible_only_to_owner(db, founder):
    draft = make_pitch(db, founder, status="draft")
    assert pitch_service.get_visible_pitch(db, founder, draft.id).id == draft.id
    with pytest.raises(HTTPException) as exc:
        pitch_service.get_visible_pitch(db, None, draft.id)
    assert exc.value.status_code == 404


# ============================================
# Listings
# ============================================

@pytest.fixture
def listing(db, plans):
    premium = make_user(db, email="premium@example.com", country="Kenya")
    make_subscription(db, premium, plans["Premium"], stripe_id="sub_p")
    basic = make_user(db, email="basic@example.com", country="Ghana")
    make_subscription(db, basic, plans["Basic"], stripe_id="sub_b")

    make_pitch(db, premium, title="Older Premium", published_at=datetime(2025, 1, 1))
    newer = make_pitch(db, basic, title="Newer Basic", published_at=datetime(2025, 2, 1))
    newer.industry = "Agriculture"
    newer.minimum_investment = 20000.0
    db.commit()

    viewer = make_user(db, email="global@example.com", role="Investor", country="France")
    make_subscription(db, viewer, plans["Investor Access Plan"], stripe_id="sub_v")
    return viewer


def _titles(result):
    return [p["companyInfo"]["pitchTitle"] for p in result["pitches"]]


def test_listing_puts_featured_plans_first(db, listing):
    result = pitch_service.list_published(db, listing)

    assert _titles(result) == ["Older Premium", "Newer Basic"]
    assert result["meta"] == {"premiumCount": 1, "basicCount": 1}
    assert result["pagination"]["totalItems"] == 2
    assert result["pitches"][0]["owner"]["subscriptionPlan"] == "Premium"


def test_listing_without_priority_is_newest_first(db, listing):
    result = pitch_service.list_published(db, listing, prioritize_premium=False)
    assert _titles(result) == ["Newer Basic", "Older Premium"]

    oldest = pitch_service.list_published(db, listing, prioritize_premium=False, sort_by="oldest")
    assert _titles(oldest) == ["Older Premium", "Newer Basic"]


def test_listing_filters(db, listing):
    assert _titles(pitch_service.list_published(db, listing, countries="Ghana")) == ["Newer Basic"]
    assert _titles(pitch_service.list_published(db, listing, industries="Energy,Fintech")) == ["Older Premium"]
    assert _titles(pitch_service.list_published(db, listing, search="older")) == ["Older Premium"]
    assert _titles(pitch_service.list_published(db, listing, min_investment=10000)) == ["Newer Basic"]
    assert pitch_service.list_published(db, listing, max_investment=1000)["pitches"] == []


def test_listing_pagination(db, listing):
    result = pitch_service.list_published(db, listing, page=2, limit=1)

    assert len(result["pitches"]) == 1
    assert result["pagination"] == {
        "currentPage": 2,
        "totalPages": 2,
        "totalItems": 2,
        "hasNext": False,
        "hasPrev": True,
    }
    assert pitch_service.count_visible(db, listing) == 2
