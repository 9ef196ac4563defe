"""
API tests for pitches, media uploads, favourites and the investor directory.
"""
import pytest

from konnectsphere.db.models.favourite import Favourite
from konnectsphere.services.storage_service import StorageError

from conftest import COMPANY_INFO, PITCH_DEAL, auth_headers, make_pitch, make_subscription, make_user


@pytest.fixture
def founder(db, plans):
    user = make_user(db)
    make_subscription(db, user, plans["Basic"])
    return user


@pytest.fixture
def market(db, plans):
    """One globally visible pitch (Premium, Kenya) and one hidden pitch (no subscription)."""
    premium = make_user(db, email="premium@example.com", country="Kenya")
    make_subscription(db, premium, plans["Premium"], stripe_id="sub_p")
    hidden_owner = make_user(db, email="hidden@example.com", country="Kenya")
    return {
        "visible": make_pitch(db, premium, title="Visible Co"),
        "hidden": make_pitch(db, hidden_owner, title="Hidden Co"),
    }


# ============================================
# Drafting and publishing
# ============================================

def test_publish_through_api(client, db, founder):
    headers = auth_headers(founder)

    assert client.put("/pitches/company-info", json=COMPANY_INFO, headers=headers).status_code == 200
    assert client.put("/pitches/pitch-deal", json=PITCH_DEAL, headers=headers).status_code == 200
    draft = client.get("/pitches/draft", headers=headers).json()["pitch"]
    assert draft["completedSteps"] == ["company-info", "pitch-deal"]

    response = client.put("/pitches/package", json={"selectedPackage": "basic", "agreeToTerms": True}, headers=headers)

    assert response.status_code == 200
    assert response.json()["pitch"]["status"] == "published"
    rights = client.get("/pitches/publishing-rights", headers=headers).json()
    assert rights["canPublish"] is False
    assert rights["publishedCount"] == 1
    assert client.get("/pitches/my-pitches", headers=headers).json()["total"] == 1


def test_step_validation_error(client, founder):
    response = client.put("/pitches/company-info", json={"pitchTitle": "Only a title"}, headers=auth_headers(founder))
    assert response.status_code == 400
    assert response.json()["detail"].startswith("Missing required fields")


def test_auto_save(client, founder):
    headers = auth_headers(founder)

    empty = client.post("/pitches/auto-save", json={"stepName": "team", "data": {"members": []}}, headers=headers)
    assert empty.json() == {"message": "No content to save", "saved": False}

    saved = client.post("/pitches/auto-save", json={"stepName": "team", "data": {"members": [{"name": "Wanjiru"}]}}, headers=headers)
    assert saved.json()["saved"] is True

    unknown = client.post("/pitches/auto-save", json={"stepName": "pricing", "data": {"a": 1}}, headers=headers)
    assert unknown.status_code == 400


def test_owner_views_and_delete(client, db, founder):
    pitch = make_pitch(db, founder)
    other = make_user(db, email="other@example.com")

    assert client.get(f"/pitches/my-pitch/{pitch.id}", headers=auth_headers(founder)).status_code == 200
    assert client.get(f"/pitches/my-pitch/{pitch.id}", headers=auth_headers(other)).status_code == 404
    assert client.delete(f"/pitches/{pitch.id}", headers=auth_headers(other)).status_code == 404

    response = client.delete(f"/pitches/{pitch.id}", headers=auth_headers(founder))
    assert response.json() == {"message": "Pitch deleted successfully", "wasPublished": True}


# ============================================
# Public listing
# ============================================

def test_anonymous_listing_shows_only_live_global_pitches(client, market):
    body = client.get("/pitches/published").json()

    assert [p["companyInfo"]["pitchTitle"] for p in body["pitches"]] == ["Visible Co"]
    assert body["meta"] == {"premiumCount": 1, "basicCount": 0}
    assert client.get("/pitches/count").json() == {"count": 1}


def test_hidden_pitch_detail_is_404(client, market):
    assert client.get(f"/pitches/{market['visible'].id}").status_code == 200
    assert client.get(f"/pitches/{market['hidden'].id}").status_code == 404


def test_listing_rejects_bad_sort(client, market):
    assert client.get("/pitches/published", params={"sortBy": "random"}).status_code == 400


# ============================================
# Media
# ============================================

def test_upload_image(client, founder, storage):
    storage.upload.return_value = {
        "public_id": f"pitches/{founder.id}/image/abc-logo.png",
        "url": "https://cdn.example/logo.png",
        "originalName": "logo.png",
    }

    response = client.post(
        "/pitches/upload/image",
        files={"file": ("logo.png", b"\x89PNG fake", "image/png")},
        headers=auth_headers(founder),
    )

    assert response.status_code == 200
    assert response.json()["size"] == 9
    assert response.json()["url"] == "https://cdn.example/logo.png"
    assert storage.upload.call_args.args[:2] == (founder.id, "image")


def test_upload_validation(client, db, founder, storage):
    headers = auth_headers(founder)

    assert client.post(
        "/pitches/upload/audio", files={"file": ("a.mp3", b"x", "audio/mpeg")}, headers=headers
    ).status_code == 400
    assert client.post(
        "/pitches/upload/image", files={"file": ("a.pdf", b"x", "application/pdf")}, headers=headers
    ).status_code == 400

    free = make_user(db, email="free@example.com", plan="Free")
    assert client.post(
        "/pitches/upload/document", files={"file": ("plan.pdf", b"x", "application/pdf")}, headers=auth_headers(free)
    ).status_code == 403
    storage.upload.assert_not_called()


def test_upload_storage_failure(client, founder, storage):
    storage.upload.side_effect = StorageError("bucket missing")
    response = client.post(
        "/pitches/upload/image", files={"file": ("logo.png", b"x", "image/png")}, headers=auth_headers(founder)
    )
    assert response.status_code == 500


def test_delete_file_only_own_keys(client, founder, storage):
    headers = auth_headers(founder)

    foreign = client.request("DELETE", "/pitches/file", json={"public_id": "pitches/999/image/x.png"}, headers=headers)
    assert foreign.status_code == 403

    own_key = f"pitches/{founder.id}/image/x.png"
    response = client.request("DELETE", "/pitches/file", json={"public_id": own_key}, headers=headers)
    assert response.status_code == 200
    storage.delete.assert_called_once_with(own_key)


# ============================================
# Favourites
# ============================================

def test_favourites_are_investor_only(client, founder, market):
    response = client.post("/favourites", json={"pitch_id": market["visible"].id}, headers=auth_headers(founder))
    assert response.status_code == 403


def test_favourite_lifecycle(client, db, market):
    investor = make_user(db, email="inv@example.com", role="Investor", country="Kenya")
    headers = auth_headers(investor)
    pitch_id = market["visible"].id

    assert client.post("/favourites", json={"pitch_id": pitch_id}, headers=headers).status_code == 201
    assert client.post("/favourites", json={"pitch_id": pitch_id}, headers=headers).status_code == 400
    assert client.get(f"/favourites/check/{pitch_id}", headers=headers).json() == {"isFavourite": True}
    assert client.get("/favourites/count", headers=headers).json() == {"count": 1}

    listed = client.get("/favourites", headers=headers).json()
    assert listed["total"] == 1
    assert listed["favourites"][0]["pitch"]["id"] == pitch_id

    assert client.delete(f"/favourites/{pitch_id}", headers=headers).status_code == 200
    assert client.delete(f"/favourites/{pitch_id}", headers=headers).status_code == 404
    assert db.query(Favourite).count() == 0


def test_cannot_favourite_hidden_pitch(client, db, market):
    investor = make_user(db, email="inv@example.com", role="Investor", country="Kenya")
    response = client.post("/favourites", json={"pitch_id": market["hidden"].id}, headers=auth_headers(investor))
    assert response.status_code == 404


# ============================================
# Investors and health
# ============================================

def test_investor_directory_is_country_scoped(client, db):
    make_user(db, email="ke@example.com", role="Investor", country="Kenya", full_name="Kamau")
    make_user(db, email="gh@example.com", role="Investor", country="Ghana", full_name="Kofi")
    viewer = make_user(db)

    body = client.get("/investors", headers=auth_headers(viewer)).json()

    assert [i["fullName"] for i in body["investors"]] == ["Kamau"]
    assert body["pagination"]["totalItems"] == 1
    assert client.get("/investors", params={"search": "kofi"}, headers=auth_headers(viewer)).json()["investors"] == []


def test_health(client, db):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["database"] == "connected"
