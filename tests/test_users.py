"""
User endpoint tests — covers registration with password rules, listing and
lookup, self-only update/delete, password change and verification, and the
profile-image upload.
"""
import pytest
from httpx import AsyncClient

from conftest import STRONG_PASSWORD, auth_headers, create_article, create_user

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


# ---------------------------------------------------------------------------
# Create user
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_user(async_client: AsyncClient):
    """Creating a user with all fields returns 201 and never echoes the password."""
    resp = await async_client.post("/api/v1/users", json={
        "username": "newuser",
        "email": "newuser@example.com",
        "password": STRONG_PASSWORD,
        "bio": "I am new here",
        "image": "https://example.com/me.png",
    })
    assert resp.status_code == 201
    user = resp.json()
    assert user["username"] == "newuser"
    assert user["email"] == "newuser@example.com"
    assert user["bio"] == "I am new here"
    assert user["email_verified"] is False
    assert "id" in user
    assert "created_at" in user
    assert "password" not in user
    assert "password_hash" not in user


@pytest.mark.asyncio
async def test_create_user_weak_password(async_client: AsyncClient):
    """A weak password returns 400 with every failed rule and a suggestion."""
    resp = await async_client.post("/api/v1/users", json={
        "username": "weakling",
        "email": "weak@example.com",
        "password": "password",
    })
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["message"] == "Password validation failed"
    assert "Password is too common, please choose a stronger password" in detail["errors"]
    assert "Password must contain at least one uppercase letter" in detail["errors"]
    assert detail["strength"] in ("Very Weak", "Weak", "Medium", "Strong")
    assert len(detail["suggestion"]) == 12


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"email": "nousername@example.com", "password": STRONG_PASSWORD},
        {"username": "noemail", "password": STRONG_PASSWORD},
        {"username": "badmail", "email": "not-an-email", "password": STRONG_PASSWORD},
        {"username": "a", "email": "short@example.com", "password": STRONG_PASSWORD},
        {"username": "bad name!", "email": "bad@example.com", "password": STRONG_PASSWORD},
        {"username": "badimage", "email": "img@example.com", "password": STRONG_PASSWORD,
         "image": "ftp://example.com/x.png"},
    ],
)
async def test_create_user_invalid_payload(async_client: AsyncClient, payload):
    resp = await async_client.post("/api/v1/users", json=payload)
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# List / lookup
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_users_empty(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users")
    assert resp.status_code == 200
    assert resp.json()["items"] == []
    assert resp.json()["total"] == 0


@pytest.mark.asyncio
async def test_list_users_paginated(async_client: AsyncClient):
    for i in range(3):
        await create_user(async_client, f"listed{i}")

    resp = await async_client.get("/api/v1/users", params={"page_size": 2})
    data = resp.json()
    assert data["total"] == 3
    assert data["pages"] == 2
    assert len(data["items"]) == 2


@pytest.mark.asyncio
async def test_get_user(async_client: AsyncClient):
    user = await create_user(async_client, "detailuser")
    resp = await async_client.get(f"/api/v1/users/{user['id']}")
    assert resp.status_code == 200
    assert resp.json()["username"] == "detailuser"


@pytest.mark.asyncio
async def test_get_user_not_found(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users/99999")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "User with ID 99999 not found"


@pytest.mark.asyncio
async def test_search_user_by_email_or_username(async_client: AsyncClient):
    user = await create_user(async_client, "findme")

    by_email = await async_client.get("/api/v1/users/search", params={"email": "findme@example.com"})
    assert by_email.json()["id"] == user["id"]

    by_name = await async_client.get("/api/v1/users/search", params={"username": "findme"})
    assert by_name.json()["id"] == user["id"]

    missing = await async_client.get("/api/v1/users/search", params={"username": "ghost"})
    assert missing.status_code == 404


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_own_profile(async_client: AsyncClient):
    user = await create_user(async_client, "editable")
    resp = await async_client.patch(
        f"/api/v1/users/{user['id']}",
        json={"bio": "Updated bio", "username": "edited"},
        headers=auth_headers(user["id"]),
    )
    assert resp.status_code == 200
    assert resp.json()["bio"] == "Updated bio"
    assert resp.json()["username"] == "edited"


@pytest.mark.asyncio
async def test_update_to_taken_username_conflicts(async_client: AsyncClient):
    await create_user(async_client, "taken")
    user = await create_user(async_client, "wannabe")
    resp = await async_client.patch(
        f"/api/v1/users/{user['id']}", json={"username": "taken"}, headers=auth_headers(user["id"])
    )
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Email or username already exists"


@pytest.mark.asyncio
async def test_update_with_weak_password_rejected(async_client: AsyncClient):
    user = await create_user(async_client, "pwupdate")
    resp = await async_client.patch(
        f"/api/v1/users/{user['id']}", json={"password": "short"}, headers=auth_headers(user["id"])
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["errors"]


@pytest.mark.asyncio
async def test_cannot_modify_other_account(async_client: AsyncClient):
    owner = await create_user(async_client, "owner_acct")
    other = await create_user(async_client, "other_acct")

    resp = await async_client.patch(
        f"/api/v1/users/{owner['id']}", json={"bio": "hacked"}, headers=auth_headers(other["id"])
    )
    assert resp.status_code == 403
    assert resp.json()["detail"] == "You can only update your own account"

    resp = await async_client.delete(f"/api/v1/users/{owner['id']}", headers=auth_headers(other["id"]))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_delete_user_cascades_articles(async_client: AsyncClient):
    user = await create_user(async_client, "leaving")
    article = await create_article(async_client, user["id"], "Goodbye post")

    resp = await async_client.delete(f"/api/v1/users/{user['id']}", headers=auth_headers(user["id"]))
    assert resp.status_code == 200
    assert resp.json()["message"] == "User deleted successfully"

    assert (await async_client.get(f"/api/v1/users/{user['id']}")).status_code == 404
    assert (await async_client.get(f"/api/v1/articles/{article['id']}")).status_code == 404


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_change_password(async_client: AsyncClient):
    user = await create_user(async_client, "changer")
    new_password = "N3w!Secret#Qz"

    resp = await async_client.post(
        f"/api/v1/users/{user['id']}/change-password",
        json={"current_password": STRONG_PASSWORD, "new_password": new_password},
        headers=auth_headers(user["id"]),
    )
    assert resp.status_code == 200
    assert resp.json()["message"] == "Password changed successfully"

    check = await async_client.post(
        f"/api/v1/users/{user['id']}/verify-password", json={"password": new_password}
    )
    assert check.json() == {"is_valid": True}


@pytest.mark.asyncio
async def test_change_password_wrong_current(async_client: AsyncClient):
    user = await create_user(async_client, "forgetful")
    resp = await async_client.post(
        f"/api/v1/users/{user['id']}/change-password",
        json={"current_password": "Wr0ng!Guess#Q", "new_password": "N3w!Secret#Qz"},
        headers=auth_headers(user["id"]),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Current password is incorrect"


@pytest.mark.asyncio
async def test_change_password_weak_new(async_client: AsyncClient):
    user = await create_user(async_client, "weaknew")
    resp = await async_client.post(
        f"/api/v1/users/{user['id']}/change-password",
        json={"current_password": STRONG_PASSWORD, "new_password": "abc"},
        headers=auth_headers(user["id"]),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["message"] == "New password validation failed"


@pytest.mark.asyncio
async def test_verify_password(async_client: AsyncClient):
    user = await create_user(async_client, "verifier")

    ok = await async_client.post(
        f"/api/v1/users/{user['id']}/verify-password", json={"password": STRONG_PASSWORD}
    )
    assert ok.json() == {"is_valid": True}

    bad = await async_client.post(
        f"/api/v1/users/{user['id']}/verify-password", json={"password": "nope"}
    )
    assert bad.json() == {"is_valid": False}

    unknown = await async_client.post("/api/v1/users/99999/verify-password", json={"password": "x"})
    assert unknown.json() == {"is_valid": False}


# ---------------------------------------------------------------------------
# Profile image
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_upload_profile_image(async_client: AsyncClient, upload_dir):
    user = await create_user(async_client, "pictured")
    resp = await async_client.post(
        f"/api/v1/users/{user['id']}/profile-image",
        files={"file": ("avatar.png", PNG_BYTES, "image/png")},
        headers=auth_headers(user["id"]),
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["message"] == "Profile image uploaded successfully"
    assert data["file"]["path"].startswith("images/profile-pictures/")
    assert data["file"]["thumbnail_url"] is not None
    assert data["user"]["image"] == data["file"]["url"]
    assert (upload_dir / data["file"]["path"]).read_bytes() == PNG_BYTES


@pytest.mark.asyncio
async def test_profile_image_must_be_an_image(async_client: AsyncClient):
    user = await create_user(async_client, "pdfface")
    resp = await async_client.post(
        f"/api/v1/users/{user['id']}/profile-image",
        files={"file": ("cv.pdf", b"%PDF-1.4", "application/pdf")},
        headers=auth_headers(user["id"]),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "File type is not allowed"
