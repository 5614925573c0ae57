import io
import uuid

import pytest
from fastapi import status
from PIL import Image
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from app.models.user import User
from app.services.assignment import AssignmentEngine


def _png() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), (200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


async def _register_login(ac, username=None):
    username = username or f"user_{uuid.uuid4().hex[:8]}"
    r = await ac.post("/auth/register", json={
        "username": username, "password": "supersecret", "first_name": "Walt", "last_name": "D",
    })
    assert r.status_code == status.HTTP_201_CREATED, r.text
    user_id = r.json()["id"]
    r = await ac.post("/auth/login", json={"username": username, "password": "supersecret"})
    assert r.status_code == 200
    return user_id, {"Authorization": f"Bearer {r.json()['access']}"}


async def _make_admin(ac, sessions):
    user_id, hdrs = await _register_login(ac)
    async with sessions() as s:
        await s.execute(update(User).where(User.id == uuid.UUID(user_id)).values(role="admin"))
        await s.commit()
    return user_id, hdrs


async def _upload(ac, hdrs):
    r = await ac.post("/media", headers=hdrs, files={"file": ("proof.png", _png(), "image/png")})
    assert r.status_code == 201, r.text
    return r.json()["media_id"]


@pytest.mark.asyncio
async def test_register_login_me_refresh(api):
    username = f"user_{uuid.uuid4().hex[:8]}"
    _, hdrs = await _register_login(api, username.upper())
    me = await api.get("/auth/me", headers=hdrs)
    assert me.status_code == 200
    assert me.json()["username"] == username.lower()
    assert me.json()["role"] == "user"

    dup = await api.post("/auth/register", json={
        "username": username, "password": "supersecret", "first_name": "A", "last_name": "B",
    })
    assert dup.status_code == 409

    r = await api.post("/auth/login", json={"username": username, "password": "supersecret"})
    r2 = await api.post("/auth/refresh", headers={"Authorization": f"Bearer {r.json()['refresh']}"})
    assert r2.status_code == 200
    # a refresh token is not an access token
    assert (await api.get("/auth/me", headers={"Authorization": f"Bearer {r.json()['refresh']}"})).status_code == 401


@pytest.mark.asyncio
async def test_exclusive_challenge_end_to_end(api, sessions):
    _, admin = await _make_admin(api, sessions)
    u1_id, u1 = await _register_login(api)
    _, u2 = await _register_login(api)

    # admin-only surface
    payload = {"title": "Ride Big Thunder", "description": "Selfie on the train", "points": 50}
    assert (await api.post("/admin/challenges", headers=u1, json=payload)).status_code == 403
    r = await api.post("/admin/challenges", headers=admin, json=payload)
    assert r.status_code == 201, r.text
    cid = r.json()["id"]
    assert r.json()["status"] == "available"

    assert any(c["id"] == cid for c in (await api.get("/challenges", headers=u1)).json())

    r = await api.post(f"/challenges/{cid}/pick", headers=u1)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "in_progress" and r.json()["is_mine"] is True

    r = await api.post(f"/challenges/{cid}/pick", headers=u2)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "already_taken"
    # held by someone else: hidden from u2's list
    assert all(c["id"] != cid for c in (await api.get("/challenges", headers=u2)).json())

    media_id = await _upload(api, u1)
    r = await api.post(f"/challenges/{cid}/complete", headers=u1, json={"media_id": media_id, "caption": "woo"})
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["points_earned"] == 50 and body["pending_review"] is False
    post_id = body["post_id"]

    me = (await api.get("/users/me", headers=u1)).json()
    assert me["total_points"] == 50 and me["challenges_completed"] == 1

    board = (await api.get("/leaderboard", headers=u2)).json()
    assert board[0]["user_id"] == u1_id and board[0]["rank"] == 1

    feed = (await api.get("/feed", headers=u2)).json()
    assert [i["id"] for i in feed["items"]] == [post_id]
    assert feed["items"][0]["user_liked"] is False

    media = await api.get(f"/posts/{post_id}/media", headers=u2)
    assert media.status_code == 200 and media.headers["content-type"] == "image/png"

    r = await api.post(f"/posts/{post_id}/like", headers=u2)
    assert r.json() == {"post_id": post_id, "liked": True, "likes_count": 1}
    # liking twice is a no-op
    assert (await api.post(f"/posts/{post_id}/like", headers=u2)).json()["likes_count"] == 1
    r = await api.post(f"/posts/{post_id}/comments", headers=u2, json={"content": "  legend  "})
    assert r.status_code == 201 and r.json()["content"] == "legend"
    assert (await api.post(f"/posts/{post_id}/comments", headers=u2, json={"content": "   "})).status_code == 422

    item = (await api.get(f"/posts/{post_id}", headers=u2)).json()
    assert item["likes_count"] == 1 and item["comments_count"] == 1 and item["user_liked"] is True

    # u2 cannot delete u1's post
    r = await api.delete(f"/posts/{post_id}", headers=u2)
    assert r.status_code == 403 and r.json()["detail"]["code"] == "forbidden"

    r = await api.post(f"/admin/posts/{post_id}/revoke", headers=admin)
    assert r.status_code == 200 and r.json()["revoked"] is True
    r = await api.post(f"/admin/posts/{post_id}/revoke", headers=admin)
    assert r.status_code == 409 and r.json()["detail"]["code"] == "already_revoked"

    assert (await api.get("/users/me", headers=u1)).json()["total_points"] == 0
    ch = (await api.get(f"/challenges/{cid}", headers=u2)).json()
    assert ch["status"] == "available" and ch["completed_by"] is None
    assert (await api.post(f"/challenges/{cid}/pick", headers=u2)).status_code == 200


@pytest.mark.asyncio
async def test_open_challenge_award_over_http(api, sessions):
    _, admin = await _make_admin(api, sessions)
    a_id, a = await _register_login(api)
    _, b = await _register_login(api)

    r = await api.post("/admin/challenges", headers=admin, json={
        "title": "Best churro photo", "description": "Most creative wins", "points": 30, "challenge_type": "open",
    })
    cid = r.json()["id"]

    for hdrs in (a, b):
        assert (await api.post(f"/challenges/{cid}/pick", headers=hdrs)).status_code == 200
        r = await api.post(f"/challenges/{cid}/complete", headers=hdrs, json={"media_id": await _upload(api, hdrs)})
        assert r.status_code == 201 and r.json()["pending_review"] is True

    r = await api.post(f"/challenges/{cid}/pick", headers=a)
    assert r.status_code == 409 and r.json()["detail"]["code"] == "already_joined"

    listed = [c for c in (await api.get("/admin/challenges", headers=admin)).json() if c["id"] == cid][0]
    assert len(listed["submissions"]) == 2

    r = await api.post(f"/admin/challenges/{cid}/award", headers=admin, json={"user_id": a_id})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "completed" and r.json()["completed_by"] == a_id

    assert (await api.get("/users/me", headers=a)).json()["total_points"] == 30
    assert (await api.get("/users/me", headers=b)).json()["total_points"] == 0


@pytest.mark.asyncio
async def test_complete_with_bad_media(api, sessions):
    _, admin = await _make_admin(api, sessions)
    _, u = await _register_login(api)
    cid = (await api.post("/admin/challenges", headers=admin, json={
        "title": "t", "description": "d", "points": 5,
    })).json()["id"]
    await api.post(f"/challenges/{cid}/pick", headers=u)

    r = await api.post(f"/challenges/{cid}/complete", headers=u, json={"media_id": "nope"})
    assert r.status_code == 404 and r.json()["detail"]["code"] == "media_not_found"

    r = await api.post("/media", headers=u, files={"file": ("x.gif", b"GIF89a", "image/gif")})
    assert r.status_code == 415

    r = await api.post("/media", headers=u, files={"file": ("x.png", b"not really a png", "image/png")})
    assert r.status_code == 415

    # a failed completion hands the upload back for a retry
    media_id = await _upload(api, u)
    await api.post(f"/admin/challenges/{cid}/unassign", headers=admin)
    r = await api.post(f"/challenges/{cid}/complete", headers=u, json={"media_id": media_id})
    assert r.status_code == 400 and r.json()["detail"]["code"] == "not_assigned"
    await api.post(f"/challenges/{cid}/pick", headers=u)
    r = await api.post(f"/challenges/{cid}/complete", headers=u, json={"media_id": media_id})
    assert r.status_code == 201, r.text


@pytest.mark.asyncio
async def test_owner_delete_reopens_challenge(api, sessions):
    _, admin = await _make_admin(api, sessions)
    _, u = await _register_login(api)
    cid = (await api.post("/admin/challenges", headers=admin, json={
        "title": "Wave at Mickey", "description": "d", "points": 10,
    })).json()["id"]
    await api.post(f"/challenges/{cid}/pick", headers=u)
    post_id = (await api.post(f"/challenges/{cid}/complete", headers=u,
                              json={"media_id": await _upload(api, u)})).json()["post_id"]
    stored = set(api.objects)

    r = await api.delete(f"/posts/{post_id}", headers=u)
    assert r.status_code == 204
    assert (await api.get(f"/posts/{post_id}", headers=u)).status_code == 404
    assert not stored & set(api.objects)

    ch = (await api.get(f"/challenges/{cid}", headers=u)).json()
    assert ch["status"] == "available" and ch["completed_post_id"] is None
    assert (await api.post(f"/challenges/{cid}/pick", headers=u)).status_code == 200


@pytest.mark.asyncio
async def test_store_failure_on_complete_hands_upload_back(api, sessions):
    _, admin = await _make_admin(api, sessions)
    _, u = await _register_login(api)
    cid = (await api.post("/admin/challenges", headers=admin, json={
        "title": "Ride the teacups", "description": "d", "points": 15,
    })).json()["id"]
    await api.post(f"/challenges/{cid}/pick", headers=u)
    media_id = await _upload(api, u)
    staged = set(api.objects)

    async def failing_complete(self, *args, **kwargs):
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(AssignmentEngine, "complete", failing_complete)
        with pytest.raises(OperationalError):
            await api.post(f"/challenges/{cid}/complete", headers=u, json={"media_id": media_id})

    # the object is back under temp/, nothing left under posts/
    assert set(api.objects) == staged
    assert not any(k.startswith("posts/") for k in api.objects)

    r = await api.post(f"/challenges/{cid}/complete", headers=u, json={"media_id": media_id})
    assert r.status_code == 201, r.text


@pytest.mark.asyncio
async def test_update_profile_names_and_image(api, sessions):
    user_id, u = await _register_login(api)
    _, other = await _register_login(api)

    r = await api.put("/users/me", headers=u, data={"first_name": "  Minnie ", "last_name": ""})
    assert r.status_code == 200, r.text
    body = r.json()
    # blank fields keep their current value
    assert body["first_name"] == "Minnie" and body["last_name"] == "D"
    assert body["profile_image"] is None

    r = await api.put("/users/me", headers=u, files={"profile_image": ("me.png", _png(), "image/png")})
    assert r.status_code == 200, r.text
    assert r.json()["profile_image"] == f"/users/{user_id}/avatar"
    assert r.json()["first_name"] == "Minnie"
    first_keys = {k for k in api.objects if k.startswith("profiles/")}
    assert len(first_keys) == 1

    avatar = await api.get(f"/users/{user_id}/avatar", headers=other)
    assert avatar.status_code == 200 and avatar.headers["content-type"] == "image/png"
    assert (await api.get(f"/users/{user_id}", headers=other)).json()["profile_image"] == f"/users/{user_id}/avatar"
    row = [e for e in (await api.get("/leaderboard", headers=other)).json() if e["user_id"] == user_id][0]
    assert row["profile_image"] == f"/users/{user_id}/avatar"

    # replacing the image drops the old object
    r = await api.put("/users/me", headers=u, files={"profile_image": ("me2.png", _png(), "image/png")})
    assert r.status_code == 200
    keys = {k for k in api.objects if k.startswith("profiles/")}
    assert len(keys) == 1 and not keys & first_keys

    r = await api.put("/users/me", headers=u, files={"profile_image": ("me.png", b"not an image", "image/png")})
    assert r.status_code == 415 and r.json()["detail"]["code"] == "unsupported_media"
    r = await api.put("/users/me", headers=u, files={"profile_image": ("me.mp4", b"\x00\x00\x00\x14ftypmp42", "video/mp4")})
    assert r.status_code == 415

    # a user without an image has no avatar
    other_id = (await api.get("/users/me", headers=other)).json()["id"]
    assert (await api.get(f"/users/{other_id}/avatar", headers=u)).status_code == 404


@pytest.mark.asyncio
async def test_admin_updates_challenge(api, sessions):
    _, admin = await _make_admin(api, sessions)
    _, u = await _register_login(api)
    cid = (await api.post("/admin/challenges", headers=admin, json={
        "title": "Fireworks", "description": "Catch the finale", "points": 20,
        "start_date": "2026-01-01T00:00:00Z", "end_date": "2027-01-01T00:00:00Z",
    })).json()["id"]

    payload = {"title": "Fireworks finale", "points": 25}
    assert (await api.put(f"/admin/challenges/{cid}", headers=u, json=payload)).status_code == 403
    r = await api.put(f"/admin/challenges/{cid}", headers=admin, json=payload)
    assert r.status_code == 200, r.text
    assert r.json()["title"] == "Fireworks finale" and r.json()["points"] == 25
    assert r.json()["description"] == "Catch the finale"

    # end before the stored start
    r = await api.put(f"/admin/challenges/{cid}", headers=admin, json={"end_date": "2025-06-01T00:00:00Z"})
    assert r.status_code == 400 and r.json()["detail"]["code"] == "invalid_window"
    ch = (await api.get(f"/challenges/{cid}", headers=u)).json()
    assert ch["points"] == 25 and ch["end_date"].startswith("2027-01-01")

    assert (await api.put(f"/admin/challenges/{cid}", headers=admin, json={"points": 0})).status_code == 422
    missing = uuid.uuid4()
    r = await api.put(f"/admin/challenges/{missing}", headers=admin, json=payload)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_admin_deletes_challenge_with_its_posts(api, sessions):
    _, admin = await _make_admin(api, sessions)
    u_id, u = await _register_login(api)
    _, fan = await _register_login(api)
    cid = (await api.post("/admin/challenges", headers=admin, json={
        "title": "Meet Goofy", "description": "d", "points": 40,
    })).json()["id"]
    await api.post(f"/challenges/{cid}/pick", headers=u)
    post_id = (await api.post(f"/challenges/{cid}/complete", headers=u,
                              json={"media_id": await _upload(api, u)})).json()["post_id"]
    await api.post(f"/posts/{post_id}/like", headers=fan)
    await api.post(f"/posts/{post_id}/comments", headers=fan, json={"content": "nice"})
    assert (await api.get("/users/me", headers=u)).json()["total_points"] == 40

    assert (await api.delete(f"/admin/challenges/{cid}", headers=u)).status_code == 403
    r = await api.delete(f"/admin/challenges/{cid}", headers=admin)
    assert r.status_code == 204

    assert (await api.get(f"/challenges/{cid}", headers=u)).status_code == 404
    assert (await api.get(f"/posts/{post_id}", headers=fan)).status_code == 404
    assert (await api.get("/feed", headers=fan)).json()["items"] == []
    assert (await api.get("/users/me", headers=u)).json()["total_points"] == 0
    assert (await api.delete(f"/admin/challenges/{cid}", headers=admin)).status_code == 404
