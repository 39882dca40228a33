"""HTTP surface: routing, auth, error shape, status codes."""
from threadspire import config
from threadspire.errors import RateLimitError


async def create_thread(client, headers, **body):
    body.setdefault("title", "Over HTTP")
    body.setdefault("segments", ["one", "two"])
    resp = await client.post("/api/threads", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_signup_login_and_profile(client):
    resp = await client.post(
        "/api/auth/signup",
        json={"name": "Erin", "email": "erin@example.com", "password": "long-enough"},
    )
    assert resp.status_code == 201
    token = resp.json()["access_token"]

    resp = await client.post(
        "/api/auth/login", json={"email": "erin@example.com", "password": "long-enough"}
    )
    assert resp.status_code == 200

    headers = {"Authorization": f"Bearer {token}"}
    resp = await client.put("/api/user/profile", json={"bio": "hi"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["bio"] == "hi"
    resp = await client.get("/api/user/profile", headers=headers)
    assert resp.json()["email"] == "erin@example.com"


async def test_bad_login_is_401_with_error_body(client):
    resp = await client.post("/api/auth/login", json={"email": "x@y.z", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid email or password"}


async def test_rate_limited_signup_is_429(client, rate_limiter):
    rate_limiter.check.side_effect = RateLimitError()
    resp = await client.post(
        "/api/auth/signup", json={"name": "F", "email": "f@example.com", "password": "long-enough"}
    )
    assert resp.status_code == 429
    assert resp.json() == {"error": "Too many requests"}


async def test_password_reset_request_mails_link(client, alice, mailer):
    resp = await client.post("/api/auth/reset-password", json={"email": alice.email})
    assert resp.status_code == 200
    mailer.send_password_reset.assert_awaited_once()


async def test_request_validation_is_400(client, alice, auth_headers):
    resp = await client.post("/api/threads", json={"title": "no segments"}, headers=auth_headers(alice))
    assert resp.status_code == 400
    assert "segments" in resp.json()["error"]


async def test_create_requires_token(client):
    resp = await client.post("/api/threads", json={"title": "t", "segments": ["s"]})
    assert resp.status_code == 401
    assert resp.json() == {"error": "User not authenticated"}


async def test_garbage_token_is_401(client):
    resp = await client.get("/api/threads", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


async def test_thread_crud_over_http(client, alice, bob, auth_headers):
    thread = await create_thread(client, auth_headers(alice), tags=["http"])

    resp = await client.get(f"/api/threads/{thread['id']}")
    assert resp.status_code == 200
    assert [s["content"] for s in resp.json()["segments"]] == ["one", "two"]

    resp = await client.get("/api/threads", params={"tags": "http"})
    assert resp.json()["total"] == 1

    resp = await client.patch(
        f"/api/threads/{thread['id']}", json={"title": "Renamed"}, headers=auth_headers(bob)
    )
    assert resp.status_code == 403

    resp = await client.patch(
        f"/api/threads/{thread['id']}", json={"title": "Renamed"}, headers=auth_headers(alice)
    )
    assert resp.json()["title"] == "Renamed"

    resp = await client.get(f"/api/threads/{thread['id']}/analytics")
    assert resp.json() == {"view_count": 1, "unique_viewers": 0}

    resp = await client.delete(f"/api/threads/{thread['id']}", headers=auth_headers(alice))
    assert resp.status_code == 204
    resp = await client.get(f"/api/threads/{thread['id']}")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Thread not found"}


async def test_private_thread_forbidden_to_anonymous(client, alice, auth_headers):
    thread = await create_thread(client, auth_headers(alice), is_private=True)
    resp = await client.get(f"/api/threads/{thread['id']}")
    assert resp.status_code == 403
    resp = await client.get("/api/threads")
    assert resp.json()["threads"] == []


async def test_fork_reactions_and_bookmarks(client, alice, bob, auth_headers):
    thread = await create_thread(client, auth_headers(alice))

    resp = await client.post(f"/api/threads/{thread['id']}/fork", headers=auth_headers(bob))
    assert resp.status_code == 201
    assert resp.json()["original_thread_id"] == thread["id"]

    resp = await client.post(f"/api/threads/{thread['id']}/reactions/fire", headers=auth_headers(bob))
    assert resp.json()["active"] is True
    resp = await client.get(f"/api/threads/{thread['id']}/reactions")
    counts = {c["type"]: c["count"] for c in resp.json()}
    assert counts["🔥"] == 1
    resp = await client.get(f"/api/threads/{thread['id']}/reactions/users")
    assert resp.json()[0]["user_name"] == "Bob"
    resp = await client.post(f"/api/threads/{thread['id']}/reactions/nope", headers=auth_headers(bob))
    assert resp.status_code == 400

    resp = await client.post(
        f"/api/threads/{thread['id']}/bookmark/toggle", headers=auth_headers(bob)
    )
    assert resp.json() == {"thread_id": thread["id"], "is_bookmarked": True}
    resp = await client.get("/api/bookmarks", headers=auth_headers(bob))
    assert [t["id"] for t in resp.json()["threads"]] == [thread["id"]]
    resp = await client.delete(f"/api/threads/{thread['id']}/bookmark", headers=auth_headers(bob))
    assert resp.json()["is_bookmarked"] is False


async def test_drafts_over_http(client, alice, auth_headers):
    headers = auth_headers(alice)
    resp = await client.post(
        "/api/drafts", json={"title": "Draft", "content": '[{"type": "text", "content": "hi"}]'}, headers=headers
    )
    assert resp.status_code == 201
    draft = resp.json()
    assert draft["content"] == [{"type": "text", "content": "hi"}]

    resp = await client.post(f"/api/drafts/{draft['id']}/publish", headers=headers)
    assert resp.status_code == 201
    assert resp.json()["snippet"] == "hi"
    resp = await client.get("/api/drafts", headers=headers)
    assert resp.json() == []


async def test_follow_over_http(client, alice, bob, auth_headers):
    resp = await client.post(f"/api/users/{bob.id}/follow", headers=auth_headers(alice))
    assert resp.json()["is_following"] is True
    resp = await client.get(f"/api/users/{bob.id}")
    assert resp.json()["followers_count"] == 1
    resp = await client.post(f"/api/users/{alice.id}/follow", headers=auth_headers(alice))
    assert resp.status_code == 400
    resp = await client.get(f"/api/users/{alice.id}/following")
    assert [p["id"] for p in resp.json()] == [bob.id]


async def test_collections_over_http(client, alice, bob, auth_headers):
    thread = await create_thread(client, auth_headers(alice))
    resp = await client.post("/api/collections", json={"name": "Faves"}, headers=auth_headers(alice))
    collection = resp.json()

    resp = await client.put(
        f"/api/collections/{collection['id']}/threads/{thread['id']}", headers=auth_headers(alice)
    )
    assert resp.status_code == 204
    resp = await client.get(f"/api/collections/{collection['id']}", headers=auth_headers(bob))
    assert resp.status_code == 403
    resp = await client.get(f"/api/collections/{collection['id']}", headers=auth_headers(alice))
    assert [t["id"] for t in resp.json()["threads"]] == [thread["id"]]


async def test_trending_and_views_endpoints(client, alice, auth_headers):
    thread = await create_thread(client, auth_headers(alice))
    for _ in range(2):
        await client.get(f"/api/threads/{thread['id']}")
    resp = await client.get("/api/threads/trending")
    assert resp.json()[0]["recent_views"] == 2
    resp = await client.get(f"/api/threads/{thread['id']}/views", params={"days": 3})
    assert len(resp.json()) == 3
    assert resp.json()[-1]["count"] == 2


def test_settings_are_built_by_the_app_factory_only():
    assert not hasattr(config, "settings")


async def test_patch_null_cover_clears_it(client, alice, auth_headers):
    thread = await create_thread(client, auth_headers(alice), cover_image="c.png")
    resp = await client.patch(
        f"/api/threads/{thread['id']}", json={"title": "Kept cover"}, headers=auth_headers(alice)
    )
    assert resp.json()["cover_image"] == "c.png"
    resp = await client.patch(
        f"/api/threads/{thread['id']}", json={"cover_image": None}, headers=auth_headers(alice)
    )
    assert resp.json()["cover_image"] is None
