import pytest
from fastapi import status

from api import uploads
from conftest import TEST_PASSWORD


async def login(client, username="alice", password=TEST_PASSWORD):
    response = await client.post(
        "/api/v1/users/login", json={"username": username, "password": password}
    )
    assert response.status_code == status.HTTP_200_OK, response.text
    return response.json()["data"]


def bearer(tokens):
    return {"Authorization": f"Bearer {tokens['access_token']}"}


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_health_endpoint(self, test_client):
        response = test_client.get("/healthcheck")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "Video Platform API"
        assert "timestamp" in data

    def test_ping_endpoint(self, test_client):
        response = test_client.get("/monitoring/ping")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["message"] == "pong"

    def test_detailed_endpoint(self, test_client):
        response = test_client.get("/monitoring/detailed")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["components"]["database"]["status"] == "healthy"
        assert response.headers["X-Correlation-ID"]
        assert "X-Process-Time" in response.headers


class TestRegistration:
    """Test multipart registration."""

    async def test_register(self, async_client, fake_storage, tmp_path, monkeypatch):
        monkeypatch.setattr(uploads, "UPLOAD_TEMP_DIR", str(tmp_path))

        response = await async_client.post(
            "/api/v1/users/register",
            data={
                "full_name": "Alice Liddell",
                "email": "alice@example.com",
                "username": "Alice",
                "password": "wonderland-42",
            },
            files={"avatar": ("me.png", b"\x89PNG", "image/png")},
        )

        assert response.status_code == status.HTTP_201_CREATED, response.text
        body = response.json()
        assert body["success"] is True
        assert body["statusCode"] == 201
        assert body["data"]["username"] == "alice"
        assert "password" not in body["data"]
        assert len(fake_storage.uploads) == 1
        assert fake_storage.uploads[0].endswith(".png")
        # Temp files are cleaned up once the request is done
        assert list(tmp_path.iterdir()) == []

    async def test_register_without_avatar(self, async_client):
        response = await async_client.post(
            "/api/v1/users/register",
            data={
                "full_name": "Bob",
                "email": "bob@example.com",
                "username": "bob",
                "password": "builder-1234",
            },
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "VALIDATION_ERROR"
        assert body["message"] == "Avatar file is required"

    async def test_register_duplicate(self, async_client, create_user, tmp_path, monkeypatch):
        monkeypatch.setattr(uploads, "UPLOAD_TEMP_DIR", str(tmp_path))
        await create_user("alice")

        response = await async_client.post(
            "/api/v1/users/register",
            data={
                "full_name": "Alice",
                "email": "alice@example.com",
                "username": "alice",
                "password": "wonderland-42",
            },
            files={"avatar": ("me.png", b"\x89PNG", "image/png")},
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert list(tmp_path.iterdir()) == []


class TestSessionEndpoints:
    """Test login, refresh and logout."""

    async def test_login_sets_cookies(self, async_client, create_user):
        await create_user("alice")

        response = await async_client.post(
            "/api/v1/users/login", json={"email": "alice@example.com", "password": TEST_PASSWORD}
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["message"] == "User logged in successfully"
        assert body["data"]["user"]["username"] == "alice"
        cookies = response.headers.get_list("set-cookie")
        for name in ("accessToken", "refreshToken"):
            cookie = next(c for c in cookies if c.startswith(f"{name}="))
            assert "HttpOnly" in cookie
            assert "Secure" in cookie

    async def test_login_wrong_password(self, async_client, create_user):
        await create_user("alice")

        response = await async_client.post(
            "/api/v1/users/login", json={"username": "alice", "password": "not-the-password"}
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["error"] == "AUTHENTICATION_ERROR"

    async def test_login_requires_identifier(self, async_client):
        response = await async_client.post(
            "/api/v1/users/login", json={"password": TEST_PASSWORD}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_current_user(self, async_client, create_user):
        await create_user("alice")
        tokens = await login(async_client)

        response = await async_client.get("/api/v1/users/current-user", headers=bearer(tokens))

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["username"] == "alice"

    async def test_current_user_from_cookie(self, async_client, create_user):
        await create_user("alice")
        tokens = await login(async_client)

        response = await async_client.get(
            "/api/v1/users/current-user",
            headers={"Cookie": f"accessToken={tokens['access_token']}"},
        )

        assert response.status_code == status.HTTP_200_OK

    async def test_current_user_requires_token(self, async_client):
        response = await async_client.get("/api/v1/users/current-user")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["success"] is False

    async def test_refresh_rotation_via_body(self, async_client, create_user):
        await create_user("alice")
        tokens = await login(async_client)

        response = await async_client.post(
            "/api/v1/users/refresh-token", json={"refreshToken": tokens["refresh_token"]}
        )
        assert response.status_code == status.HTTP_200_OK
        rotated = response.json()["data"]
        assert rotated["refresh_token"] != tokens["refresh_token"]

        reused = await async_client.post(
            "/api/v1/users/refresh-token", json={"refreshToken": tokens["refresh_token"]}
        )
        assert reused.status_code == status.HTTP_401_UNAUTHORIZED
        assert reused.json()["message"] == "Refresh token is expired or used"

    async def test_refresh_via_cookie(self, async_client, create_user):
        await create_user("alice")
        tokens = await login(async_client)

        response = await async_client.post(
            "/api/v1/users/refresh-token",
            headers={"Cookie": f"refreshToken={tokens['refresh_token']}"},
        )

        assert response.status_code == status.HTTP_200_OK

    async def test_refresh_without_token(self, async_client):
        response = await async_client.post("/api/v1/users/refresh-token")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_logout_invalidates_refresh_token(self, async_client, create_user):
        await create_user("alice")
        tokens = await login(async_client)

        response = await async_client.post("/api/v1/users/logout", headers=bearer(tokens))
        assert response.status_code == status.HTTP_200_OK
        cleared = response.headers.get_list("set-cookie")
        assert any(c.startswith("accessToken=") for c in cleared)
        assert any(c.startswith("refreshToken=") for c in cleared)

        refresh = await async_client.post(
            "/api/v1/users/refresh-token", json={"refreshToken": tokens["refresh_token"]}
        )
        assert refresh.status_code == status.HTTP_401_UNAUTHORIZED


class TestAccountEndpoints:
    """Test account maintenance endpoints."""

    async def test_change_password(self, async_client, create_user):
        await create_user("alice")
        tokens = await login(async_client)

        response = await async_client.post(
            "/api/v1/users/change-password",
            json={"oldPassword": TEST_PASSWORD, "newPassword": "brand-new-secret"},
            headers=bearer(tokens),
        )

        assert response.status_code == status.HTTP_200_OK
        await login(async_client, password="brand-new-secret")

    async def test_change_password_wrong_old(self, async_client, create_user):
        await create_user("alice")
        tokens = await login(async_client)

        response = await async_client.post(
            "/api/v1/users/change-password",
            json={"old_password": "nope-nope-nope", "new_password": "brand-new-secret"},
            headers=bearer(tokens),
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "Invalid old password"

    async def test_update_account(self, async_client, create_user):
        await create_user("alice")
        tokens = await login(async_client)

        response = await async_client.patch(
            "/api/v1/users/update-account",
            json={"fullName": "Alice Cooper", "email": "cooper@example.com"},
            headers=bearer(tokens),
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["email"] == "cooper@example.com"

    async def test_update_account_rejects_malformed_email(self, async_client, create_user):
        await create_user("alice")
        tokens = await login(async_client)

        response = await async_client.patch(
            "/api/v1/users/update-account",
            json={"fullName": "Alice Cooper", "email": "not-an-email"},
            headers=bearer(tokens),
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["success"] is False
        assert "email" in body["message"]

    async def test_update_avatar(self, async_client, create_user, fake_storage, tmp_path, monkeypatch):
        monkeypatch.setattr(uploads, "UPLOAD_TEMP_DIR", str(tmp_path))
        await create_user("alice")
        tokens = await login(async_client)

        response = await async_client.patch(
            "/api/v1/users/avatar",
            files={"avatar": ("new.jpg", b"jpeg", "image/jpeg")},
            headers=bearer(tokens),
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["avatar"].endswith(".jpg")
        assert len(fake_storage.uploads) == 1

    async def test_update_cover_image_requires_file(self, async_client, create_user):
        await create_user("alice")
        tokens = await login(async_client)

        response = await async_client.patch("/api/v1/users/cover-image", headers=bearer(tokens))

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestChannelEndpoints:
    """Test channel profile and watch history."""

    async def test_channel_profile_anonymous(self, async_client, create_user, subscribe):
        alice = await create_user("alice")
        bob = await create_user("bob")
        await subscribe(bob, alice)

        response = await async_client.get("/api/v1/users/c/alice")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert data["subscribers_count"] == 1
        assert data["channels_subscribed_to_count"] == 0
        assert data["is_subscribed"] is False

    async def test_channel_profile_as_subscriber(self, async_client, create_user, subscribe):
        alice = await create_user("alice")
        bob = await create_user("bob")
        await subscribe(bob, alice)
        tokens = await login(async_client, "bob")

        response = await async_client.get("/api/v1/users/c/alice", headers=bearer(tokens))

        assert response.json()["data"]["is_subscribed"] is True

    async def test_channel_profile_missing(self, async_client):
        response = await async_client.get("/api/v1/users/c/ghost")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["message"] == "Channel not found"

    async def test_watch_history(self, async_client, create_user, create_video, watch):
        alice = await create_user("alice")
        first = await create_video("first", owner=alice)
        second = await create_video("second")
        await watch(alice, second.id, 1)
        await watch(alice, first.id, 0)
        tokens = await login(async_client)

        response = await async_client.get("/api/v1/users/history", headers=bearer(tokens))

        assert response.status_code == status.HTTP_200_OK
        history = response.json()["data"]
        assert [entry["id"] for entry in history] == [first.id, second.id]
        assert history[0]["owner"]["username"] == "alice"
        assert history[1]["owner"] is None


class TestPlaylistEndpoints:
    """Test playlist CRUD over HTTP."""

    async def test_requires_authentication(self, async_client):
        response = await async_client.get("/api/v1/playlist/user/someone")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_playlist_lifecycle(self, async_client, create_user, create_video):
        alice = await create_user("alice")
        video = await create_video("clip")
        headers = bearer(await login(async_client))

        created = await async_client.post(
            "/api/v1/playlist/", json={"name": "My List", "description": "Favourites"}, headers=headers
        )
        assert created.status_code == status.HTTP_201_CREATED
        playlist_id = created.json()["data"]["id"]
        assert created.json()["data"]["name"] == "my list"

        duplicate = await async_client.post(
            "/api/v1/playlist/", json={"name": "MY LIST", "description": "again"}, headers=headers
        )
        assert duplicate.status_code == status.HTTP_409_CONFLICT

        added = await async_client.patch(
            f"/api/v1/playlist/add/{video.id}/{playlist_id}", headers=headers
        )
        assert added.status_code == status.HTTP_200_OK
        assert added.json()["data"]["videos"] == [video.id]

        listed = await async_client.get(f"/api/v1/playlist/user/{alice.id}", headers=headers)
        assert listed.json()["data"][0]["total_videos"] == 1
        assert listed.json()["data"][0]["owner_details"]["username"] == "alice"

        updated = await async_client.patch(
            f"/api/v1/playlist/{playlist_id}",
            json={"name": "Renamed", "description": "Still favourites"},
            headers=headers,
        )
        assert updated.json()["data"]["name"] == "renamed"

        removed = await async_client.patch(
            f"/api/v1/playlist/remove/{video.id}/{playlist_id}", headers=headers
        )
        assert removed.json()["data"]["videos"] == []

        fetched = await async_client.get(f"/api/v1/playlist/{playlist_id}", headers=headers)
        assert fetched.json()["data"]["description"] == "Still favourites"

        deleted = await async_client.delete(f"/api/v1/playlist/{playlist_id}", headers=headers)
        assert deleted.status_code == status.HTTP_200_OK
        assert deleted.json()["data"]["id"] == playlist_id

        gone = await async_client.get(f"/api/v1/playlist/{playlist_id}", headers=headers)
        assert gone.status_code == status.HTTP_404_NOT_FOUND

    async def test_add_to_missing_playlist(self, async_client, create_user, create_video):
        await create_user("alice")
        video = await create_video("clip")
        headers = bearer(await login(async_client))

        response = await async_client.patch(
            f"/api/v1/playlist/add/{video.id}/missing", headers=headers
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["message"] == "Playlist not found"
