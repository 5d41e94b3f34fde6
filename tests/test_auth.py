"""
NodeBase Backend: Auth Flow, Health and Middleware Tests
=========================================================

What we test:
    ✅ Signup creates the account and signs in (auto sign-in)
    ✅ Signup and login errors are shown once on the next form view
    ✅ Logout clears the session
    ✅ Health endpoint reports database and procedure count
    ✅ Request IDs are echoed back
"""

import pytest

from helpers import TEST_PASSWORD


class TestSignup:

    @pytest.mark.asyncio
    async def test_signup_signs_in(self, test_client):
        response = await test_client.post(
            "/signup",
            data={
                "name": "Ada",
                "email": "Ada@Example.com",
                "password": "password123",
                "confirm_password": "password123",
            },
        )
        assert response.status_code == 303
        assert response.headers["location"] == "/"

        home = await test_client.get("/")
        assert home.status_code == 200
        assert "ada@example.com" in home.text

    @pytest.mark.asyncio
    async def test_password_mismatch(self, test_client):
        response = await test_client.post(
            "/signup",
            data={
                "email": "ada@example.com",
                "password": "password123",
                "confirm_password": "password124",
            },
        )
        assert response.status_code == 303
        assert response.headers["location"] == "/signup"

        page = await test_client.get("/signup")
        assert "Passwords do not match" in page.text
        # Shown once
        again = await test_client.get("/signup")
        assert "Passwords do not match" not in again.text

    @pytest.mark.asyncio
    async def test_duplicate_email(self, test_client, create_users):
        await create_users(1)

        response = await test_client.post(
            "/signup",
            data={
                "email": "user1@example.com",
                "password": "password123",
                "confirm_password": "password123",
            },
        )
        assert response.headers["location"] == "/signup"
        page = await test_client.get("/signup")
        assert "already exists" in page.text


class TestLogin:

    @pytest.mark.asyncio
    async def test_wrong_password(self, test_client, create_users):
        await create_users(1)

        response = await test_client.post(
            "/login", data={"email": "user1@example.com", "password": "nope"}
        )
        assert response.status_code == 303
        assert response.headers["location"] == "/login"

        page = await test_client.get("/login")
        assert "Invalid email or password." in page.text
        assert (await test_client.get("/")).status_code == 303

    @pytest.mark.asyncio
    async def test_login_then_logout(self, test_client, create_users):
        await create_users(1)
        await test_client.post(
            "/login", data={"email": "USER1@example.com", "password": TEST_PASSWORD}
        )
        assert (await test_client.get("/")).status_code == 200

        response = await test_client.post("/logout")
        assert response.status_code == 303
        assert response.headers["location"] == "/login"

        home = await test_client.get("/")
        assert home.status_code == 303
        assert home.headers["location"] == "/login"

    @pytest.mark.asyncio
    async def test_signup_page_redirects_signed_in_user(self, signed_in_client):
        response = await signed_in_client.get("/signup")
        assert response.status_code == 303
        assert response.headers["location"] == "/"


class TestHealthAndMiddleware:

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["procedures"] == 1

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"
