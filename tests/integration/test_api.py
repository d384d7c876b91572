"""Integration tests for the HTTP API (httpx ASGITransport, SQLite, fake legacy store)."""

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from identity_bridge.api.deps import get_db
from identity_bridge.kernel.configuration import ConfigCache, SqlConfigStore
from identity_bridge.main import app

ADMIN_SECRET = os.environ["SECRET_KEY"]

ADMIN_HEADERS = {"Authorization": f"Bearer {ADMIN_SECRET}"}


@pytest_asyncio.fixture
async def config_cache(session_factory) -> AsyncGenerator[ConfigCache, None]:
    cache = ConfigCache(
        SqlConfigStore(session_factory),
        static_values={"TRUSTED_ORIGINS": "http://localhost:5173"},
    )
    await cache.refresh()
    yield cache
    await cache.stop()


@pytest_asyncio.fixture
async def client(session_factory, config_cache, fake_legacy) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client with the app's components wired to test doubles."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.config_cache = config_cache
    app.state.legacy_client = fake_legacy
    app.state.origin_policy.config = config_cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    app.state.origin_policy.config = None


async def _sign_up(client: AsyncClient, email: str = "new@x.com", name: str = "Ann Lee"):
    return await client.post(
        "/api/auth/sign-up/email",
        json={"email": email, "password": "pw123456", "name": name},
    )


class TestAuthAPI:
    """Tests for /api/auth endpoints."""

    @pytest.mark.asyncio
    async def test_sign_up(self, client, fake_legacy):
        response = await _sign_up(client)

        assert response.status_code == 201
        data = response.json()
        assert data["token"]
        assert data["user"]["email"] == "new@x.com"
        assert data["user"]["emailVerified"] is False
        assert fake_legacy.created_payloads[0]["firstname"] == "Ann"
        assert fake_legacy.created_payloads[0]["lastname"] == "Lee"

    @pytest.mark.asyncio
    async def test_sign_up_existing_legacy_user(self, client, fake_legacy):
        fake_legacy.add_user("old@x.com", "pw123456")

        response = await _sign_up(client, email="old@x.com")

        assert response.status_code == 400
        assert "already exists" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_sign_up_legacy_unavailable(self, client, fake_legacy):
        fake_legacy.unavailable = True

        response = await _sign_up(client)

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_sign_up_validation_error(self, client):
        response = await client.post(
            "/api/auth/sign-up/email",
            json={"email": "not-an-email", "password": "short", "name": ""},
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"

    @pytest.mark.asyncio
    async def test_sign_up_then_sign_in(self, client):
        signed_up = (await _sign_up(client)).json()

        response = await client.post(
            "/api/auth/sign-in/email",
            json={"email": "new@x.com", "password": "pw123456"},
        )

        assert response.status_code == 200
        assert response.json()["user"]["id"] == signed_up["user"]["id"]

    @pytest.mark.asyncio
    async def test_sign_in_failures_are_generic(self, client, fake_legacy):
        fake_legacy.add_user("old@x.com", "right-password")

        unknown = await client.post(
            "/api/auth/sign-in/email",
            json={"email": "ghost@x.com", "password": "pw123456"},
        )
        wrong = await client.post(
            "/api/auth/sign-in/email",
            json={"email": "old@x.com", "password": "wrong-password"},
        )

        assert unknown.status_code == 401
        assert wrong.status_code == 401
        assert unknown.json()["detail"] == wrong.json()["detail"] == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_sign_in_legacy_unavailable(self, client, fake_legacy):
        fake_legacy.add_user("old@x.com", "pw123456")
        fake_legacy.unavailable = True

        response = await client.post(
            "/api/auth/sign-in/email",
            json={"email": "old@x.com", "password": "pw123456"},
        )

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_social_callback_requires_admin(self, client):
        response = await client.post("/api/auth/callback/google", json={"email": "a@x.com"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_social_callback(self, client, fake_legacy):
        fake_legacy.add_user("old@x.com", "pw", first_name="Bob", last_name="Stone")

        linked = await client.post(
            "/api/auth/callback/google",
            json={"email": "old@x.com", "name": "Bobby"},
            headers=ADMIN_HEADERS,
        )
        unknown = await client.post(
            "/api/auth/callback/google",
            json={"email": "social@x.com"},
            headers=ADMIN_HEADERS,
        )

        assert linked.status_code == 200
        assert linked.json()["linked"] is True
        assert linked.json()["created"] is True
        assert unknown.json()["linked"] is False

    @pytest.mark.asyncio
    async def test_sign_out_invalidates_token(self, client):
        token = (await _sign_up(client)).json()["token"]

        response = await client.post("/api/auth/sign-out", headers={"Authorization": f"Bearer {token}"})
        verify = await client.post("/api/verify", json={"token": token})

        assert response.status_code == 200
        assert verify.status_code == 401


class TestVerifyAPI:
    """Tests for /api/verify."""

    @pytest.mark.asyncio
    async def test_valid_token(self, client):
        signed_up = (await _sign_up(client, email="ann.lee@x.com")).json()

        response = await client.post("/api/verify", json={"token": signed_up["token"]})

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["user"] == {
            "id": signed_up["user"]["id"],
            "email": "ann.lee@x.com",
            "name": "Ann Lee",
            "username": "ann.lee",
            "emailVerified": False,
        }
        assert data["session"]["userId"] == signed_up["user"]["id"]
        assert "expiresAt" in data["session"]

    @pytest.mark.asyncio
    async def test_unknown_token(self, client):
        response = await client.post("/api/verify", json={"token": "does-not-exist"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid or expired token"}

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        missing = await client.post("/api/verify", json={})
        garbage = await client.post("/api/verify", content=b"not json")

        assert missing.status_code == 400
        assert missing.json() == {"error": "Token is required"}
        assert garbage.status_code == 400


class TestConfigurationAPI:
    """Tests for /api/config."""

    @pytest.mark.asyncio
    async def test_admin_auth(self, client):
        missing = await client.get("/api/config/admin/all")
        wrong = await client.get("/api/config/admin/all", headers={"Authorization": "Bearer nope"})
        right = await client.get("/api/config/admin/all", headers=ADMIN_HEADERS)

        assert missing.status_code == 401
        assert wrong.status_code == 403
        assert right.status_code == 200

    @pytest.mark.asyncio
    async def test_put_then_get(self, client):
        response = await client.put(
            "/api/config/API_SERVICE_URL",
            json={"value": "http://legacy.internal", "category": "api"},
            headers=ADMIN_HEADERS,
        )
        value = await client.get("/api/config/API_SERVICE_URL")

        assert response.status_code == 200
        assert value.status_code == 200
        assert value.json() == {"key": "API_SERVICE_URL", "value": "http://legacy.internal"}

    @pytest.mark.asyncio
    async def test_put_requires_admin(self, client):
        response = await client.put("/api/config/K", json={"value": "v"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_secrets_hidden_from_public_reads(self, client):
        await client.put(
            "/api/config/SERVICES_SECRET_KEY",
            json={"value": "s3cret", "category": "api", "is_secret": True},
            headers=ADMIN_HEADERS,
        )
        await client.put(
            "/api/config/API_SERVICE_URL",
            json={"value": "http://legacy.internal", "category": "api"},
            headers=ADMIN_HEADERS,
        )

        single = await client.get("/api/config/SERVICES_SECRET_KEY")
        public = await client.get("/api/config")
        category = await client.get("/api/config/category/api")
        admin = await client.get("/api/config/admin/all", headers=ADMIN_HEADERS)

        assert single.status_code == 404
        assert [item["key"] for item in public.json()["items"]] == ["API_SERVICE_URL"]
        assert [item["key"] for item in category.json()["items"]] == ["API_SERVICE_URL"]
        assert {item["key"] for item in admin.json()["items"]} == {"API_SERVICE_URL", "SERVICES_SECRET_KEY"}

    @pytest.mark.asyncio
    async def test_static_only_key_not_served(self, client):
        response = await client.get("/api/config/TRUSTED_ORIGINS")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete(self, client):
        await client.put("/api/config/K", json={"value": "v"}, headers=ADMIN_HEADERS)

        first = await client.delete("/api/config/K", headers=ADMIN_HEADERS)
        second = await client.delete("/api/config/K", headers=ADMIN_HEADERS)

        assert first.status_code == 200
        assert second.status_code == 404
        assert (await client.get("/api/config/K")).status_code == 404

    @pytest.mark.asyncio
    async def test_refresh(self, client):
        await client.put("/api/config/K", json={"value": "v"}, headers=ADMIN_HEADERS)

        response = await client.post("/api/config/refresh", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json() == {"refreshed": True, "keys": 1}


class TestCors:

    @pytest.mark.asyncio
    async def test_trusted_origin_preflight(self, client):
        response = await client.options(
            "/api/verify",
            headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "POST"},
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"

    @pytest.mark.asyncio
    async def test_untrusted_origin_preflight(self, client):
        response = await client.options(
            "/api/verify",
            headers={"Origin": "https://attacker.io", "Access-Control-Request-Method": "POST"},
        )

        assert response.status_code == 400
        assert "access-control-allow-origin" not in response.headers

    @pytest.mark.asyncio
    async def test_pattern_updated_at_runtime(self, client):
        await client.put(
            "/api/config/ALLOWED_DOMAIN_PATTERNS",
            json={"value": ".example.com", "category": "cors"},
            headers=ADMIN_HEADERS,
        )

        response = await client.get("/api/health", headers={"Origin": "https://app.example.com"})

        assert response.headers["access-control-allow-origin"] == "https://app.example.com"


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "Identity Bridge"
        assert data["config_cache"] == "warm"

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["endpoints"]["verify"] == "/api/verify"

    @pytest.mark.asyncio
    async def test_auth_error_responses_documented(self, client):
        response = await client.get("/openapi.json")

        assert response.status_code == 200
        responses = response.json()["paths"]["/api/auth/sign-up/email"]["post"]["responses"]
        for code in ("400", "401", "409", "503"):
            assert responses[code]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")
