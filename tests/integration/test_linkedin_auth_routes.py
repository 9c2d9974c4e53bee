import asyncio
from datetime import date
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from linkedin_pulse.dependencies import get_connection_service
from linkedin_pulse.models.domain.credential_domain import TokenSet
from linkedin_pulse.models.domain.sync_domain import AnalyticsSnapshot, AnalyticsTotals
from linkedin_pulse.routes.linkedin_auth import router as linkedin_auth_router
from linkedin_pulse.services.infrastructure.encryption_service import InvalidKeyError
from linkedin_pulse.services.linkedin_analytics_service import RemoteAnalyticsError
from linkedin_pulse.services.linkedin_connection_service import LinkedInConnectionService
from linkedin_pulse.services.linkedin_oauth_service import OAuthExchangeError, ProfileFetchError

from conftest import HOUR_MS, START_MS, make_profile


class FakeOAuthService:
    def __init__(self):
        self.exchange_error: Exception | None = None
        self.profile_error: Exception | None = None

    async def exchange_code_for_tokens(self, code, redirect_uri):
        if self.exchange_error:
            raise self.exchange_error
        return TokenSet(access_token="access-1", expires_in=3600, refresh_token="refresh-1")

    async def fetch_profile(self, access_token):
        if self.profile_error:
            raise self.profile_error
        return make_profile()


@pytest.fixture
def oauth_service():
    return FakeOAuthService()


@pytest.fixture
def connection_service(
    credential_store, session_store, oauth_service, analytics_service, snapshot_repository
):
    return LinkedInConnectionService(
        credential_store=credential_store,
        session_store=session_store,
        oauth_service=oauth_service,
        analytics_service=analytics_service,
        snapshot_repository=snapshot_repository,
        window_days=7,
    )


@pytest.fixture
def client(connection_service):
    app = FastAPI()
    app.include_router(linkedin_auth_router)
    app.dependency_overrides[get_connection_service] = lambda: connection_service
    return TestClient(app)


def _connect(client) -> str:
    response = client.post(
        "/auth/linkedin/token",
        json={"code": "code-1", "principal_id": "user-1", "redirect_uri": "https://cb"},
    )
    assert response.status_code == 200
    return response.json()["session_id"]


def test_get_oauth_url(client):
    response = client.get(
        "/auth/linkedin/url",
        params={"state": "state-123456", "redirect_uri": "https://app.example.com/cb"},
    )

    assert response.status_code == 200
    params = parse_qs(urlparse(response.json()["auth_url"]).query)
    assert params["state"] == ["state-123456"]
    assert params["redirect_uri"] == ["https://app.example.com/cb"]


def test_get_oauth_url_requires_state(client):
    response = client.get("/auth/linkedin/url")
    assert response.status_code == 422


def test_token_exchange_returns_session_only(client):
    response = client.post(
        "/auth/linkedin/token",
        json={"code": "code-1", "principal_id": "user-1", "redirect_uri": "https://cb"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["session_id"]
    assert payload["profile"]["id"] == "abc123"
    assert payload["expires_in"] == 24 * 3600
    assert "access-1" not in response.text
    assert "refresh-1" not in response.text


def test_token_exchange_rejected_code(client, oauth_service):
    oauth_service.exchange_error = OAuthExchangeError("Code expired", status_code=400)

    response = client.post(
        "/auth/linkedin/token", json={"code": "code-1", "principal_id": "user-1"}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Code expired"


def test_token_exchange_profile_failure(client, oauth_service):
    oauth_service.profile_error = ProfileFetchError("Failed to fetch LinkedIn profile (HTTP 500)")

    response = client.post(
        "/auth/linkedin/token", json={"code": "code-1", "principal_id": "user-1"}
    )

    assert response.status_code == 502


def test_token_exchange_misconfigured(client, oauth_service):
    oauth_service.exchange_error = InvalidKeyError("TOKEN_ENCRYPTION_KEY not configured")

    response = client.post(
        "/auth/linkedin/token", json={"code": "code-1", "principal_id": "user-1"}
    )

    assert response.status_code == 503
    assert "TOKEN_ENCRYPTION_KEY" not in response.text


def test_status_without_session(client):
    response = client.get("/auth/linkedin/status")

    assert response.status_code == 200
    assert response.json()["connected"] is False
    assert response.json()["reason"] == "invalid_session"


def test_status_connected(client):
    session_id = _connect(client)

    response = client.get("/auth/linkedin/status", headers={"X-Session-Id": session_id})

    assert response.status_code == 200
    payload = response.json()
    assert payload["connected"] is True
    assert payload["profile"]["first_name"] == "Ada"
    assert payload["can_refresh"] is True


def test_profile_requires_session(client):
    response = client.get("/auth/linkedin/profile", headers={"X-Session-Id": "bogus"})
    assert response.status_code == 401


def test_profile(client):
    session_id = _connect(client)

    response = client.get("/auth/linkedin/profile", headers={"X-Session-Id": session_id})

    assert response.status_code == 200
    assert response.json()["id"] == "abc123"


def test_disconnect_then_status(client):
    session_id = _connect(client)

    response = client.post("/auth/linkedin/disconnect", headers={"X-Session-Id": session_id})
    assert response.status_code == 200
    assert response.json()["success"] is True

    status = client.get("/auth/linkedin/status", headers={"X-Session-Id": session_id})
    assert status.json()["reason"] == "invalid_session"


def test_session_refresh(client):
    session_id = _connect(client)

    response = client.post("/auth/linkedin/session/refresh", headers={"X-Session-Id": session_id})

    assert response.status_code == 200
    new_session_id = response.json()["session_id"]
    assert new_session_id != session_id

    stale = client.post("/auth/linkedin/session/refresh", headers={"X-Session-Id": session_id})
    assert stale.status_code == 401


def test_analytics(client):
    session_id = _connect(client)

    response = client.get("/auth/linkedin/analytics", headers={"X-Session-Id": session_id})

    assert response.status_code == 200
    payload = response.json()
    assert len(payload["posts"]) == 2
    assert payload["statistics"][0]["impressions"] == 100


def test_analytics_requires_reauthorization(client, credential_store, session_store, clock):
    async def seed():
        await credential_store.put(
            "user-9", TokenSet(access_token="at", expires_in=3600), make_profile("m9")
        )
        return await session_store.create("user-9")

    session_id = asyncio.run(seed())
    clock.advance(2 * HOUR_MS)

    response = client.get("/auth/linkedin/analytics", headers={"X-Session-Id": session_id})

    assert response.status_code == 409
    assert response.json()["detail"]["reauthorize_required"] is True


def test_analytics_remote_failure(client, analytics_service):
    session_id = _connect(client)
    analytics_service.errors["abc123"] = RemoteAnalyticsError("HTTP 500", status_code=500)

    response = client.get("/auth/linkedin/analytics", headers={"X-Session-Id": session_id})

    assert response.status_code == 502


def test_analytics_not_connected(client, session_store):
    session_id = asyncio.run(session_store.create("user-2"))

    response = client.get("/auth/linkedin/analytics", headers={"X-Session-Id": session_id})

    assert response.status_code == 404


def test_snapshots(client, snapshot_repository):
    session_id = _connect(client)
    asyncio.run(
        snapshot_repository.append(
            AnalyticsSnapshot(
                principal_id="user-1",
                remote_subject_id="abc123",
                synced_at=START_MS,
                sync_job_id="job-1",
                date_range_start=date(2024, 3, 8),
                date_range_end=date(2024, 3, 15),
                totals=AnalyticsTotals(impressions=200, post_count=2),
                raw_payload={"post_source": "posts"},
            )
        )
    )

    response = client.get(
        "/auth/linkedin/snapshots", params={"limit": 5}, headers={"X-Session-Id": session_id}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    snapshot = body["snapshots"][0]
    assert snapshot["totals"]["impressions"] == 200
    assert snapshot["date_range_start"] == "2024-03-08"
    assert snapshot["raw_payload"] == {"post_source": "posts"}


def test_snapshots_requires_session(client):
    response = client.get("/auth/linkedin/snapshots")
    assert response.status_code == 401


def test_snapshots_limit_is_bounded(client):
    session_id = _connect(client)

    response = client.get(
        "/auth/linkedin/snapshots", params={"limit": 0}, headers={"X-Session-Id": session_id}
    )

    assert response.status_code == 422
