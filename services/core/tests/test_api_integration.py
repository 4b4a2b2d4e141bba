"""Integration tests for the Cadence HTTP API."""

from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from cadence_core.domain.clock import utcnow
from cadence_core.domain.errors import TokenExchangeFailed
from cadence_core.domain.models import EngagementSuggestion, Identity, Session
from cadence_core.domain.services.exchange_client import ExchangeResult
from cadence_core.providers.base import TokenBundle
from tests.factories import PERSONA_JSON, chat_response, create_persona, create_suggestion


def exchange_ok() -> ExchangeResult:
    return ExchangeResult(
        tokens={"access_token": "at-123", "refresh_token": "rt-456", "expires_in": 7200},
        profile={"data": {"id": "42", "username": "ada", "name": "Ada L."}},
    )


async def start_login(client) -> str:
    response = await client.get("/auth/x/start")
    assert response.status_code == 200
    query = parse_qs(urlparse(response.json()["authorization_url"]).query)
    return query["state"][0]


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthz(self, client):
        response = await client.get("/healthz")

        assert response.status_code == 200
        assert response.json() == {"ok": True, "service": "cadence-core"}


class TestAuthRoutes:
    """Tests for /auth routes."""

    @pytest.mark.asyncio
    async def test_start_sets_client_cookie(self, client):
        response = await client.get("/auth/x/start")

        assert response.status_code == 200
        url = response.json()["authorization_url"]
        assert url.startswith("https://twitter.com/i/oauth2/authorize?")
        assert "code_challenge_method=S256" in url
        assert "cadence_client" in response.cookies

    @pytest.mark.asyncio
    async def test_full_login_flow(self, client, fake_exchanger, db_session):
        """start -> callback -> me shows the linked identity."""
        fake_exchanger.exchange.return_value = exchange_ok()
        state = await start_login(client)

        response = await client.get("/auth/x/callback", params={"code": "abc", "state": state})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["is_new"] is True
        assert body["identity"]["username"] == "ada"
        assert "session" in response.cookies

        me = await client.get("/auth/me")
        assert me.json()["logged_in"] is True
        assert me.json()["identity"]["platform_user_id"] == "42"

        db_session.expire_all()
        assert db_session.query(Identity).count() == 1
        assert db_session.query(Session).count() == 1

    @pytest.mark.asyncio
    async def test_callback_with_wrong_state(self, client, fake_exchanger):
        await start_login(client)

        response = await client.get("/auth/x/callback", params={"code": "abc", "state": "forged"})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_state"
        fake_exchanger.exchange.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_callback_without_code(self, client):
        state = await start_login(client)

        response = await client.get("/auth/x/callback", params={"state": state})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "missing_code"

    @pytest.mark.asyncio
    async def test_callback_denied_by_user(self, client):
        await start_login(client)

        response = await client.get("/auth/x/callback", params={"error": "access_denied"})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "authorization_denied"

    @pytest.mark.asyncio
    async def test_exchange_failure_creates_no_session(self, client, fake_exchanger, db_session):
        fake_exchanger.exchange.side_effect = TokenExchangeFailed(details="invalid_grant", status=400)
        state = await start_login(client)

        response = await client.get("/auth/x/callback", params={"code": "abc", "state": state})

        assert response.status_code == 502
        assert response.json()["detail"]["retryable"] is True
        db_session.expire_all()
        assert db_session.query(Session).count() == 0

    @pytest.mark.asyncio
    async def test_me_when_logged_out(self, client):
        response = await client.get("/auth/me")
        assert response.json() == {"logged_in": False, "identity": None}

    @pytest.mark.asyncio
    async def test_logout(self, authenticated_client, db_session):
        response = await authenticated_client.post("/auth/logout")

        assert response.status_code == 200
        db_session.expire_all()
        assert db_session.query(Session).count() == 0


class TestPersonaRoutes:
    """Tests for /persona routes."""

    @pytest.mark.asyncio
    async def test_requires_login(self, client):
        response = await client.post("/persona/build")

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "not_authenticated"

    @pytest.mark.asyncio
    async def test_build_with_fallback_content(self, authenticated_client, fake_inference):
        """A rate-limited X API still produces a persona, flagged as fallback."""
        fake_inference.prompt.return_value = chat_response(PERSONA_JSON)

        response = await authenticated_client.post("/persona/build")

        assert response.status_code == 200
        body = response.json()
        assert body["persona"]["topics"] == ["startups", "ai tools", "product"]
        assert body["posts_fallback"] is True
        assert [p["progress"] for p in body["progress"]] == [0, 25, 50, 75, 100]

        persona = await authenticated_client.get("/persona")
        assert persona.status_code == 200
        assert persona.json()["confidence"] == 80

    @pytest.mark.asyncio
    async def test_build_renews_expired_access_token(
        self, authenticated_client, db_session, fake_exchanger, fake_inference
    ):
        login = db_session.get(Session, "test-session-id")
        login.token_expires_at = utcnow() - timedelta(minutes=5)
        db_session.commit()
        fake_exchanger.refresh.return_value = TokenBundle(
            access_token="at-new", refresh_token="rt-new", expires_in=7200
        )
        fake_inference.prompt.return_value = chat_response(PERSONA_JSON)

        response = await authenticated_client.post("/persona/build")

        assert response.status_code == 200
        fake_exchanger.refresh.assert_awaited_once_with("rt-456")
        db_session.refresh(login)
        assert login.token_expires_at > utcnow()

    @pytest.mark.asyncio
    async def test_build_with_malformed_answer(self, authenticated_client, fake_inference):
        fake_inference.prompt.return_value = chat_response("sorry, no")

        response = await authenticated_client.post("/persona/build")

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "malformed_persona"

    @pytest.mark.asyncio
    async def test_get_persona_before_build(self, authenticated_client):
        response = await authenticated_client.get("/persona")
        assert response.status_code == 404


class TestSuggestionRoutes:
    """Tests for /suggestions routes."""

    @pytest.mark.asyncio
    async def test_generate_requires_persona(self, authenticated_client):
        response = await authenticated_client.post("/suggestions/generate")
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_generate_and_list(self, authenticated_client, db_session, identity, fake_inference):
        create_persona(db_session, identity)
        db_session.commit()
        fake_inference.prompt.side_effect = [chat_response(["ai tools"])] + [
            chat_response({"reply": "Try it for a week.", "confidence": 66}) for _ in range(3)
        ]

        response = await authenticated_client.post(
            "/suggestions/generate", json={"max_suggestions": 2}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["queries"] == ["ai tools"]
        assert body["is_fallback"] is True
        assert len(body["suggestions"]) == 2
        assert all(s["status"] == "pending" for s in body["suggestions"])

        listed = await authenticated_client.get("/suggestions", params={"status": "pending"})
        assert len(listed.json()["suggestions"]) == 2

    @pytest.mark.asyncio
    async def test_list_rejects_unknown_status(self, authenticated_client):
        response = await authenticated_client.get("/suggestions", params={"status": "archived"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_status_update_lifecycle(self, authenticated_client, db_session, identity):
        suggestion = create_suggestion(db_session, identity)
        db_session.commit()

        approved = await authenticated_client.patch(
            f"/suggestions/{suggestion.id}", json={"status": "approved"}
        )
        again = await authenticated_client.patch(
            f"/suggestions/{suggestion.id}", json={"status": "rejected"}
        )

        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"
        assert again.status_code == 409
        db_session.expire_all()
        assert db_session.get(EngagementSuggestion, suggestion.id).status == "approved"

    @pytest.mark.asyncio
    async def test_status_update_rejects_pending_target(self, authenticated_client, db_session, identity):
        suggestion = create_suggestion(db_session, identity)
        db_session.commit()

        response = await authenticated_client.patch(
            f"/suggestions/{suggestion.id}", json={"status": "pending"}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_status_update_unknown_id(self, authenticated_client):
        response = await authenticated_client.patch("/suggestions/999", json={"status": "approved"})
        assert response.status_code == 404
