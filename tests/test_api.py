"""
API endpoint tests.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.contracts.invitation import (
    InvitationStatusInfo,
    InviteError,
    InviteResponse,
    InviteResult,
    PendingInvitation,
    SweepSummary,
)
from app.core.exceptions import PartialInviteFailure, QueryFailure, ResendFailure, SweepFailure
from app.dependencies.auth import get_current_user
from app.dependencies.invitations import (
    get_acceptance_redirector,
    get_expiry_sweeper,
    get_invitation_query_client,
    get_ticket_stash,
)
from app.main import app
from app.services.invitations.acceptance import AcceptanceRedirector
from app.services.invitations.identity import OutstandingInvitation
from app.services.invitations.ticket_stash import TicketStash
from app.services.invitations.store import InvitationStore
from tests.conftest import ORG_ID, FakeIdentity, FakeRedis


def pending(email="dana@x.com", hours=30.0):
    now = datetime.now(timezone.utc)
    return PendingInvitation(
        id=uuid4(),
        organization_id=ORG_ID,
        email=email,
        role="editor",
        invited_by="auth0|inviter",
        created_at=now - timedelta(days=1),
        expires_at=now + timedelta(hours=hours),
        is_expiring_soon=hours < 24,
        hours_until_expiration=hours,
    )


class FakeQueryClient:
    def __init__(self, invitations=(), fail=None, resend_error=None, cancelled=True):
        self.invitations = list(invitations)
        self.fail = fail
        self.resend_error = resend_error
        self.cancelled = cancelled
        self.cancel_calls = []

    async def list_pending(self, organization_id=None):
        if self.fail:
            raise self.fail
        return self.invitations

    def get_invitation_status(self, email):
        for invitation in self.invitations:
            if invitation.email.lower() == email.lower():
                return InvitationStatusInfo(
                    is_expiring_soon=invitation.is_expiring_soon,
                    hours_until_expiration=invitation.hours_until_expiration,
                    expires_at=invitation.expires_at,
                )
        return None

    async def cancel(self, invitation_id):
        self.cancel_calls.append(invitation_id)
        return self.cancelled

    async def resend(self, email, role):
        if self.resend_error:
            raise self.resend_error
        return InviteResponse(
            results=[InviteResult(email=email, status="sent", invitation_id="inv_1")],
            message="Successfully sent 1 invitation(s)",
        )


class FakeSweeper:
    def __init__(self, summary=None, error=None):
        self.summary = summary or SweepSummary()
        self.error = error
        self.runs = 0

    async def run(self, now=None):
        self.runs += 1
        if self.error:
            raise self.error
        return self.summary


def use_query_client(fake):
    app.dependency_overrides[get_invitation_query_client] = lambda: fake
    return fake


class TestHealthEndpoints:
    """Test basic health/status endpoints."""

    def test_root_endpoint(self, client: TestClient):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json().get("status") == "ok"

    def test_openapi_schema(self, client: TestClient):
        """Invitation and function routes are published."""
        response = client.get("/openapi.json")
        assert response.status_code == 200
        paths = response.json()["paths"]
        assert "/api/invitations/pending" in paths
        assert "/functions/cleanup-expired-invitations" in paths


class TestAuthentication:

    def test_missing_token_is_rejected(self, client: TestClient, settings, monkeypatch):
        monkeypatch.setattr(
            "app.dependencies.auth.get_settings",
            lambda: settings.model_copy(update={"auth_disabled": False}),
        )

        response = client.get("/api/invitations/pending")

        assert response.status_code == 401

    def test_caller_without_organization_is_forbidden(self, client: TestClient):
        app.dependency_overrides[get_current_user] = lambda: {"id": "auth0|solo", "organization_id": None}

        response = client.get("/api/invitations/pending")

        assert response.status_code == 403


class TestPendingEndpoints:

    def test_list_pending(self, client: TestClient):
        use_query_client(FakeQueryClient([pending("dana@x.com")]))

        response = client.get("/api/invitations/pending")

        assert response.status_code == 200
        data = response.json()
        assert [item["email"] for item in data] == ["dana@x.com"]
        assert data[0]["is_expiring_soon"] is False

    def test_store_failure_is_not_an_empty_list(self, client: TestClient):
        use_query_client(FakeQueryClient(fail=QueryFailure("Could not load pending invitations")))

        response = client.get("/api/invitations/pending")

        assert response.status_code == 503

    def test_status_for_invited_email(self, client: TestClient):
        use_query_client(FakeQueryClient([pending("dana@x.com", hours=5.0)]))

        response = client.get("/api/invitations/status", params={"email": "DANA@x.com"})

        assert response.status_code == 200
        assert response.json()["is_expiring_soon"] is True
        assert response.json()["hours_until_expiration"] == 5.0

    def test_status_for_unknown_email_is_null(self, client: TestClient):
        use_query_client(FakeQueryClient([pending("dana@x.com")]))

        response = client.get("/api/invitations/status", params={"email": "nobody@x.com"})

        assert response.status_code == 200
        assert response.json() is None


class TestCancelEndpoint:

    def test_cancel(self, client: TestClient):
        fake = use_query_client(FakeQueryClient())
        invitation_id = uuid4()

        response = client.post(f"/api/invitations/{invitation_id}/cancel")

        assert response.status_code == 200
        assert response.json() == {"cancelled": True}
        assert fake.cancel_calls == [invitation_id]

    def test_cancel_nothing_changed(self, client: TestClient):
        use_query_client(FakeQueryClient(cancelled=False))

        response = client.post(f"/api/invitations/{uuid4()}/cancel")

        assert response.json() == {"cancelled": False}

    def test_cancel_rejects_malformed_id(self, client: TestClient):
        use_query_client(FakeQueryClient())

        response = client.post("/api/invitations/not-a-uuid/cancel")

        assert response.status_code == 422


class TestResendEndpoint:

    def test_resend(self, client: TestClient):
        use_query_client(FakeQueryClient())

        response = client.post("/api/invitations/resend", json={"email": "bob@x.com", "role": "viewer"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert [r["email"] for r in body["results"]] == ["bob@x.com"]
        assert body["errors"] == []

    def test_partial_failure_reports_every_email(self, client: TestClient):
        use_query_client(FakeQueryClient(resend_error=PartialInviteFailure(
            "Successfully sent 0 invitation(s)",
            results=[],
            errors=[InviteError(email="bob@x.com", error="User has already been invited")],
        )))

        response = client.post("/api/invitations/resend", json={"email": "bob@x.com", "role": "viewer"})

        assert response.status_code == 207
        body = response.json()
        assert body["success"] is False
        assert body["errors"] == [{"email": "bob@x.com", "error": "User has already been invited"}]

    def test_upstream_failure(self, client: TestClient):
        use_query_client(FakeQueryClient(resend_error=ResendFailure(
            "Invite function returned 500", detail="Missing required environment variables"
        )))

        response = client.post("/api/invitations/resend", json={"email": "bob@x.com", "role": "viewer"})

        assert response.status_code == 502
        assert response.json()["detail"] == {
            "message": "Invite function returned 500",
            "upstream": "Missing required environment variables",
        }

    def test_unknown_role_is_rejected(self, client: TestClient):
        use_query_client(FakeQueryClient())

        response = client.post("/api/invitations/resend", json={"email": "bob@x.com", "role": "owner"})

        assert response.status_code == 422


class TestAcceptanceEndpoints:

    def test_stash_ticket(self, client: TestClient):
        redis = FakeRedis()
        app.dependency_overrides[get_ticket_stash] = lambda: TicketStash(redis)

        response = client.post(
            "/api/invitations/tickets",
            json={"ticket": "tkt_1", "status": "new_user"},
            headers={"X-Session-Id": "browser-session-1"},
        )

        assert response.status_code == 204
        assert "invite_ticket:browser-session-1" in redis.values

    def test_stash_requires_session_header(self, client: TestClient):
        app.dependency_overrides[get_ticket_stash] = lambda: TicketStash(FakeRedis())

        response = client.post("/api/invitations/tickets", json={"ticket": "tkt_1"})

        assert response.status_code == 422

    def test_resolve_forwards_stashed_ticket_once(self, client: TestClient):
        redis = FakeRedis()
        app.dependency_overrides[get_ticket_stash] = lambda: TicketStash(redis)
        app.dependency_overrides[get_acceptance_redirector] = lambda: AcceptanceRedirector(
            FakeIdentity(), TicketStash(redis)
        )
        headers = {"X-Session-Id": "browser-session-1"}
        client.post("/api/invitations/tickets", json={"ticket": "tkt_1"}, headers=headers)

        first = client.post("/api/invitations/session/resolve", headers=headers)
        second = client.post("/api/invitations/session/resolve", headers=headers)

        assert first.json() == {
            "state": "redirecting_to_accept",
            "redirect_to": "/accept-org-invite?ticket=tkt_1",
        }
        assert second.json() == first.json()
        assert "invite_ticket:browser-session-1" not in redis.values

    def test_repeat_resolve_accepts_nothing_more(self, client: TestClient):
        redis = FakeRedis()
        first, second = (
            OutstandingInvitation(id=uuid4(), organization_id=org, email="test@brandhub.app", role="editor")
            for org in ("org_a", "org_b")
        )
        identity = FakeIdentity([first, second])
        app.dependency_overrides[get_ticket_stash] = lambda: TicketStash(redis)
        app.dependency_overrides[get_acceptance_redirector] = lambda: AcceptanceRedirector(
            identity, TicketStash(redis)
        )
        headers = {"X-Session-Id": "browser-session-2"}
        client.post("/api/invitations/tickets", json={"ticket": "tkt_2"}, headers=headers)

        responses = [
            client.post("/api/invitations/session/resolve", headers=headers).json()
            for _ in range(2)
        ]

        assert responses == [{"state": "redirecting", "redirect_to": "/?from_invite=true"}] * 2
        assert identity.accepted == [first.id]
        assert "invite_ticket:browser-session-2" not in redis.values

    def test_reset_lets_the_next_sign_in_resolve_again(self, client: TestClient):
        redis = FakeRedis()
        identity = FakeIdentity([
            OutstandingInvitation(id=uuid4(), organization_id="org_a", email="test@brandhub.app", role="viewer")
        ])
        app.dependency_overrides[get_ticket_stash] = lambda: TicketStash(redis)
        app.dependency_overrides[get_acceptance_redirector] = lambda: AcceptanceRedirector(
            identity, TicketStash(redis)
        )
        headers = {"X-Session-Id": "browser-session-3"}

        client.post("/api/invitations/session/resolve", headers=headers)
        reset = client.post("/api/invitations/session/reset", headers=headers)
        client.post("/api/invitations/session/resolve", headers=headers)

        assert reset.status_code == 204
        assert len(identity.accepted) == 2


class TestCleanupFunction:

    def test_rejects_wrong_api_key(self, client: TestClient):
        sweeper = FakeSweeper()
        app.dependency_overrides[get_expiry_sweeper] = lambda: sweeper

        response = client.post("/functions/cleanup-expired-invitations", headers={"X-API-KEY": "nope"})

        assert response.status_code == 401
        assert sweeper.runs == 0

    def test_requires_api_key_header(self, client: TestClient):
        app.dependency_overrides[get_expiry_sweeper] = lambda: FakeSweeper()

        response = client.post("/functions/cleanup-expired-invitations")

        assert response.status_code == 422

    def test_reports_counts(self, client: TestClient, settings):
        app.dependency_overrides[get_expiry_sweeper] = lambda: FakeSweeper(
            SweepSummary(expired_count=3, expiring_soon_count=2)
        )

        response = client.post(
            "/functions/cleanup-expired-invitations",
            headers={"X-API-KEY": settings.cron_api_key},
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "expired": 3,
            "expiringSoon": 2,
            "message": "Successfully processed invitation cleanup",
        }

    def test_failed_run_returns_error_body(self, client: TestClient, settings):
        app.dependency_overrides[get_expiry_sweeper] = lambda: FakeSweeper(
            error=SweepFailure("Invitation sweep failed", detail="connection refused")
        )

        response = client.post(
            "/functions/cleanup-expired-invitations",
            headers={"X-API-KEY": settings.cron_api_key},
        )

        assert response.status_code == 500
        assert response.json() == {"error": "connection refused"}


class TestLiveSocket:

    def test_rejects_unauthenticated_socket(self, client: TestClient, monkeypatch):
        async def no_user(token):
            return None

        monkeypatch.setattr("app.api.routes.api.invitations.get_websocket_user", no_user)

        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/api/invitations/live?token=bad"):
                pass

        assert exc.value.code == 1008

    def test_pushes_pending_set_on_open(self, client: TestClient, monkeypatch):
        invitation = pending("erin@x.com")

        async def fake_pending(self, organization_id, now=None):
            return [invitation]

        monkeypatch.setattr(InvitationStore, "get_pending_invitations", fake_pending)

        with client.websocket_connect("/api/invitations/live?token=anything") as websocket:
            data = websocket.receive_json()

        assert [item["email"] for item in data] == ["erin@x.com"]
        assert data[0]["id"] == str(invitation.id)
