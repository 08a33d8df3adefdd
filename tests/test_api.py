"""
Tests for the HTTP API.

These tests verify:
1. Workflow errors map to their HTTP status codes
2. Transitions, apply and withdraw return camelCase payloads
3. Notification endpoints only expose the caller's notifications
4. Session start/stop drives the notification poller
"""

import pytest
from fastapi.testclient import TestClient

from themis_workflow.core.config import Settings
from themis_workflow.main import create_app
from themis_workflow.models import (
    ChangeRequestStatus,
    EntityKind,
    Notification,
    NotificationType,
)
from themis_workflow.services import InMemoryKeyValueStore

API = "/api/v1"


def as_user(actor_id: str) -> dict[str, str]:
    return {"X-Actor-Id": actor_id}


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def client(entity_store, identity, clock, kv_store):
    app = create_app(
        Settings(_env_file=None),
        kv_store=kv_store,
        entity_store=entity_store,
        identity=identity,
        clock=clock,
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def store(client):
    return client.app.state.workflow.notifications


# =============================================================================
# TEST: HEALTH & AUTH
# =============================================================================


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["poller_running"] is False


class TestActorHeader:
    def test_missing_header(self, client):
        response = client.get(f"{API}/notifications")
        assert response.status_code == 401

    def test_unknown_user(self, client):
        response = client.get(f"{API}/notifications", headers=as_user("ghost"))
        assert response.status_code == 401


# =============================================================================
# TEST: TRANSITIONS
# =============================================================================


class TestTransitions:
    def test_approve_project(self, client):
        response = client.post(
            f"{API}/projects/p-1/transitions",
            json={"action": "APPROVE", "comments": "ok"},
            headers=as_user("u-sub"),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["fromStatus"] == "PENDING_SUB_PMO"
        assert body["toStatus"] == "APPROVED_BY_SUB_PMO"
        assert body["entity"]["status"] == "APPROVED_BY_SUB_PMO"
        assert body["review"]["reviewer"]["id"] == "u-sub"
        assert body["applied"] is False

    def test_wrong_department_is_forbidden(self, client):
        response = client.post(
            f"{API}/projects/p-1/transitions",
            json={"action": "APPROVE"},
            headers=as_user("u-sub-ops"),
        )
        assert response.status_code == 403
        assert response.json()["error"] == "authorization_denied"

    def test_missing_edge_is_conflict(self, client):
        response = client.post(
            f"{API}/projects/p-1/transitions",
            json={"action": "SUBMIT"},
            headers=as_user("u-admin"),
        )
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"

    def test_rejection_needs_reason(self, client):
        response = client.post(
            f"{API}/projects/p-1/transitions",
            json={"action": "REJECT"},
            headers=as_user("u-sub"),
        )
        assert response.status_code == 422
        assert response.json()["error"] == "validation_failed"

    def test_unknown_project(self, client):
        response = client.post(
            f"{API}/projects/nope/transitions",
            json={"action": "APPROVE"},
            headers=as_user("u-admin"),
        )
        assert response.status_code == 404

    def test_unknown_action_is_rejected_by_schema(self, client):
        response = client.post(
            f"{API}/projects/p-1/transitions",
            json={"action": "ESCALATE"},
            headers=as_user("u-sub"),
        )
        assert response.status_code == 422


# =============================================================================
# TEST: CHANGE REQUESTS
# =============================================================================


class TestChangeRequests:
    def test_final_approval_applies(self, client, entity_store):
        entity_store.update(
            EntityKind.CHANGE_REQUEST, "cr-1", {"status": ChangeRequestStatus.PENDING_MAIN_PMO}
        )
        response = client.post(
            f"{API}/change-requests/cr-1/transitions",
            json={"action": "APPROVE", "comments": "Go"},
            headers=as_user("u-main"),
        )
        assert response.status_code == 200
        assert response.json()["applied"] is True
        assert response.json()["entity"]["implemented"] is True
        assert entity_store.get(EntityKind.PROJECT, "p-2").data.budget == 50000.0

        again = client.post(f"{API}/change-requests/cr-1/apply", headers=as_user("u-main"))
        assert again.status_code == 409
        assert again.json()["error"] == "apply_conflict"

    def test_manual_apply(self, client, entity_store):
        entity_store.update(EntityKind.CHANGE_REQUEST, "cr-1", {"status": ChangeRequestStatus.APPROVED})
        response = client.post(f"{API}/change-requests/cr-1/apply", headers=as_user("u-admin"))
        assert response.status_code == 200
        assert response.json()["project"]["budget"] == 50000.0
        assert response.json()["changeRequest"]["implemented"] is True

    def test_withdraw(self, client):
        response = client.post(
            f"{API}/change-requests/cr-1/withdraw",
            json={"comments": "Not needed"},
            headers=as_user("u-pm"),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "WITHDRAWN"

    def test_withdraw_by_someone_else(self, client):
        response = client.post(
            f"{API}/change-requests/cr-1/withdraw", json={}, headers=as_user("u-sub")
        )
        assert response.status_code == 403


class TestCapabilities:
    def test_manager_on_own_project(self, client):
        response = client.get(
            f"{API}/me/capabilities",
            params={"ownerId": "u-pm", "departmentId": "dept-eng"},
            headers=as_user("u-pm"),
        )
        body = response.json()
        assert body["actorId"] == "u-pm"
        assert body["canEdit"] is True
        assert body["canApprove"] is False
        assert body["sameDepartment"] is True

    def test_executive(self, client):
        body = client.get(f"{API}/me/capabilities", headers=as_user("u-exec")).json()
        assert body["canViewAllProjects"] is True
        assert body["canApprove"] is False
        assert body["canRequestChanges"] is False


# =============================================================================
# TEST: NOTIFICATIONS
# =============================================================================


class TestNotifications:
    @pytest.fixture
    def seeded(self, store, now):
        store.append_many([
            Notification("n-1", "u-pm", NotificationType.GENERAL, "One", "First", now),
            Notification("n-2", "u-pm", NotificationType.UPDATE_DUE, "Two", "Second", now),
            Notification("n-3", "u-sub", NotificationType.GENERAL, "Three", "Other", now),
        ])
        return store

    def test_list_own(self, client, seeded):
        body = client.get(f"{API}/notifications", headers=as_user("u-pm")).json()
        assert [n["id"] for n in body["items"]] == ["n-1", "n-2"]
        assert body["unreadCount"] == 2
        assert body["items"][0]["userId"] == "u-pm"
        assert body["items"][0]["isRead"] is False

    def test_mark_read_and_count(self, client, seeded):
        response = client.post(f"{API}/notifications/n-1/read", headers=as_user("u-pm"))
        assert response.status_code == 200
        assert response.json()["isRead"] is True

        count = client.get(f"{API}/notifications/unread-count", headers=as_user("u-pm")).json()
        assert count == {"unreadCount": 1}

    def test_read_all(self, client, seeded):
        response = client.post(f"{API}/notifications/read-all", headers=as_user("u-pm"))
        assert response.json() == {"updated": 2}

    def test_others_notifications_are_hidden(self, client, seeded):
        assert client.post(f"{API}/notifications/n-3/read", headers=as_user("u-pm")).status_code == 404
        assert client.delete(f"{API}/notifications/n-3", headers=as_user("u-pm")).status_code == 404
        assert seeded.get("n-3").is_read is False

    def test_dismiss(self, client, seeded):
        assert client.delete(f"{API}/notifications/n-1", headers=as_user("u-pm")).status_code == 204
        assert seeded.get("n-1") is None

    def test_transition_produces_notification(self, client):
        client.post(
            f"{API}/projects/p-1/transitions",
            json={"action": "APPROVE", "comments": "ok"},
            headers=as_user("u-sub"),
        )
        body = client.get(f"{API}/notifications", headers=as_user("u-main")).json()
        assert [n["type"] for n in body["items"]] == ["APPROVAL_NEEDED"]


# =============================================================================
# TEST: SESSION
# =============================================================================


class TestSession:
    def test_start_and_stop(self, client):
        started = client.post(f"{API}/session", headers=as_user("u-pm")).json()
        assert started == {"active": True, "changed": True}
        assert client.get("/health").json()["poller_running"] is True

        again = client.post(f"{API}/session", headers=as_user("u-pm")).json()
        assert again == {"active": True, "changed": False}

        stopped = client.delete(f"{API}/session", headers=as_user("u-pm")).json()
        assert stopped == {"active": False, "changed": True}
        assert client.get("/health").json()["poller_running"] is False
