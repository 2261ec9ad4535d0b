"""
Tests for TaskEscrow API

Drives the REST endpoints end to end against a SQLite-backed engine.
"""

from datetime import UTC, datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from taskescrow.api import app, build_services
from taskescrow.config import Settings, get_settings

POSTER = {"X-User-Id": "poster-1"}
DOER = {"X-User-Id": "doer-1"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}


def _deadline() -> str:
    return (datetime.now(UTC) + timedelta(days=7)).isoformat()


@pytest.fixture
async def client(session_factory):
    build_services(Settings(auto_release_enabled=False), session_factory)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _fund(client, headers, amount):
    response = await client.post("/api/v1/wallet/deposit", json={"amount": amount}, headers=headers)
    assert response.status_code == 200
    return response.json()


async def _create_task(client, reward=50_000):
    response = await client.post(
        "/api/v1/tasks",
        json={"title": "Label images", "reward_amount": reward, "deadline": _deadline()},
        headers=POSTER,
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _submitted_task(client, reward=50_000):
    await _fund(client, POSTER, reward)
    task = await _create_task(client, reward)
    for step in ("accept", "start", "submit"):
        response = await client.post(f"/api/v1/tasks/{task['task_id']}/{step}", headers=DOER)
        assert response.status_code == 200, response.text
    return task


# =============================================================================
# Service endpoints
# =============================================================================


class TestServiceEndpoints:
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "TaskEscrow"

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_fee_preview(self, client):
        response = await client.get(
            "/api/v1/fees/preview", params={"gross_amount": 50_000, "tasks_completed": 5}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["platform_fee"] == 4_000
        assert data["net_payout"] == 46_000

    async def test_fee_preview_below_value_tiers(self, client):
        response = await client.get(
            "/api/v1/fees/preview", params={"gross_amount": 1_000, "tasks_completed": 0}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["value_tier_fee_percent"] is None
        assert data["applied_fee_percent"] == "20"
        assert data["platform_fee"] == 200
        assert data["net_payout"] == 800


# =============================================================================
# Authentication
# =============================================================================


class TestAuthentication:
    async def test_missing_user_header(self, client):
        response = await client.get("/api/v1/wallet")

        assert response.status_code == 401

    async def test_unknown_role(self, client):
        response = await client.get(
            "/api/v1/wallet", headers={"X-User-Id": "user-1", "X-User-Role": "superuser"}
        )

        assert response.status_code == 401

    async def test_dispute_listing_is_admin_only(self, client):
        response = await client.get("/api/v1/disputes", headers=POSTER)

        assert response.status_code == 403


# =============================================================================
# Wallet
# =============================================================================


class TestWallet:
    async def test_deposit_and_balance(self, client):
        entry = await _fund(client, POSTER, 25_000)

        assert entry["balance_after"] == 25_000
        assert entry["event"]["event_type"] == "sandbox_deposit"

        response = await client.get("/api/v1/wallet", headers=POSTER)
        assert response.json()["balance"] == 25_000

    async def test_deposit_replay_with_idempotency_key(self, client):
        headers = {**POSTER, "X-Idempotency-Key": "deposit-1"}

        first = await client.post("/api/v1/wallet/deposit", json={"amount": 500}, headers=headers)
        second = await client.post("/api/v1/wallet/deposit", json={"amount": 500}, headers=headers)

        assert first.status_code == second.status_code == 200
        assert first.json() == second.json()
        wallet = await client.get("/api/v1/wallet", headers=POSTER)
        assert wallet.json()["balance"] == 500

    async def test_reused_key_with_different_body(self, client):
        headers = {**POSTER, "X-Idempotency-Key": "deposit-1"}
        await client.post("/api/v1/wallet/deposit", json={"amount": 500}, headers=headers)

        response = await client.post(
            "/api/v1/wallet/deposit", json={"amount": 900}, headers=headers
        )

        assert response.status_code == 409
        assert response.json()["error"] == "idempotency_conflict"

        wallet = await client.get("/api/v1/wallet", headers=POSTER)
        events = await client.get("/api/v1/wallet/events", headers=POSTER)
        assert wallet.json()["balance"] == 500
        assert len(events.json()) == 1

    async def test_overdraw(self, client):
        await _fund(client, POSTER, 100)

        response = await client.post(
            "/api/v1/wallet/withdraw", json={"amount": 101}, headers=POSTER
        )

        assert response.status_code == 402
        assert response.json()["error"] == "insufficient_funds"

    async def test_non_positive_amount(self, client):
        response = await client.post("/api/v1/wallet/deposit", json={"amount": 0}, headers=POSTER)

        assert response.status_code == 422

    async def test_withdraw_rate_limit(self, client):
        await _fund(client, POSTER, 1_000)
        for _ in range(5):
            response = await client.post(
                "/api/v1/wallet/withdraw", json={"amount": 1}, headers=POSTER
            )
            assert response.status_code == 200

        response = await client.post("/api/v1/wallet/withdraw", json={"amount": 1}, headers=POSTER)

        assert response.status_code == 429
        assert response.json()["error"] == "rate_limited"
        assert response.headers["Retry-After"] == "3600"

    async def test_events_and_reconcile(self, client):
        await _fund(client, POSTER, 700)
        await client.post("/api/v1/wallet/withdraw", json={"amount": 200}, headers=POSTER)

        events = await client.get("/api/v1/wallet/events", headers=POSTER)
        reconcile = await client.get("/api/v1/wallet/reconcile", headers=POSTER)

        assert [e["amount"] for e in events.json()] == [-200, 700]
        assert reconcile.json()["consistent"] is True
        assert reconcile.json()["stored_balance"] == 500


# =============================================================================
# Tasks
# =============================================================================


class TestTaskLifecycle:
    async def test_create_without_funds(self, client):
        response = await client.post(
            "/api/v1/tasks",
            json={"reward_amount": 50_000, "deadline": _deadline()},
            headers=POSTER,
        )

        assert response.status_code == 402

    async def test_create_funds_escrow(self, client):
        await _fund(client, POSTER, 50_000)

        task = await _create_task(client)

        assert task["status"] == "open"
        assert task["escrow"]["gross_amount"] == 50_000
        assert task["escrow"]["status"] == "in_escrow"
        wallet = await client.get("/api/v1/wallet", headers=POSTER)
        assert wallet.json()["balance"] == 0

    async def test_full_flow_with_approval(self, client):
        task = await _submitted_task(client)

        response = await client.post(f"/api/v1/tasks/{task['task_id']}/approve", headers=POSTER)

        assert response.status_code == 200
        assert response.json()["status"] == "released"
        assert response.json()["amount"] == 46_000
        assert response.json()["platform_fee"] == 4_000

        doer_wallet = await client.get("/api/v1/wallet", headers=DOER)
        assert doer_wallet.json()["balance"] == 46_000
        assert doer_wallet.json()["tasks_completed"] == 1

        detail = await client.get(f"/api/v1/tasks/{task['task_id']}", headers=POSTER)
        assert detail.json()["status"] == "completed"
        assert detail.json()["escrow"]["status"] == "released"

        events = await client.get(f"/api/v1/tasks/{task['task_id']}/events", headers=POSTER)
        assert [e["event_type"] for e in events.json()][:2] == ["created", "accepted"]

    async def test_approve_replay_pays_once(self, client):
        task = await _submitted_task(client)
        headers = {**POSTER, "X-Idempotency-Key": "approve-1"}

        first = await client.post(f"/api/v1/tasks/{task['task_id']}/approve", headers=headers)
        second = await client.post(f"/api/v1/tasks/{task['task_id']}/approve", headers=headers)

        assert first.status_code == second.status_code == 200
        assert first.content == second.content

        doer_events = await client.get("/api/v1/wallet/events", headers=DOER)
        assert [e["event_type"] for e in doer_events.json()] == ["escrow_release"]

        history = await client.get(f"/api/v1/tasks/{task['task_id']}/events", headers=POSTER)
        event_types = [e["event_type"] for e in history.json()]
        assert event_types.count("released") == 1

    async def test_poster_cannot_accept_own_task(self, client):
        await _fund(client, POSTER, 50_000)
        task = await _create_task(client)

        response = await client.post(f"/api/v1/tasks/{task['task_id']}/accept", headers=POSTER)

        assert response.status_code == 403

    async def test_second_accept_conflicts(self, client):
        await _fund(client, POSTER, 50_000)
        task = await _create_task(client)
        await client.post(f"/api/v1/tasks/{task['task_id']}/accept", headers=DOER)

        response = await client.post(
            f"/api/v1/tasks/{task['task_id']}/accept", headers={"X-User-Id": "doer-2"}
        )

        assert response.status_code == 409
        assert response.json()["error"] == "already_assigned"

    async def test_doer_cannot_approve(self, client):
        task = await _submitted_task(client)

        response = await client.post(f"/api/v1/tasks/{task['task_id']}/approve", headers=DOER)

        assert response.status_code == 403

    async def test_cancel_refunds_poster(self, client):
        await _fund(client, POSTER, 50_000)
        task = await _create_task(client)

        response = await client.post(f"/api/v1/tasks/{task['task_id']}/cancel", headers=POSTER)

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        wallet = await client.get("/api/v1/wallet", headers=POSTER)
        assert wallet.json()["balance"] == 50_000

    async def test_unknown_task(self, client):
        response = await client.get("/api/v1/tasks/missing", headers=POSTER)

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_list_as_doer(self, client):
        task = await _submitted_task(client)

        response = await client.get(
            "/api/v1/tasks", params={"role": "doer", "status": "submitted"}, headers=DOER
        )

        assert response.status_code == 200
        assert [t["task_id"] for t in response.json()["tasks"]] == [task["task_id"]]


# =============================================================================
# Disputes
# =============================================================================


class TestDisputes:
    async def test_dispute_and_split(self, client):
        task = await _submitted_task(client, reward=10_001)

        opened = await client.post(
            f"/api/v1/tasks/{task['task_id']}/dispute",
            json={"reason": "Half the images are unlabeled"},
            headers=POSTER,
        )
        assert opened.status_code == 201
        dispute_id = opened.json()["dispute_id"]

        denied = await client.post(
            f"/api/v1/disputes/{dispute_id}/resolve",
            json={"outcome": "approve"},
            headers=POSTER,
        )
        assert denied.status_code == 403

        resolved = await client.post(
            f"/api/v1/disputes/{dispute_id}/resolve",
            json={"outcome": "split", "split_ratio": "0.5"},
            headers=ADMIN,
        )
        assert resolved.status_code == 200
        assert resolved.json()["doer_amount"] == 5_000
        assert resolved.json()["poster_amount"] == 5_001
        assert resolved.json()["platform_fee"] == 0

        again = await client.post(
            f"/api/v1/disputes/{dispute_id}/resolve",
            json={"outcome": "reject"},
            headers=ADMIN,
        )
        assert again.status_code == 409
        assert again.json()["error"] == "already_resolved"

    async def test_disputed_escrow_cannot_be_released(self, client):
        task = await _submitted_task(client)
        await client.post(f"/api/v1/tasks/{task['task_id']}/dispute", headers=DOER)

        response = await client.post(f"/api/v1/tasks/{task['task_id']}/release", headers=ADMIN)

        assert response.status_code == 409

    async def test_dispute_visible_to_parties_only(self, client):
        task = await _submitted_task(client)
        opened = await client.post(f"/api/v1/tasks/{task['task_id']}/dispute", headers=POSTER)
        dispute_id = opened.json()["dispute_id"]

        assert (await client.get(f"/api/v1/disputes/{dispute_id}", headers=DOER)).status_code == 200
        outsider = await client.get(
            f"/api/v1/disputes/{dispute_id}", headers={"X-User-Id": "someone-else"}
        )
        assert outsider.status_code == 403


# =============================================================================
# Auto-release trigger
# =============================================================================


class TestAutoReleaseTrigger:
    @pytest.fixture
    def internal_token(self, monkeypatch):
        monkeypatch.setenv("INTERNAL_TOKEN", "cron-secret")
        get_settings.cache_clear()
        yield "cron-secret"
        get_settings.cache_clear()

    async def test_requires_internal_token(self, client):
        response = await client.post("/api/v1/auto-release/sweep")

        assert response.status_code == 403

    async def test_wrong_token(self, client, internal_token):
        response = await client.post(
            "/api/v1/auto-release/sweep", headers={"X-Internal-Token": "guess"}
        )

        assert response.status_code == 403

    async def test_non_ascii_token_is_rejected(self, client, internal_token):
        response = await client.post(
            "/api/v1/auto-release/sweep", headers={"X-Internal-Token": "jeton-é".encode()}
        )

        assert response.status_code == 403

    async def test_sweep_with_nothing_due(self, client, internal_token):
        await _submitted_task(client)

        response = await client.post(
            "/api/v1/auto-release/sweep", headers={"X-Internal-Token": internal_token}
        )

        assert response.status_code == 200
        assert response.json()["processed"] == 0
        assert response.json()["results"] == []
