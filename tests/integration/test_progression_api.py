"""Integration tests: progression and notification endpoints."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from structlog.testing import capture_logs


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_ready(self, client: AsyncClient):
        response = await client.get("/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"] == {"database": "ok", "redis": "ok"}
        assert data["catalog"] == {"missions": 0, "achievements": 0, "items": 0}

    @pytest.mark.asyncio
    async def test_ready_reports_seeded_catalog(self, client: AsyncClient, make_mission):
        await make_mission("daily_bet", "bets_placed")

        data = (await client.get("/ready")).json()
        assert data["catalog"]["missions"] == 1

    @pytest.mark.asyncio
    async def test_broker_down_is_503(self, client: AsyncClient, mock_redis):
        mock_redis.ping.side_effect = ConnectionError("refused")

        response = await client.get("/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["checks"]["database"] == "ok"
        assert data["checks"]["redis"].startswith("error:")

    @pytest.mark.asyncio
    async def test_version(self, client: AsyncClient):
        data = (await client.get("/version")).json()
        assert data["service"] == "equipgg-ledger"
        assert data["level_curve"] == {"base": 500, "step": 200, "scale": 10}

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    @pytest.mark.asyncio
    async def test_request_id_generated(self, client: AsyncClient):
        response = await client.get("/health")
        assert len(response.headers["X-Request-ID"]) == 36

    @pytest.mark.asyncio
    async def test_request_completion_logged(self, client: AsyncClient, user_id: int):
        with capture_logs() as logs:
            await client.get(f"/api/v1/users/{user_id}/progression")

        completed = [entry for entry in logs if entry["event"] == "request_completed"]
        assert len(completed) == 1
        assert completed[0]["status_code"] == 200
        assert completed[0]["duration_ms"] >= 0


class TestXPEndpoint:
    @pytest.mark.asyncio
    async def test_grant_levels_up(self, client: AsyncClient, user_id: int):
        response = await client.post(f"/api/v1/users/{user_id}/xp", json={"amount": 710, "source": "admin"})

        assert response.status_code == 200
        data = response.json()
        assert data["granted"] is True
        assert data["total_xp"] == 710
        assert data["leveled_up"] is True
        assert (data["level_before"], data["level_after"]) == (1, 2)

    @pytest.mark.asyncio
    async def test_idempotent_grant(self, client: AsyncClient, user_id: int):
        body = {"amount": 50, "source": "badge", "idempotency_key": "api:grant:1"}
        first = await client.post(f"/api/v1/users/{user_id}/xp", json=body)
        second = await client.post(f"/api/v1/users/{user_id}/xp", json=body)

        assert first.json()["granted"] is True
        assert second.json()["granted"] is False

        progression = await client.get(f"/api/v1/users/{user_id}/progression")
        assert progression.json()["xp"] == 50

    @pytest.mark.asyncio
    async def test_zero_amount_rejected(self, client: AsyncClient, user_id: int):
        response = await client.post(f"/api/v1/users/{user_id}/xp", json={"amount": 0, "source": "admin"})
        assert response.status_code == 422


class TestProgressionEndpoint:
    @pytest.mark.asyncio
    async def test_new_user_defaults(self, client: AsyncClient, user_id: int):
        response = await client.get(f"/api/v1/users/{user_id}/progression")

        assert response.status_code == 200
        data = response.json()
        assert data["xp"] == 0
        assert data["level"] == 1
        assert data["rank"] == "Bronze"
        assert data["crate_keys"] == {}

    @pytest.mark.asyncio
    async def test_after_level_up(self, client: AsyncClient, user_id: int):
        await client.post(f"/api/v1/users/{user_id}/xp", json={"amount": 16350, "source": "admin"})

        data = (await client.get(f"/api/v1/users/{user_id}/progression")).json()
        assert data["level"] == 10
        assert data["rank"] == "Silver"
        assert data["xp_boost"] == 5
        assert data["coins"] == 5400
        assert data["crate_keys"] == {"1": 10}


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_trade_up_with_four_items_is_400(self, client: AsyncClient, user_id: int):
        response = await client.post(f"/api/v1/users/{user_id}/trade-up", json={"item_ids": [1, 2, 3, 4]})

        assert response.status_code == 400
        assert response.json()["detail"] == "Exactly 5 items are required for trade-up"
        assert response.json()["context"] == {"count": 4}

    @pytest.mark.asyncio
    async def test_unknown_achievement_is_404(self, client: AsyncClient, user_id: int):
        response = await client.get(f"/api/v1/users/{user_id}/achievements/999/progress")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_crate_is_400(self, client: AsyncClient, user_id: int):
        response = await client.post(f"/api/v1/users/{user_id}/crate-keys", json={"crate_id": 9})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_event_is_400(self, client: AsyncClient, user_id: int):
        response = await client.post("/api/v1/events", json={"user_id": user_id, "event_type": "bogus"})
        assert response.status_code == 400


class TestEventsAndMissions:
    @pytest.mark.asyncio
    async def test_event_outcome(self, client: AsyncClient, user_id: int, make_mission):
        await make_mission("daily_bet", "bets_placed", 1, xp_reward=40)

        response = await client.post(
            "/api/v1/events",
            json={"user_id": user_id, "event_type": "bet_placed", "data": {"amount": 25}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["xp_awarded"] == 50
        assert data["missions_completed"] == ["daily_bet"]

    @pytest.mark.asyncio
    async def test_mission_progress_and_reset(self, client: AsyncClient, user_id: int, make_mission):
        await make_mission("daily_bet", "bets_placed", 2)

        url = f"/api/v1/users/{user_id}/missions/progress"
        first = await client.post(url, json={"action_type": "bets_placed"})
        second = await client.post(url, json={"action_type": "bets_placed"})
        assert first.json()["completed"] == []
        assert [m["slug"] for m in second.json()["completed"]] == ["daily_bet"]

        reset = await client.post("/api/v1/missions/reset", json={"mission_type": "daily"})
        assert reset.json() == {"rows_reset": 1}

    @pytest.mark.asyncio
    async def test_crate_key_grant(self, client: AsyncClient, user_id: int):
        response = await client.post(f"/api/v1/users/{user_id}/crate-keys", json={"crate_id": 5, "count": 2})
        assert response.status_code == 200
        assert response.json() == {"crate_id": 5, "balance": 2}

    @pytest.mark.asyncio
    async def test_daily_login_twice(self, client: AsyncClient, user_id: int):
        first = await client.post(f"/api/v1/users/{user_id}/login")
        second = await client.post(f"/api/v1/users/{user_id}/login")

        assert first.json()["already_logged_in"] is False
        assert first.json()["streak"] == 1
        assert second.json()["already_logged_in"] is True

    @pytest.mark.asyncio
    async def test_rank_reward_claim(self, client: AsyncClient, user_id: int):
        first = await client.post(f"/api/v1/users/{user_id}/rank-rewards/claim")
        second = await client.post(f"/api/v1/users/{user_id}/rank-rewards/claim")

        assert first.json() == {"claimed": True, "rank": "Bronze", "coins": 50, "gems": 0}
        assert second.json()["claimed"] is False


class TestNotificationsEndpoints:
    @pytest.mark.asyncio
    async def test_list_and_read_all(self, client: AsyncClient, user_id: int):
        await client.post(f"/api/v1/users/{user_id}/xp", json={"amount": 710, "source": "admin"})

        listed = (await client.get(f"/api/v1/users/{user_id}/notifications")).json()
        types = {n["type"] for n in listed["notifications"]}
        assert "level_up" in types
        assert listed["total"] == len(listed["notifications"])

        unread = (await client.get(f"/api/v1/users/{user_id}/notifications/unread-count")).json()
        assert unread["unread_count"] == listed["total"]

        response = await client.post(f"/api/v1/users/{user_id}/notifications/read-all")
        assert response.status_code == 200

        unread = (await client.get(f"/api/v1/users/{user_id}/notifications/unread-count")).json()
        assert unread["unread_count"] == 0
