from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from app.api.live import get_live_match_controller
from app.main import app
from app.models import Fixture, FixtureStatus
from app.services.live_match_controller import LiveMatchController
from app.services.websocket_manager import ConnectionManager, get_websocket_manager


BASE = "/api/v1/live"


@pytest.mark.asyncio
async def test_get_fixture_snapshot(client: AsyncClient, sample_fixture):
    response = await client.get(f"{BASE}/fixtures/{sample_fixture.id}")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "scheduled"
    assert data["home_team"] == {"id": 91, "name": "Astana", "short_name": "AST"}
    assert data["away_team"]["name"] == "Kairat"
    assert (data["home_score"], data["away_score"]) == (0, 0)
    assert data["elapsed_seconds"] == 0
    assert data["clock_display"] == "0:00"
    assert data["timer_running"] is False
    assert data["venue"] == "Astana Arena"
    assert data["events"] == []


@pytest.mark.asyncio
async def test_get_missing_fixture(client: AsyncClient):
    response = await client.get(f"{BASE}/fixtures/999")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_operator_routes_require_token(client: AsyncClient, live_fixture):
    response = await client.post(f"{BASE}/fixtures/{live_fixture.id}/goals", json={"side": "home"})
    assert response.status_code == 401

    response = await client.post(
        f"{BASE}/fixtures/{live_fixture.id}/goals",
        json={"side": "home"},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_operator_routes_reject_non_operator(client: AsyncClient, live_fixture, viewer_headers):
    response = await client.post(
        f"{BASE}/fixtures/{live_fixture.id}/clock/pause",
        headers=viewer_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_match_flow(client: AsyncClient, sample_fixture, sample_players, operator_headers):
    fixture_id = sample_fixture.id

    response = await client.post(
        f"{BASE}/fixtures/{fixture_id}/goals",
        json={"side": "home", "player_id": 1},
        headers=operator_headers,
    )
    assert response.status_code == 409

    response = await client.post(f"{BASE}/fixtures/{fixture_id}/clock/start", headers=operator_headers)
    assert response.status_code == 200
    assert response.json()["fixture"]["status"] == "live"
    assert response.json()["fixture"]["timer_running"] is True

    response = await client.post(
        f"{BASE}/fixtures/{fixture_id}/goals",
        json={"side": "home", "player_id": 1},
        headers=operator_headers,
    )
    assert response.status_code == 201
    payload = response.json()
    assert payload["event"]["event_type"] == "goal"
    assert payload["event"]["player_name"] == "Marin Tomasov"
    assert payload["fixture"]["home_score"] == 1
    assert payload["viewers_notified"] == 0
    goal_id = payload["event"]["id"]

    response = await client.post(
        f"{BASE}/fixtures/{fixture_id}/cards",
        json={"side": "away", "kind": "minor", "player_id": 3},
        headers=operator_headers,
    )
    assert response.status_code == 201
    assert response.json()["event"]["event_type"] == "yellow_card"

    response = await client.post(
        f"{BASE}/fixtures/{fixture_id}/substitutions",
        json={"side": "away", "player_out_id": 3, "player_in_id": 4},
        headers=operator_headers,
    )
    assert response.status_code == 201
    assert response.json()["event"]["player2_name"] == "Jorginho"

    response = await client.get(f"{BASE}/fixtures/{fixture_id}/events", params={"order": "desc"})
    assert response.status_code == 200
    events = response.json()["events"]
    assert response.json()["total"] == 3
    assert events[-1]["id"] == goal_id

    response = await client.delete(
        f"{BASE}/fixtures/{fixture_id}/goals/{goal_id}",
        headers=operator_headers,
    )
    assert response.status_code == 200
    assert response.json()["fixture"]["home_score"] == 0
    assert response.json()["event"]["id"] == goal_id

    response = await client.post(f"{BASE}/fixtures/{fixture_id}/clock/end", headers=operator_headers)
    assert response.status_code == 200
    assert response.json()["fixture"]["status"] == "finished"
    assert response.json()["fixture"]["timer_running"] is False

    response = await client.post(f"{BASE}/fixtures/{fixture_id}/clock/pause", headers=operator_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_cancel_card_is_rejected(client: AsyncClient, live_fixture, operator_headers):
    response = await client.post(
        f"{BASE}/fixtures/{live_fixture.id}/cards",
        json={"side": "home", "kind": "major"},
        headers=operator_headers,
    )
    card_id = response.json()["event"]["id"]

    response = await client.delete(
        f"{BASE}/fixtures/100/goals/{card_id}",
        headers=operator_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_invalid_request_bodies(client: AsyncClient, live_fixture, operator_headers):
    response = await client.post(
        f"{BASE}/fixtures/{live_fixture.id}/cards",
        json={"side": "home", "kind": "green"},
        headers=operator_headers,
    )
    assert response.status_code == 422

    response = await client.post(
        f"{BASE}/fixtures/100/score-adjustments",
        json={"side": "home", "delta": 0},
        headers=operator_headers,
    )
    assert response.status_code == 422

    response = await client.post(
        f"{BASE}/fixtures/100/clock/reset",
        json={"confirm": False},
        headers=operator_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_clock_adjust_and_reset(client: AsyncClient, sample_fixture, operator_headers):
    fixture_id = sample_fixture.id

    response = await client.post(
        f"{BASE}/fixtures/{fixture_id}/clock/adjust",
        json={"delta_seconds": 300},
        headers=operator_headers,
    )
    assert response.status_code == 200
    assert response.json()["fixture"]["elapsed_seconds"] == 300
    assert response.json()["fixture"]["clock_display"] == "5:00"

    response = await client.post(
        f"{BASE}/fixtures/{fixture_id}/clock/adjust",
        json={"delta_seconds": -1000000},
        headers=operator_headers,
    )
    assert response.json()["fixture"]["elapsed_seconds"] == 0

    await client.post(
        f"{BASE}/fixtures/{fixture_id}/clock/adjust",
        json={"delta_seconds": 60},
        headers=operator_headers,
    )
    response = await client.post(
        f"{BASE}/fixtures/{fixture_id}/clock/reset",
        json={"confirm": True},
        headers=operator_headers,
    )
    assert response.status_code == 200
    assert response.json()["fixture"]["checkpoint_seconds"] == 0


@pytest.mark.asyncio
async def test_score_adjustment_and_reconcile(client: AsyncClient, live_fixture, operator_headers):
    response = await client.post(
        f"{BASE}/fixtures/{live_fixture.id}/score-adjustments",
        json={"side": "away", "delta": 2},
        headers=operator_headers,
    )
    assert response.status_code == 200
    assert response.json()["fixture"]["away_score"] == 2
    assert response.json()["fixture"]["score_diverged"] is True

    response = await client.get(f"{BASE}/fixtures/100/consistency")
    assert response.status_code == 200
    assert response.json()["consistent"] is False
    assert response.json()["ledger_away_goals"] == 0

    response = await client.post(f"{BASE}/fixtures/100/reconcile-score", headers=operator_headers)
    assert response.status_code == 200
    assert response.json()["fixture"]["away_score"] == 0
    assert response.json()["fixture"]["score_diverged"] is False


@pytest.mark.asyncio
async def test_roster_for_side(client: AsyncClient, sample_fixture, sample_players):
    response = await client.get(f"{BASE}/fixtures/{sample_fixture.id}/roster", params={"side": "home"})
    assert response.status_code == 200

    data = response.json()
    assert data["team_id"] == 91
    assert [p["id"] for p in data["players"]] == [2, 1]
    assert data["players"][1]["full_name"] == "Marin Tomasov"


@pytest.mark.asyncio
async def test_active_fixtures(client: AsyncClient, test_session, live_fixture, sample_teams):
    test_session.add(
        Fixture(id=200, home_team_id=13, away_team_id=91, status=FixtureStatus.finished)
    )
    await test_session.commit()

    response = await client.get(f"{BASE}/active-fixtures")
    assert response.status_code == 200

    data = response.json()
    assert data["count"] == 1
    assert data["fixtures"][0]["id"] == 100


@pytest.mark.asyncio
async def test_connections_count(client: AsyncClient):
    response = await client.get(f"{BASE}/connections/100")
    assert response.status_code == 200
    assert response.json() == {"fixture_id": 100, "connections": 0}


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_partial_failure_still_pushes_snapshot_to_viewers(
    client: AsyncClient, test_session, live_fixture, operator_headers
):
    controller = LiveMatchController(test_session, atomic=False)
    controller.projector.apply_goal = AsyncMock(side_effect=RuntimeError("connection reset"))
    manager = ConnectionManager()
    app.dependency_overrides[get_live_match_controller] = lambda: controller
    app.dependency_overrides[get_websocket_manager] = lambda: manager

    viewer = AsyncMock()
    await manager.connect(viewer, 100)

    response = await client.post(
        f"{BASE}/fixtures/100/goals", json={"side": "home"}, headers=operator_headers
    )

    assert response.status_code == 500
    assert "Check manually" in response.json()["detail"]

    viewer.send_json.assert_awaited_once()
    message = viewer.send_json.await_args.args[0]
    assert message["type"] == "fixture"
    assert message["fixture_id"] == 100
    assert [e["event_type"] for e in message["data"]["events"]] == ["goal"]
    assert message["data"]["home_score"] == 0
