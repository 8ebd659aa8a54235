"""
API endpoints for live fixtures: viewer reads, operator controls and the
WebSocket feed.
"""
import logging
from collections.abc import Awaitable
from typing import Literal, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, require_operator
from app.models import MatchEvent, TeamSide
from app.schemas.live import (
    ActiveFixtureItem,
    ActiveFixturesResponse,
    CardRequest,
    ClockAdjustRequest,
    ClockResetRequest,
    ConsistencyResponse,
    FixtureSnapshot,
    GoalRequest,
    MatchEventResponse,
    MatchEventsListResponse,
    OperatorActionResponse,
    RosterPlayerResponse,
    RosterResponse,
    ScoreAdjustmentRequest,
    SubstitutionRequest,
    WebSocketFixtureMessage,
)
from app.services.errors import (
    InvalidStateTransition,
    LiveMatchError,
    NotFoundError,
    PartialFailure,
    ValidationError,
)
from app.services.event_ledger import EventLedger
from app.services.live_match_controller import LiveMatchController
from app.services.live_projection import (
    build_fixture_snapshot,
    list_active_fixtures,
    load_fixture,
    notify_fixture_changed,
)
from app.services.match_state import current_elapsed
from app.services.roster import RosterService
from app.services.websocket_manager import ConnectionManager, get_websocket_manager
from app.utils.clock import format_clock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/live", tags=["live"])

T = TypeVar("T")

ERROR_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    InvalidStateTransition: 409,
    PartialFailure: 500,
}


def _http_error(exc: LiveMatchError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)
    return HTTPException(status_code=400, detail=exc.message)


async def _perform(action: Awaitable[T]) -> T:
    try:
        return await action
    except LiveMatchError as exc:
        raise _http_error(exc) from exc


async def _operator_action(
    db: AsyncSession,
    fixture_id: int,
    manager: ConnectionManager,
    action: Awaitable[T],
) -> T:
    try:
        return await action
    except PartialFailure as exc:
        # The ledger step is committed; viewers still get the new state.
        await notify_fixture_changed(db, fixture_id, manager)
        raise _http_error(exc) from exc
    except LiveMatchError as exc:
        raise _http_error(exc) from exc


def get_live_match_controller(db: AsyncSession = Depends(get_db)) -> LiveMatchController:
    """Dependency to get LiveMatchController instance."""
    return LiveMatchController(db)


async def _action_response(
    db: AsyncSession,
    fixture_id: int,
    manager: ConnectionManager,
    event: MatchEvent | None = None,
) -> OperatorActionResponse:
    snapshot, sent = await _perform(notify_fixture_changed(db, fixture_id, manager))
    return OperatorActionResponse(
        fixture=snapshot,
        event=MatchEventResponse.model_validate(event) if event is not None else None,
        viewers_notified=sent,
    )


# ==================== Viewer endpoints ====================


@router.get("/fixtures/{fixture_id}", response_model=FixtureSnapshot)
async def get_fixture(fixture_id: int, db: AsyncSession = Depends(get_db)):
    """
    Get the full fixture document: score, status, clock reading and events.
    """
    return await _perform(build_fixture_snapshot(db, fixture_id))


@router.get("/fixtures/{fixture_id}/events", response_model=MatchEventsListResponse)
async def get_fixture_events(
    fixture_id: int,
    order: Literal["asc", "desc"] = Query(default="asc", description="asc = kick-off first, desc = latest first"),
    db: AsyncSession = Depends(get_db),
):
    """
    Get the event ledger of a fixture.
    """
    await _perform(load_fixture(db, fixture_id))
    events = await EventLedger(db).list_events(fixture_id)
    if order == "desc":
        events.reverse()
    return MatchEventsListResponse(
        fixture_id=fixture_id,
        events=[MatchEventResponse.model_validate(e) for e in events],
        total=len(events),
    )


@router.get("/fixtures/{fixture_id}/roster", response_model=RosterResponse)
async def get_fixture_roster(
    fixture_id: int,
    side: TeamSide = Query(..., description="home or away"),
    db: AsyncSession = Depends(get_db),
):
    """
    Players eligible for goal/card/substitution pickers.
    """
    fixture = await _perform(load_fixture(db, fixture_id))
    team_id = fixture.team_id_for(side)
    players = await RosterService(db).list_team_players(team_id)
    return RosterResponse(
        fixture_id=fixture_id,
        side=side,
        team_id=team_id,
        players=[RosterPlayerResponse.model_validate(p) for p in players],
    )


@router.get("/fixtures/{fixture_id}/consistency", response_model=ConsistencyResponse)
async def get_fixture_consistency(
    fixture_id: int,
    controller: LiveMatchController = Depends(get_live_match_controller),
):
    """
    Compare the cached score with goal counts derived from the ledger.
    """
    report = await _perform(controller.check_consistency(fixture_id))
    return ConsistencyResponse(**report)


@router.get("/active-fixtures", response_model=ActiveFixturesResponse)
async def get_active_fixtures(db: AsyncSession = Depends(get_db)):
    """
    Get list of currently live fixtures.
    """
    fixtures = await list_active_fixtures(db)
    items = []
    for f in fixtures:
        elapsed = current_elapsed(f)
        items.append(
            ActiveFixtureItem(
                id=f.id,
                home_team_id=f.home_team_id,
                away_team_id=f.away_team_id,
                home_score=f.home_score,
                away_score=f.away_score,
                elapsed_seconds=elapsed,
                clock_display=format_clock(elapsed),
            )
        )
    return ActiveFixturesResponse(count=len(items), fixtures=items)


@router.get("/connections/{fixture_id}")
async def get_websocket_connections(
    fixture_id: int,
    manager: ConnectionManager = Depends(get_websocket_manager),
):
    """
    Get number of WebSocket connections for a fixture.
    """
    return {
        "fixture_id": fixture_id,
        "connections": manager.get_connection_count(fixture_id),
    }


# ==================== Operator endpoints ====================


@router.post(
    "/fixtures/{fixture_id}/goals",
    response_model=OperatorActionResponse,
    status_code=201,
    dependencies=[Depends(require_operator)],
)
async def record_goal(
    fixture_id: int,
    body: GoalRequest,
    db: AsyncSession = Depends(get_db),
    controller: LiveMatchController = Depends(get_live_match_controller),
    manager: ConnectionManager = Depends(get_websocket_manager),
):
    """
    Record a goal: ledger entry, score +1 and scorer's season goals +1.
    """
    event = await _operator_action(
        db, fixture_id, manager,
        controller.record_goal(fixture_id, body.side, body.player_id),
    )
    return await _action_response(db, fixture_id, manager, event)


@router.delete(
    "/fixtures/{fixture_id}/goals/{event_id}",
    response_model=OperatorActionResponse,
    dependencies=[Depends(require_operator)],
)
async def cancel_goal(
    fixture_id: int,
    event_id: int,
    db: AsyncSession = Depends(get_db),
    controller: LiveMatchController = Depends(get_live_match_controller),
    manager: ConnectionManager = Depends(get_websocket_manager),
):
    """
    Cancel a goal: remove the ledger entry and reverse score and scorer tally.
    """
    event = await _operator_action(
        db, fixture_id, manager,
        controller.cancel_goal(fixture_id, event_id),
    )
    return await _action_response(db, fixture_id, manager, event)


@router.post(
    "/fixtures/{fixture_id}/cards",
    response_model=OperatorActionResponse,
    status_code=201,
    dependencies=[Depends(require_operator)],
)
async def record_card(
    fixture_id: int,
    body: CardRequest,
    db: AsyncSession = Depends(get_db),
    controller: LiveMatchController = Depends(get_live_match_controller),
    manager: ConnectionManager = Depends(get_websocket_manager),
):
    """
    Record a minor (yellow) or major (red) caution.
    """
    event = await _operator_action(
        db, fixture_id, manager,
        controller.record_card(fixture_id, body.side, body.kind, body.player_id),
    )
    return await _action_response(db, fixture_id, manager, event)


@router.post(
    "/fixtures/{fixture_id}/substitutions",
    response_model=OperatorActionResponse,
    status_code=201,
    dependencies=[Depends(require_operator)],
)
async def record_substitution(
    fixture_id: int,
    body: SubstitutionRequest,
    db: AsyncSession = Depends(get_db),
    controller: LiveMatchController = Depends(get_live_match_controller),
    manager: ConnectionManager = Depends(get_websocket_manager),
):
    """
    Record a substitution and update the team lineup if one was submitted.
    """
    event = await _operator_action(
        db, fixture_id, manager,
        controller.record_substitution(fixture_id, body.side, body.player_out_id, body.player_in_id),
    )
    return await _action_response(db, fixture_id, manager, event)


@router.post(
    "/fixtures/{fixture_id}/score-adjustments",
    response_model=OperatorActionResponse,
    dependencies=[Depends(require_operator)],
)
async def adjust_score(
    fixture_id: int,
    body: ScoreAdjustmentRequest,
    db: AsyncSession = Depends(get_db),
    controller: LiveMatchController = Depends(get_live_match_controller),
    manager: ConnectionManager = Depends(get_websocket_manager),
):
    """
    Change the score without a ledger entry. Flags the fixture as diverged.
    """
    await _operator_action(
        db, fixture_id, manager,
        controller.adjust_score_directly(fixture_id, body.side, body.delta),
    )
    return await _action_response(db, fixture_id, manager)


@router.post(
    "/fixtures/{fixture_id}/reconcile-score",
    response_model=OperatorActionResponse,
    dependencies=[Depends(require_operator)],
)
async def reconcile_score(
    fixture_id: int,
    db: AsyncSession = Depends(get_db),
    controller: LiveMatchController = Depends(get_live_match_controller),
    manager: ConnectionManager = Depends(get_websocket_manager),
):
    """
    Recompute the score from the ledger and clear the divergence flag.
    """
    await _operator_action(db, fixture_id, manager, controller.reconcile_score(fixture_id))
    return await _action_response(db, fixture_id, manager)


@router.post(
    "/fixtures/{fixture_id}/clock/start",
    response_model=OperatorActionResponse,
    dependencies=[Depends(require_operator)],
)
async def start_clock(
    fixture_id: int,
    db: AsyncSession = Depends(get_db),
    controller: LiveMatchController = Depends(get_live_match_controller),
    manager: ConnectionManager = Depends(get_websocket_manager),
):
    """
    Kick off or resume. On a finished fixture this reopens it.
    """
    await _operator_action(db, fixture_id, manager, controller.start(fixture_id))
    return await _action_response(db, fixture_id, manager)


@router.post(
    "/fixtures/{fixture_id}/clock/pause",
    response_model=OperatorActionResponse,
    dependencies=[Depends(require_operator)],
)
async def pause_clock(
    fixture_id: int,
    db: AsyncSession = Depends(get_db),
    controller: LiveMatchController = Depends(get_live_match_controller),
    manager: ConnectionManager = Depends(get_websocket_manager),
):
    await _operator_action(db, fixture_id, manager, controller.pause(fixture_id))
    return await _action_response(db, fixture_id, manager)


@router.post(
    "/fixtures/{fixture_id}/clock/end",
    response_model=OperatorActionResponse,
    dependencies=[Depends(require_operator)],
)
async def end_match(
    fixture_id: int,
    db: AsyncSession = Depends(get_db),
    controller: LiveMatchController = Depends(get_live_match_controller),
    manager: ConnectionManager = Depends(get_websocket_manager),
):
    """
    Final whistle: freezes the clock and marks the fixture finished.
    """
    await _operator_action(db, fixture_id, manager, controller.end(fixture_id))
    return await _action_response(db, fixture_id, manager)


@router.post(
    "/fixtures/{fixture_id}/clock/adjust",
    response_model=OperatorActionResponse,
    dependencies=[Depends(require_operator)],
)
async def adjust_clock(
    fixture_id: int,
    body: ClockAdjustRequest,
    db: AsyncSession = Depends(get_db),
    controller: LiveMatchController = Depends(get_live_match_controller),
    manager: ConnectionManager = Depends(get_websocket_manager),
):
    """
    Shift the clock, e.g. +60 / +300 / -60 seconds. Never goes below zero.
    """
    await _operator_action(
        db, fixture_id, manager,
        controller.adjust_checkpoint(fixture_id, body.delta_seconds),
    )
    return await _action_response(db, fixture_id, manager)


@router.post(
    "/fixtures/{fixture_id}/clock/reset",
    response_model=OperatorActionResponse,
    dependencies=[Depends(require_operator)],
)
async def reset_clock(
    fixture_id: int,
    body: ClockResetRequest,
    db: AsyncSession = Depends(get_db),
    controller: LiveMatchController = Depends(get_live_match_controller),
    manager: ConnectionManager = Depends(get_websocket_manager),
):
    """
    Reset the clock to 0:00. Requires ``confirm: true``.
    """
    await _operator_action(
        db, fixture_id, manager,
        controller.reset_checkpoint(fixture_id, confirm=body.confirm),
    )
    return await _action_response(db, fixture_id, manager)


# ==================== WebSocket Endpoint ====================


@router.websocket("/ws/{fixture_id}")
async def fixture_websocket(
    websocket: WebSocket,
    fixture_id: int,
    db: AsyncSession = Depends(get_db),
    manager: ConnectionManager = Depends(get_websocket_manager),
):
    """
    WebSocket endpoint for live fixture updates.

    Messages sent:
    - {"type": "connected", "fixture_id": ...} - Connection confirmation
    - {"type": "fixture", "fixture_id": ..., "data": {...}} - Full fixture snapshot,
      once on connect and again after every operator action
    - {"type": "error", "fixture_id": ..., "detail": ...} - Unknown fixture; the socket is then closed
    - {"type": "pong"} - Reply to "ping"
    """
    await manager.connect(websocket, fixture_id)

    try:
        await websocket.send_json({
            "type": "connected",
            "fixture_id": fixture_id,
            "message": "Connected to live updates",
        })

        try:
            snapshot = await build_fixture_snapshot(db, fixture_id)
        except NotFoundError as exc:
            await db.commit()
            await websocket.send_json({"type": "error", "fixture_id": fixture_id, "detail": exc.message})
            await manager.disconnect(websocket, fixture_id)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        message = WebSocketFixtureMessage(fixture_id=fixture_id, data=snapshot)
        await websocket.send_json(message.model_dump(mode="json"))
        # Release the connection; the socket may stay open for hours.
        await db.commit()

        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_json({"type": "pong"})

    except WebSocketDisconnect:
        await manager.disconnect(websocket, fixture_id)
    except Exception as e:
        logger.error("WebSocket error for fixture %s: %s", fixture_id, e)
        await manager.disconnect(websocket, fixture_id)
