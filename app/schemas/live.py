"""
Pydantic schemas for live fixture data.
"""
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.models.fixture import FixtureStatus, TeamSide
from app.models.match_event import MatchEventType
from app.services.aggregate_projector import CardKind


class MatchEventResponse(BaseModel):
    """Response schema for a match event."""
    id: int
    fixture_id: int
    minute: int
    elapsed_seconds: int
    event_type: MatchEventType
    side: TeamSide
    team_id: int | None = None
    player_id: int | None = None
    player_name: str | None = None
    player2_id: int | None = None
    player2_name: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class MatchEventsListResponse(BaseModel):
    """Response with list of fixture events."""
    fixture_id: int
    events: list[MatchEventResponse]
    total: int


class TeamBrief(BaseModel):
    id: int
    name: str | None = None
    short_name: str | None = None


class FixtureSnapshot(BaseModel):
    """
    Everything a viewer needs to render the fixture.

    ``elapsed_seconds`` is the clock evaluated at ``generated_at``; while
    ``timer_started_at`` is set clients keep advancing it locally every
    ``clock_tick_seconds``.
    """
    id: int
    status: FixtureStatus
    home_team: TeamBrief
    away_team: TeamBrief
    home_score: int
    away_score: int
    score_diverged: bool = False
    checkpoint_seconds: int
    timer_started_at: datetime | None = None
    timer_running: bool
    elapsed_seconds: int
    minute: int
    clock_display: str
    clock_tick_seconds: float
    competition: str | None = None
    venue: str | None = None
    home_manager: str | None = None
    away_manager: str | None = None
    kickoff_at: datetime | None = None
    generated_at: datetime
    events: list[MatchEventResponse] = []


class ActiveFixtureItem(BaseModel):
    id: int
    home_team_id: int
    away_team_id: int
    home_score: int
    away_score: int
    elapsed_seconds: int
    clock_display: str


class ActiveFixturesResponse(BaseModel):
    count: int
    fixtures: list[ActiveFixtureItem]


class RosterPlayerResponse(BaseModel):
    id: int
    team_id: int | None = None
    first_name: str | None = None
    last_name: str | None = None
    full_name: str | None = None
    number: int | None = None
    position: str | None = None

    class Config:
        from_attributes = True


class RosterResponse(BaseModel):
    fixture_id: int
    side: TeamSide
    team_id: int
    players: list[RosterPlayerResponse]


class ConsistencyResponse(BaseModel):
    fixture_id: int
    home_score: int
    away_score: int
    ledger_home_goals: int
    ledger_away_goals: int
    consistent: bool
    score_diverged: bool


# ==================== Operator requests ====================


class GoalRequest(BaseModel):
    side: TeamSide
    player_id: int | None = None


class CardRequest(BaseModel):
    side: TeamSide
    kind: CardKind
    player_id: int | None = None


class SubstitutionRequest(BaseModel):
    side: TeamSide
    player_out_id: int
    player_in_id: int


class ScoreAdjustmentRequest(BaseModel):
    side: TeamSide
    delta: int = Field(..., description="Goals to add, at least 1")


class ClockAdjustRequest(BaseModel):
    delta_seconds: int = Field(..., description="e.g. 60, 300, -60")


class ClockResetRequest(BaseModel):
    confirm: bool = False


class OperatorActionResponse(BaseModel):
    """Result of an operator action: the affected event (if any) and the new fixture state."""
    fixture: FixtureSnapshot
    event: MatchEventResponse | None = None
    viewers_notified: int = 0


class WebSocketFixtureMessage(BaseModel):
    """WebSocket message carrying a fresh fixture snapshot."""
    type: Literal["fixture"] = "fixture"
    fixture_id: int
    data: FixtureSnapshot
