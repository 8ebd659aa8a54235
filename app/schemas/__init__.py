from app.schemas.live import (
    MatchEventResponse,
    MatchEventsListResponse,
    FixtureSnapshot,
    ActiveFixturesResponse,
    RosterResponse,
    ConsistencyResponse,
    OperatorActionResponse,
)

__all__ = [
    "MatchEventResponse",
    "MatchEventsListResponse",
    "FixtureSnapshot",
    "ActiveFixturesResponse",
    "RosterResponse",
    "ConsistencyResponse",
    "OperatorActionResponse",
]
