from app.models.team import Team
from app.models.player import Player
from app.models.player_season_stats import PlayerSeasonStats
from app.models.fixture import Fixture, FixtureStatus, TeamSide
from app.models.match_event import MatchEvent, MatchEventType
from app.models.fixture_lineup import FixtureLineup, LineupType

__all__ = [
    "Team",
    "Player",
    "PlayerSeasonStats",
    "Fixture",
    "FixtureStatus",
    "TeamSide",
    "MatchEvent",
    "MatchEventType",
    "FixtureLineup",
    "LineupType",
]
