import os

# Must be set before the app (and its settings) are imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LIVE_BUS_ENABLED", "false")
os.environ.setdefault("OPERATOR_JWT_SECRET", "test-operator-secret")

import pytest
from datetime import datetime, timezone
from typing import AsyncGenerator

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.database import Base
from app.api.deps import get_db  # Import from where routes actually use it
from app.models import (
    Team, Player, PlayerSeasonStats,
    Fixture, FixtureStatus, FixtureLineup, LineupType,
)
from app.security.jwt import create_access_token


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

KICKOFF = datetime(2025, 5, 15, 18, 0, tzinfo=timezone.utc)


# Note: Using pytest-asyncio's built-in event_loop fixture (asyncio_mode = auto)


@pytest.fixture(scope="function")
async def test_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def test_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture(scope="function")
async def client(test_session) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database dependency."""

    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def operator_headers() -> dict[str, str]:
    token = create_access_token(subject="1", role="operator")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def viewer_headers() -> dict[str, str]:
    token = create_access_token(subject="2", role="viewer")
    return {"Authorization": f"Bearer {token}"}


# --- Data Fixtures ---

@pytest.fixture
async def sample_teams(test_session) -> list[Team]:
    """Create home and away teams."""
    teams = [
        Team(id=91, name="Astana", short_name="AST", city="Astana"),
        Team(id=13, name="Kairat", short_name="KAI", city="Almaty"),
    ]
    test_session.add_all(teams)
    await test_session.commit()
    for team in teams:
        await test_session.refresh(team)
    return teams


@pytest.fixture
async def sample_players(test_session, sample_teams) -> list[Player]:
    """Two home players and two away players."""
    home, away = sample_teams
    players = [
        Player(id=1, team_id=home.id, first_name="Marin", last_name="Tomasov", number=10),
        Player(id=2, team_id=home.id, first_name="Abat", last_name="Aimbetov", number=9),
        Player(id=3, team_id=away.id, first_name="Dastan", last_name="Satpaev", number=7),
        Player(id=4, team_id=away.id, first_name="Jorginho", last_name=None, number=11),
    ]
    test_session.add_all(players)
    await test_session.commit()
    for player in players:
        await test_session.refresh(player)
    return players


@pytest.fixture
async def sample_fixture(test_session, sample_teams) -> Fixture:
    """A scheduled 0-0 fixture with the clock at zero."""
    home, away = sample_teams
    fixture = Fixture(
        id=100,
        home_team_id=home.id,
        away_team_id=away.id,
        home_score=0,
        away_score=0,
        status=FixtureStatus.scheduled,
        elapsed_seconds=0,
        competition="Premier League",
        venue="Astana Arena",
        kickoff_at=KICKOFF,
    )
    test_session.add(fixture)
    await test_session.commit()
    await test_session.refresh(fixture)
    return fixture


@pytest.fixture
async def live_fixture(test_session, sample_fixture) -> Fixture:
    """The sample fixture, live with the clock running since kick-off."""
    sample_fixture.status = FixtureStatus.live
    sample_fixture.timer_started_at = KICKOFF
    await test_session.commit()
    await test_session.refresh(sample_fixture)
    return sample_fixture


@pytest.fixture
async def sample_lineup(test_session, sample_fixture, sample_players) -> list[FixtureLineup]:
    """Home lineup: player 1 starts, player 2 on the bench."""
    entries = [
        FixtureLineup(
            fixture_id=sample_fixture.id,
            team_id=sample_fixture.home_team_id,
            player_id=1,
            lineup_type=LineupType.starter,
            shirt_number=10,
        ),
        FixtureLineup(
            fixture_id=sample_fixture.id,
            team_id=sample_fixture.home_team_id,
            player_id=2,
            lineup_type=LineupType.substitute,
            shirt_number=9,
        ),
    ]
    test_session.add_all(entries)
    await test_session.commit()
    return entries


@pytest.fixture
async def scorer_stats(test_session, sample_players) -> PlayerSeasonStats:
    """Existing season counters for player 1."""
    stats = PlayerSeasonStats(player_id=1, goals=4, yellow_cards=1, red_cards=0)
    test_session.add(stats)
    await test_session.commit()
    await test_session.refresh(stats)
    return stats
