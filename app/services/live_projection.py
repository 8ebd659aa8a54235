"""
Read side of a live fixture.

Builds the document viewers render (fixture record + event ledger + clock
reading) and pushes a fresh copy to every subscriber after a committed
operator action: directly to WebSockets held by this process, and through
the Redis bus to the other API processes.
"""
import logging
from datetime import datetime

from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import get_settings
from app.models import Fixture, Team
from app.schemas.live import FixtureSnapshot, MatchEventResponse, TeamBrief
from app.services.errors import NotFoundError
from app.services.event_ledger import EventLedger
from app.services.live_event_bus import publish_fixture_snapshot
from app.services.match_state import current_elapsed
from app.services.websocket_manager import ConnectionManager
from app.utils.clock import format_clock, minute_of, utcnow

logger = logging.getLogger(__name__)


def _team_brief(team_id: int, team: Team | None) -> TeamBrief:
    if team is None:
        return TeamBrief(id=team_id)
    return TeamBrief(id=team.id, name=team.name, short_name=team.short_name)


async def load_fixture(db: AsyncSession, fixture_id: int) -> Fixture:
    result = await db.execute(
        select(Fixture)
        .options(selectinload(Fixture.home_team), selectinload(Fixture.away_team))
        .where(Fixture.id == fixture_id)
        .execution_options(populate_existing=True)
    )
    fixture = result.scalar_one_or_none()
    if fixture is None:
        raise NotFoundError(f"Fixture {fixture_id} not found")
    return fixture


def snapshot_from_fixture(
    fixture: Fixture,
    events: list | None = None,
    now: datetime | None = None,
) -> FixtureSnapshot:
    now = now or utcnow()
    elapsed = current_elapsed(fixture, now)
    return FixtureSnapshot(
        id=fixture.id,
        status=fixture.status,
        home_team=_team_brief(fixture.home_team_id, fixture.home_team),
        away_team=_team_brief(fixture.away_team_id, fixture.away_team),
        home_score=fixture.home_score,
        away_score=fixture.away_score,
        score_diverged=fixture.score_diverged,
        checkpoint_seconds=fixture.elapsed_seconds,
        timer_started_at=fixture.timer_started_at,
        timer_running=fixture.is_running,
        elapsed_seconds=elapsed,
        minute=minute_of(elapsed),
        clock_display=format_clock(elapsed),
        clock_tick_seconds=get_settings().clock_tick_seconds,
        competition=fixture.competition,
        venue=fixture.venue,
        home_manager=fixture.home_manager,
        away_manager=fixture.away_manager,
        kickoff_at=fixture.kickoff_at,
        generated_at=now,
        events=[MatchEventResponse.model_validate(e) for e in (events or [])],
    )


async def build_fixture_snapshot(
    db: AsyncSession,
    fixture_id: int,
    now: datetime | None = None,
) -> FixtureSnapshot:
    fixture = await load_fixture(db, fixture_id)
    events = await EventLedger(db).list_events(fixture_id)
    return snapshot_from_fixture(fixture, events, now=now)


async def list_active_fixtures(db: AsyncSession) -> list[Fixture]:
    result = await db.execute(
        select(Fixture).where(Fixture.is_live).order_by(Fixture.id)
    )
    return list(result.scalars().all())


async def notify_fixture_changed(
    db: AsyncSession,
    fixture_id: int,
    manager: ConnectionManager,
) -> tuple[FixtureSnapshot, int]:
    """
    Push the current fixture document to all viewers.

    Returns the snapshot and the number of local viewers reached. A bus
    outage only costs remote viewers this update; the write is already
    committed and the next one carries the full state again.
    """
    snapshot = await build_fixture_snapshot(db, fixture_id)
    data = snapshot.model_dump(mode="json")

    sent = await manager.broadcast_fixture(fixture_id, data)
    try:
        await publish_fixture_snapshot(fixture_id, data)
    except (RedisError, OSError) as e:
        logger.warning("Failed to publish fixture %s update to live bus: %s", fixture_id, e)

    return snapshot, sent
