"""
Fixture lifecycle and clock transitions.

    scheduled --start--> live --end--> finished
                          ^               |
                          +----start------+   (reopen after a premature end)

While live the clock is either running (``timer_started_at`` set) or
paused. Writing the clock always folds the time run so far into the
checkpoint first, so nothing is counted twice.
"""
import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Fixture, FixtureStatus
from app.services.errors import InvalidStateTransition, NotFoundError, ValidationError
from app.utils.clock import elapsed_now, utcnow

logger = logging.getLogger(__name__)


def current_elapsed(fixture: Fixture, now: datetime | None = None) -> int:
    return elapsed_now(
        fixture.elapsed_seconds,
        fixture.timer_started_at,
        fixture.status == FixtureStatus.live,
        now=now,
    )


class MatchStateMachine:
    """Status and clock checkpoint writes for one fixture row."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load(self, fixture_id: int) -> Fixture:
        result = await self.db.execute(
            select(Fixture)
            .where(Fixture.id == fixture_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        fixture = result.scalar_one_or_none()
        if fixture is None:
            raise NotFoundError(f"Fixture {fixture_id} not found")
        return fixture

    def _freeze(self, fixture: Fixture, now: datetime) -> None:
        fixture.elapsed_seconds = current_elapsed(fixture, now)
        fixture.timer_started_at = None

    async def start(self, fixture_id: int, now: datetime | None = None) -> Fixture:
        """Start, resume, or reopen a finished fixture. No-op if already running."""
        now = now or utcnow()
        fixture = await self.load(fixture_id)

        if fixture.is_running:
            return fixture

        reopened = fixture.status == FixtureStatus.finished
        fixture.status = FixtureStatus.live
        fixture.timer_started_at = now
        await self.db.flush()

        logger.info(
            "Fixture %s clock %s at %ss",
            fixture_id,
            "reopened" if reopened else "started",
            fixture.elapsed_seconds,
        )
        return fixture

    async def pause(self, fixture_id: int, now: datetime | None = None) -> Fixture:
        """Freeze the clock. No-op if live and already paused."""
        now = now or utcnow()
        fixture = await self.load(fixture_id)

        if fixture.status != FixtureStatus.live:
            raise InvalidStateTransition(
                f"Cannot pause fixture {fixture_id}: status is {fixture.status.value}"
            )
        if fixture.timer_started_at is None:
            return fixture

        self._freeze(fixture, now)
        await self.db.flush()
        logger.info("Fixture %s clock paused at %ss", fixture_id, fixture.elapsed_seconds)
        return fixture

    async def end(self, fixture_id: int, now: datetime | None = None) -> Fixture:
        now = now or utcnow()
        fixture = await self.load(fixture_id)

        if fixture.status != FixtureStatus.live:
            raise InvalidStateTransition(
                f"Cannot end fixture {fixture_id}: status is {fixture.status.value}"
            )

        if fixture.timer_started_at is not None:
            self._freeze(fixture, now)
        fixture.status = FixtureStatus.finished
        await self.db.flush()
        logger.info("Fixture %s finished at %ss", fixture_id, fixture.elapsed_seconds)
        return fixture

    async def adjust_checkpoint(
        self, fixture_id: int, delta_seconds: int, now: datetime | None = None
    ) -> Fixture:
        """Shift the clock by ``delta_seconds`` (may be negative), floored at zero."""
        if not isinstance(delta_seconds, int) or isinstance(delta_seconds, bool):
            raise ValidationError("Clock adjustment must be a whole number of seconds")

        now = now or utcnow()
        fixture = await self.load(fixture_id)

        running = fixture.is_running
        base = current_elapsed(fixture, now)
        fixture.elapsed_seconds = max(0, base + delta_seconds)
        if running:
            fixture.timer_started_at = now
        await self.db.flush()
        return fixture

    async def reset_checkpoint(
        self, fixture_id: int, confirm: bool = False, now: datetime | None = None
    ) -> Fixture:
        if not confirm:
            raise ValidationError("Resetting the clock must be explicitly confirmed")

        now = now or utcnow()
        fixture = await self.load(fixture_id)

        fixture.elapsed_seconds = 0
        if fixture.is_running:
            fixture.timer_started_at = now
        await self.db.flush()
        logger.info("Fixture %s clock reset", fixture_id)
        return fixture
