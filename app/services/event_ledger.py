"""
Ordered ledger of match events for a fixture.

The ledger is the source of truth for what happened and when. It only
inserts and deletes rows; score and player counters are maintained by the
aggregate projector. Nothing here commits: the caller owns the transaction.
"""
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Fixture, MatchEvent, MatchEventType, TeamSide
from app.services.errors import NotFoundError, ValidationError
from app.utils.clock import minute_of

logger = logging.getLogger(__name__)

UNKNOWN_PLAYER_NAME = "Unknown Player"

# Only goals have a compensating "cancel" path. Cards and substitutions are
# not retractable (known gap, kept on purpose).
REMOVABLE_EVENT_TYPES = {MatchEventType.goal}


def parse_side(value: TeamSide | str) -> TeamSide:
    if isinstance(value, TeamSide):
        return value
    try:
        return TeamSide(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid team '{value}': expected 'home' or 'away'")


def parse_event_type(value: MatchEventType | str) -> MatchEventType:
    if isinstance(value, MatchEventType):
        return value
    try:
        return MatchEventType(value)
    except ValueError:
        raise ValidationError(f"Invalid event type '{value}'")


class EventLedger:
    """Append/delete access to the match_events table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        fixture_id: int,
        event_type: MatchEventType | str,
        side: TeamSide | str,
        elapsed_seconds: int,
        *,
        player_id: int | None = None,
        player_name: str | None = None,
        player2_id: int | None = None,
        player2_name: str | None = None,
    ) -> MatchEvent:
        """
        Create one event.

        Raises ValidationError for an unknown fixture, an invalid kind or
        team, or a substitution without both players.
        """
        event_type = parse_event_type(event_type)
        side = parse_side(side)
        if elapsed_seconds is None or elapsed_seconds < 0:
            raise ValidationError("Event time must be a non-negative number of seconds")

        fixture = await self.db.get(Fixture, fixture_id)
        if fixture is None:
            raise ValidationError(f"Fixture {fixture_id} does not exist")

        if event_type == MatchEventType.substitution:
            if player_id is None or player2_id is None:
                raise ValidationError("Substitution requires both player out and player in")
            if player_id == player2_id:
                raise ValidationError("Player out and player in must be different players")
        elif player_id is None:
            player_name = UNKNOWN_PLAYER_NAME

        event = MatchEvent(
            fixture_id=fixture_id,
            minute=minute_of(elapsed_seconds),
            elapsed_seconds=elapsed_seconds,
            event_type=event_type,
            side=side,
            team_id=fixture.team_id_for(side),
            player_id=player_id,
            player_name=player_name,
            player2_id=player2_id,
            player2_name=player2_name,
        )
        self.db.add(event)
        await self.db.flush()

        logger.debug(
            "Ledger append: fixture=%s event=%s type=%s side=%s at=%ss",
            fixture_id,
            event.id,
            event_type.value,
            side.value,
            elapsed_seconds,
        )
        return event

    async def get(self, event_id: int) -> MatchEvent:
        event = await self.db.get(MatchEvent, event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")
        return event

    async def remove(self, event_id: int) -> MatchEvent:
        """
        Delete one event and return the removed row (still readable).

        Raises NotFoundError if absent, ValidationError for kinds that are
        not retractable.
        """
        event = await self.get(event_id)
        if event.event_type not in REMOVABLE_EVENT_TYPES:
            raise ValidationError(
                f"{event.event_type.value} events cannot be removed, only goals can be cancelled"
            )

        await self.db.delete(event)
        await self.db.flush()

        logger.debug("Ledger remove: fixture=%s event=%s", event.fixture_id, event_id)
        return event

    async def list_events(self, fixture_id: int) -> list[MatchEvent]:
        """Events ordered by clock time ascending, ties by insertion order."""
        result = await self.db.execute(
            select(MatchEvent)
            .where(MatchEvent.fixture_id == fixture_id)
            .order_by(MatchEvent.elapsed_seconds, MatchEvent.id)
        )
        return list(result.scalars().all())

    async def count_goals(self, fixture_id: int) -> dict[TeamSide, int]:
        """Goal counts per side derived from the ledger."""
        result = await self.db.execute(
            select(MatchEvent.side, func.count(MatchEvent.id))
            .where(
                MatchEvent.fixture_id == fixture_id,
                MatchEvent.event_type == MatchEventType.goal,
            )
            .group_by(MatchEvent.side)
        )
        counts = {TeamSide.home: 0, TeamSide.away: 0}
        for side, count in result.all():
            counts[TeamSide(side)] = int(count)
        return counts
