"""
Operator-facing live match actions.

Each action is one logical unit: the ledger change always happens before
the aggregate change. With ``live_atomic_writes`` enabled both halves share
one transaction, so a failure leaves nothing behind. Without it the ledger
half is committed on its own and a failing aggregate half is reported as
PartialFailure instead of being rolled back or retried.
"""
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models import Fixture, FixtureStatus, MatchEvent, MatchEventType, TeamSide
from app.services.aggregate_projector import AggregateProjector, CardKind, parse_card_kind
from app.services.errors import (
    InvalidStateTransition,
    NotFoundError,
    PartialFailure,
    ValidationError,
)
from app.services.event_ledger import EventLedger, parse_side
from app.services.lineup import LineupService
from app.services.match_state import MatchStateMachine, current_elapsed
from app.services.roster import RosterService, player_display_name
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

CARD_EVENT_TYPE = {
    CardKind.minor: MatchEventType.yellow_card,
    CardKind.major: MatchEventType.red_card,
}


class LiveMatchController:
    """Score, clock, card and substitution controls for one fixture at a time."""

    def __init__(self, db: AsyncSession, *, atomic: bool | None = None):
        self.db = db
        self.atomic = get_settings().live_atomic_writes if atomic is None else atomic
        self.ledger = EventLedger(db)
        self.projector = AggregateProjector(db)
        self.state = MatchStateMachine(db)
        self.roster = RosterService(db)
        self.lineup = LineupService(db)

    # ==================== Unit of work ====================

    async def _first_step(self, step: Callable[[], Awaitable[T]]) -> T:
        """Validation + ledger half. Committed alone only in non-atomic mode."""
        try:
            result = await step()
            if not self.atomic:
                await self.db.commit()
            return result
        except Exception:
            await self.db.rollback()
            raise

    async def _second_step(
        self,
        step: Callable[[], Awaitable[T]],
        *,
        fixture_id: int,
        completed_step: str,
        failed_step: str,
        message: str,
        event_id: int | None = None,
    ) -> T:
        """Aggregate half, then commit everything still pending."""
        try:
            result = await step()
            await self.db.commit()
            return result
        except Exception as exc:
            await self.db.rollback()
            if self.atomic:
                raise
            logger.error(
                "Partial failure on fixture %s (%s done, %s failed): %s",
                fixture_id,
                completed_step,
                failed_step,
                exc,
            )
            raise PartialFailure(
                message,
                fixture_id=fixture_id,
                completed_step=completed_step,
                failed_step=failed_step,
                event_id=event_id,
            ) from exc

    async def _single_step(self, step: Callable[[], Awaitable[T]]) -> T:
        try:
            result = await step()
            await self.db.commit()
            return result
        except Exception:
            await self.db.rollback()
            raise

    # ==================== Helpers ====================

    async def _get_fixture(self, fixture_id: int) -> Fixture:
        fixture = await self.db.get(Fixture, fixture_id, populate_existing=True)
        if fixture is None:
            raise NotFoundError(f"Fixture {fixture_id} not found")
        return fixture

    async def _get_live_fixture(self, fixture_id: int, action: str) -> Fixture:
        fixture = await self._get_fixture(fixture_id)
        if fixture.status != FixtureStatus.live:
            raise InvalidStateTransition(
                f"Cannot {action} on fixture {fixture_id}: status is {fixture.status.value}"
            )
        return fixture

    async def _player_name(self, fixture: Fixture, side: TeamSide, player_id: int | None) -> str | None:
        if player_id is None:
            return None
        player = await self.roster.resolve_for_side(fixture, side, player_id)
        return player_display_name(player)

    # ==================== Goals ====================

    async def record_goal(
        self,
        fixture_id: int,
        side: TeamSide | str,
        player_id: int | None = None,
        now: datetime | None = None,
    ) -> MatchEvent:
        side = parse_side(side)
        now = now or utcnow()

        async def append() -> MatchEvent:
            fixture = await self._get_live_fixture(fixture_id, "record a goal")
            player_name = await self._player_name(fixture, side, player_id)
            return await self.ledger.append(
                fixture_id,
                MatchEventType.goal,
                side,
                current_elapsed(fixture, now),
                player_id=player_id,
                player_name=player_name,
            )

        event = await self._first_step(append)
        fixture = await self._second_step(
            lambda: self.projector.apply_goal(fixture_id, side, player_id),
            fixture_id=fixture_id,
            completed_step="ledger_append",
            failed_step="score_update",
            message="Goal recorded but score not updated. Check manually",
            event_id=event.id,
        )
        logger.info(
            "Goal recorded: fixture=%s side=%s player=%s minute=%s score=%s-%s",
            fixture_id,
            side.value,
            player_id,
            event.minute,
            fixture.home_score,
            fixture.away_score,
        )
        return event

    async def cancel_goal(self, fixture_id: int, event_id: int) -> MatchEvent:
        """Remove a goal and reverse its score and scorer effects."""

        async def remove() -> MatchEvent:
            fixture = await self._get_fixture(fixture_id)
            if fixture.status == FixtureStatus.scheduled:
                raise InvalidStateTransition(
                    f"Cannot cancel a goal on fixture {fixture_id}: match has not started"
                )
            event = await self.ledger.get(event_id)
            if event.fixture_id != fixture_id:
                raise NotFoundError(f"Event {event_id} not found for fixture {fixture_id}")
            if event.event_type != MatchEventType.goal:
                raise ValidationError(f"Event {event_id} is not a goal")
            return await self.ledger.remove(event_id)

        removed = await self._first_step(remove)
        # Attribution comes from the stored event, not re-derived.
        side = removed.side
        player_id = removed.player_id

        fixture = await self._second_step(
            lambda: self.projector.revert_goal(fixture_id, side, player_id),
            fixture_id=fixture_id,
            completed_step="ledger_remove",
            failed_step="score_revert",
            message="Goal removed but score not reverted. Check manually",
            event_id=event_id,
        )
        logger.info(
            "Goal cancelled: fixture=%s event=%s side=%s player=%s score=%s-%s",
            fixture_id,
            event_id,
            side.value,
            player_id,
            fixture.home_score,
            fixture.away_score,
        )
        return removed

    # ==================== Cards & substitutions ====================

    async def record_card(
        self,
        fixture_id: int,
        side: TeamSide | str,
        kind: CardKind | str,
        player_id: int | None = None,
        now: datetime | None = None,
    ) -> MatchEvent:
        side = parse_side(side)
        kind = parse_card_kind(kind)
        now = now or utcnow()

        async def append() -> MatchEvent:
            fixture = await self._get_live_fixture(fixture_id, "record a card")
            player_name = await self._player_name(fixture, side, player_id)
            return await self.ledger.append(
                fixture_id,
                CARD_EVENT_TYPE[kind],
                side,
                current_elapsed(fixture, now),
                player_id=player_id,
                player_name=player_name,
            )

        event = await self._first_step(append)
        await self._second_step(
            lambda: self.projector.apply_card(player_id, kind),
            fixture_id=fixture_id,
            completed_step="ledger_append",
            failed_step="player_stats_update",
            message="Card recorded but player statistics not updated. Check manually",
            event_id=event.id,
        )
        logger.info(
            "Card recorded: fixture=%s side=%s kind=%s player=%s minute=%s",
            fixture_id,
            side.value,
            kind.value,
            player_id,
            event.minute,
        )
        return event

    async def record_substitution(
        self,
        fixture_id: int,
        side: TeamSide | str,
        player_out_id: int,
        player_in_id: int,
        now: datetime | None = None,
    ) -> MatchEvent:
        side = parse_side(side)
        now = now or utcnow()

        async def append() -> MatchEvent:
            fixture = await self._get_live_fixture(fixture_id, "record a substitution")
            if player_out_id is None or player_in_id is None:
                raise ValidationError("Substitution requires both player out and player in")
            out_name = await self._player_name(fixture, side, player_out_id)
            in_name = await self._player_name(fixture, side, player_in_id)
            event = await self.ledger.append(
                fixture_id,
                MatchEventType.substitution,
                side,
                current_elapsed(fixture, now),
                player_id=player_out_id,
                player_name=out_name,
                player2_id=player_in_id,
                player2_name=in_name,
            )
            await self.lineup.apply_substitution(
                fixture_id, fixture.team_id_for(side), player_out_id, player_in_id, now=now
            )
            return event

        event = await self._single_step(append)
        logger.info(
            "Substitution recorded: fixture=%s side=%s out=%s in=%s minute=%s",
            fixture_id,
            side.value,
            player_out_id,
            player_in_id,
            event.minute,
        )
        return event

    # ==================== Score maintenance ====================

    async def adjust_score_directly(self, fixture_id: int, side: TeamSide | str, delta: int) -> Fixture:
        """
        Raise the score with no ledger entry and no player attribution.

        Only positive deltas: a goal is taken back through ``cancel_goal``.
        The fixture is flagged ``score_diverged`` until reconciled.
        """
        side = parse_side(side)
        if not isinstance(delta, int) or isinstance(delta, bool) or delta <= 0:
            raise ValidationError(
                "Score adjustment must be a positive whole number. Cancel the goal to lower the score"
            )

        async def adjust() -> Fixture:
            await self._get_fixture(fixture_id)
            return await self.projector.adjust_score(fixture_id, side, delta)

        return await self._single_step(adjust)

    async def reconcile_score(self, fixture_id: int) -> Fixture:
        """Rebuild the cached score from the ledger and clear the divergence flag."""

        async def reconcile() -> Fixture:
            await self._get_fixture(fixture_id)
            counts = await self.ledger.count_goals(fixture_id)
            return await self.projector.reconcile_score(fixture_id, counts)

        fixture = await self._single_step(reconcile)
        logger.info(
            "Score reconciled from ledger: fixture=%s score=%s-%s",
            fixture_id,
            fixture.home_score,
            fixture.away_score,
        )
        return fixture

    async def check_consistency(self, fixture_id: int) -> dict[str, Any]:
        """Compare cached score with ledger-derived goal counts. Read-only."""
        fixture = await self._get_fixture(fixture_id)
        counts = await self.ledger.count_goals(fixture_id)
        consistent = (
            fixture.home_score == counts[TeamSide.home]
            and fixture.away_score == counts[TeamSide.away]
        )
        return {
            "fixture_id": fixture_id,
            "home_score": fixture.home_score,
            "away_score": fixture.away_score,
            "ledger_home_goals": counts[TeamSide.home],
            "ledger_away_goals": counts[TeamSide.away],
            "consistent": consistent,
            "score_diverged": fixture.score_diverged,
        }

    # ==================== Clock ====================

    async def start(self, fixture_id: int, now: datetime | None = None) -> Fixture:
        return await self._single_step(lambda: self.state.start(fixture_id, now=now))

    async def pause(self, fixture_id: int, now: datetime | None = None) -> Fixture:
        return await self._single_step(lambda: self.state.pause(fixture_id, now=now))

    async def end(self, fixture_id: int, now: datetime | None = None) -> Fixture:
        return await self._single_step(lambda: self.state.end(fixture_id, now=now))

    async def adjust_checkpoint(
        self, fixture_id: int, delta_seconds: int, now: datetime | None = None
    ) -> Fixture:
        return await self._single_step(
            lambda: self.state.adjust_checkpoint(fixture_id, delta_seconds, now=now)
        )

    async def reset_checkpoint(
        self, fixture_id: int, confirm: bool = False, now: datetime | None = None
    ) -> Fixture:
        return await self._single_step(
            lambda: self.state.reset_checkpoint(fixture_id, confirm=confirm, now=now)
        )
