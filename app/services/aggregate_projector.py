"""
Keeps derived figures in step with the event ledger.

The fixture score and the per-player season counters are a materialized
view over the ledger. This module is the only writer of those fields.
Every decrement is floored at zero so duplicate or out-of-order
compensations can never drive a counter negative.
"""
import enum
import logging

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Fixture, PlayerSeasonStats, TeamSide
from app.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class CardKind(str, enum.Enum):
    """Caution severity as chosen by the operator."""
    minor = "minor"  # yellow
    major = "major"  # red


CARD_STAT_FIELD = {
    CardKind.minor: "yellow_cards",
    CardKind.major: "red_cards",
}


def parse_card_kind(value: CardKind | str) -> CardKind:
    if isinstance(value, CardKind):
        return value
    try:
        return CardKind(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid card kind '{value}': expected 'minor' or 'major'")


class AggregateProjector:
    """Incremental maintenance of fixture scores and player season stats."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _lock_fixture(self, fixture_id: int) -> Fixture:
        # Row lock serializes concurrent score writes on stores that support it.
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

    async def _select_stats(self, player_id: int) -> PlayerSeasonStats | None:
        result = await self.db.execute(
            select(PlayerSeasonStats)
            .where(PlayerSeasonStats.player_id == player_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def _get_player_stats(self, player_id: int, create: bool) -> PlayerSeasonStats | None:
        stats = await self._select_stats(player_id)
        if stats is None and create:
            # A concurrent first goal may have inserted the row already.
            insert = sqlite_insert if self.db.get_bind().dialect.name == "sqlite" else pg_insert
            await self.db.execute(
                insert(PlayerSeasonStats)
                .values(player_id=player_id, goals=0, yellow_cards=0, red_cards=0)
                .on_conflict_do_nothing(index_elements=["player_id"])
            )
            stats = await self._select_stats(player_id)
        return stats

    async def _shift_player_counter(self, player_id: int, field: str, delta: int) -> None:
        stats = await self._get_player_stats(player_id, create=delta > 0)
        if stats is None:
            return
        current = getattr(stats, field) or 0
        setattr(stats, field, max(0, current + delta))

    async def apply_goal(self, fixture_id: int, side: TeamSide, player_id: int | None = None) -> Fixture:
        fixture = await self._lock_fixture(fixture_id)
        fixture.set_score(side, fixture.score_for(side) + 1)
        if player_id is not None:
            await self._shift_player_counter(player_id, "goals", +1)
        await self.db.flush()
        return fixture

    async def revert_goal(self, fixture_id: int, side: TeamSide, player_id: int | None = None) -> Fixture:
        fixture = await self._lock_fixture(fixture_id)
        fixture.set_score(side, max(0, fixture.score_for(side) - 1))
        if player_id is not None:
            await self._shift_player_counter(player_id, "goals", -1)
        await self.db.flush()
        return fixture

    async def apply_card(self, player_id: int | None, kind: CardKind | str) -> None:
        """Bump the player's caution counter. Unknown player: nothing to do."""
        kind = parse_card_kind(kind)
        if player_id is None:
            return
        await self._shift_player_counter(player_id, CARD_STAT_FIELD[kind], +1)
        await self.db.flush()

    async def adjust_score(self, fixture_id: int, side: TeamSide, delta: int) -> Fixture:
        """Raise the score with no ledger entry behind it; marks the fixture as diverged."""
        if delta <= 0:
            raise ValidationError("Score adjustment must be positive")
        fixture = await self._lock_fixture(fixture_id)
        fixture.set_score(side, fixture.score_for(side) + delta)
        fixture.score_diverged = True
        await self.db.flush()
        logger.warning(
            "Fixture %s score adjusted without ledger entry: side=%s delta=%s",
            fixture_id,
            side.value,
            delta,
        )
        return fixture

    async def reconcile_score(self, fixture_id: int, ledger_counts: dict[TeamSide, int]) -> Fixture:
        """Overwrite the cached score with ledger-derived counts."""
        fixture = await self._lock_fixture(fixture_id)
        fixture.home_score = ledger_counts.get(TeamSide.home, 0)
        fixture.away_score = ledger_counts.get(TeamSide.away, 0)
        fixture.score_diverged = False
        await self.db.flush()
        return fixture
