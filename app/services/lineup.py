"""Lineup membership updates triggered by substitutions."""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import FixtureLineup, LineupType
from app.services.errors import ValidationError
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


class LineupService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_team_lineup(self, fixture_id: int, team_id: int) -> list[FixtureLineup]:
        result = await self.db.execute(
            select(FixtureLineup).where(
                FixtureLineup.fixture_id == fixture_id,
                FixtureLineup.team_id == team_id,
            )
        )
        return list(result.scalars().all())

    async def apply_substitution(
        self,
        fixture_id: int,
        team_id: int,
        player_out_id: int,
        player_in_id: int,
        now: datetime | None = None,
    ) -> bool:
        """
        Swap a starter for a bench player.

        Returns False when no lineup was submitted for the team (the
        substitution is then recorded in the ledger only).
        """
        entries = await self.get_team_lineup(fixture_id, team_id)
        if not entries:
            return False

        by_player = {entry.player_id: entry for entry in entries}
        out_entry = by_player.get(player_out_id)
        in_entry = by_player.get(player_in_id)

        if out_entry is None or out_entry.lineup_type != LineupType.starter:
            raise ValidationError(f"Player {player_out_id} is not on the pitch")
        if in_entry is None or in_entry.lineup_type != LineupType.substitute:
            raise ValidationError(f"Player {player_in_id} is not on the bench")

        now = now or utcnow()
        out_entry.lineup_type = LineupType.substitute
        in_entry.lineup_type = LineupType.starter
        out_entry.substituted_at = now
        in_entry.substituted_at = now
        await self.db.flush()

        logger.info(
            "Fixture %s team %s lineup: %s off, %s on",
            fixture_id,
            team_id,
            player_out_id,
            player_in_id,
        )
        return True
