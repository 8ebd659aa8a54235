"""Read-only roster lookups used to populate operator pickers and name events."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Fixture, Player, TeamSide
from app.services.errors import NotFoundError, ValidationError


def player_display_name(player: Player) -> str:
    if player.full_name:
        return player.full_name
    if player.number is not None:
        return f"#{player.number}"
    return f"Player {player.id}"


class RosterService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_team_players(self, team_id: int) -> list[Player]:
        """Active players of a team, by shirt number then name."""
        result = await self.db.execute(
            select(Player)
            .where(Player.team_id == team_id, Player.is_active == True)
            .order_by(Player.number.is_(None), Player.number, Player.last_name)
        )
        return list(result.scalars().all())

    async def get_player(self, player_id: int) -> Player:
        player = await self.db.get(Player, player_id)
        if player is None:
            raise NotFoundError(f"Player {player_id} not found")
        return player

    async def resolve_for_side(self, fixture: Fixture, side: TeamSide, player_id: int) -> Player:
        """
        Look up a player referenced by an operator action.

        Players with a team must belong to the side's team.
        """
        player = await self.get_player(player_id)
        team_id = fixture.team_id_for(side)
        if player.team_id is not None and player.team_id != team_id:
            raise ValidationError(
                f"Player {player_id} does not play for the {side.value} team"
            )
        return player
