import enum
from datetime import datetime
from sqlalchemy import Integer, Boolean, DateTime, ForeignKey, Enum as SQLEnum, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.sql_types import PLAYER_ID_SQL_TYPE, FIXTURE_ID_SQL_TYPE


class LineupType(str, enum.Enum):
    """Type of lineup entry."""
    starter = "starter"  # On the pitch
    substitute = "substitute"  # On the bench


class FixtureLineup(Base):
    """
    Player lineup for a fixture.
    Stores which players are on the pitch and which are on the bench.
    """
    __tablename__ = "fixture_lineups"
    __table_args__ = (
        UniqueConstraint("fixture_id", "player_id", name="uq_fixture_lineup_player"),
        Index("ix_fixture_lineup_fixture_team", "fixture_id", "team_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fixture_id: Mapped[int] = mapped_column(
        FIXTURE_ID_SQL_TYPE, ForeignKey("fixtures.id"), nullable=False, index=True
    )
    team_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("teams.id"), nullable=False, index=True
    )
    player_id: Mapped[int] = mapped_column(
        PLAYER_ID_SQL_TYPE, ForeignKey("players.id"), nullable=False, index=True
    )

    lineup_type: Mapped[LineupType] = mapped_column(
        SQLEnum(LineupType), nullable=False, default=LineupType.starter
    )
    shirt_number: Mapped[int | None] = mapped_column(Integer)
    is_captain: Mapped[bool] = mapped_column(Boolean, default=False)

    # Set on both rows touched by the most recent substitution
    substituted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Relationships
    fixture: Mapped["Fixture"] = relationship("Fixture", back_populates="lineups")
    team: Mapped["Team"] = relationship("Team")
    player: Mapped["Player"] = relationship("Player")
