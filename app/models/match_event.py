import enum
from datetime import datetime
from sqlalchemy import Integer, String, DateTime, ForeignKey, Enum, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.fixture import TeamSide
from app.models.sql_types import PLAYER_ID_SQL_TYPE, FIXTURE_ID_SQL_TYPE
from app.utils.clock import utcnow


class MatchEventType(str, enum.Enum):
    """Types of match events."""
    goal = "goal"
    yellow_card = "yellow_card"  # minor caution
    red_card = "red_card"  # major caution
    substitution = "substitution"


class MatchEvent(Base):
    """
    Match event (goal, card, substitution) recorded by an operator.

    Rows are only ever inserted or deleted, never updated in place.
    """
    __tablename__ = "match_events"
    __table_args__ = (
        Index("ix_match_events_fixture_id", "fixture_id"),
        Index("ix_match_events_fixture_elapsed", "fixture_id", "elapsed_seconds"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fixture_id: Mapped[int] = mapped_column(
        FIXTURE_ID_SQL_TYPE, ForeignKey("fixtures.id"), nullable=False
    )

    # Event timing (clock reading when recorded)
    minute: Mapped[int] = mapped_column(Integer, nullable=False)
    elapsed_seconds: Mapped[int] = mapped_column(Integer, nullable=False)

    event_type: Mapped[MatchEventType] = mapped_column(
        Enum(MatchEventType), nullable=False
    )

    # Team reference
    side: Mapped[TeamSide] = mapped_column(Enum(TeamSide), nullable=False)
    team_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("teams.id"))

    # Primary player (scorer, carded player, player coming off). NULL = unknown player.
    player_id: Mapped[int | None] = mapped_column(PLAYER_ID_SQL_TYPE, ForeignKey("players.id"))
    player_name: Mapped[str | None] = mapped_column(String(255))

    # Secondary player (player coming on for substitutions)
    player2_id: Mapped[int | None] = mapped_column(PLAYER_ID_SQL_TYPE, ForeignKey("players.id"))
    player2_name: Mapped[str | None] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    # Relationships
    fixture: Mapped["Fixture"] = relationship("Fixture", back_populates="events")
    team: Mapped["Team"] = relationship("Team", foreign_keys=[team_id])
    player: Mapped["Player"] = relationship("Player", foreign_keys=[player_id])
    player2: Mapped["Player"] = relationship("Player", foreign_keys=[player2_id])
