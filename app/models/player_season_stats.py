from datetime import datetime

from sqlalchemy import Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.sql_types import PLAYER_ID_SQL_TYPE
from app.utils.clock import utcnow


class PlayerSeasonStats(Base):
    """
    Cumulative season counters for one player.

    Lives outside any fixture. Only the aggregate projector changes these
    counters, as a side effect of goal/card events being recorded or a goal
    being cancelled.
    """

    __tablename__ = "player_season_stats"
    __table_args__ = (
        Index("ix_player_season_stats_goals", "goals"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    player_id: Mapped[int] = mapped_column(
        PLAYER_ID_SQL_TYPE, ForeignKey("players.id"), unique=True, nullable=False
    )

    goals: Mapped[int] = mapped_column(Integer, default=0, nullable=False, server_default="0")
    yellow_cards: Mapped[int] = mapped_column(Integer, default=0, nullable=False, server_default="0")
    red_cards: Mapped[int] = mapped_column(Integer, default=0, nullable=False, server_default="0")

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    player: Mapped["Player"] = relationship("Player", back_populates="season_stats")
