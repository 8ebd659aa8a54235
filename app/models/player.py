from datetime import datetime
from sqlalchemy import Boolean, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.sql_types import PLAYER_ID_SQL_TYPE
from app.utils.clock import utcnow


class Player(Base):
    """Roster entry. Owned by roster management; the live core only reads it."""

    __tablename__ = "players"

    id: Mapped[int] = mapped_column(PLAYER_ID_SQL_TYPE, primary_key=True, autoincrement=True)
    team_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("teams.id"), index=True)
    first_name: Mapped[str | None] = mapped_column(String(100))
    last_name: Mapped[str | None] = mapped_column(String(100))
    number: Mapped[int | None] = mapped_column(Integer)  # Shirt number
    position: Mapped[str | None] = mapped_column(String(20))  # GK, DF, MF, FW
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False, server_default="true"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    @property
    def full_name(self) -> str:
        return " ".join(filter(None, [self.first_name, self.last_name])).strip()

    # Relationships
    team: Mapped["Team"] = relationship("Team", back_populates="players")
    season_stats: Mapped["PlayerSeasonStats"] = relationship(
        "PlayerSeasonStats", back_populates="player", uselist=False
    )
