import enum
from datetime import datetime
from sqlalchemy import Integer, String, Boolean, DateTime, ForeignKey, Index, Enum
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.sql_types import FIXTURE_ID_SQL_TYPE
from app.utils.clock import utcnow


class FixtureStatus(str, enum.Enum):
    """Fixture lifecycle status."""
    scheduled = "scheduled"
    live = "live"
    finished = "finished"


class TeamSide(str, enum.Enum):
    """Side of the fixture an event or score belongs to."""
    home = "home"
    away = "away"


class Fixture(Base):
    __tablename__ = "fixtures"
    __table_args__ = (
        Index("ix_fixtures_status", "status"),
    )

    id: Mapped[int] = mapped_column(FIXTURE_ID_SQL_TYPE, primary_key=True, autoincrement=True)
    home_team_id: Mapped[int] = mapped_column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    away_team_id: Mapped[int] = mapped_column(Integer, ForeignKey("teams.id"), nullable=False, index=True)

    # Denormalized score cache, kept equal to the number of goal events per side
    home_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False, server_default="0")
    away_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False, server_default="0")
    # Set when the score was nudged without a ledger entry
    score_diverged: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, server_default="false"
    )

    status: Mapped[FixtureStatus] = mapped_column(
        Enum(FixtureStatus), nullable=False, default=FixtureStatus.scheduled, server_default="scheduled"
    )

    # Clock checkpoint: seconds accumulated so far + when the clock last (re)started.
    elapsed_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False, server_default="0")
    timer_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Inert metadata
    competition: Mapped[str | None] = mapped_column(String(255))
    venue: Mapped[str | None] = mapped_column(String(255))
    home_manager: Mapped[str | None] = mapped_column(String(255))
    away_manager: Mapped[str | None] = mapped_column(String(255))
    kickoff_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    @hybrid_property
    def is_live(self) -> bool:
        return self.status == FixtureStatus.live

    @is_live.inplace.expression
    @classmethod
    def _is_live_expression(cls):
        return cls.status == FixtureStatus.live

    @property
    def is_running(self) -> bool:
        return self.status == FixtureStatus.live and self.timer_started_at is not None

    def team_id_for(self, side: TeamSide) -> int:
        return self.home_team_id if side == TeamSide.home else self.away_team_id

    def score_for(self, side: TeamSide) -> int:
        return self.home_score if side == TeamSide.home else self.away_score

    def set_score(self, side: TeamSide, value: int) -> None:
        if side == TeamSide.home:
            self.home_score = value
        else:
            self.away_score = value

    # Relationships
    home_team: Mapped["Team"] = relationship(
        "Team", back_populates="home_fixtures", foreign_keys=[home_team_id]
    )
    away_team: Mapped["Team"] = relationship(
        "Team", back_populates="away_fixtures", foreign_keys=[away_team_id]
    )
    events: Mapped[list["MatchEvent"]] = relationship(
        "MatchEvent", back_populates="fixture", cascade="all, delete-orphan"
    )
    lineups: Mapped[list["FixtureLineup"]] = relationship(
        "FixtureLineup", back_populates="fixture", cascade="all, delete-orphan"
    )
