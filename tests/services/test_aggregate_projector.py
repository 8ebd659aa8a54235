from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from app.models import Fixture, PlayerSeasonStats, TeamSide
from app.services.aggregate_projector import AggregateProjector, CardKind
from app.services.errors import NotFoundError, ValidationError


async def _stats(session, player_id):
    result = await session.execute(
        select(PlayerSeasonStats)
        .where(PlayerSeasonStats.player_id == player_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@pytest.mark.asyncio
async def test_apply_goal_increments_score_and_scorer(test_session, sample_fixture, scorer_stats):
    projector = AggregateProjector(test_session)

    fixture = await projector.apply_goal(sample_fixture.id, TeamSide.home, player_id=1)

    assert (fixture.home_score, fixture.away_score) == (1, 0)
    assert (await _stats(test_session, 1)).goals == 5


@pytest.mark.asyncio
async def test_apply_goal_creates_missing_stats_row(test_session, sample_fixture, sample_players):
    projector = AggregateProjector(test_session)

    await projector.apply_goal(sample_fixture.id, TeamSide.away, player_id=3)

    stats = await _stats(test_session, 3)
    assert stats.goals == 1
    assert stats.yellow_cards == 0


@pytest.mark.asyncio
async def test_apply_goal_when_stats_row_appears_concurrently(test_session, sample_fixture, scorer_stats):
    projector = AggregateProjector(test_session)
    real_select = projector._select_stats
    # First read misses the row another request has just inserted.
    projector._select_stats = AsyncMock(side_effect=[None, await real_select(1)])

    await projector.apply_goal(sample_fixture.id, TeamSide.home, player_id=1)

    rows = (
        await test_session.execute(select(PlayerSeasonStats).where(PlayerSeasonStats.player_id == 1))
    ).scalars().all()
    assert len(rows) == 1
    assert rows[0].goals == 5


@pytest.mark.asyncio
async def test_apply_goal_unknown_player_touches_score_only(test_session, sample_fixture, scorer_stats):
    fixture = await AggregateProjector(test_session).apply_goal(sample_fixture.id, TeamSide.away)

    assert fixture.away_score == 1
    assert (await _stats(test_session, 1)).goals == 4


@pytest.mark.asyncio
async def test_revert_goal_is_inverse_of_apply(test_session, sample_fixture, scorer_stats):
    projector = AggregateProjector(test_session)

    await projector.apply_goal(sample_fixture.id, TeamSide.home, player_id=1)
    fixture = await projector.revert_goal(sample_fixture.id, TeamSide.home, player_id=1)

    assert fixture.home_score == 0
    assert (await _stats(test_session, 1)).goals == 4


@pytest.mark.asyncio
async def test_revert_goal_floors_at_zero(test_session, sample_fixture, sample_players):
    test_session.add(PlayerSeasonStats(player_id=2, goals=1))
    await test_session.commit()
    projector = AggregateProjector(test_session)

    await projector.apply_goal(sample_fixture.id, TeamSide.home)
    await projector.revert_goal(sample_fixture.id, TeamSide.home, player_id=2)
    fixture = await projector.revert_goal(sample_fixture.id, TeamSide.home, player_id=2)
    await projector.revert_goal(sample_fixture.id, TeamSide.home, player_id=2)

    assert fixture.home_score == 0
    assert (await _stats(test_session, 2)).goals == 0


@pytest.mark.asyncio
async def test_revert_goal_without_stats_row_is_ignored(test_session, sample_fixture, sample_players):
    await AggregateProjector(test_session).revert_goal(sample_fixture.id, TeamSide.away, player_id=4)

    assert await _stats(test_session, 4) is None


@pytest.mark.asyncio
async def test_goal_on_missing_fixture(test_session):
    with pytest.raises(NotFoundError):
        await AggregateProjector(test_session).apply_goal(404, TeamSide.home)


@pytest.mark.asyncio
async def test_apply_card_counts_by_kind(test_session, sample_fixture, scorer_stats):
    projector = AggregateProjector(test_session)

    await projector.apply_card(1, CardKind.minor)
    await projector.apply_card(1, "major")

    stats = await _stats(test_session, 1)
    assert stats.yellow_cards == 2
    assert stats.red_cards == 1
    assert stats.goals == 4


@pytest.mark.asyncio
async def test_apply_card_unknown_player_is_noop(test_session, sample_fixture):
    await AggregateProjector(test_session).apply_card(None, CardKind.major)

    result = await test_session.execute(select(PlayerSeasonStats))
    assert result.scalars().all() == []


@pytest.mark.asyncio
async def test_apply_card_rejects_unknown_kind(test_session):
    with pytest.raises(ValidationError):
        await AggregateProjector(test_session).apply_card(1, "orange")


@pytest.mark.asyncio
async def test_adjust_score_flags_divergence(test_session, sample_fixture):
    projector = AggregateProjector(test_session)

    fixture = await projector.adjust_score(sample_fixture.id, TeamSide.away, 2)
    assert fixture.away_score == 2
    assert fixture.score_diverged is True

    with pytest.raises(ValidationError):
        await projector.adjust_score(sample_fixture.id, TeamSide.away, -5)


@pytest.mark.asyncio
async def test_reconcile_score_overwrites_cache(test_session, sample_fixture):
    projector = AggregateProjector(test_session)
    await projector.adjust_score(sample_fixture.id, TeamSide.home, 3)

    fixture = await projector.reconcile_score(
        sample_fixture.id, {TeamSide.home: 1, TeamSide.away: 2}
    )

    assert (fixture.home_score, fixture.away_score) == (1, 2)
    assert fixture.score_diverged is False
    reloaded = await test_session.get(Fixture, sample_fixture.id)
    assert reloaded.home_score == 1
