import pytest

from app.models import MatchEvent, MatchEventType, TeamSide
from app.services.errors import NotFoundError, ValidationError
from app.services.event_ledger import UNKNOWN_PLAYER_NAME, EventLedger


@pytest.mark.asyncio
async def test_append_derives_minute_and_team(test_session, sample_fixture):
    ledger = EventLedger(test_session)

    event = await ledger.append(
        sample_fixture.id,
        MatchEventType.goal,
        "away",
        754,
        player_id=3,
        player_name="Dastan Satpaev",
    )

    assert event.id is not None
    assert event.minute == 12
    assert event.elapsed_seconds == 754
    assert event.side == TeamSide.away
    assert event.team_id == sample_fixture.away_team_id
    assert event.player_name == "Dastan Satpaev"


@pytest.mark.asyncio
async def test_append_without_player_uses_unknown_name(test_session, sample_fixture):
    event = await EventLedger(test_session).append(
        sample_fixture.id, "yellow_card", TeamSide.home, 30
    )

    assert event.player_id is None
    assert event.player_name == UNKNOWN_PLAYER_NAME


@pytest.mark.asyncio
async def test_append_rejects_unknown_fixture(test_session):
    with pytest.raises(ValidationError):
        await EventLedger(test_session).append(999, MatchEventType.goal, "home", 0)


@pytest.mark.asyncio
@pytest.mark.parametrize("event_type,side", [("own_goal", "home"), ("goal", "centre")])
async def test_append_rejects_invalid_kind_or_team(test_session, sample_fixture, event_type, side):
    with pytest.raises(ValidationError):
        await EventLedger(test_session).append(sample_fixture.id, event_type, side, 0)


@pytest.mark.asyncio
async def test_append_substitution_requires_two_different_players(test_session, sample_fixture):
    ledger = EventLedger(test_session)

    with pytest.raises(ValidationError):
        await ledger.append(sample_fixture.id, MatchEventType.substitution, "home", 0, player_id=1)
    with pytest.raises(ValidationError):
        await ledger.append(
            sample_fixture.id, MatchEventType.substitution, "home", 0, player_id=1, player2_id=1
        )


@pytest.mark.asyncio
async def test_list_orders_by_elapsed_then_insertion(test_session, sample_fixture):
    ledger = EventLedger(test_session)
    late = await ledger.append(sample_fixture.id, "goal", "home", 600)
    first_tie = await ledger.append(sample_fixture.id, "goal", "away", 120)
    second_tie = await ledger.append(sample_fixture.id, "yellow_card", "home", 120)
    early = await ledger.append(sample_fixture.id, "red_card", "away", 5)

    events = await ledger.list_events(sample_fixture.id)

    assert [e.id for e in events] == [early.id, first_tie.id, second_tie.id, late.id]


@pytest.mark.asyncio
async def test_remove_goal(test_session, sample_fixture):
    ledger = EventLedger(test_session)
    event = await ledger.append(sample_fixture.id, "goal", "home", 60, player_id=1)
    event_id = event.id

    removed = await ledger.remove(event_id)

    assert removed.player_id == 1
    assert await test_session.get(MatchEvent, event_id) is None
    assert await ledger.list_events(sample_fixture.id) == []


@pytest.mark.asyncio
async def test_remove_missing_event_raises_not_found(test_session, sample_fixture):
    with pytest.raises(NotFoundError):
        await EventLedger(test_session).remove(12345)


@pytest.mark.asyncio
async def test_remove_rejects_cards(test_session, sample_fixture):
    ledger = EventLedger(test_session)
    card = await ledger.append(sample_fixture.id, "yellow_card", "away", 60)

    with pytest.raises(ValidationError):
        await ledger.remove(card.id)

    assert len(await ledger.list_events(sample_fixture.id)) == 1


@pytest.mark.asyncio
async def test_count_goals_per_side(test_session, sample_fixture):
    ledger = EventLedger(test_session)
    await ledger.append(sample_fixture.id, "goal", "home", 10)
    await ledger.append(sample_fixture.id, "goal", "home", 20)
    await ledger.append(sample_fixture.id, "goal", "away", 30)
    await ledger.append(sample_fixture.id, "yellow_card", "away", 40)

    counts = await ledger.count_goals(sample_fixture.id)

    assert counts == {TeamSide.home: 2, TeamSide.away: 1}
