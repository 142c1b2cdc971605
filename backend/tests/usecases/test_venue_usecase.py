from datetime import date, time
from typing import Any

import pytest

from seating.domain.errors import AlreadyExistsError, NotFoundError
from seating.usecases import venue as usecase
from seating.usecases.availability import rebuild_availability

FRIDAY = date(2030, 3, 15)
TODAY = date(2030, 3, 10)


@pytest.mark.asyncio
async def test_create_venue_once(factories: Any) -> None:
    repos = factories["repos"](None, [])
    hours = [usecase.WeeklyHours(weekday=4, opens_at=time(18, 0), closes_at=time(23, 0))]

    venue = await usecase.create_venue(
        repos.venue, name="Bistro", max_capacity=40, rules={"slot_minutes": 30}, hours=hours
    )
    assert venue.slot_minutes == 30
    assert venue.party_size_max == usecase.RULE_DEFAULTS["party_size_max"]
    assert [h.weekday for h in venue.opening_hours] == [4]

    with pytest.raises(AlreadyExistsError):
        await usecase.create_venue(repos.venue, name="Again", max_capacity=10, rules={})


@pytest.mark.asyncio
async def test_create_venue_rejects_unknown_or_invalid_rules(factories: Any) -> None:
    repos = factories["repos"](None, [])
    with pytest.raises(ValueError):
        await usecase.create_venue(repos.venue, name="Bistro", max_capacity=40, rules={"happy_hour": 1})
    with pytest.raises(ValueError):
        await usecase.create_venue(repos.venue, name="Bistro", max_capacity=40, rules={"slot_minutes": 5})


@pytest.mark.asyncio
async def test_update_rules_are_validated(repos: Any) -> None:
    venue = await usecase.update_venue(
        *repos.all(), today=TODAY, rules={"capacity_threshold_percent": 75}, max_capacity=60
    )
    assert venue.capacity_threshold_percent == 75
    assert venue.max_capacity == 60
    with pytest.raises(ValueError):
        await usecase.update_venue(*repos.all(), today=TODAY, rules={"party_size_min": 12})


@pytest.mark.asyncio
async def test_max_duration_is_capped_at_one_day(factories: Any) -> None:
    repos = factories["repos"](None, [])
    with pytest.raises(ValueError):
        await usecase.create_venue(
            repos.venue, name="Bistro", max_capacity=40, rules={"max_duration_minutes": 24 * 60 + 15}
        )
    venue = await usecase.create_venue(
        repos.venue, name="Bistro", max_capacity=40, rules={"max_duration_minutes": 24 * 60}
    )
    assert venue.max_duration_minutes == 24 * 60


@pytest.mark.asyncio
async def test_update_without_settings(factories: Any) -> None:
    repos = factories["repos"](None, [])
    with pytest.raises(NotFoundError):
        await usecase.update_venue(*repos.all(), today=TODAY, name="Nope")


@pytest.mark.asyncio
async def test_opening_hours_replace_the_week(repos: Any) -> None:
    original_friday = next(h for h in repos.venue.venue.opening_hours if h.weekday == 4)
    hours = [
        usecase.WeeklyHours(weekday=4, opens_at=time(17, 0), closes_at=time(1, 0)),
        usecase.WeeklyHours(weekday=6, opens_at=time(12, 0), closes_at=time(15, 0)),
    ]
    venue = await usecase.set_opening_hours(*repos.all(), hours=hours, today=TODAY)

    by_day = {h.weekday: h for h in venue.opening_hours}
    assert sorted(by_day) == [4, 6]
    assert by_day[4] is original_friday
    assert by_day[4].closes_at == time(1, 0)

    with pytest.raises(ValueError):
        await usecase.set_opening_hours(*repos.all(), hours=[hours[0], hours[0]], today=TODAY)


@pytest.mark.asyncio
async def test_closed_date_rebuilds_that_day(repos: Any) -> None:
    await usecase.add_closed_date(*repos.all(), day=FRIDAY, reason="Private hire")

    assert repos.availability.rebuilt == [FRIDAY]
    for row in repos.availability.days[FRIDAY]:
        assert row.free_slots == []
        assert row.blocked_slots[0]["reason"] == "closed"

    with pytest.raises(AlreadyExistsError):
        await usecase.add_closed_date(*repos.all(), day=FRIDAY, reason=None)


@pytest.mark.asyncio
async def test_special_event_hours_apply_to_cache(repos: Any) -> None:
    with pytest.raises(ValueError):
        await usecase.add_special_event(*repos.all(), name="Brunch", day=FRIDAY, opens_at=time(11, 0))

    await usecase.add_special_event(
        *repos.all(), name="Brunch", day=FRIDAY, opens_at=time(11, 0), closes_at=time(12, 0), custom_capacity=20
    )
    rows = repos.availability.days[FRIDAY]
    assert [slot["start"] for slot in rows[0].free_slots] == [
        "2030-03-15T11:00:00",
        "2030-03-15T11:15:00",
        "2030-03-15T11:30:00",
        "2030-03-15T11:45:00",
    ]


@pytest.mark.asyncio
async def test_new_opening_hours_reach_cached_days(repos: Any) -> None:
    await rebuild_availability(*repos.all(), day=FRIDAY)
    assert repos.availability.days[FRIDAY][0].free_slots[0]["start"] == "2030-03-15T18:00:00"

    hours = [usecase.WeeklyHours(weekday=4, opens_at=time(12, 0), closes_at=time(14, 0))]
    await usecase.set_opening_hours(*repos.all(), hours=hours, today=TODAY)

    assert repos.availability.rebuilt == [FRIDAY, FRIDAY]
    free = repos.availability.days[FRIDAY][0].free_slots
    assert free[0]["start"] == "2030-03-15T12:00:00"
    assert free[-1]["end"] == "2030-03-15T14:00:00"


@pytest.mark.asyncio
async def test_past_cached_days_are_left_alone(repos: Any) -> None:
    past_friday = date(2030, 3, 8)
    await rebuild_availability(*repos.all(), day=past_friday)

    await usecase.set_opening_hours(*repos.all(), hours=[], today=TODAY)
    assert repos.availability.rebuilt == [past_friday]


@pytest.mark.asyncio
async def test_slot_width_change_repartitions_cached_days(repos: Any) -> None:
    await rebuild_availability(*repos.all(), day=FRIDAY)

    await usecase.update_venue(*repos.all(), today=TODAY, name="Bistro Two")
    assert repos.availability.rebuilt == [FRIDAY]

    await usecase.update_venue(*repos.all(), today=TODAY, rules={"slot_minutes": 30})
    assert repos.availability.rebuilt == [FRIDAY, FRIDAY]
    starts = [slot["start"] for slot in repos.availability.days[FRIDAY][0].free_slots]
    assert starts[:2] == ["2030-03-15T18:00:00", "2030-03-15T18:30:00"]
