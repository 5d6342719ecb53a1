"""
Tests for availability endpoints: rules, overrides, resolution and open slots.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from booking_engine.services.availability_service import DEFAULT_WEEKLY_HOURS

from conftest import CLIENT_ID, TRAINER_ID, at, hhmm

RULES_URL = f"/api/v1/availability/{TRAINER_ID}/rules"
OVERRIDES_URL = f"/api/v1/availability/{TRAINER_ID}/overrides"


@pytest.mark.asyncio
async def test_create_and_list_rules(client: AsyncClient):
    response = await client.post(RULES_URL, json={"day_of_week": 1, "start_minute": 540, "end_minute": 1020})
    assert response.status_code == 201
    assert response.json()["trainer_id"] == TRAINER_ID

    rules = (await client.get(RULES_URL)).json()
    assert [(r["day_of_week"], r["start_minute"], r["end_minute"]) for r in rules] == [(1, 540, 1020)]


@pytest.mark.asyncio
async def test_rule_start_must_precede_end(client: AsyncClient):
    response = await client.post(RULES_URL, json={"day_of_week": 1, "start_minute": 600, "end_minute": 600})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_rule_minutes_bounded_to_one_day(client: AsyncClient):
    response = await client.post(RULES_URL, json={"day_of_week": 1, "start_minute": 1200, "end_minute": 1500})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_overlapping_rules_rejected(client: AsyncClient, trainer_rules):
    response = await client.post(RULES_URL, json={"day_of_week": 1, "start_minute": 960, "end_minute": 1080})
    assert response.status_code == 422
    assert response.json()["error"]["kind"] == "InvalidAvailability"

    # Touching is fine
    response = await client.post(RULES_URL, json={"day_of_week": 1, "start_minute": 1020, "end_minute": 1080})
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_update_and_delete_rule(client: AsyncClient, trainer_rules):
    rule_id = trainer_rules[0].id

    response = await client.patch(f"/api/v1/availability/rules/{rule_id}", json={"end_minute": 720})
    assert response.status_code == 200
    assert response.json()["end_minute"] == 720

    response = await client.patch(f"/api/v1/availability/rules/{rule_id}", json={"start_minute": 800})
    assert response.status_code == 422

    response = await client.delete(f"/api/v1/availability/rules/{rule_id}")
    assert response.status_code == 204
    assert (await client.get(RULES_URL)).json() == []

    response = await client.delete(f"/api/v1/availability/rules/{rule_id}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_seed_default_rules_is_idempotent(client: AsyncClient):
    first = await client.post(f"{RULES_URL}/defaults")
    assert first.status_code == 200
    assert len(first.json()) == len(DEFAULT_WEEKLY_HOURS)

    second = await client.post(f"{RULES_URL}/defaults")
    assert [r["id"] for r in second.json()] == [r["id"] for r in first.json()]


@pytest.mark.asyncio
async def test_blocked_day_resolves_to_nothing(client: AsyncClient, trainer_rules, next_monday):
    response = await client.post(
        OVERRIDES_URL,
        json={"block_type": "blocked", "start_date": next_monday.isoformat(), "reason": "conference"},
    )
    assert response.status_code == 201

    week_after = next_monday + timedelta(days=7)
    resolved = await client.get(
        f"/api/v1/availability/{TRAINER_ID}/resolved",
        params={"start_date": next_monday.isoformat(), "end_date": week_after.isoformat()},
    )
    assert resolved.status_code == 200
    intervals = resolved.json()["intervals"]
    assert [i["date"] for i in intervals] == [week_after.isoformat()]


@pytest.mark.asyncio
async def test_partial_override_splits_resolved_hours(client: AsyncClient, trainer_rules, next_monday):
    await client.post(
        OVERRIDES_URL,
        json={
            "block_type": "blocked",
            "start_date": next_monday.isoformat(),
            "start_minute": hhmm("12:00"),
            "end_minute": hhmm("13:00"),
        },
    )
    await client.post(
        OVERRIDES_URL,
        json={
            "block_type": "available",
            "start_date": next_monday.isoformat(),
            "start_minute": hhmm("17:00"),
            "end_minute": hhmm("19:00"),
        },
    )

    resolved = await client.get(
        f"/api/v1/availability/{TRAINER_ID}/resolved",
        params={"start_date": next_monday.isoformat(), "end_date": next_monday.isoformat()},
    )
    windows = [(i["start_minute"], i["end_minute"]) for i in resolved.json()["intervals"]]
    assert windows == [(hhmm("09:00"), hhmm("12:00")), (hhmm("13:00"), hhmm("19:00"))]


@pytest.mark.asyncio
async def test_override_validation(client: AsyncClient, next_monday):
    only_start = await client.post(
        OVERRIDES_URL,
        json={"block_type": "blocked", "start_date": next_monday.isoformat(), "start_minute": 600},
    )
    assert only_start.status_code == 422

    backwards = await client.post(
        OVERRIDES_URL,
        json={
            "block_type": "blocked",
            "start_date": next_monday.isoformat(),
            "end_date": (next_monday - timedelta(days=1)).isoformat(),
        },
    )
    assert backwards.status_code == 422

    unknown = await client.post(OVERRIDES_URL, json={"block_type": "maybe", "start_date": next_monday.isoformat()})
    assert unknown.status_code == 422


@pytest.mark.asyncio
async def test_list_and_delete_overrides(client: AsyncClient, trainer_rules, next_monday):
    created = await client.post(
        OVERRIDES_URL,
        json={
            "block_type": "blocked",
            "start_date": next_monday.isoformat(),
            "end_date": (next_monday + timedelta(days=2)).isoformat(),
        },
    )
    override_id = created.json()["id"]

    listed = await client.get(
        OVERRIDES_URL,
        params={"start_date": (next_monday + timedelta(days=1)).isoformat()},
    )
    assert [o["id"] for o in listed.json()] == [override_id]

    later = await client.get(OVERRIDES_URL, params={"start_date": (next_monday + timedelta(days=3)).isoformat()})
    assert later.json() == []

    assert (await client.delete(f"/api/v1/availability/overrides/{override_id}")).status_code == 204
    assert (await client.get(OVERRIDES_URL)).json() == []


@pytest.mark.asyncio
async def test_resolved_range_validation(client: AsyncClient, next_monday):
    backwards = await client.get(
        f"/api/v1/availability/{TRAINER_ID}/resolved",
        params={"start_date": next_monday.isoformat(), "end_date": (next_monday - timedelta(days=1)).isoformat()},
    )
    assert backwards.status_code == 422

    too_long = await client.get(
        f"/api/v1/availability/{TRAINER_ID}/resolved",
        params={"start_date": next_monday.isoformat(), "end_date": (next_monday + timedelta(days=400)).isoformat()},
    )
    assert too_long.status_code == 422


@pytest.mark.asyncio
async def test_open_slots_exclude_booked_time(client: AsyncClient, trainer_rules, test_service, next_monday):
    params = {"date": next_monday.isoformat(), "duration": 60, "step": 60}
    slots_url = f"/api/v1/availability/{TRAINER_ID}/slots"

    before = (await client.get(slots_url, params=params)).json()
    assert len(before["slots"]) == 8  # 09:00 ... 16:00

    await client.post(
        "/api/v1/bookings/",
        json={
            "trainer_id": TRAINER_ID,
            "client_id": CLIENT_ID,
            "service_id": test_service.id,
            "scheduled_at": at(next_monday, "10:00").isoformat(),
        },
    )

    after = (await client.get(slots_url, params=params)).json()
    assert len(after["slots"]) == 7
    hours = sorted(int(s[11:13]) for s in after["slots"])
    assert 10 not in hours
    assert hours[0] == 9 and hours[-1] == 16


@pytest.mark.asyncio
async def test_open_slots_default_step(client: AsyncClient, trainer_rules, next_monday):
    response = await client.get(
        f"/api/v1/availability/{TRAINER_ID}/slots",
        params={"date": next_monday.isoformat(), "duration": 60},
    )
    data = response.json()
    assert data["step_minutes"] == 15
    # 09:00 ... 16:00 every quarter hour
    assert len(data["slots"]) == 29
