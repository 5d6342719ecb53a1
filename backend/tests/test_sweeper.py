"""
Tests for the hold expiry sweeper.
"""

import asyncio
from datetime import timedelta

import pytest

from booking_engine.core.clock import as_utc, utcnow
from booking_engine.models.booking import BookingStatus
from booking_engine.services import booking_service
from booking_engine.services.booking_service import CreateMode
from booking_engine.services.sweeper import HoldExpirySweeper

from conftest import CLIENT_ID, TRAINER_ID, at


async def hold(session_factory, service, start, client_id=CLIENT_ID):
    async with session_factory() as session:
        booking = await booking_service.create_booking(session, TRAINER_ID, client_id, service.id, start)
        await session.commit()
        return booking


async def reload(session_factory, booking_id):
    async with session_factory() as session:
        return await booking_service.get_booking(session, booking_id)


@pytest.mark.asyncio
async def test_expired_hold_is_released(session_factory, trainer_rules, test_service, next_monday):
    start = at(next_monday, "10:00")
    booking = await hold(session_factory, test_service, start)
    after_expiry = as_utc(booking.hold_expires_at) + timedelta(minutes=1)

    sweeper = HoldExpirySweeper(session_factory=session_factory)
    assert await sweeper.run_once(now=after_expiry) == 1

    released = await reload(session_factory, booking.id)
    assert released.status == BookingStatus.CANCELLED
    assert released.hold_expires_at is None
    assert released.cancellation_reason == "hold_expired"

    # Slot is bookable again straight away
    rebooked = await hold(session_factory, test_service, start, client_id=CLIENT_ID + 1)
    assert rebooked.status == BookingStatus.SOFT_HOLD


@pytest.mark.asyncio
async def test_live_hold_is_kept(session_factory, trainer_rules, test_service, next_monday):
    booking = await hold(session_factory, test_service, at(next_monday, "10:00"))

    sweeper = HoldExpirySweeper(session_factory=session_factory)
    assert await sweeper.run_once(now=utcnow()) == 0
    assert (await reload(session_factory, booking.id)).status == BookingStatus.SOFT_HOLD


@pytest.mark.asyncio
async def test_confirmed_booking_is_ignored(session_factory, trainer_rules, test_service, next_monday):
    booking = await hold(session_factory, test_service, at(next_monday, "10:00"))
    async with session_factory() as session:
        await booking_service.confirm_booking(session, booking.id)
        await session.commit()

    sweeper = HoldExpirySweeper(session_factory=session_factory)
    assert await sweeper.run_once(now=utcnow() + timedelta(days=1)) == 0
    assert (await reload(session_factory, booking.id)).status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_booking_confirmed_after_scan_is_skipped(
    session_factory, trainer_rules, test_service, next_monday, monkeypatch
):
    """Client confirms between the sweeper's scan and its expire: client wins."""
    booking = await hold(session_factory, test_service, at(next_monday, "10:00"))
    async with session_factory() as session:
        await booking_service.confirm_booking(session, booking.id)
        await session.commit()

    async def stale_scan(db, now, limit):
        return [booking.id]

    monkeypatch.setattr(booking_service, "find_expired_holds", stale_scan)

    sweeper = HoldExpirySweeper(session_factory=session_factory)
    assert await sweeper.run_once(now=utcnow() + timedelta(days=1)) == 0
    assert (await reload(session_factory, booking.id)).status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_one_failure_does_not_block_the_batch(
    session_factory, trainer_rules, test_service, next_monday, monkeypatch
):
    first = await hold(session_factory, test_service, at(next_monday, "10:00"))
    second = await hold(session_factory, test_service, at(next_monday, "12:00"), client_id=CLIENT_ID + 1)

    real_expire = booking_service.expire_hold

    async def flaky_expire(db, booking_id, now=None):
        if booking_id == first.id:
            raise RuntimeError("connection reset")
        return await real_expire(db, booking_id, now)

    monkeypatch.setattr(booking_service, "expire_hold", flaky_expire)

    sweeper = HoldExpirySweeper(session_factory=session_factory)
    assert await sweeper.run_once(now=utcnow() + timedelta(days=1)) == 1
    assert (await reload(session_factory, first.id)).status == BookingStatus.SOFT_HOLD
    assert (await reload(session_factory, second.id)).status == BookingStatus.CANCELLED


@pytest.mark.asyncio
async def test_scan_failure_is_logged_not_raised():
    def broken_factory():
        raise RuntimeError("database unavailable")

    sweeper = HoldExpirySweeper(session_factory=broken_factory)
    assert await sweeper.run_once() == 0


@pytest.mark.asyncio
async def test_batch_size_bounds_a_run(session_factory, trainer_rules, test_service, next_monday):
    for index, time in enumerate(["09:00", "11:00", "13:00"]):
        await hold(session_factory, test_service, at(next_monday, time), client_id=CLIENT_ID + index)

    sweeper = HoldExpirySweeper(session_factory=session_factory, batch_size=2)
    later = utcnow() + timedelta(days=1)
    assert await sweeper.run_once(now=later) == 2
    assert await sweeper.run_once(now=later) == 1


@pytest.mark.asyncio
async def test_start_and_stop(session_factory, trainer_rules, test_service, next_monday):
    sweeper = HoldExpirySweeper(session_factory=session_factory, interval=0.05)
    sweeper.start()
    await asyncio.sleep(0.1)
    await asyncio.wait_for(sweeper.stop(), timeout=1)
    assert sweeper._task is None


@pytest.mark.asyncio
async def test_sweeper_leaves_trainer_confirmed_bookings(session_factory, trainer_rules, test_service, next_monday):
    async with session_factory() as session:
        booking = await booking_service.create_booking(
            session, TRAINER_ID, CLIENT_ID, test_service.id, at(next_monday, "10:00"),
            mode=CreateMode.TRAINER_CONFIRMED,
        )
        await session.commit()

    sweeper = HoldExpirySweeper(session_factory=session_factory)
    assert await sweeper.run_once(now=utcnow() + timedelta(days=30)) == 0
    assert (await reload(session_factory, booking.id)).status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_loop_survives_a_failed_run(session_factory):
    sweeper = HoldExpirySweeper(session_factory=session_factory, interval=0.01)
    calls = []

    async def flaky_run_once(now=None):
        calls.append(now)
        if len(calls) == 1:
            raise RuntimeError("redis went away mid-batch")
        return 0

    sweeper.run_once = flaky_run_once
    sweeper.start()
    for _ in range(100):
        if len(calls) >= 3:
            break
        await asyncio.sleep(0.01)
    await asyncio.wait_for(sweeper.stop(), timeout=1)

    assert len(calls) >= 3
