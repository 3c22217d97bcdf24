import asyncio
import datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from database import init_db
from models import Booking, Room
from store import (
    BookingNotFoundError,
    DayLocks,
    MemoryBookingStore,
    SlotTakenError,
    SqlBookingStore,
    sample_bookings,
)
from validation import BookingIn


def _booking(day, room=Room.MACHADO, start="10:00", end="11:00", name="Standup"):
    return Booking(name=name, room=room, date=day, start_time=start, end_time=end)


def _data(day, room=Room.MACHADO, start="10:00", end="11:00", name="Standup"):
    return BookingIn(name=name, room=room, date=day, start_time=start, end_time=end)


@pytest.fixture(params=["memory", "sql"])
def run_with_store(request, tmp_path):
    """Run a coroutine function against a fresh store of each kind."""

    def run(scenario):
        async def main():
            if request.param == "memory":
                return await scenario(MemoryBookingStore())
            engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
            try:
                await init_db(engine)
                session_factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
                async with session_factory() as session:
                    return await scenario(SqlBookingStore(session))
            finally:
                await engine.dispose()

        return asyncio.run(main())

    return run


def test_add_and_list_between(run_with_store, today, tomorrow):
    async def scenario(store):
        await store.add(_booking(tomorrow, start="09:00", end="10:00"))
        await store.add(_booking(today, room=Room.SANTOS, start="15:00", end="16:00"))
        await store.add(_booking(today, start="08:00", end="09:00"))
        everything = await store.list_between(today, tomorrow)
        machado_today = await store.list_between(today, today, Room.MACHADO)
        return everything, machado_today

    everything, machado_today = run_with_store(scenario)
    assert [(b.date, b.start_time) for b in everything] == [
        (today, "08:00"),
        (today, "15:00"),
        (tomorrow, "09:00"),
    ]
    assert [(b.room, b.start_time) for b in machado_today] == [(Room.MACHADO, "08:00")]


def test_overlapping_slots_are_refused(run_with_store, today):
    async def scenario(store):
        await store.add(_booking(today, start="10:00", end="11:30"))
        with pytest.raises(SlotTakenError):
            await store.add(_booking(today, start="11:00", end="12:00"))
        await store.add(_booking(today, start="11:30", end="12:00"))
        return await store.list_between(today, today)

    bookings = run_with_store(scenario)
    assert [(b.start_time, b.end_time) for b in bookings] == [
        ("10:00", "11:30"),
        ("11:30", "12:00"),
    ]


def test_replace_moves_slots(run_with_store, today):
    async def scenario(store):
        original = await store.add(_booking(today, start="10:00", end="11:00"))
        updated = await store.replace(
            original.id, _data(today, start="10:30", end="11:30", name="Moved")
        )
        # the old 10:00 slot is free again
        await store.add(_booking(today, start="10:00", end="10:30"))
        return original.id, updated, await store.get(original.id)

    booking_id, updated, fetched = run_with_store(scenario)
    assert updated.id == booking_id
    assert (fetched.name, fetched.start_time, fetched.end_time) == ("Moved", "10:30", "11:30")


def test_replace_into_taken_slot_keeps_original(run_with_store, today):
    async def scenario(store):
        first = await store.add(_booking(today, start="10:00", end="11:00"))
        await store.add(_booking(today, start="12:00", end="13:00"))
        with pytest.raises(SlotTakenError):
            await store.replace(first.id, _data(today, start="12:00", end="12:30"))
        return await store.list_between(today, today)

    bookings = run_with_store(scenario)
    assert [(b.start_time, b.end_time) for b in bookings] == [
        ("10:00", "11:00"),
        ("12:00", "13:00"),
    ]


def test_replace_unknown_booking(run_with_store, today):
    async def scenario(store):
        with pytest.raises(BookingNotFoundError):
            await store.replace("missing", _data(today))

    run_with_store(scenario)


def test_delete(run_with_store, today):
    async def scenario(store):
        booking = await store.add(_booking(today))
        deleted = await store.delete(booking.id)
        deleted_again = await store.delete(booking.id)
        # cancelling frees the slots
        await store.add(_booking(today))
        return deleted, deleted_again, await store.get(booking.id)

    deleted, deleted_again, fetched = run_with_store(scenario)
    assert deleted is True
    assert deleted_again is False
    assert fetched is None


def test_memory_store_seeded_with_samples(today):
    async def scenario():
        store = MemoryBookingStore(sample_bookings(today))
        return await store.list_between(today, today)

    bookings = asyncio.run(scenario())
    assert [(b.room, b.start_time, b.end_time) for b in bookings] == [
        (Room.MACHADO, "10:00", "11:00"),
        (Room.FRANCA, "14:00", "15:30"),
        (Room.SANTOS, "16:00", "17:00"),
    ]


def test_day_locks_are_per_room_and_day(today):
    locks = DayLocks()
    assert locks(Room.FRANCA, today) is locks(Room.FRANCA, today)
    assert locks(Room.FRANCA, today) is locks("FRANCA", today)
    assert locks(Room.FRANCA, today) is not locks(Room.SANTOS, today)
    assert locks(Room.FRANCA, today) is not locks(
        Room.FRANCA, today + datetime.timedelta(days=1)
    )
