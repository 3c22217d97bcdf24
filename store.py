"""Booking persistence behind one interface, backed by SQL or by memory."""
import asyncio
import datetime
import logging
from collections.abc import Iterable
from typing import Protocol

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from models import Booking, BookingSlot, Room
from timeutils import occupied_slots
from validation import BookingIn

logger = logging.getLogger(__name__)


class BookingNotFoundError(LookupError):
    pass


class SlotTakenError(Exception):
    """Another booking already holds one of the requested slots."""


class BookingStore(Protocol):
    async def list_between(
        self,
        first_day: datetime.date,
        last_day: datetime.date,
        room: Room | None = None,
    ) -> list[Booking]: ...

    async def get(self, booking_id: str) -> Booking | None: ...

    async def add(self, booking: Booking) -> Booking: ...

    async def replace(self, booking_id: str, data: BookingIn) -> Booking: ...

    async def delete(self, booking_id: str) -> bool: ...


class DayLocks:
    """One lock per (room, day), so a conflict check and the write that follows
    it cannot interleave with another request for the same room and day."""

    def __init__(self):
        self._locks: dict[tuple[Room, datetime.date], asyncio.Lock] = {}

    def __call__(self, room: Room, day: datetime.date) -> asyncio.Lock:
        return self._locks.setdefault((Room(room), day), asyncio.Lock())


day_locks = DayLocks()


def slot_rows(booking: Booking) -> list[BookingSlot]:
    return [
        BookingSlot(booking_id=booking.id, room=booking.room, date=booking.date, slot=slot)
        for slot in occupied_slots(booking.start_time, booking.end_time)
    ]


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def sample_bookings(today: datetime.date) -> list[Booking]:
    """The demo data set: one booking per room on `today`."""
    return [
        Booking(
            name="Teste Machado",
            room=Room.MACHADO,
            date=today,
            start_time="10:00",
            end_time="11:00",
        ),
        Booking(
            name="Treinamento",
            room=Room.FRANCA,
            date=today,
            start_time="14:00",
            end_time="15:30",
        ),
        Booking(
            name="Reunião Comercial",
            room=Room.SANTOS,
            date=today,
            start_time="16:00",
            end_time="17:00",
        ),
    ]


class SqlBookingStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_between(self, first_day, last_day, room=None):
        statement = select(Booking).where(
            Booking.date >= first_day, Booking.date <= last_day
        )
        if room is not None:
            statement = statement.where(Booking.room == room)
        statement = statement.order_by(Booking.date, Booking.start_time)
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def get(self, booking_id):
        return await self.session.get(Booking, booking_id)

    async def add(self, booking):
        self.session.add(booking)
        self.session.add_all(slot_rows(booking))
        await self._commit()
        await self.session.refresh(booking)
        return booking

    async def replace(self, booking_id, data):
        booking = await self.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)

        await self.session.execute(
            delete(BookingSlot).where(BookingSlot.booking_id == booking_id)
        )
        booking.name = data.name
        booking.room = data.room
        booking.date = data.date
        booking.start_time = data.start_time
        booking.end_time = data.end_time
        booking.updated_at = _now()
        self.session.add(booking)
        self.session.add_all(slot_rows(booking))
        await self._commit()
        await self.session.refresh(booking)
        return booking

    async def delete(self, booking_id):
        booking = await self.get(booking_id)
        if booking is None:
            return False
        await self.session.execute(
            delete(BookingSlot).where(BookingSlot.booking_id == booking_id)
        )
        await self.session.delete(booking)
        await self.session.commit()
        return True

    async def clear(self):
        await self.session.execute(delete(BookingSlot))
        await self.session.execute(delete(Booking))
        await self.session.commit()

    async def _commit(self):
        try:
            await self.session.commit()
        except IntegrityError as exc:
            # This catches the UniqueConstraint violation on booking_slots
            await self.session.rollback()
            raise SlotTakenError(str(exc.orig)) from exc


class MemoryBookingStore:
    """Dict-backed store for demo deployments and tests.

    Every method body runs without awaiting, so each call is atomic on the
    event loop.
    """

    def __init__(self, bookings: Iterable[Booking] = ()):
        self._bookings: dict[str, Booking] = {}
        self._slots: dict[tuple[Room, datetime.date, str], str] = {}
        for booking in bookings:
            self._claim(booking)

    def _claim(self, booking: Booking):
        keys = [(Room(row.room), row.date, row.slot) for row in slot_rows(booking)]
        for key in keys:
            holder = self._slots.get(key)
            if holder is not None and holder != booking.id:
                raise SlotTakenError(f"{key[0].value} {key[1]} {key[2]} held by {holder}")
        for key in keys:
            self._slots[key] = booking.id
        self._bookings[booking.id] = booking

    def _release(self, booking: Booking):
        self._slots = {
            key: holder for key, holder in self._slots.items() if holder != booking.id
        }
        self._bookings.pop(booking.id, None)

    async def list_between(self, first_day, last_day, room=None):
        bookings = [
            b
            for b in self._bookings.values()
            if first_day <= b.date <= last_day and (room is None or b.room == room)
        ]
        return sorted(bookings, key=lambda b: (b.date, b.start_time))

    async def get(self, booking_id):
        return self._bookings.get(booking_id)

    async def add(self, booking):
        self._claim(booking)
        return booking

    async def replace(self, booking_id, data):
        current = self._bookings.get(booking_id)
        if current is None:
            raise BookingNotFoundError(booking_id)
        updated = Booking(
            id=current.id,
            name=data.name,
            room=data.room,
            date=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
            created_at=current.created_at,
            updated_at=_now(),
        )
        self._release(current)
        try:
            self._claim(updated)
        except SlotTakenError:
            self._claim(current)
            raise
        return updated

    async def delete(self, booking_id):
        booking = self._bookings.get(booking_id)
        if booking is None:
            return False
        self._release(booking)
        logger.debug("Released slots of booking %s", booking_id)
        return True
