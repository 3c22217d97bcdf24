import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class Room(str, Enum):
    MACHADO = "MACHADO"
    FRANCA = "FRANCA"
    SANTOS = "SANTOS"


ROOM_LABELS = {
    Room.MACHADO: "Machado",
    Room.FRANCA: "Franca",
    Room.SANTOS: "Santos",
}


def _new_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str = Field(max_length=100)
    room: Room = Field(index=True)
    date: datetime.date = Field(index=True)  # local calendar day
    start_time: str  # HH:mm
    end_time: str  # HH:mm
    created_at: datetime.datetime = Field(default_factory=_utcnow)
    updated_at: datetime.datetime = Field(default_factory=_utcnow)


class BookingSlot(SQLModel, table=True):
    """One row per half-hour slot a booking occupies."""

    __tablename__ = "booking_slots"
    __table_args__ = (
        # Database-level protection against double booking
        UniqueConstraint("room", "date", "slot", name="unique_booking_slot"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    booking_id: str = Field(foreign_key="bookings.id", index=True)
    room: Room
    date: datetime.date
    slot: str  # HH:mm


# Pydantic Schemas for Responses
class BookingOut(BaseModel):
    id: str
    name: str
    room: Room
    date: datetime.date
    startTime: str
    endTime: str
    createdAt: datetime.datetime
    updatedAt: datetime.datetime

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingOut":
        return cls(
            id=booking.id,
            name=booking.name,
            room=booking.room,
            date=booking.date,
            startTime=booking.start_time,
            endTime=booking.end_time,
            createdAt=booking.created_at,
            updatedAt=booking.updated_at,
        )


class SlotStatus(BaseModel):
    time_label: str
    status: str
    booking_id: str | None = None
    name: str | None = None


class RoomSchedule(BaseModel):
    room: Room
    label: str
    date: datetime.date
    schedule: list[SlotStatus]
