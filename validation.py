"""Booking rules: is a proposed booking well-formed, and does it collide with
an existing one?

Nothing here touches storage. The caller loads the candidate bookings and
decides what to do with the outcome.
"""
import datetime
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from models import Booking, Room
from timeutils import (
    FormatError,
    intervals_overlap,
    is_business_hours,
    is_past,
    is_slot_aligned,
    is_valid_interval,
    is_valid_time,
    parse_local_day,
    start_of_local_day,
)

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100

# Message keys; the HTTP layer may translate them for display.
NAME_LENGTH = "name length"
INVALID_ROOM = "invalid room"
INVALID_DATE = "invalid date"
DATE_IN_PAST = "date in past"
TIME_FORMAT = "format"
TIME_HOURS = "hours"
TIME_STEP = "step"
INTERVAL_ORDER = "start must precede end"

# Errors are always keyed by the request (camelCase) field names.
FIELD_NAMES = {"start_time": "startTime", "end_time": "endTime"}


class BookingIn(BaseModel):
    """A booking request that has passed every shape rule."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    room: Room
    date: datetime.date
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")

    @field_validator("name", mode="before")
    @classmethod
    def check_name(cls, value: Any) -> str:
        if not isinstance(value, str) or not (
            NAME_MIN_LENGTH <= len(value) <= NAME_MAX_LENGTH
        ):
            raise PydanticCustomError("name_length", NAME_LENGTH)
        return value

    @field_validator("room", mode="before")
    @classmethod
    def check_room(cls, value: Any) -> Room:
        try:
            return Room(value)
        except ValueError:
            raise PydanticCustomError("invalid_room", INVALID_ROOM) from None

    @field_validator("date", mode="before")
    @classmethod
    def check_date(cls, value: Any) -> datetime.date:
        try:
            day = parse_local_day(value)
        except FormatError:
            raise PydanticCustomError("invalid_date", INVALID_DATE) from None
        if is_past(day):
            raise PydanticCustomError("date_in_past", DATE_IN_PAST)
        return day

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def check_time(cls, value: Any) -> str:
        if not is_valid_time(value):
            raise PydanticCustomError("time_format", TIME_FORMAT)
        if not is_business_hours(value):
            raise PydanticCustomError("time_hours", TIME_HOURS)
        if not is_slot_aligned(value):
            raise PydanticCustomError("time_step", TIME_STEP)
        return value


class FieldError(BaseModel):
    field: str
    message: str


class ShapeResult(BaseModel):
    booking: Optional[BookingIn] = None
    errors: list[FieldError] = []

    @property
    def ok(self) -> bool:
        return self.booking is not None


class Conflict(BaseModel):
    booking_id: str
    start_time: str
    end_time: str


def validate_shape(raw: Mapping[str, Any]) -> ShapeResult:
    """Check every shape rule and report all failures together.

    The interval rule is checked on its own whenever both times are well-formed,
    so a bad name does not hide a reversed interval.
    """
    errors = []
    booking = None
    try:
        booking = BookingIn.model_validate(raw)
    except ValidationError as exc:
        for err in exc.errors():
            parts = [FIELD_NAMES.get(str(part), str(part)) for part in err["loc"]]
            field = ".".join(parts) or "__root__"
            errors.append(FieldError(field=field, message=err["msg"]))

    start = raw.get("startTime", raw.get("start_time"))
    end = raw.get("endTime", raw.get("end_time"))
    if is_valid_time(start) and is_valid_time(end) and not is_valid_interval(start, end):
        errors.append(FieldError(field="endTime", message=INTERVAL_ORDER))

    if errors:
        return ShapeResult(errors=errors)
    return ShapeResult(booking=booking)


def find_conflict(
    candidate: BookingIn,
    existing_bookings: Iterable[Booking],
    exclude_id: str | None = None,
) -> Conflict | None:
    """Return the first existing booking that collides with `candidate`.

    `existing_bookings` only has to contain the candidate's room and day;
    anything else is skipped. Leaving a same-day booking out hides its conflict.
    """
    candidate_day = start_of_local_day(candidate.date)
    for booking in existing_bookings:
        if exclude_id is not None and booking.id == exclude_id:
            continue
        if booking.room != candidate.room:
            continue
        if start_of_local_day(booking.date) != candidate_day:
            continue
        if intervals_overlap(
            candidate.start_time, candidate.end_time, booking.start_time, booking.end_time
        ):
            return Conflict(
                booking_id=booking.id,
                start_time=booking.start_time,
                end_time=booking.end_time,
            )
    return None
