import logging
from collections.abc import AsyncIterator
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import BOOKING_STORE, CORS_ORIGINS, LOG_LEVEL, TIMEZONE
from database import async_session, init_db
from models import ROOM_LABELS, Booking, BookingOut, Room, RoomSchedule, SlotStatus
from store import (
    BookingNotFoundError,
    BookingStore,
    MemoryBookingStore,
    SlotTakenError,
    SqlBookingStore,
    day_locks,
    sample_bookings,
)
from timeutils import (
    FormatError,
    SLOT_MINUTES,
    current_local_date,
    generate_slots,
    intervals_overlap,
    local_day,
    minutes_to_time,
    parse_local_day,
    time_to_minutes,
)
from validation import BookingIn, ShapeResult, find_conflict, validate_shape

logging.basicConfig(
    level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Meeting Room Booking Portal")


@app.on_event("startup")
async def on_startup():
    logger.info("Starting with %s booking store (timezone %s)", BOOKING_STORE, TIMEZONE)
    if BOOKING_STORE == "sql":
        await init_db()
    else:
        today = local_day(current_local_date())
        app.state.memory_store = MemoryBookingStore(sample_bookings(today))


async def get_store(request: Request) -> AsyncIterator[BookingStore]:
    if BOOKING_STORE == "memory":
        yield request.app.state.memory_store
        return
    async with async_session() as session:
        yield SqlBookingStore(session)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def _parse_day(value: str, param: str):
    try:
        return parse_local_day(value)
    except FormatError:
        raise HTTPException(status_code=400, detail=f"Invalid date for '{param}'")


def _validated(payload: Dict[str, Any]) -> BookingIn:
    result: ShapeResult = validate_shape(payload)
    if not result.ok:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "Invalid booking data",
                "details": [e.model_dump() for e in result.errors],
            },
        )
    return result.booking


async def _check_conflict(
    store: BookingStore, candidate: BookingIn, exclude_id: Optional[str] = None
):
    # The whole local day of the candidate, for its room only
    existing = await store.list_between(candidate.date, candidate.date, candidate.room)
    conflict = find_conflict(candidate, existing, exclude_id=exclude_id)
    if conflict:
        logger.info(
            "Rejected %s %s %s-%s: overlaps booking %s",
            candidate.room.value,
            candidate.date,
            candidate.start_time,
            candidate.end_time,
            conflict.booking_id,
        )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=(
                "Time conflict: there is already a booking from "
                f"{conflict.start_time} to {conflict.end_time}"
            ),
        )


def _slot_taken() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Slot already booked for this room and time.",
    )


# --- GET /api/bookings ---
@app.get("/api/bookings")
async def list_bookings(
    from_: Optional[str] = Query(default=None, alias="from"),
    to: Optional[str] = Query(default=None),
    store: BookingStore = Depends(get_store),
):
    if not from_ or not to:
        raise HTTPException(
            status_code=400, detail="Query parameters 'from' and 'to' are required"
        )
    first_day = _parse_day(from_, "from")
    last_day = _parse_day(to, "to")
    bookings = await store.list_between(first_day, last_day)
    return {"bookings": [BookingOut.from_booking(b) for b in bookings]}


@app.get("/api/bookings/{booking_id}")
async def get_booking(booking_id: str, store: BookingStore = Depends(get_store)):
    booking = await store.get(booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    return {"booking": BookingOut.from_booking(booking)}


# --- POST /api/bookings ---
@app.post("/api/bookings", status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: Dict[str, Any] = Body(...),
    store: BookingStore = Depends(get_store),
):
    data = _validated(payload)

    async with day_locks(data.room, data.date):
        await _check_conflict(store, data)
        booking = Booking(
            name=data.name,
            room=data.room,
            date=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
        )
        try:
            booking = await store.add(booking)
        except SlotTakenError:
            raise _slot_taken()

    logger.info(
        "Created booking %s: %s %s %s-%s",
        booking.id,
        booking.room.value,
        booking.date,
        booking.start_time,
        booking.end_time,
    )
    return {"booking": BookingOut.from_booking(booking)}


# --- PATCH /api/bookings/{id} ---
@app.patch("/api/bookings/{booking_id}")
async def update_booking(
    booking_id: str,
    payload: Dict[str, Any] = Body(...),
    store: BookingStore = Depends(get_store),
):
    if await store.get(booking_id) is None:
        raise HTTPException(status_code=404, detail="Booking not found")

    data = _validated(payload)

    async with day_locks(data.room, data.date):
        await _check_conflict(store, data, exclude_id=booking_id)
        try:
            booking = await store.replace(booking_id, data)
        except BookingNotFoundError:
            # cancelled while we were validating
            raise HTTPException(status_code=404, detail="Booking not found")
        except SlotTakenError:
            raise _slot_taken()

    logger.info("Updated booking %s", booking_id)
    return {"booking": BookingOut.from_booking(booking)}


# --- DELETE /api/bookings/{id} ---
@app.delete("/api/bookings/{booking_id}")
async def cancel_booking(booking_id: str, store: BookingStore = Depends(get_store)):
    if not await store.delete(booking_id):
        raise HTTPException(status_code=404, detail="Booking not found")
    logger.info("Cancelled booking %s", booking_id)
    return {"success": True}


@app.get("/api/slots", response_model=List[str])
async def list_slots():
    return generate_slots()


@app.get("/api/rooms")
async def list_rooms():
    return [{"id": room.value, "label": ROOM_LABELS[room]} for room in Room]


# --- GET /api/rooms/{room}/schedule ---
@app.get("/api/rooms/{room}/schedule", response_model=RoomSchedule)
async def get_room_schedule(
    room: Room,
    date: Optional[str] = None,
    store: BookingStore = Depends(get_store),
):
    day = _parse_day(date, "date") if date else local_day(current_local_date())
    bookings = await store.list_between(day, day, room)

    schedule = []
    # The last slot boundary (22:00) only closes the day, nothing starts there
    for slot in generate_slots()[:-1]:
        slot_end = minutes_to_time(time_to_minutes(slot) + SLOT_MINUTES)
        occupant = next(
            (
                b
                for b in bookings
                if intervals_overlap(slot, slot_end, b.start_time, b.end_time)
            ),
            None,
        )
        if occupant:
            schedule.append(
                SlotStatus(
                    time_label=slot,
                    status="occupied",
                    booking_id=occupant.id,
                    name=occupant.name,
                )
            )
        else:
            schedule.append(SlotStatus(time_label=slot, status="available"))

    return RoomSchedule(room=room, label=ROOM_LABELS[room], date=day, schedule=schedule)


@app.get("/api/debug")
async def debug_info():
    return {
        "store": BOOKING_STORE,
        "timezone": TIMEZONE,
        "today": local_day(current_local_date()).isoformat(),
    }


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
