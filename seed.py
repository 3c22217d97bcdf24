"""Reset the database to the demo data set: `python seed.py`."""
import asyncio
import logging

from database import async_session, init_db
from store import SqlBookingStore, sample_bookings
from timeutils import current_local_date, local_day

logger = logging.getLogger(__name__)


async def seed():
    await init_db()
    async with async_session() as session:
        store = SqlBookingStore(session)
        await store.clear()
        logger.info("Cleared existing bookings")

        for booking in sample_bookings(local_day(current_local_date())):
            created = await store.add(booking)
            logger.info(
                "Created booking: %s in %s on %s-%s",
                created.name,
                created.room.value,
                created.start_time,
                created.end_time,
            )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())
