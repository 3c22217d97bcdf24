import datetime
import os

os.environ["BOOKING_STORE"] = "memory"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest  # noqa: E402

from timeutils import current_local_date, local_day  # noqa: E402


@pytest.fixture()
def today() -> datetime.date:
    return local_day(current_local_date())


@pytest.fixture()
def tomorrow(today) -> datetime.date:
    return today + datetime.timedelta(days=1)


@pytest.fixture()
def yesterday(today) -> datetime.date:
    return today - datetime.timedelta(days=1)
