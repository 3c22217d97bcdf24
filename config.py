import os

from dotenv import load_dotenv

# 1. Load environment variables from .env file
load_dotenv()

# 2. Storage backend. "sql" is the real database, "memory" serves seeded
#    sample data (demo deployments without a database, and tests).
BOOKING_STORE = os.environ.get("BOOKING_STORE", "sql").lower()

if BOOKING_STORE not in ("sql", "memory"):
    raise ValueError(
        f"BOOKING_STORE must be 'sql' or 'memory', got {BOOKING_STORE!r}. "
        "Please check your .env file."
    )

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./bookings.db")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", "*").split(",")
    if origin.strip()
]

# All date arithmetic happens in this zone, whatever the server's own zone is.
TIMEZONE = "America/Sao_Paulo"
