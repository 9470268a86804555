import os
from decimal import Decimal

db_url = os.environ.get("DB_URL", "sqlite://:memory:")
users_ms_url = os.environ.get("USERS_MS_URL", "http://localhost:8000")
models_ms_url = os.environ.get("MODELS_MS_URL", "http://localhost:8001")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

# Booking policy
COMMISSION_RATE = Decimal(os.environ.get("COMMISSION_RATE", "0.15"))
BOOKING_EXPIRY_MINUTES = int(os.environ.get("BOOKING_EXPIRY_MINUTES", "30"))
EXPIRY_SWEEP_INTERVAL_SECONDS = float(
    os.environ.get("EXPIRY_SWEEP_INTERVAL_SECONDS", "60")
)
BOOKING_VIEWS_TTL = int(os.environ.get("BOOKING_VIEWS_TTL", "60"))
