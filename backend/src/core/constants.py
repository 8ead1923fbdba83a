"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_REASON_LENGTH = 500
ID_LENGTH = 64  # UUIDs for our own rows, opaque ids for external users

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:3000",      # Next.js dev server
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Response windows (auto-cancel delay and confirmation expiry share these tiers)
# hours_until < 24       -> 15 minutes
# 24 <= hours_until <= 48 -> 60 minutes
# hours_until > 48        -> 120 minutes
RESPONSE_WINDOW_SHORT_NOTICE_HOURS = 24
RESPONSE_WINDOW_MEDIUM_NOTICE_HOURS = 48
RESPONSE_WINDOW_SHORT_MINUTES = 15
RESPONSE_WINDOW_MEDIUM_MINUTES = 60
RESPONSE_WINDOW_LONG_MINUTES = 120

# Cancellation of confirmed bookings
NO_CANCELLATION_WINDOW_HOURS = 48  # Self-service cancellation is refused inside this window
LOCUM_PENALTY_HOURS = 3            # Locum cancelling within 48 hours
LOCUM_SHORT_NOTICE_PENALTY_HOURS = 6  # Locum cancelling within 24 hours
PRACTICE_PENALTY_HOURS = 6         # Practice cancelling within 24 hours
PENALTY_SHORT_NOTICE_HOURS = 24

# Confirmation rejection reasons
REJECTION_REASON_EXPIRED = "expired"
REJECTION_REASON_LOCUM = "rejected by locum"

# Scheduler settings
MISFIRE_GRACE_TIME_SECONDS = 900  # Timers may fire up to 15 minutes late after a stall
SWEEP_SCHEDULER_MAX_INSTANCES = 1  # Prevent overlapping sweep runs
