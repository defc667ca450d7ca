import os

DATABASE_URL = os.getenv("APPOINTMENT_DB") or "sqlite+aiosqlite:///./appointments.db"
DB_ECHO = (os.getenv("APPOINTMENT_DB_ECHO") or "").lower() in ("1", "true", "yes")

RABBIT_URL = os.getenv("RABBIT_URL")  # optional in dev, required if you want notifications

# Wall-clock zone of availability rule times; slots and bookings are always UTC
SCHEDULE_TIMEZONE = os.getenv("SCHEDULE_TIMEZONE") or "UTC"

DEFAULT_SLOT_MINUTES = int(os.getenv("DEFAULT_SLOT_MINUTES") or "30")

REMINDER_HOURS = float(os.getenv("REMINDER_HOURS") or "24")
REMINDER_POLL_SECONDS = float(os.getenv("REMINDER_POLL_SECONDS") or "60")
REMINDER_WORKER_ENABLED = (os.getenv("REMINDER_WORKER_ENABLED") or "true").lower() != "false"

BOOKING_COMMIT_RETRIES = int(os.getenv("BOOKING_COMMIT_RETRIES") or "3")
ENFORCE_AVAILABILITY_WINDOW = (os.getenv("ENFORCE_AVAILABILITY_WINDOW") or "true").lower() != "false"

CREATE_TABLES_ON_STARTUP = (os.getenv("CREATE_TABLES_ON_STARTUP") or "false").lower() == "true"

LOG_LEVEL = os.getenv("LOG_LEVEL") or "INFO"
