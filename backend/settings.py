"""
Application Settings

Values are read from the environment (a local .env file is loaded first) so the
same code runs against PostgreSQL in production, MySQL on the barangay server and
SQLite in tests.
"""

import os
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Database connection settings.
# DATABASE_URL wins when present; otherwise a PostgreSQL URL is built from parts.
POSTGRES_USER = os.getenv("POSTGRES_USER", "postgres")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
POSTGRES_SERVER = os.getenv("POSTGRES_SERVER", "localhost")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")
POSTGRES_DB = os.getenv("POSTGRES_DB", "barangay_health")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+psycopg2://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_SERVER}:{POSTGRES_PORT}/{POSTGRES_DB}",
)

# All "today" / audit timestamps are evaluated in the health center's zone
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "Asia/Manila")

# Inventory rules
LOW_STOCK_DEFAULT = int(os.getenv("LOW_STOCK_DEFAULT", "50"))
EXPIRY_WARNING_DAYS = int(os.getenv("EXPIRY_WARNING_DAYS", "30"))

# Flat JSON snapshots from the pre-database era (import / export only)
LEGACY_DATA_DIR = os.getenv("LEGACY_DATA_DIR", os.path.join(BASE_DIR, "data"))

LOG_DIR = os.getenv("LOG_DIR", "logs")

CORS_ALLOWED_ORIGINS = os.getenv(
    "CORS_ALLOWED_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173",
)
